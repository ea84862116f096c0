"""Translate PostgREST rows into timeline domain records."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import ValidationError

from skilltimeline.domain.timeline.model import (
    EventKind,
    FieldChange,
    Operation,
    OrganizationRecord,
    RawEventRecord,
    SkillApplicationRecord,
    SkillRecord,
    UserRecord,
)

from .schema import (
    AuditLogRow,
    AuditLogRowInput,
    CustomerRow,
    ProfileRow,
    SkillApplicationRow,
    SkillRow,
)

if TYPE_CHECKING:
    from collections.abc import Iterable


log = getLogger(__name__)


def _ensure_audit_log_row(row: AuditLogRowInput) -> AuditLogRow:
    if isinstance(row, AuditLogRow):
        return row
    return AuditLogRow.model_validate(row)


def parse_raw_event(row: AuditLogRowInput) -> RawEventRecord:
    payload = _ensure_audit_log_row(row)
    return RawEventRecord(
        id=payload.id,
        occurred_at=payload.event_time,
        operation=Operation.parse(payload.event_type),
        actor_id=payload.user_id,
        subject_entity_type=payload.entity_type,
        subject_entity_id=payload.entity_id,
        description=payload.description,
        metadata=payload.metadata,
        field_changes=tuple(
            FieldChange(field=change.field, old_value=change.old_value, new_value=change.new_value)
            for change in payload.changes or ()
        ),
        recorded_kind=EventKind.from_recorded(payload.event_type),
    )


def parse_raw_events(rows: Iterable[object]) -> list[RawEventRecord]:
    """Parse rows, skipping (and logging) the ones that do not validate."""

    records: list[RawEventRecord] = []
    for row in rows:
        try:
            records.append(parse_raw_event(AuditLogRow.model_validate(row)))
        except ValidationError as exc:
            row_id = row.get("id") if isinstance(row, dict) else None
            log.warning(
                "Skipping unparseable audit_logs row %s: %d validation error(s)",
                row_id,
                exc.error_count(),
            )
    return records


def parse_user(row: object) -> UserRecord:
    payload = ProfileRow.model_validate(row)
    return UserRecord(
        id=payload.id,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
    )


def parse_organization(row: object) -> OrganizationRecord:
    payload = CustomerRow.model_validate(row)
    return OrganizationRecord(id=payload.id, name=payload.name)


def parse_skill(row: object) -> SkillRecord:
    payload = SkillRow.model_validate(row)
    return SkillRecord(id=payload.id, name=payload.name, category=payload.category)


def parse_skill_application(row: object) -> SkillApplicationRecord:
    payload = SkillApplicationRow.model_validate(row)
    return SkillApplicationRecord(
        id=payload.id,
        user_id=payload.user_id,
        skill_id=payload.skill_id,
        organization_id=payload.customer_id,
        proficiency=payload.proficiency,
        ended=payload.end_date is not None,
    )
