"""Infer a semantic ``EventKind`` for raw activity-log records.

The event producer does not reliably tag the semantic type of what happened,
so classification combines structural hints (the subject entity type) with
textual hints (the description) and metadata shape. Rules are evaluated in
priority order and the first match wins:

1. skill-application detection (table name, "applied ... at" wording, or
   metadata carrying both a skill name and an organization name)
2. an explicit semantic tag recorded by the producer
3. a static ``(entity type, operation)`` dispatch table
4. generic ``GENERIC_*`` fallbacks by operation
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from .model import (
    MEMBERSHIP_ENTITY_TYPES,
    ORGANIZATION_ENTITY_TYPES,
    PROFILE_SKILL_ENTITY_TYPES,
    SKILL_APPLICATIONS,
    SKILL_ENTITY_TYPES,
    USER_ENTITY_TYPES,
    EventKind,
    Operation,
)
from .resolve import metadata_organization_name, metadata_skill_name

if TYPE_CHECKING:
    from .model import RawEventRecord

log = getLogger(__name__)


def _table(
    entity_types: frozenset[str], kinds: dict[Operation, EventKind]
) -> dict[tuple[str, Operation], EventKind]:
    return {
        (entity_type, operation): kind
        for entity_type in entity_types
        for operation, kind in kinds.items()
    }


_DISPATCH: dict[tuple[str, Operation], EventKind] = {
    **_table(
        USER_ENTITY_TYPES,
        {
            Operation.CREATE: EventKind.USER_CREATED,
            Operation.UPDATE: EventKind.USER_UPDATED,
            Operation.DELETE: EventKind.USER_DELETED,
        },
    ),
    **_table(
        ORGANIZATION_ENTITY_TYPES,
        {
            Operation.CREATE: EventKind.ORGANIZATION_CREATED,
            Operation.UPDATE: EventKind.ORGANIZATION_UPDATED,
            Operation.DELETE: EventKind.ORGANIZATION_DELETED,
        },
    ),
    **_table(
        SKILL_ENTITY_TYPES,
        {
            Operation.CREATE: EventKind.SKILL_CREATED,
            Operation.UPDATE: EventKind.SKILL_UPDATED,
            Operation.DELETE: EventKind.SKILL_DELETED,
        },
    ),
    **_table(
        PROFILE_SKILL_ENTITY_TYPES,
        {
            Operation.CREATE: EventKind.SKILL_ADDED_TO_PROFILE,
            Operation.UPDATE: EventKind.SKILL_UPDATED_ON_PROFILE,
            Operation.DELETE: EventKind.SKILL_REMOVED_FROM_PROFILE,
        },
    ),
    **_table(
        MEMBERSHIP_ENTITY_TYPES,
        {
            Operation.CREATE: EventKind.USER_JOINED_ORGANIZATION,
            Operation.DELETE: EventKind.USER_LEFT_ORGANIZATION,
        },
    ),
}

_GENERIC: dict[Operation, EventKind] = {
    Operation.CREATE: EventKind.GENERIC_CREATED,
    Operation.UPDATE: EventKind.GENERIC_UPDATED,
    Operation.DELETE: EventKind.GENERIC_DELETED,
}


def is_skill_application(record: RawEventRecord) -> bool:
    """Return whether ``record`` looks like a skill being applied at an organization."""

    if _entity_type(record) == SKILL_APPLICATIONS:
        return True
    description = (record.description or "").lower()
    if "applied" in description and "at" in description:
        return True
    return (
        metadata_skill_name(record) is not None
        and metadata_organization_name(record) is not None
    )


def classify(record: RawEventRecord) -> EventKind:
    """Map ``record`` to exactly one member of ``EventKind``.

    Pure function of the record: the same operation, entity type, description
    and metadata always produce the same kind.
    """

    if is_skill_application(record):
        kind = _classify_skill_application(record)
        log.debug("Record %s classified as skill application: %s", record.id, kind)
        return kind

    if record.recorded_kind is not None:
        return record.recorded_kind

    entity_type = _entity_type(record)
    if entity_type is not None:
        kind = _DISPATCH.get((entity_type, record.operation))
        if kind is not None:
            return kind

    # unrecognized operations default to GENERIC_UPDATED
    return _GENERIC.get(record.operation, EventKind.GENERIC_UPDATED)


def _classify_skill_application(record: RawEventRecord) -> EventKind:
    match record.operation:
        case Operation.CREATE:
            return EventKind.SKILL_APPLIED
        case Operation.DELETE:
            return EventKind.SKILL_REMOVED
        case Operation.UPDATE:
            description = (record.description or "").lower()
            if "ended" in description or "removed" in description:
                return EventKind.SKILL_REMOVED
            return EventKind.SKILL_APPLIED
        case _:
            if record.recorded_kind is not None and record.recorded_kind.is_skill_application:
                return record.recorded_kind
            return EventKind.SKILL_APPLIED


def _entity_type(record: RawEventRecord) -> str | None:
    if not record.subject_entity_type:
        return None
    return record.subject_entity_type.strip().lower()
