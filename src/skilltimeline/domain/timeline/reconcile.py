"""Check that the timeline and the relationship table agree.

Skill applications are written twice: once to the ``skill_applications``
table and once to the activity log. Replaying ``SKILL_APPLIED`` and
``SKILL_REMOVED`` events oldest to newest yields the set of relationships
the timeline believes are active; it must equal the set of live rows.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from .model import SKILL_APPLICATIONS, EventKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from skilltimeline.domain.ports.fetching import SkillApplicationSource

    from .assemble import TimelineAssembler
    from .model import SkillApplicationRecord, UnifiedEvent

log = getLogger(__name__)

DEFAULT_HISTORY_PAGE_SIZE = 200


@dataclass(frozen=True, slots=True, order=True)
class ApplicationKey:
    user_id: str
    skill_id: str
    organization_id: str


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    timeline_active: frozenset[ApplicationKey]
    table_active: frozenset[ApplicationKey]
    unverifiable_event_ids: tuple[str, ...] = ()

    @property
    def missing_from_timeline(self) -> frozenset[ApplicationKey]:
        return self.table_active - self.timeline_active

    @property
    def missing_from_table(self) -> frozenset[ApplicationKey]:
        return self.timeline_active - self.table_active

    @property
    def converged(self) -> bool:
        return self.timeline_active == self.table_active


def _event_key(event: UnifiedEvent) -> ApplicationKey | None:
    skill = event.related_skill
    organization = event.related_organization
    user_id = event.related_user.id if event.related_user else event.actor.id
    if (
        user_id is None
        or skill is None
        or organization is None
        or skill.is_placeholder
        or organization.is_placeholder
    ):
        return None
    return ApplicationKey(
        user_id=user_id, skill_id=str(skill.id), organization_id=str(organization.id)
    )


def replay_active_applications(
    events: Iterable[UnifiedEvent],
) -> tuple[frozenset[ApplicationKey], tuple[str, ...]]:
    """Return active keys plus ids of application events that cannot be keyed."""

    active: set[ApplicationKey] = set()
    unverifiable: list[str] = []
    for event in sorted(events, key=lambda item: item.timestamp):
        if not event.kind.is_skill_application:
            continue
        key = _event_key(event)
        if key is None:
            unverifiable.append(event.id)
            continue
        if event.kind is EventKind.SKILL_APPLIED:
            active.add(key)
        else:
            active.discard(key)
    return frozenset(active), tuple(unverifiable)


def reconcile_applications(
    events: Iterable[UnifiedEvent],
    live_records: Iterable[SkillApplicationRecord],
    *,
    user_id: str | None = None,
    organization_id: str | None = None,
) -> ReconciliationReport:
    """Compare the replayed timeline with live rows, optionally scoped to one side."""

    def in_scope(key: ApplicationKey) -> bool:
        if user_id is not None and key.user_id != user_id:
            return False
        return organization_id is None or key.organization_id == str(organization_id)

    timeline_active, unverifiable = replay_active_applications(events)
    table_active = frozenset(
        ApplicationKey(
            user_id=record.user_id,
            skill_id=str(record.skill_id),
            organization_id=str(record.organization_id),
        )
        for record in live_records
        if not record.ended
    )
    report = ReconciliationReport(
        timeline_active=frozenset(key for key in timeline_active if in_scope(key)),
        table_active=frozenset(key for key in table_active if in_scope(key)),
        unverifiable_event_ids=unverifiable,
    )
    if not report.converged:
        log.warning(
            "Timeline and skill_applications diverge: %d missing from timeline, "
            "%d missing from table",
            len(report.missing_from_timeline),
            len(report.missing_from_table),
        )
    return report


async def check_convergence(
    *,
    assembler: TimelineAssembler,
    applications: SkillApplicationSource,
    user_id: str | None = None,
    organization_id: str | None = None,
    page_size: int = DEFAULT_HISTORY_PAGE_SIZE,
) -> ReconciliationReport:
    """Replay the whole skill-application history against the live rows.

    The full history is read because an application applied long ago is
    still active; scoping to a user or organization happens on the keys.
    """

    events, live_records = await asyncio.gather(
        assembler.assemble_history(SKILL_APPLICATIONS, page_size=page_size),
        applications.fetch_skill_applications(user_id=user_id, organization_id=organization_id),
    )
    return reconcile_applications(
        events, live_records, user_id=user_id, organization_id=organization_id
    )
