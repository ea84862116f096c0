"""Reusable fakes and record builders for timeline tests."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from skilltimeline.domain.timeline import (
    FieldChange,
    Operation,
    OrganizationRecord,
    RawEventRecord,
    SkillApplicationRecord,
    SkillRecord,
    UserRecord,
)

if TYPE_CHECKING:
    from collections.abc import Collection, Iterator, Sequence

    from skilltimeline.domain.timeline import EventKind

BASE_TIME = datetime(2025, 3, 1, 12, tzinfo=UTC)


def make_record(
    record_id: str = "1",
    *,
    operation: Operation = Operation.CREATE,
    entity_type: str | None = None,
    entity_id: str | None = None,
    actor_id: str | None = "user-1",
    description: str | None = None,
    metadata: object = None,
    changes: Sequence[FieldChange] = (),
    recorded_kind: EventKind | None = None,
    minutes: int = 0,
) -> RawEventRecord:
    """Create a raw record ``minutes`` after ``BASE_TIME``."""

    return RawEventRecord(
        id=record_id,
        occurred_at=BASE_TIME + timedelta(minutes=minutes),
        operation=operation,
        actor_id=actor_id,
        subject_entity_type=entity_type,
        subject_entity_id=entity_id,
        description=description,
        metadata=metadata,
        field_changes=tuple(changes),
        recorded_kind=recorded_kind,
    )


class FakeEventSource:
    """In-memory raw-event source that mimics the store's query semantics."""

    def __init__(
        self,
        records: Sequence[RawEventRecord] = (),
        *,
        mentions: Sequence[RawEventRecord] = (),
        fail_primary: Exception | None = None,
        fail_mentions: Exception | None = None,
    ) -> None:
        self.records = list(records)
        self.mentions = list(mentions)
        self.fail_primary = fail_primary
        self.fail_mentions = fail_mentions
        self.event_queries: list[tuple[str | None, str | None, int]] = []
        self.event_offsets: list[int] = []
        self.mention_queries: list[tuple[str, str, int]] = []

    async def query_events(
        self,
        *,
        subject_entity_type: str | None = None,
        subject_entity_id: str | None = None,
        limit: int,
        offset: int = 0,
    ) -> list[RawEventRecord]:
        self.event_queries.append((subject_entity_type, subject_entity_id, limit))
        self.event_offsets.append(offset)
        if self.fail_primary is not None and subject_entity_type != "skill_applications":
            raise self.fail_primary
        matching = [
            record
            for record in self.records
            if (subject_entity_type is None or record.subject_entity_type == subject_entity_type)
            and (subject_entity_id is None or record.subject_entity_id == subject_entity_id)
        ]
        matching.sort(key=lambda record: record.occurred_at, reverse=True)
        return matching[offset : offset + limit]

    async def query_related_mentions(
        self,
        *,
        related_entity_type: str,
        related_entity_id: str,
        limit: int,
    ) -> list[RawEventRecord]:
        self.mention_queries.append((related_entity_type, related_entity_id, limit))
        if self.fail_mentions is not None:
            raise self.fail_mentions
        return self.mentions[:limit]


@dataclass
class FakeDirectory:
    """In-memory reference directory recording every batch lookup."""

    users: list[UserRecord] = field(default_factory=list[UserRecord])
    organizations: list[OrganizationRecord] = field(default_factory=list[OrganizationRecord])
    skills: list[SkillRecord] = field(default_factory=list[SkillRecord])
    calls: list[tuple[str, tuple[str, ...]]] = field(default_factory=list)

    async def fetch_users(self, ids: Collection[str]) -> list[UserRecord]:
        self.calls.append(("users", tuple(ids)))
        return [user for user in self.users if user.id in ids]

    async def fetch_organizations(self, ids: Collection[str]) -> list[OrganizationRecord]:
        self.calls.append(("organizations", tuple(ids)))
        return [org for org in self.organizations if str(org.id) in ids]

    async def fetch_skills(self, ids: Collection[str]) -> list[SkillRecord]:
        self.calls.append(("skills", tuple(ids)))
        return [skill for skill in self.skills if str(skill.id) in ids]


@dataclass
class FakeApplicationSource:
    records: list[SkillApplicationRecord] = field(default_factory=list[SkillApplicationRecord])

    async def fetch_skill_applications(
        self,
        *,
        user_id: str | None = None,
        organization_id: str | None = None,
    ) -> list[SkillApplicationRecord]:
        return [
            record
            for record in self.records
            if (user_id is None or record.user_id == user_id)
            and (organization_id is None or str(record.organization_id) == organization_id)
        ]


def sample_directory() -> FakeDirectory:
    return FakeDirectory(
        users=[
            UserRecord(id="user-1", first_name="Ada", last_name="Lovelace"),
            UserRecord(id="user-2", first_name=None, last_name=None, email="grace@example.com"),
        ],
        organizations=[OrganizationRecord(id=7, name="Acme")],
        skills=[SkillRecord(id=12, name="Python", category="Languages")],
    )


class UnreadableMetadata(Mapping[str, object]):
    """Metadata object whose every key lookup fails."""

    def __getitem__(self, key: str) -> object:
        raise RuntimeError(f"cannot read {key}")

    def __iter__(self) -> Iterator[str]:
        return iter(())

    def __len__(self) -> int:
        return 0
