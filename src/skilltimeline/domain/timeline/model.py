"""Timeline domain types (pure, dependency-light)."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from datetime import datetime

type EntityId = int | str
type NormalizedMetadata = dict[str, object]

PLACEHOLDER_ID = 0
UNKNOWN_USER = "Unknown User"

SKILL_APPLICATIONS = "skill_applications"
USER_ENTITY_TYPES = frozenset({"users", "profiles"})
ORGANIZATION_ENTITY_TYPES = frozenset({"customers", "organizations"})
SKILL_ENTITY_TYPES = frozenset({"skills"})
PROFILE_SKILL_ENTITY_TYPES = frozenset({"user_skills", "profile_skills"})
MEMBERSHIP_ENTITY_TYPES = frozenset({"user_customers", "customer_profiles"})


class Operation(StrEnum):
    """Store-level mutation kind of a raw event."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: str | None) -> Operation:
        if not value:
            return cls.UNKNOWN
        normalized = value.strip().upper()
        if normalized == "INSERT":
            return cls.CREATE
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


class EventKind(StrEnum):
    """Closed taxonomy of semantic timeline events."""

    SKILL_APPLIED = "SKILL_APPLIED"
    SKILL_REMOVED = "SKILL_REMOVED"

    USER_JOINED_ORGANIZATION = "USER_JOINED_ORGANIZATION"
    USER_LEFT_ORGANIZATION = "USER_LEFT_ORGANIZATION"

    SKILL_ADDED_TO_PROFILE = "SKILL_ADDED_TO_PROFILE"
    SKILL_UPDATED_ON_PROFILE = "SKILL_UPDATED_ON_PROFILE"
    SKILL_REMOVED_FROM_PROFILE = "SKILL_REMOVED_FROM_PROFILE"

    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"

    ORGANIZATION_CREATED = "ORGANIZATION_CREATED"
    ORGANIZATION_UPDATED = "ORGANIZATION_UPDATED"
    ORGANIZATION_DELETED = "ORGANIZATION_DELETED"

    SKILL_CREATED = "SKILL_CREATED"
    SKILL_UPDATED = "SKILL_UPDATED"
    SKILL_DELETED = "SKILL_DELETED"

    GENERIC_CREATED = "GENERIC_CREATED"
    GENERIC_UPDATED = "GENERIC_UPDATED"
    GENERIC_DELETED = "GENERIC_DELETED"

    @property
    def is_skill_application(self) -> bool:
        return self in (EventKind.SKILL_APPLIED, EventKind.SKILL_REMOVED)

    @classmethod
    def from_recorded(cls, value: str | None) -> EventKind | None:
        """Parse a semantic tag written by the event producer, if it is one."""

        if not value:
            return None
        normalized = value.strip().upper()
        legacy = _LEGACY_RECORDED_KINDS.get(normalized)
        if legacy is not None:
            return legacy
        try:
            return cls(normalized)
        except ValueError:
            return None


_LEGACY_RECORDED_KINDS: dict[str, EventKind] = {
    "USER_JOINED": EventKind.USER_JOINED_ORGANIZATION,
    "USER_LEFT": EventKind.USER_LEFT_ORGANIZATION,
    "CUSTOMER_CREATED": EventKind.ORGANIZATION_CREATED,
    "CUSTOMER_UPDATED": EventKind.ORGANIZATION_UPDATED,
    "CUSTOMER_DELETED": EventKind.ORGANIZATION_DELETED,
    "SKILL_PROFILE_ADDED": EventKind.SKILL_ADDED_TO_PROFILE,
    "SKILL_PROFILE_UPDATED": EventKind.SKILL_UPDATED_ON_PROFILE,
    "SKILL_PROFILE_REMOVED": EventKind.SKILL_REMOVED_FROM_PROFILE,
}


@dataclass(frozen=True, slots=True)
class FieldChange:
    field: str
    old_value: object = None
    new_value: object = None


@dataclass(frozen=True, slots=True)
class RawEventRecord:
    """One immutable row of the activity log as the store returned it."""

    id: str
    occurred_at: datetime
    operation: Operation
    actor_id: str | None = None
    subject_entity_type: str | None = None
    subject_entity_id: str | None = None
    description: str | None = None
    metadata: object = None
    field_changes: tuple[FieldChange, ...] = ()
    recorded_kind: EventKind | None = None


@dataclass(frozen=True, slots=True)
class UserRecord:
    id: str
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        full_name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full_name or self.email or UNKNOWN_USER


@dataclass(frozen=True, slots=True)
class OrganizationRecord:
    id: EntityId
    name: str


@dataclass(frozen=True, slots=True)
class SkillRecord:
    id: EntityId
    name: str
    category: str | None = None


@dataclass(frozen=True, slots=True)
class SkillApplicationRecord:
    """A live row of the relationship table the timeline must agree with."""

    id: EntityId
    user_id: str
    skill_id: EntityId
    organization_id: EntityId
    proficiency: str | None = None
    ended: bool = False


@dataclass(frozen=True, slots=True)
class ReferenceDirectories:
    """Side-loaded lookups for one pipeline run, keyed by ``str(id)``."""

    users: Mapping[str, UserRecord] = field(default_factory=dict[str, UserRecord])
    organizations: Mapping[str, OrganizationRecord] = field(
        default_factory=dict[str, OrganizationRecord]
    )
    skills: Mapping[str, SkillRecord] = field(default_factory=dict[str, SkillRecord])

    @classmethod
    def from_records(
        cls,
        *,
        users: Sequence[UserRecord] = (),
        organizations: Sequence[OrganizationRecord] = (),
        skills: Sequence[SkillRecord] = (),
    ) -> ReferenceDirectories:
        return cls(
            users={str(user.id): user for user in users},
            organizations={str(org.id): org for org in organizations},
            skills={str(skill.id): skill for skill in skills},
        )


@dataclass(frozen=True, slots=True)
class Actor:
    id: str | None
    display_name: str


@dataclass(frozen=True, slots=True)
class SubjectRef:
    entity_type: str
    entity_id: str


@dataclass(frozen=True, slots=True)
class SkillRef:
    id: EntityId
    name: str
    proficiency_level: str | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.id == PLACEHOLDER_ID


@dataclass(frozen=True, slots=True)
class OrganizationRef:
    id: EntityId
    name: str

    @property
    def is_placeholder(self) -> bool:
        return self.id == PLACEHOLDER_ID


@dataclass(frozen=True, slots=True)
class UserRef:
    id: str
    display_name: str


@dataclass(frozen=True, slots=True)
class RelatedEntities:
    skill: SkillRef | None = None
    organization: OrganizationRef | None = None
    user: UserRef | None = None


@dataclass(frozen=True, slots=True)
class UnifiedEvent:
    """Normalized, typed representation of a raw event, ready for display."""

    id: str
    kind: EventKind
    timestamp: datetime
    actor: Actor
    subject: SubjectRef | None = None
    related_skill: SkillRef | None = None
    related_organization: OrganizationRef | None = None
    related_user: UserRef | None = None
    field_changes: tuple[FieldChange, ...] = ()
    notes: str | None = None
    metadata: Mapping[str, object] = field(default_factory=dict[str, object])


@dataclass(frozen=True, slots=True)
class TimelineFilters:
    """Scope of one ``assemble`` invocation."""

    subject_entity_type: str | None = None
    subject_entity_id: str | None = None
    related_entity_type: str | None = None
    related_entity_id: str | None = None
    limit: int = 20

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError(f"limit must be positive, got {self.limit}")
        if self.subject_entity_id is not None and self.subject_entity_type is None:
            raise ValueError("subject_entity_id requires subject_entity_type")

    @property
    def has_related(self) -> bool:
        return bool(self.related_entity_type) and self.related_entity_id is not None

    @property
    def relates_to_organization(self) -> bool:
        return self.has_related and _related_prefix(self.related_entity_type) in {
            "customer",
            "organization",
        }


def _related_prefix(entity_type: str | None) -> str:
    value = (entity_type or "").strip().lower()
    if value.endswith("s"):
        value = value[:-1]
    return value


def related_metadata_prefix(entity_type: str) -> str:
    """Metadata key prefix for a related entity type (``customers`` -> ``customer``)."""

    return _related_prefix(entity_type)


class TimelineFetchError(RuntimeError):
    """Raised when a whole-batch query of the pipeline fails."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"Timeline {stage} query failed: {cause}")
        self.stage = stage
        self.cause = cause


class MalformedRecordError(TypeError):
    """Raised when a raw record cannot be interpreted at all."""

    def __init__(self, record_id: str, reason: str) -> None:
        super().__init__(f"Malformed timeline record {record_id}: {reason}")
        self.record_id = record_id
