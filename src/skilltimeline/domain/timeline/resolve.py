"""Resolve actors and related entities of raw timeline records.

Metadata payloads are written by several call sites and their shape varies:
ids arrive as numbers or strings, under snake_case or camelCase keys, or
nested in a sub-object. The helpers below chase every known alias so the
rest of the pipeline only sees one canonical value per concept.

Related entities follow a tiered fallback:

1. the record's subject, when it is that entity kind, looked up by id
2. an id found in metadata (or field changes, or ``skill 12`` wording)
3. a name found in metadata, producing a placeholder with ``PLACEHOLDER_ID``
4. for skill applications only, a name lifted from the description text
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, cast

from .model import (
    MEMBERSHIP_ENTITY_TYPES,
    ORGANIZATION_ENTITY_TYPES,
    PLACEHOLDER_ID,
    SKILL_ENTITY_TYPES,
    UNKNOWN_USER,
    USER_ENTITY_TYPES,
    Actor,
    EntityId,
    MalformedRecordError,
    OrganizationRef,
    RelatedEntities,
    SkillRef,
    UserRef,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .model import EventKind, RawEventRecord, ReferenceDirectories, UserRecord

log = getLogger(__name__)

type MetadataPath = tuple[str, ...]

SKILL_ID_PATHS: tuple[MetadataPath, ...] = (
    ("skill_id",),
    ("skillId",),
    ("skill", "id"),
    ("metadata", "skill_id"),
)
SKILL_NAME_PATHS: tuple[MetadataPath, ...] = (
    ("skill_name",),
    ("skillName",),
    ("skill", "name"),
    ("metadata", "skill_name"),
)
ORGANIZATION_ID_PATHS: tuple[MetadataPath, ...] = (
    ("customer_id",),
    ("customerId",),
    ("customer", "id"),
    ("organization_id",),
    ("organizationId",),
    ("organization", "id"),
    ("metadata", "customer_id"),
)
ORGANIZATION_NAME_PATHS: tuple[MetadataPath, ...] = (
    ("customer_name",),
    ("customerName",),
    ("customer", "name"),
    ("organization_name",),
    ("organizationName",),
    ("organization", "name"),
    ("metadata", "customer_name"),
)
USER_ID_PATHS: tuple[MetadataPath, ...] = (
    ("user_id",),
    ("userId",),
    ("profile_id",),
    ("profileId",),
    ("user", "id"),
)
PROFICIENCY_PATHS: tuple[MetadataPath, ...] = (
    ("proficiency",),
    ("proficiency_level",),
    ("proficiencyLevel",),
    ("level",),
)
PROFICIENCY_FIELDS = frozenset({"proficiency", "proficiency_level", "level"})

_DESCRIPTION_SKILL_ID = re.compile(r"\bskill\s+#?(\d+)\b", re.IGNORECASE)
_DESCRIPTION_ORGANIZATION_ID = re.compile(r"\b(?:customer|organization)\s+#?(\d+)\b", re.IGNORECASE)
_DESCRIPTION_AFTER_SKILL = re.compile(r"\bskill\s+(\S+)", re.IGNORECASE)
_DESCRIPTION_AFTER_APPLIED = re.compile(r"\bapplied\s+(\S+)", re.IGNORECASE)
_DESCRIPTION_AFTER_AT = re.compile(r"\bat\s+(\S+)", re.IGNORECASE)
_TOKEN_PUNCTUATION = ".,;:!?\"'()[]"


@dataclass(frozen=True, slots=True)
class ReferenceIds:
    """Distinct ids the pipeline must side-load for one batch."""

    user_ids: frozenset[str] = frozenset()
    organization_ids: frozenset[str] = frozenset()
    skill_ids: frozenset[str] = frozenset()


# ---------------------------------------------------------------- metadata access


def metadata_mapping(record: RawEventRecord) -> Mapping[str, object]:
    """Return the record's metadata as a mapping, treating ``None`` as empty."""

    if record.metadata is None:
        return {}
    if not isinstance(record.metadata, Mapping):
        raise MalformedRecordError(
            record.id, f"metadata must be an object, got {type(record.metadata).__name__}"
        )
    return cast(Mapping[str, object], record.metadata)


def _lookup(metadata: Mapping[str, object], path: MetadataPath) -> object:
    current: object = metadata
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = cast(Mapping[str, object], current).get(key)
    return current


def _as_text(value: object) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _as_entity_id(value: object) -> EntityId | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or stripped.lower() in {"null", "undefined", "none"}:
            return None
        return int(stripped) if stripped.isdecimal() else stripped
    return None


def _subject_entity_id(subject_id: str) -> EntityId:
    entity_id = _as_entity_id(subject_id)
    return subject_id if entity_id is None else entity_id


def _first_id(metadata: Mapping[str, object], paths: Iterable[MetadataPath]) -> EntityId | None:
    for path in paths:
        value = _as_entity_id(_lookup(metadata, path))
        if value is not None:
            return value
    return None


def _first_text(metadata: Mapping[str, object], paths: Iterable[MetadataPath]) -> str | None:
    for path in paths:
        value = _lookup(metadata, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def metadata_skill_name(record: RawEventRecord) -> str | None:
    return _first_text(metadata_mapping(record), SKILL_NAME_PATHS)


def metadata_organization_name(record: RawEventRecord) -> str | None:
    return _first_text(metadata_mapping(record), ORGANIZATION_NAME_PATHS)


def metadata_skill_id(record: RawEventRecord) -> EntityId | None:
    skill_id = _first_id(metadata_mapping(record), SKILL_ID_PATHS)
    if skill_id is not None:
        return skill_id
    for change in record.field_changes:
        if change.field == "skill_id":
            for value in (change.new_value, change.old_value):
                skill_id = _as_entity_id(value)
                if skill_id is not None:
                    return skill_id
    return _description_id(record.description, _DESCRIPTION_SKILL_ID)


def metadata_organization_id(record: RawEventRecord) -> EntityId | None:
    organization_id = _first_id(metadata_mapping(record), ORGANIZATION_ID_PATHS)
    if organization_id is not None:
        return organization_id
    return _description_id(record.description, _DESCRIPTION_ORGANIZATION_ID)


def metadata_user_id(record: RawEventRecord) -> str | None:
    user_id = _first_id(metadata_mapping(record), USER_ID_PATHS)
    return None if user_id is None else str(user_id)


def proficiency_level(record: RawEventRecord) -> str | None:
    """Return the proficiency from metadata aliases, else from field changes."""

    metadata = metadata_mapping(record)
    for path in PROFICIENCY_PATHS:
        value = _as_text(_lookup(metadata, path))
        if value is not None:
            return value
    for change in record.field_changes:
        if change.field in PROFICIENCY_FIELDS:
            value = _as_text(change.new_value) or _as_text(change.old_value)
            if value is not None:
                return value
    return None


def _description_id(description: str | None, pattern: re.Pattern[str]) -> int | None:
    if not description:
        return None
    match = pattern.search(description)
    return int(match.group(1)) if match else None


def _token_after(description: str | None, pattern: re.Pattern[str]) -> str | None:
    if not description:
        return None
    match = pattern.search(description)
    if match is None:
        return None
    token = match.group(1).strip(_TOKEN_PUNCTUATION)
    return token or None


def description_skill_name(description: str | None) -> str | None:
    """Best-effort skill name: the word after "skill", else after "applied"."""

    return _token_after(description, _DESCRIPTION_AFTER_SKILL) or _token_after(
        description, _DESCRIPTION_AFTER_APPLIED
    )


def description_organization_name(description: str | None) -> str | None:
    """Best-effort organization name: the word after "at"."""

    return _token_after(description, _DESCRIPTION_AFTER_AT)


# ---------------------------------------------------------------- resolution


def resolve_actor(actor_id: str | None, users: Mapping[str, UserRecord]) -> Actor:
    if not actor_id:
        return Actor(id=None, display_name=UNKNOWN_USER)
    user = users.get(actor_id)
    if user is None:
        return Actor(id=actor_id, display_name=UNKNOWN_USER)
    return Actor(id=actor_id, display_name=user.display_name)


def resolve_related(
    record: RawEventRecord,
    directories: ReferenceDirectories,
    *,
    kind: EventKind,
) -> RelatedEntities:
    """Resolve the skill, organization and second user a record refers to."""

    return RelatedEntities(
        skill=_resolve_skill(record, directories, kind=kind),
        organization=_resolve_organization(record, directories, kind=kind),
        user=_resolve_user(record, directories),
    )


def _subject_type(record: RawEventRecord) -> str:
    return (record.subject_entity_type or "").strip().lower()


def _resolve_skill(
    record: RawEventRecord,
    directories: ReferenceDirectories,
    *,
    kind: EventKind,
) -> SkillRef | None:
    proficiency = proficiency_level(record)
    is_subject = _subject_type(record) in SKILL_ENTITY_TYPES and bool(record.subject_entity_id)

    if is_subject:
        skill = directories.skills.get(str(record.subject_entity_id))
        if skill is not None:
            return SkillRef(id=skill.id, name=skill.name, proficiency_level=proficiency)

    skill_id = metadata_skill_id(record)
    if skill_id is not None:
        skill = directories.skills.get(str(skill_id))
        if skill is not None:
            return SkillRef(id=skill.id, name=skill.name, proficiency_level=proficiency)

    skill_name = metadata_skill_name(record)
    if skill_name is not None:
        return SkillRef(
            id=skill_id if skill_id is not None else PLACEHOLDER_ID,
            name=skill_name,
            proficiency_level=proficiency,
        )

    if kind.is_skill_application:
        skill_name = description_skill_name(record.description)
        if skill_name is not None:
            log.debug("Skill name %r lifted from description of %s", skill_name, record.id)
            return SkillRef(id=PLACEHOLDER_ID, name=skill_name, proficiency_level=proficiency)

    if is_subject:
        subject_id = str(record.subject_entity_id)
        return SkillRef(
            id=_subject_entity_id(subject_id),
            name=f"Skill #{subject_id}",
            proficiency_level=proficiency,
        )
    return None


def _resolve_organization(
    record: RawEventRecord,
    directories: ReferenceDirectories,
    *,
    kind: EventKind,
) -> OrganizationRef | None:
    subject_type = _subject_type(record)
    subject_id = str(record.subject_entity_id) if record.subject_entity_id else None
    is_subject = subject_type in ORGANIZATION_ENTITY_TYPES and subject_id is not None

    if is_subject:
        organization = directories.organizations.get(subject_id)
        if organization is not None:
            return OrganizationRef(id=organization.id, name=organization.name)

    organization_id = metadata_organization_id(record)
    if organization_id is not None:
        organization = directories.organizations.get(str(organization_id))
        if organization is not None:
            return OrganizationRef(id=organization.id, name=organization.name)

    organization_name = metadata_organization_name(record)
    if organization_name is not None:
        return OrganizationRef(
            id=organization_id if organization_id is not None else PLACEHOLDER_ID,
            name=organization_name,
        )

    # membership rows are keyed by the organization they attach a user to
    if subject_type in MEMBERSHIP_ENTITY_TYPES and subject_id is not None:
        organization = directories.organizations.get(subject_id)
        if organization is not None:
            return OrganizationRef(id=organization.id, name=organization.name)

    if kind.is_skill_application:
        organization_name = description_organization_name(record.description)
        if organization_name is not None:
            log.debug(
                "Organization name %r lifted from description of %s", organization_name, record.id
            )
            return OrganizationRef(id=PLACEHOLDER_ID, name=organization_name)

    if is_subject:
        return OrganizationRef(
            id=_subject_entity_id(subject_id),
            name=f"Customer #{subject_id}",
        )
    return None


def _resolve_user(record: RawEventRecord, directories: ReferenceDirectories) -> UserRef | None:
    user_id = _related_user_id(record)
    if user_id is None:
        return None
    user = directories.users.get(user_id)
    return UserRef(id=user_id, display_name=user.display_name if user else UNKNOWN_USER)


def _related_user_id(record: RawEventRecord) -> str | None:
    if _subject_type(record) in USER_ENTITY_TYPES and record.subject_entity_id:
        subject_id = str(record.subject_entity_id)
        return subject_id if subject_id != record.actor_id else None
    user_id = metadata_user_id(record)
    if user_id is not None and user_id != record.actor_id:
        return user_id
    return None


def collect_reference_ids(records: Iterable[RawEventRecord]) -> ReferenceIds:
    """Gather every id the batch needs so each directory is fetched once."""

    user_ids: set[str] = set()
    organization_ids: set[str] = set()
    skill_ids: set[str] = set()

    for record in records:
        if record.actor_id:
            user_ids.add(record.actor_id)
        try:
            related_user_id = _related_user_id(record)
            organization_id = metadata_organization_id(record)
            skill_id = metadata_skill_id(record)
        except Exception as exc:  # noqa: BLE001
            log.warning("Skipping references of timeline record %s: %s", record.id, exc)
            continue

        if related_user_id is not None:
            user_ids.add(related_user_id)
        if organization_id is not None:
            organization_ids.add(str(organization_id))
        if skill_id is not None:
            skill_ids.add(str(skill_id))

        subject_type = _subject_type(record)
        if record.subject_entity_id:
            subject_id = str(record.subject_entity_id)
            if subject_type in ORGANIZATION_ENTITY_TYPES | MEMBERSHIP_ENTITY_TYPES:
                organization_ids.add(subject_id)
            elif subject_type in SKILL_ENTITY_TYPES:
                skill_ids.add(subject_id)

    return ReferenceIds(
        user_ids=frozenset(user_ids),
        organization_ids=frozenset(organization_ids),
        skill_ids=frozenset(skill_ids),
    )
