"""Flatten inconsistently shaped metadata into one canonical mapping.

Downstream consumers read ``skill_name``, ``organization_name`` and
``proficiency`` without knowing which alias the producer used. Derived values
never overwrite a value already present under its canonical key.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .resolve import (
    metadata_mapping,
    metadata_organization_name,
    metadata_skill_name,
    proficiency_level,
)

if TYPE_CHECKING:
    from .model import NormalizedMetadata, RawEventRecord

SKILL_NAME_KEY = "skill_name"
ORGANIZATION_NAME_KEY = "organization_name"
PROFICIENCY_KEY = "proficiency"
DESCRIPTION_KEY = "description"
CHANGES_KEY = "changes"
NOTES_KEY = "notes"


def normalize(record: RawEventRecord) -> NormalizedMetadata:
    normalized: NormalizedMetadata = dict(metadata_mapping(record))

    derived = (
        (SKILL_NAME_KEY, metadata_skill_name(record)),
        (ORGANIZATION_NAME_KEY, metadata_organization_name(record)),
        (PROFICIENCY_KEY, proficiency_level(record)),
    )
    for key, value in derived:
        if value is not None and not _present(normalized.get(key)):
            normalized[key] = value

    normalized[DESCRIPTION_KEY] = record.description or ""
    if record.field_changes:
        normalized[CHANGES_KEY] = [
            {"field": change.field, "oldValue": change.old_value, "newValue": change.new_value}
            for change in record.field_changes
        ]
    return normalized


def notes_from(normalized: NormalizedMetadata) -> str | None:
    notes = normalized.get(NOTES_KEY)
    if isinstance(notes, str) and notes.strip():
        return notes.strip()
    return None


def _present(value: object) -> bool:
    if value is None:
        return False
    return not (isinstance(value, str) and not value.strip())
