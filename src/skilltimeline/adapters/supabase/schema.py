"""Pydantic models describing the PostgREST row payloads."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import cast

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator


def _id_to_str(value: object) -> object:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class SupabaseBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ChangePayload(SupabaseBaseModel):
    field: str
    old_value: JsonValue = Field(default=None, alias="oldValue")
    new_value: JsonValue = Field(default=None, alias="newValue")
    change_key: str | None = Field(default=None, alias="changeKey")


class AuditLogRow(SupabaseBaseModel):
    id: str
    event_time: datetime
    event_type: str | None = None
    user_id: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    description: str | None = None
    # shape varies by writer; interpreted (and rejected) per record downstream
    metadata: JsonValue = None
    changes: list[ChangePayload] | None = None

    _normalize_ids = field_validator("id", "entity_id", "user_id", mode="before")(_id_to_str)
    _normalize_blanks = field_validator("entity_id", "user_id", "entity_type", mode="before")(
        _blank_to_none
    )

    @field_validator("changes", mode="before")
    @classmethod
    def _ignore_non_list_changes(cls, value: object) -> object:
        # older rows stored a diff object rather than a list of field changes
        if isinstance(value, list):
            return [
                item
                for item in cast(list[object], value)
                if isinstance(item, Mapping) and "field" in item
            ]
        return None


class EventHeadRow(SupabaseBaseModel):
    id: str
    event_time: datetime

    _normalize_ids = field_validator("id", mode="before")(_id_to_str)


class ProfileRow(SupabaseBaseModel):
    id: str
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None


class CustomerRow(SupabaseBaseModel):
    id: int | str
    name: str


class SkillRow(SupabaseBaseModel):
    id: int | str
    name: str
    category: str | None = None


class SkillApplicationRow(SupabaseBaseModel):
    id: int | str
    user_id: str
    skill_id: int | str
    customer_id: int | str
    proficiency: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    notes: str | None = None


class ErrorResponse(SupabaseBaseModel):
    message: str
    code: str | None = None
    details: str | None = None
    hint: str | None = None


AuditLogRowInput = AuditLogRow | Mapping[str, object]
