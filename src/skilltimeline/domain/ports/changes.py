"""Port for change notifications on the activity log."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import datetime


@dataclass(frozen=True, slots=True)
class ChangeKey:
    """Which slice of the activity log a subscriber cares about."""

    subject_entity_type: str | None = None
    subject_entity_id: str | None = None

    @property
    def channel(self) -> str:
        if self.subject_entity_type and self.subject_entity_id:
            return (
                f"audit_logs:entity_type=eq.{self.subject_entity_type}"
                f":entity_id=eq.{self.subject_entity_id}"
            )
        if self.subject_entity_type:
            return f"audit_logs:entity_type=eq.{self.subject_entity_type}"
        return "audit_logs"


@dataclass(frozen=True, slots=True)
class ChangeNotification:
    key: ChangeKey
    latest_record_id: str | None = None
    observed_at: datetime | None = None


@runtime_checkable
class ChangeFeed(Protocol):
    """Yields a notification whenever a matching record is written."""

    def watch(self, key: ChangeKey) -> AsyncIterator[ChangeNotification]: ...


__all__ = ["ChangeFeed", "ChangeKey", "ChangeNotification"]
