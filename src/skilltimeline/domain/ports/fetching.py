"""Ports for reading the activity log and its reference data."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence

    from skilltimeline.domain.timeline.model import (
        OrganizationRecord,
        RawEventRecord,
        SkillApplicationRecord,
        SkillRecord,
        UserRecord,
    )


@runtime_checkable
class RawEventSource(Protocol):
    """Query access to the raw activity log, newest first."""

    async def query_events(
        self,
        *,
        subject_entity_type: str | None = None,
        subject_entity_id: str | None = None,
        limit: int,
        offset: int = 0,
    ) -> Sequence[RawEventRecord]:
        """Records matching the subject equality filters (all records when unset).

        ``offset`` skips that many of the newest matches, for paging.
        """
        ...

    async def query_related_mentions(
        self,
        *,
        related_entity_type: str,
        related_entity_id: str,
        limit: int,
    ) -> Sequence[RawEventRecord]:
        """Records whose metadata carries the related id, or any related name."""
        ...


@runtime_checkable
class ReferenceDirectory(Protocol):
    """Batch lookups of the entities events refer to."""

    async def fetch_users(self, ids: Collection[str]) -> Sequence[UserRecord]: ...

    async def fetch_organizations(self, ids: Collection[str]) -> Sequence[OrganizationRecord]: ...

    async def fetch_skills(self, ids: Collection[str]) -> Sequence[SkillRecord]: ...


@runtime_checkable
class SkillApplicationSource(Protocol):
    """Live rows of the skill-application relationship table."""

    async def fetch_skill_applications(
        self,
        *,
        user_id: str | None = None,
        organization_id: str | None = None,
    ) -> Sequence[SkillApplicationRecord]: ...


__all__ = ["RawEventSource", "ReferenceDirectory", "SkillApplicationSource"]
