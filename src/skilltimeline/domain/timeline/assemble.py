"""Assemble the unified timeline from the raw activity log.

One invocation runs two concurrent fetch phases and a synchronous transform:

1. primary query plus, when a related entity is given, the secondary
   queries (metadata mentions, and for organizations a scan of
   skill-application records filtered client-side)
2. merge with first-occurrence-wins deduplication by record id
3. one batch lookup per reference directory (users, organizations, skills)
4. classify, resolve and normalize every record; a record that raises is
   dropped with a warning instead of failing the batch
5. sort newest first

The assembler holds no state between invocations.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from .classify import classify
from .model import (
    SKILL_APPLICATIONS,
    ReferenceDirectories,
    SubjectRef,
    TimelineFetchError,
    UnifiedEvent,
)
from .normalize import normalize, notes_from
from .resolve import (
    collect_reference_ids,
    metadata_organization_id,
    resolve_actor,
    resolve_related,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Sequence

    from skilltimeline.domain.ports.fetching import RawEventSource, ReferenceDirectory

    from .model import RawEventRecord, TimelineFilters

log = getLogger(__name__)

type _BatchFetch[R] = Callable[[Sequence[str]], Awaitable[Sequence[R]]]


@dataclass(slots=True)
class TimelineAssembler:
    """Build ``UnifiedEvent`` lists from a raw-event source and a reference directory."""

    source: RawEventSource
    directory: ReferenceDirectory

    def __call__(self, filters: TimelineFilters) -> list[UnifiedEvent]:
        return asyncio.run(self.assemble(filters))

    async def assemble(self, filters: TimelineFilters) -> list[UnifiedEvent]:
        records = await self._fetch_records(filters)
        if not records:
            log.debug("No timeline records for %s", filters)
            return []

        directories = await self._fetch_directories(records)
        events = build_events(records, directories)
        dropped = len(records) - len(events)
        log.info(
            "Assembled %d timeline events from %d records (%d dropped)",
            len(events),
            len(records),
            dropped,
        )
        return sort_events(events)

    async def assemble_history(
        self, subject_entity_type: str, *, page_size: int
    ) -> list[UnifiedEvent]:
        """Assemble every record about one subject table, paging until the log is exhausted."""

        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        pages: list[Sequence[RawEventRecord]] = []
        offset = 0
        while True:
            page = await _stage(
                "history",
                self.source.query_events(
                    subject_entity_type=subject_entity_type,
                    limit=page_size,
                    offset=offset,
                ),
            )
            pages.append(page)
            if len(page) < page_size:
                break
            offset += page_size

        # rows inserted while paging shift later pages onto already-seen ids
        records = merge_records(*pages)
        log.debug("Read %d %s records in %d pages", len(records), subject_entity_type, len(pages))
        if not records:
            return []
        directories = await self._fetch_directories(records)
        return sort_events(build_events(records, directories))

    async def _fetch_records(self, filters: TimelineFilters) -> list[RawEventRecord]:
        queries: list[Awaitable[Sequence[RawEventRecord]]] = [
            _stage(
                "primary",
                self.source.query_events(
                    subject_entity_type=filters.subject_entity_type,
                    subject_entity_id=filters.subject_entity_id,
                    limit=filters.limit,
                ),
            )
        ]
        if filters.has_related:
            related_type = str(filters.related_entity_type)
            related_id = str(filters.related_entity_id)
            queries.append(
                _stage(
                    "related-mentions",
                    self.source.query_related_mentions(
                        related_entity_type=related_type,
                        related_entity_id=related_id,
                        limit=filters.limit,
                    ),
                )
            )
            if filters.relates_to_organization:
                queries.append(
                    _stage(
                        "skill-applications",
                        self._skill_applications_at(related_id, limit=filters.limit),
                    )
                )

        batches = await _settle_all(queries)
        return merge_records(*batches)

    async def _skill_applications_at(
        self, organization_id: str, *, limit: int
    ) -> list[RawEventRecord]:
        # the organization id is not a queryable column on these rows
        records = await self.source.query_events(
            subject_entity_type=SKILL_APPLICATIONS,
            limit=limit,
        )
        return [record for record in records if mentions_organization(record, organization_id)]

    async def _fetch_directories(self, records: Sequence[RawEventRecord]) -> ReferenceDirectories:
        ids = collect_reference_ids(records)
        users, organizations, skills = await _settle_all(
            [
                _stage("user-directory", _fetch_if_any(self.directory.fetch_users, ids.user_ids)),
                _stage(
                    "organization-directory",
                    _fetch_if_any(self.directory.fetch_organizations, ids.organization_ids),
                ),
                _stage(
                    "skill-directory", _fetch_if_any(self.directory.fetch_skills, ids.skill_ids)
                ),
            ]
        )
        return ReferenceDirectories.from_records(
            users=users,
            organizations=organizations,
            skills=skills,
        )


async def _stage[T](stage: str, awaitable: Awaitable[T]) -> T:
    try:
        return await awaitable
    except TimelineFetchError:
        raise
    except Exception as exc:
        log.error("Timeline %s query failed: %s", stage, exc)
        raise TimelineFetchError(stage, exc) from exc


async def _settle_all[T](awaitables: Sequence[Awaitable[T]]) -> list[T]:
    """Await every query, then raise the first failure in submission order."""

    results = await asyncio.gather(*awaitables, return_exceptions=True)
    settled: list[T] = []
    for result in results:
        if isinstance(result, BaseException):
            raise result
        settled.append(result)
    return settled


async def _fetch_if_any[R](fetch: _BatchFetch[R], ids: frozenset[str]) -> Sequence[R]:
    if not ids:
        return ()
    return await fetch(sorted(ids))


def mentions_organization(record: RawEventRecord, organization_id: str) -> bool:
    """Return whether a record's metadata or description names ``organization_id``."""

    try:
        found = metadata_organization_id(record)
    except Exception as exc:  # noqa: BLE001
        log.warning("Skipping timeline record %s in organization scan: %s", record.id, exc)
        return False
    return found is not None and str(found) == str(organization_id)


def merge_records(*batches: Iterable[RawEventRecord]) -> list[RawEventRecord]:
    """Concatenate batches and keep the first copy of every record id."""

    merged: dict[str, RawEventRecord] = {}
    for batch in batches:
        for record in batch:
            merged.setdefault(record.id, record)
    return list(merged.values())


def build_event(record: RawEventRecord, directories: ReferenceDirectories) -> UnifiedEvent:
    kind = classify(record)
    related = resolve_related(record, directories, kind=kind)
    metadata = normalize(record)
    subject = (
        SubjectRef(entity_type=record.subject_entity_type, entity_id=record.subject_entity_id)
        if record.subject_entity_type and record.subject_entity_id
        else None
    )
    return UnifiedEvent(
        id=record.id,
        kind=kind,
        timestamp=_as_utc(record.occurred_at),
        actor=resolve_actor(record.actor_id, directories.users),
        subject=subject,
        related_skill=related.skill,
        related_organization=related.organization,
        related_user=related.user,
        field_changes=record.field_changes,
        notes=notes_from(metadata),
        metadata=metadata,
    )


def build_events(
    records: Iterable[RawEventRecord], directories: ReferenceDirectories
) -> list[UnifiedEvent]:
    """Transform every record, dropping (and logging) the ones that raise."""

    events: list[UnifiedEvent] = []
    for record in records:
        try:
            events.append(build_event(record, directories))
        except Exception as exc:  # noqa: BLE001
            log.warning("Dropping timeline record %s: %s", record.id, exc, exc_info=True)
    return events


def sort_events(events: Iterable[UnifiedEvent]) -> list[UnifiedEvent]:
    return sorted(events, key=lambda event: event.timestamp, reverse=True)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
