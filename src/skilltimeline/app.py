"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from skilltimeline.adapters.supabase import PollingChangeFeed, SupabaseClient
from skilltimeline.domain.timeline import (
    DEFAULT_HISTORY_PAGE_SIZE,
    TimelineAssembler,
    TimelineFeed,
    TimelineFilters,
    check_convergence,
)

if TYPE_CHECKING:
    from skilltimeline.domain.timeline import (
        ReconciliationReport,
        TimelineState,
        UnifiedEvent,
    )
    from skilltimeline.domain.timeline.feed import StateListener


log = getLogger(__name__)


def build_assembler(client: SupabaseClient | None = None) -> TimelineAssembler:
    effective_client = client or SupabaseClient()
    return TimelineAssembler(source=effective_client, directory=effective_client)


def load_timeline(
    filters: TimelineFilters,
    *,
    client: SupabaseClient | None = None,
) -> list[UnifiedEvent]:
    """Assemble one timeline snapshot using the configured adapters."""

    log.info(
        "Loading timeline: subject=%s/%s, related=%s/%s, limit=%s",
        filters.subject_entity_type,
        filters.subject_entity_id,
        filters.related_entity_type,
        filters.related_entity_id,
        filters.limit,
    )
    effective_client = client or SupabaseClient()
    return asyncio.run(_load_timeline(effective_client, filters))


async def _load_timeline(client: SupabaseClient, filters: TimelineFilters) -> list[UnifiedEvent]:
    async with client.session():
        return await build_assembler(client).assemble(filters)


def watch_timeline(
    filters: TimelineFilters,
    *,
    on_state: StateListener,
    client: SupabaseClient | None = None,
    stop: asyncio.Event | None = None,
) -> TimelineState:
    """Keep a timeline fresh, reporting every state change until ``stop`` is set."""

    effective_client = client or SupabaseClient()
    feed = TimelineFeed(
        assembler=build_assembler(effective_client),
        filters=filters,
        change_feed=PollingChangeFeed(
            client=effective_client,
            interval_seconds=effective_client.config.poll_interval_seconds,
            stop=stop,
        ),
    )
    feed.add_listener(on_state)
    asyncio.run(_watch(effective_client, feed))
    return feed.state


async def _watch(client: SupabaseClient, feed: TimelineFeed) -> None:
    async with client.session():
        await feed.watch()


def check_skill_applications(
    *,
    user_id: str | None = None,
    organization_id: str | None = None,
    page_size: int = DEFAULT_HISTORY_PAGE_SIZE,
    client: SupabaseClient | None = None,
) -> ReconciliationReport:
    """Compare the skill-application history with the live relationship table."""

    effective_client = client or SupabaseClient()
    report = asyncio.run(
        _check_skill_applications(
            effective_client,
            user_id=user_id,
            organization_id=organization_id,
            page_size=page_size,
        )
    )
    log.info(
        f"Reconciled skill applications: converged={report.converged}, "
        f"timeline={len(report.timeline_active)}, table={len(report.table_active)}, "
        f"unverifiable={len(report.unverifiable_event_ids)}"
    )
    return report


async def _check_skill_applications(
    client: SupabaseClient,
    *,
    user_id: str | None,
    organization_id: str | None,
    page_size: int,
) -> ReconciliationReport:
    async with client.session():
        return await check_convergence(
            assembler=build_assembler(client),
            applications=client,
            user_id=user_id,
            organization_id=organization_id,
            page_size=page_size,
        )
