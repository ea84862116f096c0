"""Change notifications for the activity log, by polling its newest row."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

import httpx

from skilltimeline.domain.ports.changes import ChangeFeed, ChangeNotification

from .client import SupabaseAPIError, SupabaseClient

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from skilltimeline.domain.ports.changes import ChangeKey

    from .schema import EventHeadRow

log = getLogger(__name__)


@dataclass(slots=True)
class PollingChangeFeed:
    """Notify whenever the newest matching ``audit_logs`` row changes.

    The activity log is append-only, so a new head row is a sufficient signal
    that something matching ``key`` was written. Failed polls are logged and
    retried on the next tick; the HTTP layer already retries transient errors.
    """

    client: SupabaseClient
    interval_seconds: float = 5.0
    stop: asyncio.Event | None = None

    async def watch(self, key: ChangeKey) -> AsyncIterator[ChangeNotification]:
        baseline = await self._head(key)
        while not await self._wait_tick():
            head = await self._head(key)
            if head is None or head == baseline:
                continue
            baseline = head
            yield ChangeNotification(
                key=key,
                latest_record_id=head.id,
                observed_at=datetime.now(UTC),
            )

    async def _head(self, key: ChangeKey) -> EventHeadRow | None:
        try:
            return await self.client.latest_event_head(key)
        except (httpx.HTTPError, SupabaseAPIError) as exc:
            log.warning("Polling %s failed: %s", key.channel, exc)
            return None

    async def _wait_tick(self) -> bool:
        """Sleep one interval; return True when the feed should stop."""

        if self.stop is None:
            await asyncio.sleep(self.interval_seconds)
            return False
        try:
            await asyncio.wait_for(self.stop.wait(), timeout=self.interval_seconds)
        except TimeoutError:
            return False
        return True


if TYPE_CHECKING:
    _feed_check: ChangeFeed = PollingChangeFeed(client=SupabaseClient())
