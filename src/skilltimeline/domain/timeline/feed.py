"""Observable timeline state for presentation layers.

A ``TimelineFeed`` moves between three states per invocation:
``Loading -> Ready`` or ``Loading -> Failed``. Any explicit refresh or change
notification re-enters ``Loading`` and re-runs the whole pipeline. Each
refresh takes a sequence token; when two refreshes overlap, only the most
recently started one may publish its result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from skilltimeline.domain.ports.changes import ChangeKey

from .model import TimelineFetchError

if TYPE_CHECKING:
    from collections.abc import Callable

    from skilltimeline.domain.ports.changes import ChangeFeed

    from .assemble import TimelineAssembler
    from .model import TimelineFilters, UnifiedEvent

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Loading:
    sequence: int = 0


@dataclass(frozen=True, slots=True)
class Ready:
    events: tuple[UnifiedEvent, ...]
    sequence: int = 0


@dataclass(frozen=True, slots=True)
class Failed:
    error: TimelineFetchError
    sequence: int = 0


type TimelineState = Loading | Ready | Failed
type StateListener = Callable[[TimelineState], None]


@dataclass(slots=True)
class TimelineFeed:
    assembler: TimelineAssembler
    filters: TimelineFilters
    change_feed: ChangeFeed | None = None
    _state: TimelineState = field(default_factory=Loading, init=False)
    _sequence: int = field(default=0, init=False)
    _listeners: list[StateListener] = field(default_factory=list[StateListener], init=False)

    @property
    def state(self) -> TimelineState:
        return self._state

    @property
    def loading(self) -> bool:
        return isinstance(self._state, Loading)

    @property
    def events(self) -> tuple[UnifiedEvent, ...]:
        return self._state.events if isinstance(self._state, Ready) else ()

    @property
    def error(self) -> TimelineFetchError | None:
        return self._state.error if isinstance(self._state, Failed) else None

    @property
    def change_key(self) -> ChangeKey:
        return ChangeKey(
            subject_entity_type=self.filters.subject_entity_type,
            subject_entity_id=self.filters.subject_entity_id,
        )

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` for state changes; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def refresh(self) -> TimelineState:
        """Re-run the pipeline and publish its outcome unless a newer refresh started."""

        self._sequence += 1
        token = self._sequence
        self._publish(Loading(sequence=token))

        outcome: TimelineState
        try:
            events = await self.assembler.assemble(self.filters)
            outcome = Ready(events=tuple(events), sequence=token)
        except TimelineFetchError as exc:
            log.error("Timeline refresh %d failed: %s", token, exc)
            outcome = Failed(error=exc, sequence=token)

        if token != self._sequence:
            log.debug("Discarding stale timeline refresh %d (current %d)", token, self._sequence)
            return self._state

        self._publish(outcome)
        return outcome

    async def watch(self) -> None:
        """Load once, then re-assemble on every change notification until the feed ends."""

        if self.change_feed is None:
            raise ValueError("watch() requires a change feed")

        await self.refresh()
        key = self.change_key
        log.info("Watching %s for timeline changes", key.channel)
        async for notification in self.change_feed.watch(key):
            log.debug("Change on %s (latest=%s)", key.channel, notification.latest_record_id)
            await self.refresh()

    def _publish(self, state: TimelineState) -> None:
        self._state = state
        for listener in tuple(self._listeners):
            listener(state)
