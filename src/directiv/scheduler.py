"""Polling scheduler with named timers per collection.

Remote collections (tasks, pull requests) refresh on a coarse cadence to
stay under the tracker's rate limit; local collections (sessions, checkouts)
refresh every few seconds. Mutations call :meth:`PollingScheduler.invalidate`
to refresh the affected collections immediately.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Iterator

from .errors import is_rate_limit_error
from .notices import NoticeBoard
from .store import CHECKOUTS, PANE_CAPTURES, PULL_REQUESTS, SESSIONS, TASKS

if TYPE_CHECKING:
    from .app import Application

logger = logging.getLogger(__name__)

_IDLE_TICK = 0.5


@dataclass(slots=True)
class PollTimer:
    name: str
    collection: str
    interval: float
    fetch: Callable[[], Awaitable[Any]]
    apply: Callable[[Any], None]
    last_attempt: float | None = None
    last_success: float | None = None
    last_error: str | None = None

    def due(self, now: float) -> bool:
        return self.last_attempt is None or now - self.last_attempt >= self.interval


class PollingScheduler:
    """Owns every refresh timer; downstream code reads the store, not the timers."""

    def __init__(
        self,
        notices: NoticeBoard | None = None,
        *,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._notices = notices or NoticeBoard()
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._timers: dict[str, PollTimer] = {}
        self._generations: dict[str, int] = {}
        self._holds: dict[str, int] = {}
        self._stopped = False

    def register(
        self,
        name: str,
        interval: float,
        fetch: Callable[[], Awaitable[Any]],
        apply: Callable[[Any], None],
        *,
        collection: str | None = None,
    ) -> PollTimer:
        if interval <= 0:
            raise ValueError("Polling interval must be > 0")
        if name in self._timers:
            raise ValueError(f"Timer '{name}' is already registered")
        timer = PollTimer(
            name=name,
            collection=collection or name,
            interval=interval,
            fetch=fetch,
            apply=apply,
        )
        self._timers[name] = timer
        return timer

    @property
    def timers(self) -> list[PollTimer]:
        return list(self._timers.values())

    def timer(self, name: str) -> PollTimer:
        return self._timers[name]

    async def refresh(self, name: str) -> bool:
        """Run one fetch for ``name``.

        Rate-limit errors are never retried and raise a debounced notice;
        any other error gets one silent retry. On failure the store keeps its
        previous snapshot.
        """

        timer = self._timers[name]
        timer.last_attempt = self._clock()
        generation = self._generations.get(timer.collection, 0)
        for attempt in range(2):
            try:
                value = await timer.fetch()
            except Exception as exc:
                if is_rate_limit_error(exc):
                    timer.last_error = str(exc)
                    self._notices.rate_limited()
                    logger.warning("Refresh rate limited", extra={"timer": name})
                    return False
                if attempt == 0:
                    logger.debug("Refresh failed; retrying once", extra={"timer": name, "error": str(exc)})
                    continue
                timer.last_error = str(exc)
                logger.warning("Refresh failed", extra={"timer": name, "error": str(exc)})
                return False
            if self._is_stale(timer.collection, generation):
                logger.debug("Discarding superseded refresh", extra={"timer": name})
                return False
            timer.apply(value)
            timer.last_success = self._clock()
            timer.last_error = None
            return True
        return False

    async def refresh_all(self, names: Iterable[str] | None = None) -> dict[str, bool]:
        """Refresh several timers concurrently; results are merged by the store."""

        selected = list(names) if names is not None else list(self._timers)
        results = await asyncio.gather(*(self.refresh(name) for name in selected))
        return dict(zip(selected, results))

    async def invalidate(self, *collections: str) -> dict[str, bool]:
        """Refresh every timer feeding one of ``collections`` right away."""

        wanted = set(collections)
        names = [timer.name for timer in self._timers.values() if timer.collection in wanted]
        if not names:
            return {}
        logger.debug("Invalidating collections", extra={"collections": sorted(wanted)})
        return await self.refresh_all(names)

    def cancel(self, *collections: str) -> None:
        """Discard the results of refreshes already in flight for ``collections``."""

        for collection in collections:
            self._generations[collection] = self._generations.get(collection, 0) + 1

    @contextlib.contextmanager
    def hold(self, *collections: str) -> Iterator[None]:
        """Cancel in-flight refreshes and drop any that land inside the block.

        Wrap optimistic writes so a poll cannot overwrite them unconfirmed.
        """

        self.cancel(*collections)
        for collection in collections:
            self._holds[collection] = self._holds.get(collection, 0) + 1
        try:
            yield
        finally:
            for collection in collections:
                self._holds[collection] -= 1
            self.cancel(*collections)

    def _is_stale(self, collection: str, generation: int) -> bool:
        return self._holds.get(collection, 0) > 0 or self._generations.get(collection, 0) != generation

    def stop(self) -> None:
        self._stopped = True

    def resume(self) -> None:
        self._stopped = False

    async def run(self) -> None:
        """Drive every timer at its own cadence until :meth:`stop` is called."""

        while not self._stopped:
            now = self._clock()
            due = [timer.name for timer in self._timers.values() if timer.due(now)]
            if due:
                await self.refresh_all(due)
            if self._stopped:
                break
            await self._sleep(self._next_delay())

    def _next_delay(self) -> float:
        if not self._timers:
            return _IDLE_TICK
        now = self._clock()
        waits = [
            0.0 if timer.last_attempt is None else timer.interval - (now - timer.last_attempt)
            for timer in self._timers.values()
        ]
        return max(min(waits), 0.05)


def build_default_schedule(app: "Application") -> PollingScheduler:
    """Register the standard timers for ``app`` on its scheduler.

    Tracker and review collections poll at the external cadence, sessions and
    pane captures at the local one, and checkout inventories (which shell out
    per worktree) at the slow local cadence.
    """

    from .app import TEAM_VIEW, VIEWER_VIEW

    scheduler = app.scheduler
    settings = app.settings
    store = app.store

    if app.tracker is not None:
        scheduler.register(
            "tasks:team",
            settings.external_refresh_seconds,
            app.fetch_team_tasks,
            lambda tasks: store.replace_tasks(TEAM_VIEW, tasks),
            collection=TASKS,
        )
        scheduler.register(
            "tasks:mine",
            settings.external_refresh_seconds,
            app.fetch_viewer_tasks,
            lambda tasks: store.replace_tasks(VIEWER_VIEW, tasks),
            collection=TASKS,
        )
    else:
        logger.info("No issue tracker configured; task polling disabled")

    if app.reviews is not None:
        scheduler.register(
            PULL_REQUESTS,
            settings.external_refresh_seconds,
            app.fetch_pull_requests,
            store.replace_pull_requests,
        )

    scheduler.register(SESSIONS, settings.local_refresh_seconds, app.fetch_sessions, store.replace_sessions)
    scheduler.register(
        PANE_CAPTURES,
        settings.local_refresh_seconds,
        app.fetch_pane_captures,
        store.replace_pane_captures,
    )
    scheduler.register(
        CHECKOUTS,
        settings.local_refresh_slow_seconds,
        app.fetch_checkouts,
        app.apply_checkouts,
    )
    return scheduler


__all__ = ["PollTimer", "PollingScheduler", "build_default_schedule"]
