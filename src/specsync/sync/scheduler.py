"""Adaptive background refresh.

The poll interval grows by ``step`` after every successful refresh, up to
``max_interval``, and shrinks again after failures so the dashboard is
retried sooner.  Explicit refresh requests that arrive too soon after the
previous refresh are coalesced into one deferred call.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

MIN_INTERVAL = 30.0
MAX_INTERVAL = 300.0
INTERVAL_STEP = 30.0
MAX_REFRESH_COUNT = 10
ERROR_BACKOFF = 2


class AdaptiveRefreshScheduler:
    """Run *refresh* periodically with an adaptive interval.

    Args:
        refresh: Coroutine function performing one refresh.
        min_interval: Lower interval bound, also the coalescing window.
        max_interval: Upper interval bound.
        step: Interval growth per consecutive success.
        clock: Monotonic clock; injectable for tests.
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[Any]],
        min_interval: float = MIN_INTERVAL,
        max_interval: float = MAX_INTERVAL,
        step: float = INTERVAL_STEP,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_interval < min_interval:
            raise ValueError("max_interval must be >= min_interval")
        self._refresh = refresh
        self.min_interval = min_interval
        self.max_interval = max_interval
        self.step = step
        self._clock = clock

        self.last_refresh_time: float | None = None
        self.refresh_count = 0
        self._loop_task: asyncio.Task | None = None
        self._deferred: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def compute_interval(self, refresh_count: int | None = None) -> float:
        count = self.refresh_count if refresh_count is None else refresh_count
        interval = self.min_interval + max(0, count) * self.step
        return max(self.min_interval, min(interval, self.max_interval))

    async def request_refresh(self) -> bool:
        """Refresh now, or schedule one deferred refresh.

        Returns:
            True if the refresh ran immediately, False if it was deferred
            (or joined an already deferred one).
        """
        if self._deferred is not None and not self._deferred.done():
            return False

        if self.last_refresh_time is not None:
            elapsed = self._clock() - self.last_refresh_time
            if elapsed < self.min_interval:
                delay = self.min_interval - elapsed
                logger.debug("Refresh deferred by %.1fs", delay)
                self._deferred = asyncio.create_task(self._run_deferred(delay))
                return False

        await self._run_refresh()
        return True

    async def tick(self) -> bool:
        """One loop iteration without the sleep; adjusts ``refresh_count``."""
        ok = await self._run_refresh()
        if ok:
            self.refresh_count = min(self.refresh_count + 1, MAX_REFRESH_COUNT)
        else:
            self.refresh_count = max(0, self.refresh_count - ERROR_BACKOFF)
        return ok

    def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.create_task(
            self._run_loop(), name="specsync-refresh"
        )
        logger.info("Adaptive refresh started")

    async def stop(self) -> None:
        tasks = [t for t in (self._loop_task, self._deferred) if t is not None]
        self._loop_task = None
        self._deferred = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if tasks:
            logger.info("Adaptive refresh stopped")

    async def _run_loop(self) -> None:
        while True:
            interval = self.compute_interval()
            logger.debug("Next refresh in %.0fs", interval)
            await asyncio.sleep(interval)
            await self.tick()

    async def _run_deferred(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._run_refresh()

    async def _run_refresh(self) -> bool:
        self.last_refresh_time = self._clock()
        try:
            await self._refresh()
        except Exception as exc:
            logger.error("Refresh failed: %s", exc)
            return False
        return True
