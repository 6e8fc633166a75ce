"""Per-project operation coordination.

Operations on one project run one at a time (an ``asyncio.Lock`` per
project).  A request for an operation that is already queued behind that
lock, with the same name, project and target directory, joins the queued
call instead of adding a second one.  An operation that is already running
is never joined: it may have read the local files before the latest edit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._queued: dict[
            tuple[str, str, str | None], asyncio.Future[Any]
        ] = {}

    def _lock_for(self, project_id: str) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = self._locks[project_id] = asyncio.Lock()
        return lock

    def is_busy(self, project_id: str) -> bool:
        lock = self._locks.get(project_id)
        return lock is not None and lock.locked()

    async def run(
        self,
        project_id: str,
        operation: str,
        factory: Callable[[], Awaitable[T]],
        target: str | None = None,
    ) -> T:
        """Run ``factory()`` under the project lock, or join a queued twin.

        *target* names what the operation acts on (the specs directory);
        calls for the same project against different targets never join.
        """
        key = (project_id, operation, target)
        queued = self._queued.get(key)
        if queued is not None:
            logger.debug("Joining queued %s for %s", operation, project_id)
            return await asyncio.shield(queued)

        future: asyncio.Future[Any] = (
            asyncio.get_running_loop().create_future()
        )
        self._queued[key] = future
        try:
            async with self._lock_for(project_id):
                if self._queued.get(key) is future:
                    del self._queued[key]
                result = await factory()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved: nobody may have joined.
            future.exception()
            raise
        finally:
            if self._queued.get(key) is future:
                del self._queued[key]
        future.set_result(result)
        return result
