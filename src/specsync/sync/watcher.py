"""Watch a project's specs directory and upload documents after edits.

The watchdog observer runs in its own thread.  Its handler only forwards
the changed document name into an ``asyncio.Queue`` on the event loop
(``loop.call_soon_threadsafe``); one consumer task per project debounces
the notifications and calls ``SyncEngine.upload_local_documents``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..core.async_utils import run_sync
from ..errors import SpecSyncError
from .engine import SyncEngine
from .models import DOCUMENT_FILENAMES

logger = logging.getLogger(__name__)


class DocumentEventHandler(FileSystemEventHandler):
    """Forward create/modify/delete/move of document files to a queue."""

    def __init__(
        self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[str]
    ) -> None:
        self._loop = loop
        self._queue = queue

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic saves show up as a move from a temp file onto the document.
        if not event.is_directory:
            self._forward(event.src_path)
            self._forward(event.dest_path)

    def _forward(self, path: str | bytes) -> None:
        if isinstance(path, bytes):
            path = path.decode(errors="replace")
        name = Path(path).name
        if name not in DOCUMENT_FILENAMES:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, name)
        except RuntimeError:
            # Event loop already closed during shutdown
            logger.debug("Dropped change event for %s", name)


@dataclass
class _Watch:
    observer: Observer
    task: asyncio.Task
    specs_path: Path


class FileWatcher:
    """One watchdog observer plus one debouncing task per project.

    Args:
        engine: Engine whose ``upload_local_documents`` is called.
        debounce_seconds: Quiet period after the last event before uploading.
        observer_factory: Creates the watchdog observer; injectable for tests.
    """

    def __init__(
        self,
        engine: SyncEngine,
        debounce_seconds: float = 1.0,
        observer_factory: Callable[[], Observer] = Observer,
    ) -> None:
        self.engine = engine
        self.debounce_seconds = debounce_seconds
        self._observer_factory = observer_factory
        self._watches: dict[str, _Watch] = {}

    def is_watching(self, project_id: str) -> bool:
        return project_id in self._watches

    def watched_projects(self) -> list[str]:
        return sorted(self._watches)

    async def start(self, project_id: str, local_path: Path | str) -> Path:
        """Watch the specs directory of *local_path* for *project_id*.

        An existing watch for the same project is stopped first.

        Returns:
            The watched directory.
        """
        await self.stop(project_id)

        root = Path(local_path)
        specs_path = self.engine.store.specs_path(root)
        specs_path.mkdir(parents=True, exist_ok=True)

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[str] = asyncio.Queue()
        observer = self._observer_factory()
        observer.schedule(
            DocumentEventHandler(loop, queue), str(specs_path), recursive=False
        )
        observer.start()

        task = asyncio.create_task(
            self._consume(project_id, root, queue),
            name=f"specsync-watch-{project_id}",
        )
        self._watches[project_id] = _Watch(observer, task, specs_path)
        logger.info("Watching %s for project %s", specs_path, project_id)
        return specs_path

    async def stop(self, project_id: str) -> bool:
        """Stop watching *project_id*.  Returns False if it was not watched."""
        watch = self._watches.pop(project_id, None)
        if watch is None:
            return False

        watch.observer.stop()
        await run_sync(watch.observer.join, 5)
        watch.task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watch.task
        logger.info("Stopped watching %s", watch.specs_path)
        return True

    async def stop_all(self) -> None:
        for project_id in list(self._watches):
            await self.stop(project_id)

    async def _consume(
        self, project_id: str, root: Path, queue: asyncio.Queue[str]
    ) -> None:
        while True:
            changed = {await queue.get()}
            while True:
                try:
                    changed.add(
                        await asyncio.wait_for(
                            queue.get(), timeout=self.debounce_seconds
                        )
                    )
                except asyncio.TimeoutError:
                    break

            logger.debug(
                "Changes in %s: %s", project_id, ", ".join(sorted(changed))
            )
            try:
                await self.engine.upload_local_documents(project_id, root)
            except SpecSyncError as exc:
                logger.error("Upload after change in %s failed: %s", project_id, exc)
            except Exception:
                logger.exception("Unexpected error uploading %s", project_id)
