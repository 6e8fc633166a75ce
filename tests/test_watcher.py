"""Tests for the file watcher.

The watchdog observer is replaced by a recording fake; events are fed
straight into the handler it was given.
"""

from __future__ import annotations

import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from specsync.errors import RemoteFetchError
from specsync.sync.engine import SyncEngine
from specsync.sync.local_store import LocalDocumentStore
from specsync.sync.watcher import DocumentEventHandler, FileWatcher

DEBOUNCE = 0.05


class FakeObserver:
    def __init__(self):
        self.handler = None
        self.path = None
        self.recursive = None
        self.started = False
        self.stopped = False
        self.joined = False

    def schedule(self, handler, path, recursive=False):
        self.handler = handler
        self.path = path
        self.recursive = recursive

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        self.joined = True


@pytest.fixture
def observers():
    return []


@pytest.fixture
def mock_engine():
    engine = MagicMock(spec=SyncEngine)
    engine.store = LocalDocumentStore(".kiro/specs/ai-project-manager")
    engine.upload_local_documents = AsyncMock()
    return engine


@pytest.fixture
def watcher(mock_engine, observers):
    def factory():
        observer = FakeObserver()
        observers.append(observer)
        return observer

    return FileWatcher(mock_engine, debounce_seconds=DEBOUNCE, observer_factory=factory)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


class TestDocumentEventHandler:
    async def _drain(self, queue):
        await asyncio.sleep(0)
        items = []
        while not queue.empty():
            items.append(queue.get_nowait())
        return items

    async def test_document_events_forwarded(self, tmp_path):
        queue: asyncio.Queue = asyncio.Queue()
        handler = DocumentEventHandler(asyncio.get_running_loop(), queue)

        handler.on_created(FileCreatedEvent(str(tmp_path / "requirements.md")))
        handler.on_modified(FileModifiedEvent(str(tmp_path / "design.md")))
        handler.on_deleted(FileDeletedEvent(str(tmp_path / "tasks.md")))

        assert await self._drain(queue) == ["requirements.md", "design.md", "tasks.md"]

    async def test_other_files_and_directories_ignored(self, tmp_path):
        queue: asyncio.Queue = asyncio.Queue()
        handler = DocumentEventHandler(asyncio.get_running_loop(), queue)

        handler.on_modified(FileModifiedEvent(str(tmp_path / "progress.json")))
        handler.on_modified(FileModifiedEvent(str(tmp_path / ".design.md.abc.tmp")))
        handler.on_modified(DirModifiedEvent(str(tmp_path)))

        assert await self._drain(queue) == []

    async def test_atomic_save_move_forwards_destination(self, tmp_path):
        queue: asyncio.Queue = asyncio.Queue()
        handler = DocumentEventHandler(asyncio.get_running_loop(), queue)

        handler.on_moved(
            FileMovedEvent(str(tmp_path / ".design.md.x.tmp"), str(tmp_path / "design.md"))
        )

        assert await self._drain(queue) == ["design.md"]

    async def test_forwarded_from_observer_thread(self, tmp_path):
        queue: asyncio.Queue = asyncio.Queue()
        handler = DocumentEventHandler(asyncio.get_running_loop(), queue)

        thread = threading.Thread(
            target=handler.on_modified,
            args=(FileModifiedEvent(str(tmp_path / "tasks.md")),),
        )
        thread.start()
        thread.join()

        assert await asyncio.wait_for(queue.get(), 1) == "tasks.md"

    def test_closed_loop_is_tolerated(self, tmp_path):
        loop = asyncio.new_event_loop()
        queue = MagicMock()
        loop.close()
        handler = DocumentEventHandler(loop, queue)

        handler.on_modified(FileModifiedEvent(str(tmp_path / "tasks.md")))


# ---------------------------------------------------------------------------
# Watcher lifecycle
# ---------------------------------------------------------------------------


class TestFileWatcher:
    async def test_start_schedules_non_recursive_observer(self, watcher, observers, tmp_path):
        specs = await watcher.start("p", tmp_path)

        assert specs == tmp_path / ".kiro/specs/ai-project-manager"
        assert specs.is_dir()
        observer = observers[0]
        assert observer.path == str(specs)
        assert observer.recursive is False
        assert observer.started
        assert watcher.is_watching("p")
        assert watcher.watched_projects() == ["p"]
        await watcher.stop_all()

    async def test_restart_releases_previous_observer(self, watcher, observers, tmp_path):
        await watcher.start("p", tmp_path)
        await watcher.start("p", tmp_path)

        assert len(observers) == 2
        assert observers[0].stopped and observers[0].joined
        assert not observers[1].stopped
        await watcher.stop_all()

    async def test_stop_is_idempotent(self, watcher, observers, tmp_path):
        await watcher.start("p", tmp_path)

        assert await watcher.stop("p") is True
        assert await watcher.stop("p") is False
        assert observers[0].stopped
        assert not watcher.is_watching("p")

    async def test_stop_all(self, watcher, observers, tmp_path):
        await watcher.start("a", tmp_path / "a")
        await watcher.start("b", tmp_path / "b")

        await watcher.stop_all()

        assert watcher.watched_projects() == []
        assert all(o.stopped for o in observers)


# ---------------------------------------------------------------------------
# Debounced upload
# ---------------------------------------------------------------------------


class TestDebounce:
    async def test_burst_triggers_one_upload(self, watcher, observers, mock_engine, tmp_path):
        specs = await watcher.start("p", tmp_path)
        handler = observers[0].handler

        for _ in range(5):
            handler.on_modified(FileModifiedEvent(str(specs / "tasks.md")))
            await asyncio.sleep(DEBOUNCE / 5)
        await asyncio.sleep(DEBOUNCE * 4)

        mock_engine.upload_local_documents.assert_awaited_once_with("p", tmp_path)
        await watcher.stop_all()

    async def test_separate_bursts_upload_separately(self, watcher, observers, mock_engine, tmp_path):
        specs = await watcher.start("p", tmp_path)
        handler = observers[0].handler

        handler.on_modified(FileModifiedEvent(str(specs / "design.md")))
        await asyncio.sleep(DEBOUNCE * 4)
        handler.on_modified(FileModifiedEvent(str(specs / "design.md")))
        await asyncio.sleep(DEBOUNCE * 4)

        assert mock_engine.upload_local_documents.await_count == 2
        await watcher.stop_all()

    async def test_upload_error_keeps_watching(self, watcher, observers, mock_engine, tmp_path, caplog):
        mock_engine.upload_local_documents.side_effect = [RemoteFetchError("offline"), None]
        specs = await watcher.start("p", tmp_path)
        handler = observers[0].handler

        handler.on_modified(FileModifiedEvent(str(specs / "design.md")))
        await asyncio.sleep(DEBOUNCE * 4)
        handler.on_modified(FileModifiedEvent(str(specs / "design.md")))
        await asyncio.sleep(DEBOUNCE * 4)

        assert mock_engine.upload_local_documents.await_count == 2
        assert "Upload after change in p failed: offline" in caplog.text
        await watcher.stop_all()

    async def test_no_upload_after_stop(self, watcher, observers, mock_engine, tmp_path):
        specs = await watcher.start("p", tmp_path)
        handler = observers[0].handler
        await watcher.stop("p")

        handler.on_modified(FileModifiedEvent(str(specs / "design.md")))
        await asyncio.sleep(DEBOUNCE * 4)

        mock_engine.upload_local_documents.assert_not_awaited()
