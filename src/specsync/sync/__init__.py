"""Document synchronization engine.

Keeps the fixed document set (``requirements.md``, ``design.md``,
``tasks.md``) of a project directory in step with the dashboard.

Modules:

- ``models``      -- pydantic data contracts (keys, status, reports).
- ``local_store`` -- ``LocalDocumentStore``: encoding-aware reads, atomic
  writes, ``progress.json`` / ``config.json``.
- ``backup``      -- ``BackupRetention``: bounded snapshot directories.
- ``ledger``      -- ``SyncLedger``: last-synced hashes for conflict
  detection.
- ``detector``    -- ``ChangeDetector``: per-document pull/push/skip plan.
- ``flight``      -- ``SingleFlight``: per-project operation guard.
- ``engine``      -- ``SyncEngine``: download, upload, force sync, status.
- ``watcher``     -- ``FileWatcher``: watchdog-driven debounced uploads.
- ``scheduler``   -- ``AdaptiveRefreshScheduler``: background polling.
- ``progress``    -- tasks.md parsing and ``ProgressTracker``.
- ``reporter``    -- human-readable and JSON report formatting.

Usage example
-------------
::

    from specsync.sync import SyncEngine, format_download_report

    engine = SyncEngine(client=document_client)
    report = await engine.download_cloud_documents("proj-1", Path("."))
    print(format_download_report(report))
"""

# models first: core.auth and core.client import it during package init
from .models import (
    DOCUMENT_FILENAMES,
    AuthSession,
    DocumentKey,
    DocumentPayload,
    DownloadReport,
    LocalDocument,
    ProgressData,
    ProjectConfig,
    RemoteSyncState,
    SyncAction,
    SyncState,
    SyncStatus,
    UploadReport,
)
from .backup import BackupRetention
from .detector import ChangeDetector
from .engine import SyncEngine
from .flight import SingleFlight
from .ledger import SyncLedger
from .local_store import LocalDocumentStore
from .progress import ProgressTracker, calculate_progress, parse_tasks
from .reporter import (
    format_download_report,
    format_progress,
    format_status,
    format_upload_report,
    report_to_json,
    status_to_json,
)
from .scheduler import AdaptiveRefreshScheduler
from .watcher import FileWatcher

__all__ = [
    "DOCUMENT_FILENAMES",
    "AdaptiveRefreshScheduler",
    "AuthSession",
    "BackupRetention",
    "ChangeDetector",
    "DocumentKey",
    "DocumentPayload",
    "DownloadReport",
    "FileWatcher",
    "LocalDocument",
    "LocalDocumentStore",
    "ProgressData",
    "ProgressTracker",
    "ProjectConfig",
    "RemoteSyncState",
    "SingleFlight",
    "SyncAction",
    "SyncEngine",
    "SyncLedger",
    "SyncState",
    "SyncStatus",
    "UploadReport",
    "calculate_progress",
    "format_download_report",
    "format_progress",
    "format_status",
    "format_upload_report",
    "parse_tasks",
    "report_to_json",
    "status_to_json",
]
