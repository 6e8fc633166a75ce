"""Sync engine: download, upload, and force-sync of one project's documents.

The ``SyncEngine`` ties together the remote client, local store, change
detector, backup retention, and (optionally) the conflict ledger.  Every
public operation:

1. Runs under the project's single-flight guard.
2. Sets the project status to ``syncing``.
3. Performs blocking HTTP and file I/O in worker threads.
4. Resolves the status to ``synced`` (or ``conflict``) on success, or to
   ``error`` with the causal message before re-raising on failure.

The status map lives in memory only and is reset on restart.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.async_utils import run_sync, run_sync_limited
from ..errors import NotAuthenticated, PartialUploadError, SpecSyncError
from .backup import BackupRetention
from .detector import ChangeDetector
from .flight import SingleFlight
from .ledger import SyncLedger
from .local_store import LocalDocumentStore
from .models import (
    DocumentKey,
    DownloadReport,
    ProgressData,
    ProjectConfig,
    SyncAction,
    SyncState,
    SyncStatus,
    UploadReport,
)
from .progress import ProgressTracker

if TYPE_CHECKING:
    from ..core.client import DocumentClient

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    """Reconcile the local document set of a project with the dashboard.

    Args:
        client: Remote document client.
        store: Local document store (knows the specs directory).
        backups: Snapshot retention used before downloads overwrite files.
        detect_conflicts: Keep a last-synced ledger and refuse to overwrite
            documents changed on both sides.
        push_progress: Post recomputed progress to the dashboard after
            downloads.
    """

    def __init__(
        self,
        client: "DocumentClient",
        store: LocalDocumentStore | None = None,
        backups: BackupRetention | None = None,
        ledger: SyncLedger | None = None,
        detect_conflicts: bool = False,
        push_progress: bool = False,
    ) -> None:
        self.client = client
        self.store = store or LocalDocumentStore()
        self.backups = backups or BackupRetention()
        self.ledger = ledger or SyncLedger()
        self.detector = ChangeDetector(self.ledger)
        self.progress = ProgressTracker(self.store)
        self.detect_conflicts = detect_conflicts
        self.push_progress = push_progress

        self._status: dict[str, SyncStatus] = {}
        self._flight = SingleFlight()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_sync_status(self, project_id: str) -> SyncStatus:
        return self._status.get(project_id, SyncStatus())

    def is_busy(self, project_id: str) -> bool:
        return self._flight.is_busy(project_id)

    def _set_status(
        self, project_id: str, state: SyncState, message: str
    ) -> None:
        last_sync = (
            self.get_sync_status(project_id).last_sync
            if state == SyncState.SYNCING
            else _now()
        )
        self._status[project_id] = SyncStatus(
            state=state, last_sync=last_sync, message=message
        )

    def _fail(self, project_id: str, exc: BaseException) -> None:
        message = str(exc) or type(exc).__name__
        self._set_status(project_id, SyncState.ERROR, message)
        logger.error("Sync of %s failed: %s", project_id, message)

    def dispose(self) -> None:
        self._status.clear()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def download_cloud_documents(
        self, project_id: str, local_path: Path | str
    ) -> DownloadReport:
        """Overwrite local documents with the remote set.

        Raises:
            NotAuthenticated, RemoteFetchError, LocalIOError: after the
                status was set to ``error``.
        """
        root = Path(local_path)
        return await self._flight.run(
            project_id,
            "download",
            lambda: self._guarded(project_id, self._download(project_id, root)),
            target=self._target(root),
        )

    async def upload_local_documents(
        self, project_id: str, local_path: Path | str
    ) -> UploadReport:
        """PUT every local document, sequentially, stopping at the first
        failure.

        Raises:
            PartialUploadError: At least one document was uploaded before
                the failing PUT.
            NotAuthenticated, RemoteFetchError, LocalIOError: Nothing was
                uploaded.
        """
        root = Path(local_path)
        return await self._flight.run(
            project_id,
            "upload",
            lambda: self._guarded(project_id, self._upload(project_id, root)),
            target=self._target(root),
        )

    async def force_sync(
        self, project_id: str, local_path: Path | str
    ) -> tuple[DownloadReport, UploadReport]:
        """Download (remote precedence), then upload to re-assert local
        state."""
        root = Path(local_path)

        async def both() -> tuple[DownloadReport, UploadReport]:
            downloaded = await self._download(project_id, root)
            uploaded = await self._upload(project_id, root)
            return downloaded, uploaded

        return await self._flight.run(
            project_id,
            "force",
            lambda: self._guarded(project_id, both()),
            target=self._target(root),
        )

    async def check_cloud_changes(
        self, project_id: str, local_path: Path | str
    ) -> bool:
        """Download only if the remote reports changes.

        Returns:
            True if a download was performed.
        """
        try:
            state = await run_sync_limited(
                self.client.get_sync_state, project_id
            )
        except Exception as exc:
            self._fail(project_id, exc)
            raise
        if not state.has_changes:
            logger.debug("No cloud changes for %s", project_id)
            return False
        await self.download_cloud_documents(project_id, local_path)
        return True

    async def has_cloud_changes(self, project_id: str) -> bool:
        """Probe for remote changes; any failure reads as ``False``."""
        try:
            state = await run_sync_limited(
                self.client.get_sync_state, project_id
            )
        except (SpecSyncError, ValueError) as exc:
            logger.warning("Cloud change probe for %s failed: %s", project_id, exc)
            return False
        return state.has_changes

    async def update_progress(
        self, project_id: str, local_path: Path | str, push: bool = False
    ) -> ProgressData | None:
        """Recompute ``progress.json`` from ``tasks.md``; optionally post it.

        Returns:
            The new progress record, or ``None`` without a tasks document.
        """
        specs = self.store.specs_path(local_path)
        progress = await self._flight.run(
            project_id,
            "progress",
            lambda: run_sync(self.progress.update, specs),
            target=str(specs.resolve()),
        )
        if progress is not None and push:
            await run_sync_limited(self.client.post_progress, project_id, progress)
        return progress

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _target(self, root: Path) -> str:
        return str(self.store.specs_path(root).resolve())

    async def _guarded(self, project_id: str, operation):
        """Await *operation*; never leave the status at ``syncing``."""
        try:
            return await operation
        except BaseException as exc:
            self._fail(project_id, exc)
            raise

    async def _download(self, project_id: str, root: Path) -> DownloadReport:
        started_at = _now().isoformat()
        self._set_status(
            project_id, SyncState.SYNCING, "Downloading cloud documents"
        )
        specs = self.store.specs_path(root)

        remote = await run_sync_limited(self.client.list_documents, project_id)
        local = await run_sync(self.store.read_documents, specs)
        ledger_state = None
        if self.detect_conflicts:
            ledger_state = await run_sync(self.ledger.load, specs, project_id)

        plan = self.detector.plan_download(local, remote, ledger_state)
        to_write = [k for k, a in plan.items() if a == SyncAction.PULL]
        conflicts = [k for k, a in plan.items() if a == SyncAction.CONFLICT]
        skipped = [k for k, a in plan.items() if a == SyncAction.SKIP]

        backup_path = None
        if any(key in local for key in to_write):
            backup_path = await run_sync(self.backups.snapshot, specs)

        for key in to_write:
            await run_sync(
                self.store.write_document, specs, key, remote[key].content
            )

        if ledger_state is not None:
            for key in to_write + skipped:
                if key in remote:
                    self.ledger.record(ledger_state, key, remote[key].content)
            await run_sync(self.ledger.save, specs, ledger_state)

        if to_write:
            await self._after_download(project_id, specs)

        if conflicts:
            names = ", ".join(key.value for key in conflicts)
            self._set_status(
                project_id,
                SyncState.CONFLICT,
                f"Documents changed locally and remotely: {names}",
            )
            logger.warning("Conflicts in %s: %s", project_id, names)
        else:
            self._set_status(
                project_id, SyncState.SYNCED, "Documents downloaded successfully"
            )
        logger.info(
            "Downloaded %s: %d written, %d unchanged",
            project_id,
            len(to_write),
            len(skipped),
        )
        return DownloadReport(
            project_id=project_id,
            written=to_write,
            skipped=skipped,
            conflicts=conflicts,
            backup_path=str(backup_path) if backup_path else None,
            started_at=started_at,
            completed_at=_now().isoformat(),
        )

    async def _upload(self, project_id: str, root: Path) -> UploadReport:
        started_at = _now().isoformat()
        self._set_status(
            project_id, SyncState.SYNCING, "Uploading local documents"
        )
        specs = self.store.specs_path(root)
        local = await run_sync(self.store.read_documents, specs)
        plan = self.detector.plan_upload(local)

        uploaded: list[DocumentKey] = []
        for key in DocumentKey:
            if plan[key] != SyncAction.PUSH:
                continue
            doc = local[key]
            try:
                await run_sync_limited(
                    self.client.put_document,
                    project_id,
                    key,
                    doc.content,
                    doc.last_modified,
                )
            except NotAuthenticated:
                raise
            except Exception as exc:
                if not uploaded:
                    raise
                done = ", ".join(k.value for k in uploaded)
                raise PartialUploadError(
                    f"Failed to upload {key.value} ({exc}); already uploaded: {done}",
                    uploaded=[k.value for k in uploaded],
                    failed_key=key.value,
                ) from exc
            uploaded.append(key)
            logger.debug("Uploaded %s/%s", project_id, key.value)

        if self.detect_conflicts and uploaded:
            ledger_state = await run_sync(self.ledger.load, specs, project_id)
            for key in uploaded:
                self.ledger.record(ledger_state, key, local[key].content)
            await run_sync(self.ledger.save, specs, ledger_state)

        message = (
            "Documents uploaded successfully"
            if uploaded
            else "No local documents to upload"
        )
        self._set_status(project_id, SyncState.SYNCED, message)
        logger.info("Uploaded %s: %d documents", project_id, len(uploaded))
        return UploadReport(
            project_id=project_id,
            uploaded=uploaded,
            started_at=started_at,
            completed_at=_now().isoformat(),
        )

    async def _after_download(self, project_id: str, specs: Path) -> None:
        """Stamp ``config.json`` and refresh progress.  Never raises."""
        try:
            await run_sync(self._stamp_project_config, specs, project_id)
            progress = await run_sync(self.progress.update, specs)
            if progress is not None and self.push_progress:
                await run_sync_limited(
                    self.client.post_progress, project_id, progress
                )
        except (SpecSyncError, ValueError) as exc:
            logger.warning(
                "Post-download bookkeeping for %s failed: %s", project_id, exc
            )

    def _stamp_project_config(self, specs: Path, project_id: str) -> None:
        current = self.store.read_project_config(specs) or ProjectConfig()
        session = self.client.auth.current_session()
        updates: dict[str, str] = {}
        if current.project_id != project_id:
            updates["project_id"] = project_id
        if session is not None:
            if session.user_id and current.user_id != session.user_id:
                updates["user_id"] = session.user_id
            if session.email and current.user_email != session.email:
                updates["user_email"] = session.email
        if updates:
            self.store.write_project_config(
                specs, current.model_copy(update=updates)
            )

    def resolve_project_id(self, local_path: Path | str) -> str | None:
        """Project id recorded in the project's ``config.json``, if any."""
        config = self.store.read_project_config(self.store.specs_path(local_path))
        return config.project_id if config else None
