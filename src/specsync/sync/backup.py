"""Rollback snapshots taken before a download overwrites local documents.

Each snapshot is a directory ``<specs-dir>/backups/<UTC timestamp>/`` holding
copies of the documents present at that moment.  Timestamps are zero-padded
(``20261018T114702123456Z``) so lexicographic order is chronological, and
only the ``max_backups`` newest snapshots are kept.

Backups are best effort: ``snapshot()`` logs failures and returns ``None``
instead of raising, so a full disk never blocks reconciliation.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from .models import DocumentKey

logger = logging.getLogger(__name__)

BACKUPS_DIRNAME = "backups"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BackupRetention:
    """Create and prune snapshot directories.

    Args:
        max_backups: Number of snapshots kept after each new one.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        max_backups: int = 5,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if max_backups < 1:
            raise ValueError("max_backups must be at least 1")
        self.max_backups = max_backups
        self._clock = clock

    def backups_path(self, specs_path: Path) -> Path:
        return specs_path / BACKUPS_DIRNAME

    def snapshot(self, specs_path: Path) -> Path | None:
        """Copy the present documents into a new snapshot directory.

        Returns:
            The snapshot directory, or ``None`` when there was nothing to
            copy or the copy failed.
        """
        present = [
            specs_path / key.filename
            for key in DocumentKey
            if (specs_path / key.filename).is_file()
        ]
        if not present:
            return None

        try:
            target = self._new_snapshot_dir(specs_path)
            for source in present:
                shutil.copy2(source, target / source.name)
        except OSError as exc:
            logger.error("Error creating backup in %s: %s", specs_path, exc)
            return None

        logger.info("Created backup %s (%d files)", target, len(present))
        try:
            self.prune(specs_path)
        except OSError as exc:
            logger.warning("Error pruning backups in %s: %s", specs_path, exc)
        return target

    def list_snapshots(self, specs_path: Path) -> list[Path]:
        """Snapshot directories, oldest first."""
        root = self.backups_path(specs_path)
        if not root.is_dir():
            return []
        return sorted(p for p in root.iterdir() if p.is_dir())

    def prune(self, specs_path: Path) -> list[Path]:
        """Delete all but the ``max_backups`` newest snapshots.

        Returns:
            The removed snapshot directories.
        """
        snapshots = self.list_snapshots(specs_path)
        excess = snapshots[: max(0, len(snapshots) - self.max_backups)]
        for path in excess:
            shutil.rmtree(path)
            logger.debug("Removed old backup %s", path)
        return excess

    def _new_snapshot_dir(self, specs_path: Path) -> Path:
        root = self.backups_path(specs_path)
        root.mkdir(parents=True, exist_ok=True)
        stamp = self._clock().strftime("%Y%m%dT%H%M%S%fZ")
        candidate = root / stamp
        suffix = 1
        # Two snapshots within the same microsecond (or a frozen test clock)
        while candidate.exists():
            candidate = root / f"{stamp}-{suffix:03d}"
            suffix += 1
        candidate.mkdir()
        return candidate
