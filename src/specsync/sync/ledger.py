"""Last-synced content ledger used for conflict detection.

Stored as ``<specs-dir>/.sync-state.json``.  Each document key records the
hash of the content both sides agreed on after the last successful download
or upload.  When conflict detection is enabled, a download compares the
current local and remote hashes against that base: if both moved away from
it, the document has diverged on both sides.

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Content hashing** -- ``content_hash()`` normalises content (BOM,
  line-endings, trailing whitespace) before SHA-256 so hashes are stable
  across platforms.
* **Dict-based state** -- callers mutate the dict during one operation and
  persist once at the end.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from ..errors import LocalIOError
from .models import DocumentKey

logger = logging.getLogger(__name__)

LEDGER_FILENAME = ".sync-state.json"


class SyncLedger:
    """Load, save, and query the ledger of one specs directory."""

    def __init__(self, filename: str = LEDGER_FILENAME) -> None:
        self._filename = filename

    def ledger_path(self, specs_path: Path) -> Path:
        return specs_path / self._filename

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self, specs_path: Path, project_id: str) -> dict:
        """Load the ledger for *project_id*.

        A missing, unreadable, or foreign-project ledger yields an empty
        state, which disables conflict detection until the next sync.
        """
        empty = {
            "version": 1,
            "last_sync": None,
            "project_id": project_id,
            "entries": {},
        }
        path = self.ledger_path(specs_path)
        if not path.exists():
            return empty
        try:
            with open(path, encoding="utf-8") as fh:
                state = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable ledger %s: %s", path, exc)
            return empty
        if not isinstance(state, dict) or state.get("project_id") != project_id:
            return empty
        return state

    def save(self, specs_path: Path, state: dict) -> None:
        """Persist *state* atomically, stamping ``last_sync``."""
        state["last_sync"] = datetime.now(timezone.utc).isoformat()
        target = self.ledger_path(specs_path)
        try:
            specs_path.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(specs_path), suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(state, fh, indent=2)
                os.replace(tmp_path, target)
            except BaseException:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise
        except OSError as exc:
            raise LocalIOError(
                f"Cannot write {target}: {exc}", path=str(target)
            ) from exc

    # ------------------------------------------------------------------
    # Entry helpers
    # ------------------------------------------------------------------

    def base_hash(self, state: dict, key: DocumentKey) -> str | None:
        entry = state.get("entries", {}).get(key.value)
        if not isinstance(entry, dict):
            return None
        return entry.get("hash")

    def record(self, state: dict, key: DocumentKey, content: str) -> None:
        """Mark *content* as the agreed base for *key*.  Mutates *state*."""
        state.setdefault("entries", {})[key.value] = {
            "hash": self.content_hash(content),
            "synced_at": datetime.now(timezone.utc).isoformat(),
        }

    @staticmethod
    def content_hash(content: str) -> str:
        """Compute a normalised SHA-256 hex digest of *content*.

        Normalisation steps (applied in order):

        1. Strip BOM (``\\ufeff``).
        2. Replace ``\\r\\n`` with ``\\n``.
        3. Right-strip each line.
        4. Strip trailing empty lines.
        """
        text = content.lstrip("\ufeff")
        text = text.replace("\r\n", "\n")
        lines = [line.rstrip() for line in text.split("\n")]
        while lines and lines[-1] == "":
            lines.pop()
        normalised = "\n".join(lines)
        return hashlib.sha256(normalised.encode("utf-8")).hexdigest()
