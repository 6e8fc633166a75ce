"""Local document store: the fixed document set inside the specs directory.

Layout under ``<project-root>/<specs-dir>/``::

    requirements.md, design.md, tasks.md   -- synchronized documents
    progress.json                          -- task progress record
    config.json                            -- project metadata

Reads detect the file encoding with charset-normalizer (documents edited on
other platforms are not always UTF-8); writes are always UTF-8 and atomic so
the file watcher never observes a half-written document.  Every filesystem
failure is raised as ``LocalIOError``.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from charset_normalizer import from_bytes
from pydantic import ValidationError

from ..config_schema import DEFAULT_SPECS_DIR
from ..errors import LocalIOError
from .models import DocumentKey, LocalDocument, ProgressData, ProjectConfig

logger = logging.getLogger(__name__)

PROGRESS_FILENAME = "progress.json"
CONFIG_FILENAME = "config.json"


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Defaults to UTF-8 for empty files or when detection fails.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")

    encoding = result.encoding
    # ascii is a strict subset of utf-8
    if encoding == "ascii":
        encoding = "utf-8"
    return (str(result), encoding)


def write_file_atomic(path: Path, content: str) -> int:
    """Write UTF-8 *content* to *path* via a temp file and ``os.replace``.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode("utf-8")
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(encoded)


def _mtime_iso(path: Path) -> str:
    mtime = path.stat().st_mtime
    return datetime.fromtimestamp(mtime, tz=timezone.utc).isoformat()


# =============================================================================
# Store
# =============================================================================


class LocalDocumentStore:
    """Read and write the document set of one project directory.

    Args:
        specs_dir: Specs directory relative to the project root.
    """

    def __init__(self, specs_dir: str = DEFAULT_SPECS_DIR) -> None:
        self.specs_dir = specs_dir

    def specs_path(self, project_root: Path | str) -> Path:
        return Path(project_root).expanduser() / self.specs_dir

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def read_document(
        self, specs_path: Path, key: DocumentKey
    ) -> LocalDocument | None:
        """Return the document for *key*, or ``None`` if the file is absent."""
        path = specs_path / key.filename
        if not path.is_file():
            return None
        try:
            content, _ = read_file_with_encoding(path)
            modified = _mtime_iso(path)
        except OSError as exc:
            raise LocalIOError(
                f"Cannot read {path}: {exc}", path=str(path)
            ) from exc
        return LocalDocument(key=key, content=content, last_modified=modified)

    def read_documents(
        self, specs_path: Path
    ) -> dict[DocumentKey, LocalDocument]:
        """Return every document that exists locally, in enumeration order."""
        documents: dict[DocumentKey, LocalDocument] = {}
        for key in DocumentKey:
            doc = self.read_document(specs_path, key)
            if doc is not None:
                documents[key] = doc
        return documents

    def write_document(
        self, specs_path: Path, key: DocumentKey, content: str
    ) -> int:
        path = specs_path / key.filename
        try:
            written = write_file_atomic(path, content)
        except OSError as exc:
            raise LocalIOError(
                f"Cannot write {path}: {exc}", path=str(path)
            ) from exc
        logger.debug("Wrote %s (%d bytes)", path, written)
        return written

    def modification_times(self, specs_path: Path) -> dict[DocumentKey, str]:
        """ISO 8601 mtimes of the documents that exist locally."""
        times: dict[DocumentKey, str] = {}
        for key in DocumentKey:
            path = specs_path / key.filename
            try:
                times[key] = _mtime_iso(path)
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise LocalIOError(
                    f"Cannot stat {path}: {exc}", path=str(path)
                ) from exc
        return times

    # ------------------------------------------------------------------
    # Auxiliary JSON records
    # ------------------------------------------------------------------

    def read_progress(self, specs_path: Path) -> ProgressData | None:
        data = self._read_json(specs_path / PROGRESS_FILENAME)
        if data is None:
            return None
        try:
            return ProgressData.model_validate(data)
        except ValidationError as exc:
            logger.warning("Ignoring malformed %s: %s", PROGRESS_FILENAME, exc)
            return None

    def write_progress(self, specs_path: Path, progress: ProgressData) -> None:
        self._write_json(
            specs_path / PROGRESS_FILENAME,
            progress.model_dump(mode="json", by_alias=True),
        )

    def read_project_config(self, specs_path: Path) -> ProjectConfig | None:
        data = self._read_json(specs_path / CONFIG_FILENAME)
        if data is None:
            return None
        try:
            return ProjectConfig.model_validate(data)
        except ValidationError as exc:
            logger.warning("Ignoring malformed %s: %s", CONFIG_FILENAME, exc)
            return None

    def write_project_config(
        self, specs_path: Path, config: ProjectConfig
    ) -> None:
        self._write_json(
            specs_path / CONFIG_FILENAME,
            config.model_dump(mode="json", by_alias=True, exclude_none=True),
        )

    def _read_json(self, path: Path) -> dict | None:
        if not path.is_file():
            return None
        try:
            content, _ = read_file_with_encoding(path)
        except OSError as exc:
            raise LocalIOError(
                f"Cannot read {path}: {exc}", path=str(path)
            ) from exc
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring unparsable %s: %s", path, exc)
            return None
        return data if isinstance(data, dict) else None

    def _write_json(self, path: Path, data: dict) -> None:
        try:
            write_file_atomic(path, json.dumps(data, indent=2) + "\n")
        except OSError as exc:
            raise LocalIOError(
                f"Cannot write {path}: {exc}", path=str(path)
            ) from exc
