"""Durable key/value settings used by the auth session.

The editor host persists the dashboard URL, the bearer token and the cached
user profile between sessions.  Two stores are provided:

* ``JsonSettingsStore`` -- a JSON file (``~/.config/specsync/settings.json``
  by default) rewritten atomically on every update.
* ``MemorySettingsStore`` -- process-local dict, for embedding and tests.

Both expose the same small surface (``get``, ``update``, ``as_dict``) so the
auth manager never needs to know which one it is talking to.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Mapping, Protocol

logger = logging.getLogger(__name__)

SETTINGS_KEYS = ("dashboardUrl", "authToken", "userId", "userEmail", "userName")


class SettingsStore(Protocol):
    def get(self, key: str, default: str = "") -> str: ...

    def update(self, values: Mapping[str, str]) -> None: ...

    def as_dict(self) -> dict[str, str]: ...


class MemorySettingsStore:
    """In-memory settings; nothing survives the process."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: str = "") -> str:
        with self._lock:
            return self._data.get(key, default)

    def update(self, values: Mapping[str, str]) -> None:
        with self._lock:
            self._data.update(values)

    def as_dict(self) -> dict[str, str]:
        with self._lock:
            return dict(self._data)


class JsonSettingsStore:
    """Settings persisted to a JSON file.

    Args:
        path: Location of the settings file.  The parent directory is
            created on first write.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()
        self._lock = threading.Lock()
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: str = "") -> str:
        with self._lock:
            value = self._data.get(key, default)
        return value if isinstance(value, str) else default

    def update(self, values: Mapping[str, str]) -> None:
        with self._lock:
            self._data.update(values)
            self._save()

    def as_dict(self) -> dict[str, str]:
        with self._lock:
            return dict(self._data)

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "Ignoring unreadable settings file %s: %s", self._path, exc
            )
            return {}
        if not isinstance(data, dict):
            logger.warning(
                "Settings file %s has non-object root, ignoring", self._path
            )
            return {}
        return data

    def _save(self) -> None:
        """Write to a temp file in the same directory, then ``os.replace``."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
