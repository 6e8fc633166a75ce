"""Exception taxonomy for the document synchronization engine.

Every failure the engine surfaces to its callers derives from
``SpecSyncError`` so that tool handlers, the refresh scheduler and the file
watcher can catch engine errors without also swallowing programming errors.
"""

from __future__ import annotations


class SpecSyncError(Exception):
    """Base class for all engine errors."""


class NotAuthenticated(SpecSyncError):
    """No auth token is stored, or the remote rejected it (HTTP 401)."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class RemoteFetchError(SpecSyncError):
    """Remote call returned a non-2xx status or a malformed body.

    Attributes:
        status_code: HTTP status when a response was received, else ``None``.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LocalIOError(SpecSyncError):
    """Filesystem failure while reading or writing the document set."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class PartialUploadError(SpecSyncError):
    """Some, but not all, documents reached the remote store.

    Uploads are not rolled back, so ``uploaded`` lists the keys that the
    remote accepted before ``failed_key`` was rejected.
    """

    def __init__(
        self,
        message: str,
        uploaded: list[str],
        failed_key: str,
    ) -> None:
        super().__init__(message)
        self.uploaded = list(uploaded)
        self.failed_key = failed_key
