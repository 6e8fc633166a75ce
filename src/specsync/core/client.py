import logging
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import requests

from ..config import Config
from ..errors import NotAuthenticated, RemoteFetchError
from ..sync.models import (
    DocumentKey,
    DocumentPayload,
    ProgressData,
    RemoteSyncState,
)
from ..validators import validate_content, validate_project_id

if TYPE_CHECKING:
    from .auth import AuthSessionManager

logger = logging.getLogger(__name__)


class DocumentClient:
    """HTTP client for the dashboard's document endpoints.

    Every call carries the auth session's bearer headers.  Reads are retried
    once on connection errors and timeouts; writes are never retried so a
    slow PUT cannot be applied twice.
    """

    def __init__(
        self,
        config: Config,
        auth: "AuthSessionManager",
        connect_timeout: float = 10,
        read_timeout: float = 30,
    ):
        self.config = config
        self.auth = auth
        self.timeout = (connect_timeout, read_timeout)
        self._thread_local = threading.local()
        self.base_url = config.dashboard_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        """Current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.verify = not self.config.insecure
        return session

    def _documents_url(self, project_id: str) -> str:
        valid, reason = validate_project_id(project_id)
        if not valid:
            raise ValueError(reason)
        return f"{self.base_url}/api/vscode/projects/{project_id}"

    def _request(
        self,
        method: str,
        url: str,
        *,
        json_body: Any = None,
        idempotent: bool = False,
    ) -> requests.Response:
        """Send an authenticated request.

        Raises:
            NotAuthenticated: No token stored, or the dashboard answered 401.
            RemoteFetchError: The request could not be completed.
        """
        headers = self.auth.auth_headers()
        attempts = 2 if idempotent else 1
        session = self._get_session()

        for attempt in range(attempts):
            try:
                response = session.request(
                    method,
                    url,
                    headers=headers,
                    json=json_body,
                    timeout=self.timeout,
                )
                break
            except (requests.ConnectionError, requests.Timeout) as exc:
                if attempt + 1 < attempts:
                    logger.warning(
                        "%s %s failed (%s), retrying once", method, url, exc
                    )
                    continue
                raise RemoteFetchError(
                    f"{method} {url} failed: {exc}"
                ) from exc

        if response.status_code == 401:
            self.auth.invalidate(f"{method} {url} returned 401")
            raise NotAuthenticated(
                "Dashboard rejected the auth token (401). Log in again."
            )
        return response

    @staticmethod
    def _parse_json(response: requests.Response, action: str) -> Any:
        if not response.ok:
            body = response.text[:200]
            logger.error("API error response: %s", body)
            raise RemoteFetchError(
                f"Failed to {action}: {response.status_code} {response.reason}. Response: {body}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteFetchError(
                f"Invalid JSON response from server: {response.text[:200]}",
                status_code=response.status_code,
            ) from exc

    def list_documents(
        self, project_id: str
    ) -> dict[DocumentKey, DocumentPayload]:
        """
        Fetch the remote document set.

        Documents that are missing or have empty content are left out of
        the result.

        Raises:
            RemoteFetchError: Non-2xx response or a body that is not a JSON
                object.
        """
        url = f"{self._documents_url(project_id)}/documents"
        response = self._request("GET", url, idempotent=True)
        body = self._parse_json(response, "fetch cloud documents")
        if not isinstance(body, dict):
            raise RemoteFetchError(
                f"Unexpected documents body: expected object, got {type(body).__name__}",
                status_code=response.status_code,
            )

        documents: dict[DocumentKey, DocumentPayload] = {}
        for key in DocumentKey:
            entry = body.get(key.value)
            if not isinstance(entry, dict):
                continue
            content = entry.get("content")
            if not isinstance(content, str) or not content:
                continue
            documents[key] = DocumentPayload.model_validate(entry)
        return documents

    def put_document(
        self,
        project_id: str,
        key: DocumentKey,
        content: str,
        last_known_timestamp: str | None = None,
    ) -> None:
        """
        Upload one document.

        ``last_known_timestamp`` is informational: the dashboard does not
        reject stale writes.

        Raises:
            ValueError: Content exceeds the size limit.
            RemoteFetchError: The dashboard did not answer 2xx.
        """
        valid, reason = validate_content(content)
        if not valid:
            raise ValueError(reason)

        url = f"{self._documents_url(project_id)}/documents/{key.value}"
        response = self._request(
            "PUT",
            url,
            json_body={
                "content": content,
                "lastKnownTimestamp": last_known_timestamp,
            },
        )
        if not response.ok:
            raise RemoteFetchError(
                f"Failed to upload {key.value}: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )

    def get_sync_state(self, project_id: str) -> RemoteSyncState:
        """
        Poll whether the remote set changed since this client last fetched it.
        """
        url = f"{self._documents_url(project_id)}/sync/status"
        response = self._request("GET", url, idempotent=True)
        body = self._parse_json(response, "check cloud changes")
        if not isinstance(body, dict):
            raise RemoteFetchError(
                "Unexpected sync status body",
                status_code=response.status_code,
            )
        return RemoteSyncState.model_validate(body)

    def post_progress(self, project_id: str, progress: ProgressData) -> None:
        """
        Report task progress to the dashboard.
        """
        valid, reason = validate_project_id(project_id)
        if not valid:
            raise ValueError(reason)
        url = f"{self.base_url}/api/projects/{project_id}/progress"
        payload = progress.model_dump(mode="json", by_alias=True)
        payload["source"] = "specsync"
        payload["timestamp"] = datetime.now(timezone.utc).isoformat()
        response = self._request("POST", url, json_body=payload)
        if not response.ok:
            raise RemoteFetchError(
                f"Failed to send progress: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )
