"""Bearer-token session for the dashboard.

The token is issued by the web dashboard and pasted into the editor once.
``AuthSessionManager`` verifies it, caches the user profile next to it in the
settings store, and hands out request headers.  A 401 from any dashboard call
clears the session via ``invalidate()``.
"""

from __future__ import annotations

import getpass
import logging
from typing import Any, Callable

import requests

from ..errors import NotAuthenticated, RemoteFetchError, SpecSyncError
from ..settings_store import SettingsStore
from ..sync.models import AuthSession

logger = logging.getLogger(__name__)

VERIFY_PATH = "/api/auth/verify-token"


def _prompt_for_token() -> str:
    return getpass.getpass("Authentication token: ")


class TokenVerifier:
    """POST a token to the dashboard's verification endpoint.

    Verification is idempotent, so a connection error or timeout is retried
    once before giving up.
    """

    def __init__(
        self,
        base_url: str,
        verify_ssl: bool = True,
        timeout: tuple[float, float] = (10, 30),
    ) -> None:
        self.url = f"{base_url.rstrip('/')}{VERIFY_PATH}"
        self.verify_ssl = verify_ssl
        self.timeout = timeout

    def verify(self, token: str) -> dict[str, Any]:
        """Return ``{userId, email, name}`` for a valid token.

        Raises:
            NotAuthenticated: The dashboard rejected the token (401/403).
            RemoteFetchError: Network failure, other non-2xx, or bad JSON.
        """
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        response = self._post(headers)
        if response.status_code in (401, 403):
            raise NotAuthenticated(
                f"Token verification failed: {response.status_code} {response.reason}"
            )
        if not response.ok:
            raise RemoteFetchError(
                f"Token verification failed: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteFetchError(
                "Token verification returned a non-JSON body",
                status_code=response.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise RemoteFetchError(
                "Token verification returned an unexpected body",
                status_code=response.status_code,
            )
        return data

    def _post(self, headers: dict[str, str]) -> requests.Response:
        try:
            return self._send(headers)
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.warning("Token verification failed (%s), retrying once", exc)
        try:
            return self._send(headers)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise RemoteFetchError(f"Token verification failed: {exc}") from exc

    def _send(self, headers: dict[str, str]) -> requests.Response:
        return requests.post(
            self.url,
            headers=headers,
            json={},
            timeout=self.timeout,
            verify=self.verify_ssl,
        )


class AuthSessionManager:
    """Own the single active ``AuthSession`` of this installation.

    Args:
        store: Durable settings store holding ``authToken``, ``userId``,
            ``userEmail`` and ``userName``.
        verifier: Token verifier bound to the dashboard URL.
        prompt: Callable returning a token typed by the user; used by
            ``login()`` when no token is passed.
    """

    def __init__(
        self,
        store: SettingsStore,
        verifier: TokenVerifier,
        prompt: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._verifier = verifier
        self._prompt = prompt or _prompt_for_token
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_authenticated(self) -> bool:
        """True iff a token is stored; profile fields may still be empty."""
        return bool(self._store.get("authToken"))

    def current_session(self) -> AuthSession | None:
        if not self.is_authenticated():
            return None
        return AuthSession(
            token=self._store.get("authToken"),
            user_id=self._store.get("userId"),
            email=self._store.get("userEmail"),
            name=self._store.get("userName"),
        )

    def auth_headers(self) -> dict[str, str]:
        """Headers for an authenticated dashboard request.

        Raises:
            NotAuthenticated: If no token is stored.
        """
        token = self._store.get("authToken")
        if not token:
            raise NotAuthenticated()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def login(self, token: str | None = None) -> AuthSession | None:
        """Verify *token* (or a prompted one) and store the session.

        Never raises for network or validation problems: the reason is kept
        in ``last_error`` and ``None`` is returned.
        """
        self.last_error = None
        if token is None:
            token = self._prompt()
        token = (token or "").strip()
        if not token:
            self.last_error = "Please provide a valid authentication token"
            return None

        try:
            user_data = self._verifier.verify(token)
        except SpecSyncError as exc:
            self.last_error = f"Login failed: {exc}"
            logger.warning(self.last_error)
            return None

        session = self._session_from(token, user_data)
        self._store.update(
            {
                "authToken": token,
                "userId": session.user_id,
                "userEmail": session.email,
                "userName": session.name,
            }
        )
        logger.info("Logged in as %s", session.name or session.email)
        return session

    def refresh_user_details(self) -> AuthSession | None:
        """Re-verify the stored token and overwrite the cached profile.

        A rejected token clears the session.  Network errors keep the stored
        session untouched and return ``None``.
        """
        token = self._store.get("authToken")
        if not token:
            return None

        try:
            user_data = self._verifier.verify(token)
        except NotAuthenticated as exc:
            self.invalidate(str(exc))
            return None
        except SpecSyncError as exc:
            logger.error("Failed to refresh user details: %s", exc)
            return None

        session = self._session_from(token, user_data)
        self._store.update(
            {
                "userId": session.user_id,
                "userEmail": session.email,
                "userName": session.name,
            }
        )
        return session

    def logout(self) -> None:
        self._store.update(
            {
                "authToken": "",
                "userId": "",
                "userEmail": "",
                "userName": "",
            }
        )
        logger.info("Logged out")

    def invalidate(self, reason: str) -> None:
        """Clear the session after the dashboard rejected the token."""
        if self.is_authenticated():
            logger.warning("Auth session invalidated: %s", reason)
        self.logout()

    @staticmethod
    def _session_from(token: str, user_data: dict[str, Any]) -> AuthSession:
        return AuthSession(
            token=token,
            user_id=str(user_data.get("userId") or ""),
            email=str(user_data.get("email") or ""),
            name=str(user_data.get("name") or ""),
        )
