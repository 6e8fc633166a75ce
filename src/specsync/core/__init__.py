"""Dashboard communication shared between the sync engine and MCP tools."""

from .async_utils import run_sync, run_sync_limited
from .auth import AuthSessionManager, TokenVerifier
from .client import DocumentClient

__all__ = [
    "AuthSessionManager",
    "DocumentClient",
    "TokenVerifier",
    "run_sync",
    "run_sync_limited",
]
