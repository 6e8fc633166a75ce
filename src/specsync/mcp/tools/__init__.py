"""MCP tool handlers for specsync.

This package wraps the sync engine and the auth session in async handlers
with structured error responses.
"""

from .auth import AUTH_SPECS
from .errors import build_error_response, translate_sync_error
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS

ALL_SPECS: list[ToolSpec] = AUTH_SPECS + SYNC_SPECS

__all__ = [
    "build_error_response",
    "translate_sync_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "AUTH_SPECS",
    "SYNC_SPECS",
]
