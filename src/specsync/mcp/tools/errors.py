"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an AI agent can
recover (log in again, fix a path, retry) without human intervention.
"""

import mcp.types as types

from ...errors import (
    LocalIOError,
    NotAuthenticated,
    PartialUploadError,
    RemoteFetchError,
    SpecSyncError,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_authenticated, remote_error,
            local_io_error, partial_upload, validation_error, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_authenticated", "Not authenticated", "Run auth_login.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_sync_error(error: SpecSyncError) -> types.CallToolResult:
    """Translate an engine exception to a structured error response."""
    match error:
        case NotAuthenticated():
            return build_error_response(
                "not_authenticated",
                str(error),
                "Run auth_login with a token from the dashboard's settings page.",
            )
        case PartialUploadError():
            uploaded = ", ".join(error.uploaded) or "none"
            return build_error_response(
                "partial_upload",
                f"{error} (uploaded: {uploaded}; failed: {error.failed_key})",
                "Fix the failing document and run sync_upload again. "
                "Re-sending the already uploaded documents is harmless.",
            )
        case RemoteFetchError(status_code=code) if code is not None and code >= 500:
            return build_error_response(
                "remote_error",
                str(error),
                "The dashboard reported a server error. Retry later.",
            )
        case RemoteFetchError():
            return build_error_response(
                "remote_error",
                str(error),
                "Check the dashboard URL, the project id and connectivity, then retry.",
            )
        case LocalIOError():
            return build_error_response(
                "local_io_error",
                str(error),
                "Check that the specs directory exists and is writable.",
            )
        case _:
            return build_error_response(
                "server_error",
                str(error),
                "Check sync_status for details and retry.",
            )
