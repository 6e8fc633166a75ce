"""MCP tool handlers for the dashboard login session.

- ``auth_login`` -- verify a token and store it with the user profile.
- ``auth_logout`` -- clear the stored token and profile.
- ``auth_whoami`` -- show the cached (or re-verified) identity.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...core.async_utils import run_sync_limited
from .errors import build_error_response
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..lifespan import ServerContext

logger = logging.getLogger(__name__)


def _text(text: str, structured: dict | None = None) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


async def _handle_auth_login(
    ctx: "ServerContext", args: dict[str, Any]
) -> types.CallToolResult:
    token = args.get("token")
    if not token or not str(token).strip():
        return build_error_response(
            "validation_error",
            "token is required",
            "Copy the token from the dashboard's settings page and pass it as 'token'.",
        )
    session = await run_sync_limited(ctx.auth.login, str(token))
    if session is None:
        return build_error_response(
            "not_authenticated",
            ctx.auth.last_error or "Login failed",
            "Check that the token is current and the dashboard URL is correct.",
        )
    who = session.name or session.email or session.user_id
    return _text(
        f"Logged in as {who}",
        {"user_id": session.user_id, "email": session.email, "name": session.name},
    )


async def _handle_auth_logout(
    ctx: "ServerContext", args: dict[str, Any]
) -> types.CallToolResult:
    await ctx.watcher.stop_all()
    ctx.auth.logout()
    return _text("Logged out")


async def _handle_auth_whoami(
    ctx: "ServerContext", args: dict[str, Any]
) -> types.CallToolResult:
    if args.get("refresh"):
        session = await run_sync_limited(ctx.auth.refresh_user_details)
    else:
        session = ctx.auth.current_session()
    if session is None:
        return _text("Not logged in", {"authenticated": False})
    lines = [
        f"User: {session.name or '(unknown)'}",
        f"Email: {session.email or '(unknown)'}",
        f"User id: {session.user_id or '(unknown)'}",
        f"Dashboard: {ctx.config.dashboard_url}",
    ]
    return _text(
        "\n".join(lines),
        {
            "authenticated": True,
            "user_id": session.user_id,
            "email": session.email,
            "name": session.name,
            "dashboard_url": ctx.config.dashboard_url,
        },
    )


AUTH_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="auth_login",
            description=(
                "Log in to the dashboard with an API token. The token is "
                "verified and stored together with the user profile."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "token": {
                        "type": "string",
                        "description": "Token from the dashboard's settings page",
                    },
                },
                "required": ["token"],
            },
        ),
        requires_auth=False,
        handler=_handle_auth_login,
    ),
    ToolSpec(
        tool=types.Tool(
            name="auth_logout",
            description="Forget the stored token and user profile, and stop file watchers.",
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        requires_auth=False,
        handler=_handle_auth_logout,
    ),
    ToolSpec(
        tool=types.Tool(
            name="auth_whoami",
            description="Show the logged-in dashboard user.",
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "refresh": {
                        "type": "boolean",
                        "default": False,
                        "description": "Re-verify the token and update the cached profile",
                    },
                },
                "required": [],
            },
        ),
        requires_auth=False,
        handler=_handle_auth_whoami,
    ),
]
