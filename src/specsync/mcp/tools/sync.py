"""MCP tool handlers for document synchronization.

Every tool accepts optional ``project_id`` and ``project_root``.  Without
them the server's project root is used, and the id comes from the
project's ``config.json`` (or ``sync.project_id`` in the config file).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...sync.reporter import (
    format_download_report,
    format_progress,
    format_status,
    format_upload_report,
    report_to_json,
    status_to_json,
)
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..lifespan import ServerContext

logger = logging.getLogger(__name__)


_PROJECT_PROPERTIES: dict[str, Any] = {
    "project_id": {
        "type": "string",
        "description": "Dashboard project id. Defaults to projectId in config.json.",
    },
    "project_root": {
        "type": "string",
        "description": "Project directory (absolute path). Defaults to the server's project root.",
    },
}


def _schema(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {**_PROJECT_PROPERTIES, **(extra or {})},
        "required": [],
    }


def _resolve(ctx: "ServerContext", args: dict[str, Any]):
    root = ctx.resolve_project_root(args.get("project_root"))
    project_id = ctx.resolve_project_id(args.get("project_id"), root)
    return project_id, root


def _result(text: str, structured: dict) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_sync_download(
    ctx: "ServerContext", args: dict[str, Any]
) -> types.CallToolResult:
    project_id, root = _resolve(ctx, args)
    report = await ctx.engine.download_cloud_documents(project_id, root)
    return _result(format_download_report(report), report_to_json(report))


async def _handle_sync_upload(
    ctx: "ServerContext", args: dict[str, Any]
) -> types.CallToolResult:
    project_id, root = _resolve(ctx, args)
    report = await ctx.engine.upload_local_documents(project_id, root)
    return _result(format_upload_report(report), report_to_json(report))


async def _handle_sync_force(
    ctx: "ServerContext", args: dict[str, Any]
) -> types.CallToolResult:
    project_id, root = _resolve(ctx, args)
    downloaded, uploaded = await ctx.engine.force_sync(project_id, root)
    text = (
        format_download_report(downloaded)
        + "\n\n"
        + format_upload_report(uploaded)
    )
    return _result(
        text,
        {
            "download": report_to_json(downloaded),
            "upload": report_to_json(uploaded),
        },
    )


async def _handle_sync_check(
    ctx: "ServerContext", args: dict[str, Any]
) -> types.CallToolResult:
    project_id, root = _resolve(ctx, args)
    downloaded = await ctx.engine.check_cloud_changes(project_id, root)
    text = (
        "Cloud changes found and downloaded."
        if downloaded
        else "No cloud changes."
    )
    return _result(text, {"project_id": project_id, "downloaded": downloaded})


async def _handle_sync_status(
    ctx: "ServerContext", args: dict[str, Any]
) -> types.CallToolResult:
    project_id, root = _resolve(ctx, args)
    status = ctx.engine.get_sync_status(project_id)
    structured = status_to_json(project_id, status)
    lines = [format_status(project_id, status)]

    structured["watching"] = ctx.watcher.is_watching(project_id)
    lines.append(f"Watching: {'yes' if structured['watching'] else 'no'}")

    if args.get("check_remote") and ctx.auth.is_authenticated():
        changes = await ctx.engine.has_cloud_changes(project_id)
        structured["cloud_changes"] = changes
        lines.append(f"Cloud changes pending: {'yes' if changes else 'no'}")

    specs = ctx.engine.store.specs_path(root)
    snapshots = ctx.engine.backups.list_snapshots(specs)
    structured["backups"] = len(snapshots)
    lines.append(f"Backups: {len(snapshots)}")
    return _result("\n".join(lines), structured)


async def _handle_sync_watch_start(
    ctx: "ServerContext", args: dict[str, Any]
) -> types.CallToolResult:
    project_id, root = _resolve(ctx, args)
    watched = await ctx.watcher.start(project_id, root)
    return _result(
        f"Watching {watched} for project {project_id}",
        {"project_id": project_id, "path": str(watched), "watching": True},
    )


async def _handle_sync_watch_stop(
    ctx: "ServerContext", args: dict[str, Any]
) -> types.CallToolResult:
    project_id, _ = _resolve(ctx, args)
    stopped = await ctx.watcher.stop(project_id)
    text = (
        f"Stopped watching project {project_id}"
        if stopped
        else f"Project {project_id} was not being watched"
    )
    return _result(text, {"project_id": project_id, "watching": False})


async def _handle_progress_update(
    ctx: "ServerContext", args: dict[str, Any]
) -> types.CallToolResult:
    project_id, root = _resolve(ctx, args)
    push = bool(args.get("push", False))
    if push and not ctx.auth.is_authenticated():
        raise ValueError("push=true requires a dashboard login")
    progress = await ctx.engine.update_progress(project_id, root, push=push)
    if progress is None:
        return _result(
            "No tasks.md found; progress not updated.",
            {"project_id": project_id, "updated": False},
        )
    structured = progress.model_dump(mode="json", by_alias=True)
    structured["updated"] = True
    structured["pushed"] = push
    return _result(format_progress(progress), structured)


# ---------------------------------------------------------------------------
# Tool specs
# ---------------------------------------------------------------------------


def _annotations(
    read_only: bool, idempotent: bool = True, open_world: bool = True
) -> types.ToolAnnotations:
    return types.ToolAnnotations(
        readOnlyHint=read_only,
        destructiveHint=False,
        idempotentHint=idempotent,
        openWorldHint=open_world,
    )


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="sync_download",
            description=(
                "Download requirements.md, design.md and tasks.md from the "
                "dashboard, overwriting local copies. A backup snapshot is "
                "taken before any local file changes."
            ),
            annotations=_annotations(read_only=False),
            inputSchema=_schema(),
        ),
        requires_auth=True,
        handler=_handle_sync_download,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_upload",
            description=(
                "Upload the local documents to the dashboard one at a time. "
                "Stops at the first failure; earlier uploads are kept."
            ),
            annotations=_annotations(read_only=False),
            inputSchema=_schema(),
        ),
        requires_auth=True,
        handler=_handle_sync_upload,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_force",
            description=(
                "Download from the dashboard, then upload the local documents "
                "again so both sides end up identical."
            ),
            annotations=_annotations(read_only=False),
            inputSchema=_schema(),
        ),
        requires_auth=True,
        handler=_handle_sync_force,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_check",
            description=(
                "Ask the dashboard whether documents changed and download "
                "them if so."
            ),
            annotations=_annotations(read_only=False),
            inputSchema=_schema(),
        ),
        requires_auth=True,
        handler=_handle_sync_check,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_status",
            description=(
                "Show the sync state of a project: last result, watcher, "
                "backup count, and optionally whether cloud changes are pending."
            ),
            annotations=_annotations(read_only=True),
            inputSchema=_schema(
                {
                    "check_remote": {
                        "type": "boolean",
                        "default": False,
                        "description": "Also probe the dashboard for pending changes",
                    }
                }
            ),
        ),
        requires_auth=False,
        handler=_handle_sync_status,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_watch_start",
            description=(
                "Watch the local documents and upload them shortly after "
                "each edit."
            ),
            annotations=_annotations(read_only=False, open_world=False),
            inputSchema=_schema(),
        ),
        requires_auth=True,
        handler=_handle_sync_watch_start,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_watch_stop",
            description="Stop watching the local documents of a project.",
            annotations=_annotations(read_only=False, open_world=False),
            inputSchema=_schema(),
        ),
        requires_auth=False,
        handler=_handle_sync_watch_stop,
    ),
    ToolSpec(
        tool=types.Tool(
            name="progress_update",
            description=(
                "Recompute progress.json from the checkboxes in tasks.md and "
                "optionally report it to the dashboard."
            ),
            annotations=_annotations(read_only=False, open_world=False),
            inputSchema=_schema(
                {
                    "push": {
                        "type": "boolean",
                        "default": False,
                        "description": "Also send the progress to the dashboard",
                    }
                }
            ),
        ),
        requires_auth=False,
        handler=_handle_progress_update,
    ),
]
