"""Sync report formatting functions.

- ``format_download_report`` / ``format_upload_report`` -- post-operation
  summaries.
- ``format_status`` -- one-line-per-field status display.
- ``format_progress`` -- task progress summary.
- ``report_to_json`` / ``status_to_json`` -- structured dicts for MCP tool
  output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import (
        DownloadReport,
        ProgressData,
        SyncStatus,
        UploadReport,
    )


def _keys(keys) -> str:
    return ", ".join(key.value for key in keys) or "none"


# ------------------------------------------------------------------
# Human-readable reports
# ------------------------------------------------------------------


def format_download_report(report: DownloadReport) -> str:
    """Format a download report.  Sections with no entries are omitted."""
    lines = [f"Download for project '{report.project_id}'"]
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    if report.written:
        lines.append(f"Updated locally: {_keys(report.written)}")
    else:
        lines.append("Local documents already up to date.")
    if report.conflicts:
        lines.append(
            f"Conflicts (left untouched): {_keys(report.conflicts)}"
        )
    if report.skipped:
        lines.append(f"Unchanged: {_keys(report.skipped)}")
    if report.backup_path:
        lines.append(f"Backup: {report.backup_path}")
    return "\n".join(lines)


def format_upload_report(report: UploadReport) -> str:
    lines = [f"Upload for project '{report.project_id}'"]
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")
    if report.uploaded:
        lines.append(f"Uploaded: {_keys(report.uploaded)}")
    else:
        lines.append("No local documents to upload.")
    return "\n".join(lines)


def format_status(project_id: str, status: SyncStatus) -> str:
    last = status.last_sync.isoformat() if status.last_sync else "never"
    return "\n".join(
        [
            f"Project: {project_id}",
            f"State: {status.state.value}",
            f"Last sync: {last}",
            f"Message: {status.message}",
        ]
    )


def format_progress(progress: ProgressData) -> str:
    lines = [
        f"Progress: {progress.completed_tasks}/{progress.total_tasks} "
        f"tasks ({progress.percentage}%)"
    ]
    if progress.recent_activity:
        lines.append("Recently completed:")
        for item in progress.recent_activity:
            lines.append(f"  {item.task_id} {item.title}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: DownloadReport | UploadReport) -> dict:
    """Structured dict for MCP ``structuredContent`` output."""
    return report.model_dump(mode="json")


def status_to_json(project_id: str, status: SyncStatus) -> dict:
    return {
        "project_id": project_id,
        "state": status.state.value,
        "last_sync": status.last_sync.isoformat() if status.last_sync else None,
        "message": status.message,
    }
