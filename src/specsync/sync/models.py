"""Pydantic models for the document synchronization engine.

Defines the core data contracts used across all sync modules:

- ``DocumentKey``: The fixed document set (requirements, design, tasks).
- ``SyncState`` / ``SyncStatus``: Per-project reconciliation state.
- ``SyncAction``: What the change detector decided for one document.
- ``AuthSession``: The active dashboard identity.
- ``DocumentPayload`` / ``LocalDocument``: Remote and local document copies.
- ``ProgressData`` / ``ProjectConfig``: Auxiliary JSON records.
- ``DownloadReport`` / ``UploadReport``: Outcome of one engine operation.

All models are frozen (immutable) for safety.  JSON records that are shared
with the dashboard use camelCase aliases; dump them with ``by_alias=True``.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DocumentKey(str, Enum):
    """The synchronized document set."""

    REQUIREMENTS = "requirements"
    DESIGN = "design"
    TASKS = "tasks"

    @property
    def filename(self) -> str:
        return f"{self.value}.md"

    @classmethod
    def from_filename(cls, name: str) -> DocumentKey | None:
        """Return the key whose file is *name*, or ``None``."""
        for key in cls:
            if key.filename == name:
                return key
        return None


DOCUMENT_FILENAMES = frozenset(key.filename for key in DocumentKey)


class SyncState(str, Enum):
    """Reconciliation state of one project."""

    UNKNOWN = "unknown"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"
    CONFLICT = "conflict"


class SyncStatus(BaseModel):
    """Per-project status record, held in memory only.

    Attributes:
        state: Current reconciliation state.
        last_sync: When the last operation finished (success or failure).
        message: Human-readable description of the last outcome.
    """

    state: SyncState = SyncState.UNKNOWN
    last_sync: datetime | None = None
    message: str = "No sync status available"

    model_config = {"frozen": True}


class SyncAction(str, Enum):
    """Decision for one document key."""

    SKIP = "skip"
    PUSH = "push"
    PULL = "pull"
    CONFLICT = "conflict"


class AuthSession(BaseModel):
    """Identity attached to the stored bearer token.

    Profile fields may be empty: a token can be stored before the profile is
    backfilled by ``refresh_user_details``.
    """

    token: str
    user_id: str = ""
    email: str = ""
    name: str = ""

    model_config = {"frozen": True}


class DocumentPayload(BaseModel):
    """A document as returned by the remote store."""

    content: str
    last_modified: str | None = Field(default=None, alias="lastModified")

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore"
    )


class LocalDocument(BaseModel):
    """A document as read from the specs directory.

    Attributes:
        key: Which document this is.
        content: Decoded file content.
        last_modified: File mtime as an ISO 8601 UTC timestamp.
    """

    key: DocumentKey
    content: str
    last_modified: str

    model_config = {"frozen": True}


class RemoteSyncState(BaseModel):
    """Result of the lightweight polling probe."""

    has_changes: bool = Field(default=False, alias="hasChanges")

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore"
    )


class ActivityItem(BaseModel):
    task_id: str = Field(alias="taskId")
    title: str
    completed_at: str = Field(alias="completedAt")
    completed_by: str = Field(default="auto-detection", alias="completedBy")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Milestone(BaseModel):
    name: str
    target_date: str = Field(default="", alias="targetDate")
    progress: float = 0

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class ProgressData(BaseModel):
    """Contents of ``progress.json``."""

    total_tasks: int = Field(default=0, alias="totalTasks")
    completed_tasks: int = Field(default=0, alias="completedTasks")
    percentage: int = 0
    last_updated: str | None = Field(default=None, alias="lastUpdated")
    recent_activity: list[ActivityItem] = Field(
        default_factory=list, alias="recentActivity"
    )
    milestones: list[Milestone] = Field(default_factory=list)

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore"
    )


class ProjectConfig(BaseModel):
    """Contents of ``config.json``.

    Unknown keys written by other tools are kept and written back unchanged.
    """

    project_id: str | None = Field(default=None, alias="projectId")
    name: str = ""
    user_id: str | None = Field(default=None, alias="userId")
    user_email: str | None = Field(default=None, alias="userEmail")

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="allow"
    )


class DownloadReport(BaseModel):
    """Outcome of one ``download_cloud_documents`` call.

    Attributes:
        project_id: Project that was synchronized.
        written: Keys whose local file was overwritten or created.
        skipped: Keys already identical (or absent remotely).
        conflicts: Keys left untouched because both sides changed.
        backup_path: Snapshot directory created before writing, if any.
    """

    project_id: str
    written: list[DocumentKey] = []
    skipped: list[DocumentKey] = []
    conflicts: list[DocumentKey] = []
    backup_path: str | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def changed(self) -> bool:
        return bool(self.written)


class UploadReport(BaseModel):
    """Outcome of one ``upload_local_documents`` call."""

    project_id: str
    uploaded: list[DocumentKey] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}
