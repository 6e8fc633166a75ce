"""Unified configuration schema for specsync.

Defines Pydantic models for the unified config structure with dedicated
sections for the dashboard connection, the sync engine and logging.

Usage:
    from specsync.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

DEFAULT_SPECS_DIR = ".kiro/specs/ai-project-manager"


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class DashboardConfig(BaseModel):
    """Dashboard connection settings.

    All fields are optional to support zero-config: env vars, CLI args and
    the settings store can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="Dashboard base URL")
    token: str | None = Field(
        default=None, description="Bearer token (prefer auth_login)"
    )
    project_root: str | None = Field(
        default=None, description="Project root directory"
    )
    settings_file: str | None = Field(
        default=None, description="Durable settings store path"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    max_parallel_requests: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum concurrent requests to the dashboard (1-32)",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync engine tuning.

    Attributes:
        specs_dir: Project-relative directory holding the document set.
        project_id: Default project id when ``config.json`` has none.
        max_backups: Number of backup snapshots kept per project.
        debounce_seconds: Quiet period before a file change triggers upload.
        min_interval: Lower bound of the adaptive poll interval (seconds).
        max_interval: Upper bound of the adaptive poll interval (seconds).
        interval_step: Interval growth per successful refresh (seconds).
        detect_conflicts: Track last-synced hashes and refuse to overwrite
            documents changed on both sides.
        connect_timeout: HTTP connect timeout (seconds).
        read_timeout: HTTP read timeout (seconds).
        watch: Start the file watcher for the default project at startup.
        poll: Start the adaptive refresh loop at startup.
        push_progress: Post progress.json to the dashboard after downloads.
    """

    specs_dir: str = Field(default=DEFAULT_SPECS_DIR)
    project_id: str | None = Field(default=None)
    max_backups: int = Field(default=5, ge=1, le=100)
    debounce_seconds: float = Field(default=1.0, ge=0)
    min_interval: float = Field(default=30.0, gt=0)
    max_interval: float = Field(default=300.0, gt=0)
    interval_step: float = Field(default=30.0, ge=0)
    detect_conflicts: bool = Field(default=False)
    connect_timeout: float = Field(default=10.0, gt=0)
    read_timeout: float = Field(default=30.0, gt=0)
    watch: bool = Field(default=False)
    poll: bool = Field(default=False)
    push_progress: bool = Field(default=False)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_interval_bounds(self) -> "SyncConfig":
        if self.max_interval < self.min_interval:
            raise ValueError(
                f"max_interval ({self.max_interval}) must be >= "
                f"min_interval ({self.min_interval})"
            )
        return self


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()`` (zero-config)
    is always valid.
    """

    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
