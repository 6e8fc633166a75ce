"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..config import Config, load_config, resolve_settings_file
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import UnifiedConfig, build_config
from ..core.async_utils import init_semaphore, run_sync
from ..core.auth import AuthSessionManager, TokenVerifier
from ..core.client import DocumentClient
from ..settings_store import JsonSettingsStore
from ..sync.backup import BackupRetention
from ..sync.engine import SyncEngine
from ..sync.ledger import SyncLedger
from ..sync.local_store import LocalDocumentStore
from ..sync.scheduler import AdaptiveRefreshScheduler
from ..sync.watcher import FileWatcher

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@dataclass
class ServerContext:
    """Everything a tool handler needs, built once per server run."""

    config: Config
    unified: UnifiedConfig
    auth: AuthSessionManager
    client: DocumentClient
    engine: SyncEngine
    watcher: FileWatcher
    scheduler: AdaptiveRefreshScheduler

    @property
    def project_root(self) -> Path:
        return Path(self.config.project_root).expanduser()

    def resolve_project_root(self, override: str | None = None) -> Path:
        return Path(override).expanduser() if override else self.project_root

    def resolve_project_id(
        self, override: str | None = None, project_root: Path | None = None
    ) -> str:
        """Explicit id > ``config.json`` projectId > ``sync.project_id``.

        Raises:
            ValueError: If no project id can be determined.
        """
        if override:
            return override
        root = project_root or self.project_root
        project_id = self.engine.resolve_project_id(root)
        if project_id:
            return project_id
        if self.unified.sync.project_id:
            return self.unified.sync.project_id
        raise ValueError(
            "No project id: pass project_id, or set projectId in config.json "
            "or sync.project_id in the config file"
        )

    async def refresh(self) -> bool:
        """Download if the dashboard reports changes for the default project."""
        root = self.project_root
        return await self.engine.check_cloud_changes(
            self.resolve_project_id(project_root=root), root
        )


def build_context(config: Config, unified: UnifiedConfig) -> ServerContext:
    """Wire the auth session, client, engine, watcher and scheduler."""
    sync = unified.sync
    store = JsonSettingsStore(config.settings_file or resolve_settings_file())
    timeout = (sync.connect_timeout, sync.read_timeout)

    auth = AuthSessionManager(
        store,
        TokenVerifier(
            config.dashboard_url,
            verify_ssl=not config.insecure,
            timeout=timeout,
        ),
    )
    if config.auth_token and config.auth_token != store.get("authToken"):
        # Token from CLI/env seeds the store; profile is backfilled later.
        store.update({"authToken": config.auth_token})

    client = DocumentClient(
        config,
        auth,
        connect_timeout=sync.connect_timeout,
        read_timeout=sync.read_timeout,
    )
    engine = SyncEngine(
        client,
        store=LocalDocumentStore(sync.specs_dir),
        backups=BackupRetention(sync.max_backups),
        ledger=SyncLedger(),
        detect_conflicts=sync.detect_conflicts,
        push_progress=sync.push_progress,
    )
    watcher = FileWatcher(engine, debounce_seconds=sync.debounce_seconds)

    scheduler = AdaptiveRefreshScheduler(
        lambda: ctx.refresh(),
        min_interval=sync.min_interval,
        max_interval=sync.max_interval,
        step=sync.interval_step,
    )
    ctx = ServerContext(
        config=config,
        unified=unified,
        auth=auth,
        client=client,
        engine=engine,
        watcher=watcher,
        scheduler=scheduler,
    )
    return ctx


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[ServerContext]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > settings store > defaults
    - Build the engine and its collaborators
    - Refresh the cached user profile when a token is stored (never fatal:
      the dashboard may be offline while local editing continues)
    - Start the file watcher / refresh loop when enabled in the sync section

    On shutdown:
    - Stop the watcher observers and the refresh loop

    Args:
        config_overrides: Optional dict with config values from CLI (url, token,
            project_root, insecure, settings_file)

    Yields:
        The initialized ServerContext

    Raises:
        RuntimeError: If configuration is invalid.
    """
    logger.info("MCP server starting...")
    _stderr_print("specsync MCP Server starting...")

    overrides = config_overrides or {}
    try:
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []
        unified = UnifiedConfig()

        if config_files:
            raw = load_hierarchical_config()
            unified = build_config(raw)
            yaml_fallbacks = {
                k: v
                for k, v in unified.dashboard.model_dump().items()
                if v is not None
            }
            sources.append(f"config file: {config_files[0]}")

        settings_file = overrides.get("settings_file") or resolve_settings_file(
            yaml_fallbacks
        )
        stored = JsonSettingsStore(settings_file).as_dict()

        config = load_config(
            url=overrides.get("url"),
            token=overrides.get("token"),
            project_root=overrides.get("project_root"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
            stored_settings=stored,
        )
        config.settings_file = settings_file

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("Dashboard URL: %s", config.dashboard_url)
        _stderr_print(f"  Dashboard URL: {config.dashboard_url}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    init_semaphore(config.max_parallel_requests)
    ctx = build_context(config, unified)

    if ctx.auth.is_authenticated():
        session = await run_sync(ctx.auth.refresh_user_details)
        if session is not None:
            _stderr_print(f"  Logged in as {session.name or session.email}")
        else:
            _stderr_print("  Stored token could not be verified")
    else:
        _stderr_print("  Not logged in (use the auth_login tool)")

    if unified.sync.watch or unified.sync.poll:
        try:
            project_id = ctx.resolve_project_id()
        except ValueError as e:
            logger.warning("Background sync disabled: %s", e)
            _stderr_print(f"  Background sync disabled: {e}")
        else:
            if unified.sync.watch:
                await ctx.watcher.start(project_id, ctx.project_root)
            if unified.sync.poll:
                ctx.scheduler.start()

    _stderr_print("Server ready. Waiting for MCP client connection...")
    try:
        yield ctx
    finally:
        await ctx.watcher.stop_all()
        await ctx.scheduler.stop()
        ctx.engine.dispose()
        logger.info("MCP server shutting down")
        _stderr_print("specsync MCP Server shutting down.")
