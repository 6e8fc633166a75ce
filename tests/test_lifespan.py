"""Tests for specsync.mcp.lifespan -- server context and startup/shutdown.

Covers:
- ServerContext project id resolution order
- build_context wiring (token seeding, sync section values)
- server_lifespan: config errors, profile refresh, background sync startup
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from specsync.config import Config
from specsync.config_schema import UnifiedConfig, build_config
from specsync.mcp.lifespan import ServerContext, build_context, server_lifespan
from specsync.settings_store import JsonSettingsStore

# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------


def _make_config(tmp_path, **overrides):
    defaults = {
        "dashboard_url": "https://dashboard.example.com",
        "auth_token": None,
        "project_root": str(tmp_path),
        "insecure": False,
        "debug": False,
        "max_parallel_requests": 4,
        "settings_file": str(tmp_path / "settings.json"),
    }
    defaults.update(overrides)
    return Config(**defaults)


def _lifespan_patches(config, config_files=(), raw=None):
    return (
        patch("specsync.mcp.lifespan.load_dotenv"),
        patch(
            "specsync.mcp.lifespan.discover_config_files",
            return_value=list(config_files),
        ),
        patch(
            "specsync.mcp.lifespan.load_hierarchical_config",
            return_value=raw or {},
        ),
        patch("specsync.mcp.lifespan.load_config", return_value=config),
        patch("specsync.mcp.lifespan._stderr_print"),
    )


# -------------------------------------------------------------------------
# ServerContext
# -------------------------------------------------------------------------


class TestResolveProjectId:
    def test_explicit_id_wins(self, server_context):
        assert server_context.resolve_project_id("other") == "other"

    def test_config_json(self, server_context):
        assert server_context.resolve_project_id() == "proj-1"

    def test_falls_back_to_sync_section(self, server_context, tmp_path):
        server_context.unified = build_config({"sync": {"project_id": "from-yaml"}})
        empty = tmp_path / "elsewhere"
        empty.mkdir()

        assert server_context.resolve_project_id(project_root=empty) == "from-yaml"

    def test_nothing_configured(self, server_context, tmp_path):
        empty = tmp_path / "elsewhere"
        empty.mkdir()

        with pytest.raises(ValueError, match="No project id"):
            server_context.resolve_project_id(project_root=empty)

    def test_resolve_project_root(self, server_context, tmp_path):
        assert server_context.resolve_project_root() == tmp_path
        assert server_context.resolve_project_root("/srv/app") == Path("/srv/app")

    async def test_refresh_downloads_when_cloud_changed(self, server_context, fake_client, specs_path):
        from specsync.sync.models import DocumentKey

        fake_client.documents[DocumentKey.DESIGN] = "# Design\n"
        fake_client.has_changes = True

        assert await server_context.refresh() is True
        assert (specs_path / "design.md").read_text() == "# Design\n"


# -------------------------------------------------------------------------
# build_context
# -------------------------------------------------------------------------


class TestBuildContext:
    def test_wires_sync_section(self, tmp_path):
        unified = build_config(
            {
                "sync": {
                    "specs_dir": "docs/specs",
                    "max_backups": 3,
                    "debounce_seconds": 2.5,
                    "min_interval": 10,
                    "max_interval": 60,
                    "interval_step": 5,
                    "detect_conflicts": True,
                }
            }
        )
        ctx = build_context(_make_config(tmp_path), unified)

        assert isinstance(ctx, ServerContext)
        assert ctx.engine.store.specs_dir == "docs/specs"
        assert ctx.engine.backups.max_backups == 3
        assert ctx.engine.detect_conflicts is True
        assert ctx.watcher.debounce_seconds == 2.5
        assert ctx.scheduler.compute_interval(0) == 10
        assert ctx.scheduler.compute_interval(100) == 60
        assert ctx.engine.client is ctx.client

    def test_token_from_config_seeds_store(self, tmp_path):
        config = _make_config(tmp_path, auth_token="tok-cli")
        ctx = build_context(config, UnifiedConfig())

        assert ctx.auth.is_authenticated()
        assert JsonSettingsStore(config.settings_file).get("authToken") == "tok-cli"

    def test_no_token_not_authenticated(self, tmp_path):
        ctx = build_context(_make_config(tmp_path), UnifiedConfig())
        assert not ctx.auth.is_authenticated()


# -------------------------------------------------------------------------
# server_lifespan
# -------------------------------------------------------------------------


class TestServerLifespan:
    async def test_startup_and_shutdown(self, tmp_path):
        config = _make_config(tmp_path, max_parallel_requests=7)
        p_env, p_discover, p_load, p_config, p_print = _lifespan_patches(config)

        with p_env, p_discover, p_load, p_config, p_print, patch(
            "specsync.mcp.lifespan.init_semaphore"
        ) as mock_init_sem:
            async with server_lifespan(
                {"settings_file": str(tmp_path / "s.json")}
            ) as ctx:
                assert isinstance(ctx, ServerContext)
                assert ctx.config.settings_file == str(tmp_path / "s.json")
                assert not ctx.scheduler.running
            mock_init_sem.assert_called_once_with(7)

    async def test_config_error_raises_runtime_error(self, tmp_path):
        p_env, p_discover, p_load, p_config, p_print = _lifespan_patches(None)

        with p_env, p_discover, p_load, p_config as mock_load, p_print as mock_print:
            mock_load.side_effect = ValueError("Invalid dashboard URL 'ftp://x'")
            with pytest.raises(RuntimeError, match="Configuration error"):
                async with server_lifespan({"settings_file": str(tmp_path / "s.json")}):
                    pass

        printed = " ".join(str(c) for c in mock_print.call_args_list)
        assert "ftp://x" in printed

    async def test_stored_token_refreshes_profile(self, tmp_path):
        config = _make_config(tmp_path, auth_token="tok-1")
        p_env, p_discover, p_load, p_config, p_print = _lifespan_patches(config)

        with p_env, p_discover, p_load, p_config, p_print, patch(
            "specsync.mcp.lifespan.run_sync", new=AsyncMock(return_value=None)
        ) as mock_run_sync:
            async with server_lifespan(
                {"settings_file": config.settings_file}
            ) as ctx:
                mock_run_sync.assert_awaited_once_with(ctx.auth.refresh_user_details)

    async def test_background_sync_started_from_config_file(self, tmp_path):
        config = _make_config(tmp_path)
        raw = {"sync": {"watch": True, "poll": True, "project_id": "proj-9"}}
        p_env, p_discover, p_load, p_config, p_print = _lifespan_patches(
            config, [tmp_path / ".specsync" / "config.yml"], raw
        )
        watcher = MagicMock()
        watcher.start = AsyncMock()
        watcher.stop_all = AsyncMock()

        with p_env, p_discover, p_load, p_config, p_print, patch(
            "specsync.mcp.lifespan.FileWatcher", return_value=watcher
        ):
            async with server_lifespan(
                {"settings_file": config.settings_file}
            ) as ctx:
                watcher.start.assert_awaited_once_with("proj-9", tmp_path)
                assert ctx.scheduler.running
            assert not ctx.scheduler.running
            watcher.stop_all.assert_awaited_once()

    async def test_background_sync_without_project_id(self, tmp_path, caplog):
        config = _make_config(tmp_path)
        p_env, p_discover, p_load, p_config, p_print = _lifespan_patches(
            config, [tmp_path / "config.yml"], {"sync": {"poll": True}}
        )

        with p_env, p_discover, p_load, p_config, p_print:
            async with server_lifespan(
                {"settings_file": config.settings_file}
            ) as ctx:
                assert not ctx.scheduler.running

        assert "Background sync disabled" in caplog.text

    async def test_yaml_dashboard_values_passed_as_fallbacks(self, tmp_path):
        config = _make_config(tmp_path)
        raw = {"dashboard": {"url": "https://yaml.example.com"}}
        p_env, p_discover, p_load, p_config, p_print = _lifespan_patches(
            config, [tmp_path / "config.yml"], raw
        )

        with p_env, p_discover, p_load, p_config as mock_load, p_print:
            async with server_lifespan({"settings_file": config.settings_file}):
                pass

        fallbacks = mock_load.call_args.kwargs["yaml_fallbacks"]
        assert fallbacks["url"] == "https://yaml.example.com"
