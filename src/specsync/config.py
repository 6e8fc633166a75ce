"""Connection configuration for the specsync MCP server.

Reads dashboard connection settings from CLI args, environment variables,
.env files, YAML config file fallbacks and the durable settings store.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config
    > settings store > Built-in defaults

Environment variables:
    SPECSYNC_DASHBOARD_URL: Dashboard base URL (default: http://localhost:3000)
    SPECSYNC_AUTH_TOKEN: Bearer token to seed the auth session (optional)
    SPECSYNC_PROJECT_ROOT: Project root containing the specs directory
        (optional, default: current directory)
    SPECSYNC_INSECURE: Skip SSL verification (optional, default: false)
    SPECSYNC_MAX_PARALLEL_REQUESTS: Max parallel HTTP requests (optional, default: 4)
    SPECSYNC_SETTINGS_FILE: Path of the durable settings JSON file (optional)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_DASHBOARD_URL = "http://localhost:3000"


def default_settings_file() -> str:
    return str(Path.home() / ".config" / "specsync" / "settings.json")


def resolve_settings_file(yaml_fallbacks: dict | None = None) -> str:
    """Return the settings store path: env var > YAML > default."""
    fb = yaml_fallbacks or {}
    return (
        os.getenv("SPECSYNC_SETTINGS_FILE")
        or fb.get("settings_file")
        or default_settings_file()
    )


@dataclass
class Config:
    dashboard_url: str = DEFAULT_DASHBOARD_URL
    auth_token: str | None = None
    project_root: str = "."
    insecure: bool = False
    debug: bool = False
    max_parallel_requests: int = 4
    settings_file: str | None = None


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the dashboard URL is malformed or the project root
            does not exist.
    """
    config.dashboard_url = config.dashboard_url.strip()

    if not config.dashboard_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid dashboard URL '{config.dashboard_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.dashboard_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid dashboard URL '{config.dashboard_url}': URL must include a hostname"
        )

    config.dashboard_url = config.dashboard_url.removesuffix("/")

    if not Path(config.project_root).expanduser().is_dir():
        raise ValueError(
            f"Project root '{config.project_root}' is not a directory. "
            "Set SPECSYNC_PROJECT_ROOT or pass --project-root."
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    url: str | None = None,
    token: str | None = None,
    project_root: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
    stored_settings: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > stored_settings > default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override dashboard URL.
        token: Override auth token.
        project_root: Override project root directory.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML ``dashboard`` section.
        stored_settings: Values from the durable settings store, keyed by
            the editor-facing names (``dashboardUrl``, ``authToken``).

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If any value fails validation.
    """
    fb = yaml_fallbacks or {}
    stored = stored_settings or {}

    dashboard_url = (
        url
        or os.getenv("SPECSYNC_DASHBOARD_URL")
        or fb.get("url")
        or stored.get("dashboardUrl")
        or DEFAULT_DASHBOARD_URL
    )

    auth_token = (
        token
        or os.getenv("SPECSYNC_AUTH_TOKEN")
        or fb.get("token")
        or None
    )

    final_root = (
        project_root
        or os.getenv("SPECSYNC_PROJECT_ROOT")
        or fb.get("project_root")
        or "."
    )

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("SPECSYNC_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("SPECSYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    max_parallel_raw = os.getenv("SPECSYNC_MAX_PARALLEL_REQUESTS")
    if max_parallel_raw is not None:
        try:
            final_max_parallel = int(max_parallel_raw)
        except ValueError:
            raise ValueError(
                f"Invalid SPECSYNC_MAX_PARALLEL_REQUESTS '{max_parallel_raw}': must be a number between 1 and 32"
            ) from None
        if not (1 <= final_max_parallel <= 32):
            raise ValueError(
                f"Invalid SPECSYNC_MAX_PARALLEL_REQUESTS '{max_parallel_raw}': must be a number between 1 and 32"
            )
    elif "max_parallel_requests" in fb:
        final_max_parallel = int(fb["max_parallel_requests"])
    else:
        final_max_parallel = 4

    settings_file = resolve_settings_file(fb)

    config = Config(
        dashboard_url=dashboard_url,
        auth_token=auth_token,
        project_root=final_root,
        insecure=final_insecure,
        debug=final_debug,
        max_parallel_requests=final_max_parallel,
        settings_file=settings_file,
    )

    validate_config(config)

    return config
