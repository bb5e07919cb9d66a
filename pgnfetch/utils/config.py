"""
Configuration management for pgnfetch.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import yaml
from pydantic import BaseModel, ConfigDict, Field

from pgnfetch.errors import ConfigurationError

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120 Safari/537.36"
)


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "pgnfetch"
    version: str = "0.1.0"
    log_level: str = "INFO"
    # Relative paths resolve against the working directory, like the config dir
    logs_dir: str = "logs"
    log_to_file: bool = True
    json_logs: bool = True


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(extra="forbid")

    host: str = "0.0.0.0"
    port: int = Field(default=10000, ge=1, le=65535)
    cors_allow_origin: str = "*"


class BrowserConfig(BaseModel):
    """Remote browser configuration.

    The endpoint is a DevTools websocket (Browserless or any CDP-compatible
    service). The token is appended to the endpoint as a ``token`` query
    parameter and is required to start the service.
    """

    model_config = ConfigDict(extra="forbid")

    endpoint: str = "wss://production-sfo.browserless.io"
    token: str | None = None
    connect_timeout_ms: int = Field(default=30000, ge=1)
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1280
    viewport_height: int = 720
    navigation_timeout_ms: int = Field(default=45000, ge=1)
    selector_timeout_ms: int = Field(default=20000, ge=0)
    settle_delay_ms: int = Field(default=1000, ge=0)
    blocked_resource_types: list[str] = Field(
        default_factory=lambda: ["image", "stylesheet", "font", "media"]
    )

    def require_token(self) -> str:
        """Return the endpoint token or fail.

        Raises:
            ConfigurationError: If no token is configured.
        """
        if not self.token:
            raise ConfigurationError(
                "Remote browser token is not configured "
                "(set PGNFETCH_BROWSER__TOKEN or browser.token in settings.yaml)",
                setting="browser.token",
            )
        return self.token

    def cdp_url(self) -> str:
        """Build the connect URL with the token query parameter."""
        token = self.require_token()
        parts = urlsplit(self.endpoint)
        query = [(k, v) for k, v in parse_qsl(parts.query) if k != "token"]
        query.append(("token", token))
        return urlunsplit(parts._replace(query=urlencode(query)))

    def redacted_endpoint(self) -> str:
        """Endpoint without query string, safe to log."""
        parts = urlsplit(self.endpoint)
        return urlunsplit(parts._replace(query="", fragment=""))


class ConcurrencyConfig(BaseModel):
    """Concurrency gate configuration.

    Attributes:
        max_slots: Maximum simultaneous extractions sharing the connection.
        max_waiters: Maximum queued requests before new ones are rejected.
        acquire_timeout_seconds: Optional bound on queue wait (None = no bound).
    """

    model_config = ConfigDict(extra="forbid")

    max_slots: int = Field(default=3, ge=1, description="Concurrent extraction slots")
    max_waiters: int = Field(default=16, ge=0, description="Queued requests cap")
    acquire_timeout_seconds: float | None = Field(default=None, gt=0)


class RetryConfig(BaseModel):
    """Retry configuration for connect and navigation."""

    model_config = ConfigDict(extra="forbid")

    connect_max_attempts: int = Field(default=3, ge=1)
    connect_base_delay_seconds: float = Field(default=1.0, ge=0)
    connect_max_delay_seconds: float = Field(default=10.0, ge=0)
    navigation_max_attempts: int = Field(default=2, ge=1, le=2)


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _load_yaml_config(config_dir: Path) -> dict[str, Any]:
    """Load settings.yaml and apply the ``settings`` section of local.yaml.

    Args:
        config_dir: Configuration directory path.

    Returns:
        Merged configuration dictionary.
    """
    config = _load_yaml_file(config_dir / "settings.yaml")
    local_overrides = _load_yaml_file(config_dir / "local.yaml")
    if "settings" in local_overrides:
        config = _deep_merge(config, local_overrides["settings"])
    return config


def _apply_env_overrides(
    config: dict[str, Any],
    environ: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with PGNFETCH_ and use
    double underscores for nested keys.

    Example:
        PGNFETCH_CONCURRENCY__MAX_SLOTS=5

    Args:
        config: Configuration dictionary.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Configuration with environment overrides.
    """
    prefix = "PGNFETCH_"
    if environ is None:
        environ = dict(os.environ)

    for key, value in environ.items():
        if not key.startswith(prefix) or key == "PGNFETCH_CONFIG_DIR":
            continue

        key_path = key[len(prefix) :].lower().split("__")

        current = config
        for part in key_path[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        # Values stay strings; the section models coerce "7000", "2.5" and
        # "false" themselves. Only null needs mapping.
        if value.lower() in ("none", "null"):
            current[key_path[-1]] = None
        else:
            current[key_path[-1]] = value

    return config


def load_settings(
    config_dir: Path | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Build settings from YAML files and environment (uncached).

    Args:
        config_dir: Directory holding settings.yaml. Uses PGNFETCH_CONFIG_DIR or ./config.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Settings instance.
    """
    if config_dir is None:
        config_dir = Path(os.environ.get("PGNFETCH_CONFIG_DIR", "config"))
    config = _load_yaml_config(config_dir)
    config = _apply_env_overrides(config, environ)
    return Settings(**config)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. YAML configuration files
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    return load_settings()

