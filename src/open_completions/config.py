"""Configuration for open_completions.

Config discovery (first match wins):
  1. Explicit ``--config`` path
  2. ``./open_completions.yaml``
  3. ``~/.open_completions/open_completions.yaml``
  4. Built-in defaults

Environment variables are overlaid afterwards by :func:`apply_env`.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError

from open_completions.errors import ConfigError

_logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 1000


class PoolSpec(BaseModel):
    """Connection pool settings handed to ``httpx``."""

    max_connections: int = 100
    max_keepalive_connections: int = 5
    keepalive_expiry: float = 120.0
    timeout: float = 120.0  # seconds


class ServiceConfig(BaseModel):
    api_key: str | None = None
    base_url: str | None = None
    variant: Literal["chat", "responses"] = "chat"
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    base_delay_ms: int = Field(default=DEFAULT_BASE_DELAY_MS, ge=0)
    use_system_proxy: bool = False
    # Retry a stream that already yielded events by starting it over
    restart_emitted_streams: bool = True
    pool: PoolSpec = Field(default_factory=PoolSpec)


CONFIG_FILENAME = "open_completions.yaml"

# Environment variable -> config field
_ENV_FIELDS = {
    "OPENAI_API_KEY": "api_key",
    "OPENAI_BASE_URL": "base_url",
    "REQUEST_MAX_RETRIES": "max_retries",
    "REQUEST_BASE_DELAY": "base_delay_ms",
    "USE_SYSTEM_PROXY_OPENAI": "use_system_proxy",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _search_paths() -> list[Path]:
    return [
        Path.cwd() / CONFIG_FILENAME,
        Path.home() / ".open_completions" / CONFIG_FILENAME,
    ]


def load_config(
    config_path: str | Path | None = None,
) -> tuple[ServiceConfig, Path | None]:
    """Load configuration from a YAML file.

    Returns ``(config, resolved_path)``; *resolved_path* is ``None`` when no
    file was found and defaults are used.  An explicit path that does not
    exist raises ``FileNotFoundError``.
    """
    if config_path is not None:
        resolved = Path(config_path)
        if not resolved.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        resolved = next((p for p in _search_paths() if p.exists()), None)
        if resolved is None:
            _logger.info("No config file found, using defaults")
            return ServiceConfig(), None

    _logger.info("Loading config from %s", resolved)
    with open(resolved) as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}
    return _validate(raw, str(resolved)), resolved.resolve()


def apply_env(
    config: ServiceConfig,
    environ: Mapping[str, str] | None = None,
) -> ServiceConfig:
    """Return a copy of *config* with environment overrides applied.

    Empty variables are ignored, so unset retry settings keep their defaults.
    """
    env = os.environ if environ is None else environ
    updates: dict[str, Any] = {}
    for var, field_name in _ENV_FIELDS.items():
        value = env.get(var)
        if not value:
            continue
        if field_name == "use_system_proxy":
            updates[field_name] = value.strip().lower() in _TRUE_VALUES
        else:
            updates[field_name] = value
    if not updates:
        return config
    merged = config.model_dump()
    merged.update(updates)
    return _validate(merged, "environment")


def _validate(data: dict[str, Any], source: str) -> ServiceConfig:
    try:
        return ServiceConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration from {source}: {e}") from e
