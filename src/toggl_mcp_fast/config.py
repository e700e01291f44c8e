"""
Environment-sourced configuration.

Invalid values are fatal at startup: ``load_settings`` raises ``ConfigError``
and the server refuses to run rather than caching with nonsense bounds.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.track.toggl.com/api/v9"
DEFAULT_CACHE_TTL_MS = 3_600_000
DEFAULT_CACHE_SIZE = 1000
DEFAULT_BATCH_SIZE = 100
DEFAULT_MIN_REQUEST_INTERVAL = 1.0
DEFAULT_MAX_RETRIES = 3

API_KEY_VARS = ("TOGGL_API_KEY", "TOGGL_API_TOKEN", "TOGGL_TOKEN")


class ConfigError(ValueError):
    """Raised when the environment holds an unusable configuration."""


@dataclass(frozen=True)
class CacheConfig:
    """Entity cache bounds; immutable for the process lifetime."""

    ttl_ms: int = DEFAULT_CACHE_TTL_MS
    max_size: int = DEFAULT_CACHE_SIZE
    batch_size: int = DEFAULT_BATCH_SIZE

    @property
    def ttl_seconds(self) -> float:
        return self.ttl_ms / 1000.0


@dataclass(frozen=True)
class Settings:
    api_key: str
    cache: CacheConfig = field(default_factory=CacheConfig)
    default_workspace_id: int | None = None
    api_base_url: str = DEFAULT_API_BASE_URL
    min_request_interval_seconds: float = DEFAULT_MIN_REQUEST_INTERVAL
    max_retries: int = DEFAULT_MAX_RETRIES


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _parse_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {value}")
    return value


def _read_api_key(env: Mapping[str, str]) -> str:
    for name in API_KEY_VARS:
        value = env.get(name, "").strip()
        if value:
            if name != "TOGGL_API_KEY":
                logger.warning("Using %s. Prefer TOGGL_API_KEY going forward.", name)
            return value
    raise ConfigError(
        "Missing required environment variable: TOGGL_API_KEY "
        "(also accepted: TOGGL_API_TOKEN or TOGGL_TOKEN)"
    )


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ

    default_workspace_id = None
    if env.get("TOGGL_DEFAULT_WORKSPACE_ID", "").strip():
        default_workspace_id = _parse_int(env, "TOGGL_DEFAULT_WORKSPACE_ID", 0)

    return Settings(
        api_key=_read_api_key(env),
        cache=CacheConfig(
            ttl_ms=_parse_int(env, "TOGGL_CACHE_TTL", DEFAULT_CACHE_TTL_MS),
            max_size=_parse_int(env, "TOGGL_CACHE_SIZE", DEFAULT_CACHE_SIZE),
            batch_size=_parse_int(env, "TOGGL_BATCH_SIZE", DEFAULT_BATCH_SIZE),
        ),
        default_workspace_id=default_workspace_id,
        api_base_url=env.get("TOGGL_API_BASE_URL", "").strip() or DEFAULT_API_BASE_URL,
        min_request_interval_seconds=_parse_float(
            env, "TOGGL_MIN_REQUEST_INTERVAL", DEFAULT_MIN_REQUEST_INTERVAL
        ),
        max_retries=_parse_int(env, "TOGGL_MAX_RETRIES", DEFAULT_MAX_RETRIES),
    )
