"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment."""

    return RateLimitSettings()


def _build_redis_settings() -> "RedisSettings":
    return RedisSettings()


def _build_log_settings() -> "LogSettings":
    return LogSettings()


class RateLimitSettings(BaseSettings):
    """Admission control configuration.

    Validation here mirrors the limiter's own construction checks so a bad
    deployment fails at startup rather than on the first request.
    """

    enabled: bool = Field(
        True,
        description="Enable request-rate admission control",
    )
    max_requests: int = Field(
        60,
        description="Maximum admitted requests per window per client key",
        ge=1,
    )
    window_seconds: int = Field(
        60,
        description="Sliding window length in seconds",
        ge=1,
    )
    failure_policy: Literal["fail-open", "fail-closed"] = Field(
        "fail-open",
        description="Behavior when the window store is unreachable",
    )
    backend: Literal["memory", "redis"] = Field(
        "memory",
        description="Window store backend (memory for single instance, redis for shared quota)",
    )
    store_timeout_seconds: float | None = Field(
        0.5,
        description="Upper bound on a single store round-trip (None disables the bound)",
        gt=0,
    )
    include_headers: bool = Field(
        True,
        description="Attach X-RateLimit-* headers to responses",
    )
    trust_forwarded: bool = Field(
        True,
        description="Derive client identity from the forwarded-client header when present",
    )
    forwarded_header: str = Field(
        "X-Forwarded-For",
        description="Header carrying the original client address behind a proxy",
    )
    api_key_header: str | None = Field(
        None,
        description="When set, requests carrying this header are keyed by credential",
    )
    exempt_paths: str = Field(
        "/health",
        description="Comma-separated paths that bypass admission control",
    )
    grace_seconds: float = Field(
        1.0,
        description="Idle time past the window before a key's state may be reclaimed",
        ge=0,
    )
    sweep_interval_seconds: float = Field(
        30.0,
        description="Minimum interval between in-memory TTL sweeps",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Connection settings for the shared window store."""

    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL",
    )
    key_prefix: str = Field(
        "rate_gate",
        description="Namespace for limiter keys",
    )
    socket_timeout_seconds: float = Field(
        0.5,
        description="Socket connect/read timeout for Redis calls",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field(
        "INFO",
        description="Root log level",
    )
    format: Literal["json", "plain"] = Field(
        "json",
        description="json for machine-readable logs, plain for local development",
    )
    output: Literal["stdout", "file"] = Field(
        "stdout",
        description="Log destination",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate request correlation ids",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


def parse_paths(paths: str | None) -> set[str]:
    """Parse a comma-separated path list into a set.

    Examples:
        >>> sorted(parse_paths("/health, /metrics"))
        ['/health', '/metrics']
        >>> parse_paths(None)
        set()
    """
    if not paths:
        return set()
    return {path.strip() for path in paths.split(",") if path.strip()}


# Global settings instance - composed from domain-specific settings
settings = Settings()
