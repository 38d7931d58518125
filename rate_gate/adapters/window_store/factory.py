"""Factory pattern for creating window store instances."""

from __future__ import annotations

import redis.asyncio as aioredis

from rate_gate.adapters.window_store.base import AbstractWindowStore
from rate_gate.adapters.window_store.in_memory import InMemoryWindowStore
from rate_gate.adapters.window_store.redis_store import RedisWindowStore
from rate_gate.core.config import Settings, settings as default_settings
from rate_gate.core.errors import ConfigurationAppError


def create_window_store(config: Settings | None = None) -> AbstractWindowStore:
    """Instantiate the window store selected by ``RATE_LIMIT_BACKEND``.

    The Redis client connects lazily, so building the store never blocks
    and an unreachable server surfaces per request as StoreUnavailableAppError.

    Returns:
        AbstractWindowStore: Configured store instance.

    Raises:
        ConfigurationAppError: If the backend is unknown.
    """
    cfg = config or default_settings
    backend = cfg.rate_limit.backend.lower()

    if backend == "memory":
        return InMemoryWindowStore(
            grace_seconds=cfg.rate_limit.grace_seconds,
            sweep_interval_seconds=cfg.rate_limit.sweep_interval_seconds,
        )

    if backend == "redis":
        client = aioredis.from_url(
            cfg.redis.url,
            socket_timeout=cfg.redis.socket_timeout_seconds,
            socket_connect_timeout=cfg.redis.socket_timeout_seconds,
        )
        return RedisWindowStore(
            client,
            key_prefix=cfg.redis.key_prefix,
            grace_seconds=cfg.rate_limit.grace_seconds,
        )

    raise ConfigurationAppError(
        code="invalid_configuration",
        message=f"Unknown window store backend: '{backend}'. Supported backends: memory, redis",
        details={"field": "backend", "actual_value": backend},
    )
