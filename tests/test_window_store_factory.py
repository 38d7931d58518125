"""Tests for window store selection from settings."""

from unittest.mock import MagicMock, patch

import pytest

from rate_gate.adapters.window_store.factory import create_window_store
from rate_gate.adapters.window_store.in_memory import InMemoryWindowStore
from rate_gate.adapters.window_store.redis_store import RedisWindowStore
from rate_gate.core.errors import ConfigurationAppError


def _settings(backend: str) -> MagicMock:
    cfg = MagicMock()
    cfg.rate_limit.backend = backend
    cfg.rate_limit.grace_seconds = 2.0
    cfg.rate_limit.sweep_interval_seconds = 15.0
    cfg.redis.url = "redis://cache:6379/1"
    cfg.redis.key_prefix = "svc"
    cfg.redis.socket_timeout_seconds = 0.25
    return cfg


def test_memory_backend() -> None:
    store = create_window_store(_settings("memory"))

    assert isinstance(store, InMemoryWindowStore)


@patch("rate_gate.adapters.window_store.factory.aioredis.from_url")
def test_redis_backend(mock_from_url: MagicMock) -> None:
    store = create_window_store(_settings("redis"))

    assert isinstance(store, RedisWindowStore)
    mock_from_url.assert_called_once_with(
        "redis://cache:6379/1",
        socket_timeout=0.25,
        socket_connect_timeout=0.25,
    )


def test_unknown_backend_rejected() -> None:
    with pytest.raises(ConfigurationAppError) as exc_info:
        create_window_store(_settings("memcached"))

    assert "memcached" in exc_info.value.message
