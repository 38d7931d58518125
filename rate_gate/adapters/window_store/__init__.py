"""Window store adapters - where per-key limiter state lives."""

from rate_gate.adapters.window_store.base import AbstractWindowStore, WindowRecord
from rate_gate.adapters.window_store.factory import create_window_store
from rate_gate.adapters.window_store.in_memory import InMemoryWindowStore
from rate_gate.adapters.window_store.redis_store import RedisWindowStore

__all__ = [
    "AbstractWindowStore",
    "InMemoryWindowStore",
    "RedisWindowStore",
    "WindowRecord",
    "create_window_store",
]
