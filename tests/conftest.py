"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any import of rate_gate so the global
settings instance is built from test values, not from a developer .env file.
"""

import os
from unittest.mock import Mock

import pytest

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_MAX_REQUESTS", "5")
os.environ.setdefault("RATE_LIMIT_WINDOW_SECONDS", "60")
os.environ.setdefault("LOG_LEVEL", "INFO")

from rate_gate.adapters.window_store.in_memory import InMemoryWindowStore  # noqa: E402
from rate_gate.services.rate_limiter import LimiterConfig, RateLimiter  # noqa: E402


@pytest.fixture
def clock() -> Mock:
    """Controllable time source starting at UNIX time 1000."""
    return Mock(return_value=1000.0)


@pytest.fixture
def memory_store(clock: Mock) -> InMemoryWindowStore:
    return InMemoryWindowStore(clock=clock)


@pytest.fixture
def limiter(memory_store: InMemoryWindowStore, clock: Mock) -> RateLimiter:
    """5 requests per 60 seconds over an in-memory store."""
    return RateLimiter(
        LimiterConfig(max_requests=5, window_seconds=60),
        memory_store,
        clock=clock,
    )
