"""Sliding-window rate limiter.

The limiter turns a store's per-key count into an admit/deny decision. All
state lives behind the injected window store, so the same limiter works for
a single process (in-memory store) or a fleet of instances (Redis store).

Sliding windows are used instead of calendar-aligned fixed windows, which
let a client burst up to twice the limit around a window boundary.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from rate_gate.adapters.window_store.base import AbstractWindowStore, WindowRecord
from rate_gate.core.errors import ConfigurationAppError, StoreUnavailableAppError

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    """What to do with a request when the window store is unavailable."""

    FAIL_OPEN = "fail-open"
    FAIL_CLOSED = "fail-closed"


@dataclass(frozen=True)
class LimiterConfig:
    """Immutable limiter settings.

    Attributes:
        max_requests: Admitted requests per window per key.
        window_seconds: Sliding window length in seconds.
        failure_policy: Applied by callers when the store is unavailable.
        store_timeout_seconds: Optional bound on one store round-trip.
    """

    max_requests: int
    window_seconds: float
    failure_policy: FailurePolicy = FailurePolicy.FAIL_OPEN
    store_timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_requests <= 0:
            raise ConfigurationAppError(
                code="invalid_configuration",
                message="max_requests must be > 0",
                details={"field": "max_requests", "actual_value": self.max_requests},
            )
        if self.window_seconds <= 0:
            raise ConfigurationAppError(
                code="invalid_configuration",
                message="window_seconds must be > 0",
                details={"field": "window_seconds", "actual_value": self.window_seconds},
            )
        if self.store_timeout_seconds is not None and self.store_timeout_seconds <= 0:
            raise ConfigurationAppError(
                code="invalid_configuration",
                message="store_timeout_seconds must be > 0 when set",
                details={
                    "field": "store_timeout_seconds",
                    "actual_value": self.store_timeout_seconds,
                },
            )
        # Accept plain strings such as "fail-closed" from configuration.
        object.__setattr__(self, "failure_policy", FailurePolicy(self.failure_policy))


@dataclass(frozen=True)
class AdmitDecision:
    """Outcome of an admission check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window.
        remaining: Requests left in the current window (0 when denied).
        reset_at: UNIX time at which the oldest counted attempt expires, or,
            when denied, the time at which the key becomes admissible again.
        retry_after_seconds: Suggested wait when denied, otherwise None.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None = None

    def to_headers(self) -> dict[str, str]:
        """Render the quota as X-RateLimit-* response headers."""

        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(math.ceil(self.reset_at))),
        }
        if self.retry_after_seconds is not None:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


class RateLimiter:
    """Admission control for client keys over a sliding window."""

    def __init__(
        self,
        config: LimiterConfig,
        store: AbstractWindowStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._store = store
        self._clock = clock

    @property
    def config(self) -> LimiterConfig:
        return self._config

    @property
    def store(self) -> AbstractWindowStore:
        return self._store

    async def _call_store(
        self, operation: str, coro: Awaitable[WindowRecord]
    ) -> WindowRecord:
        """Await a store call, bounding it and normalizing transport errors.

        Raises:
            StoreUnavailableAppError: On timeout or connection failure.
        """
        timeout = self._config.store_timeout_seconds
        try:
            if timeout is None:
                return await coro
            return await asyncio.wait_for(coro, timeout=timeout)
        except StoreUnavailableAppError:
            raise
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableAppError(
                code="store_unavailable",
                message=f"Window store {operation} timed out",
                details={"timeout_s": timeout, "error_type": type(exc).__name__},
            ) from exc
        except OSError as exc:
            raise StoreUnavailableAppError(
                code="store_unavailable",
                message=f"Window store {operation} failed",
                details={"error_type": type(exc).__name__},
            ) from exc

    def _decide(self, record: WindowRecord, now: float) -> AdmitDecision:
        limit = self._config.max_requests
        reset_at = record.window_start + self._config.window_seconds

        if record.count <= limit:
            return AdmitDecision(
                allowed=True,
                limit=limit,
                remaining=limit - record.count,
                reset_at=reset_at,
            )

        # Denied attempts are counted, so the key is admissible again only
        # once the entry at index count - limit has expired.
        if record.release_start is not None:
            reset_at = record.release_start + self._config.window_seconds
        return AdmitDecision(
            allowed=False,
            limit=limit,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=max(0, int(math.ceil(reset_at - now))),
        )

    async def allow(self, key: str) -> AdmitDecision:
        """Record one attempt for ``key`` and decide whether it is admitted.

        Denied attempts are still recorded, so retrying faster than the
        window moves keeps the client denied.

        Args:
            key: Client key.

        Returns:
            AdmitDecision for this attempt.

        Raises:
            StoreUnavailableAppError: If the store failed or timed out.
        """
        now = self._clock()
        record = await self._call_store(
            "record",
            self._store.record(
                key,
                now,
                window_seconds=self._config.window_seconds,
                limit=self._config.max_requests,
            ),
        )
        return self._decide(record, now)

    async def peek(self, key: str) -> AdmitDecision:
        """Report the current quota for ``key`` without consuming any.

        ``allowed`` tells whether the next attempt would be admitted.
        """
        now = self._clock()
        record = await self._call_store(
            "peek",
            self._store.peek(key, now, window_seconds=self._config.window_seconds),
        )
        limit = self._config.max_requests
        remaining = max(0, limit - record.count)
        return AdmitDecision(
            allowed=remaining > 0,
            limit=limit,
            remaining=remaining,
            reset_at=record.window_start + self._config.window_seconds,
        )

    async def reset(self, key: str) -> None:
        await self._store.reset(key)
