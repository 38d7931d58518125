"""In-memory sliding-log window store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
  Use the Redis store when instances must share one quota per key.
- Thread-safe: each key has its own lock, so concurrent attempts for one key
  serialize while unrelated keys never wait on each other. A map-level lock
  guards only insertion and removal of keys.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from rate_gate.adapters.window_store.base import AbstractWindowStore, WindowRecord

logger = logging.getLogger(__name__)


@dataclass
class _KeyState:
    """Sliding log for a single key plus its expiry metadata."""

    timestamps: deque[float] = field(default_factory=deque)
    expires_at: float = 0.0
    evicted: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock)


class InMemoryWindowStore(AbstractWindowStore):
    """Window store backed by a dict of per-key sliding logs.

    Each log holds at most ``limit + 1`` timestamps, so memory per key is
    bounded regardless of traffic. Idle keys are reclaimed by ``sweep``,
    which ``record`` triggers lazily at most once per sweep interval.
    """

    def __init__(
        self,
        *,
        grace_seconds: float = 1.0,
        sweep_interval_seconds: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            grace_seconds: Extra idle time past the window before a key may
                be evicted.
            sweep_interval_seconds: Minimum time between lazy sweeps.
            clock: Time source used by ``sweep`` when no time is given.
        """
        self._grace_seconds = grace_seconds
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._map_lock = threading.Lock()
        self._states: dict[str, _KeyState] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._map_lock:
            return len(self._states)

    def _get_or_create_state(self, key: str) -> _KeyState:
        with self._map_lock:
            state = self._states.get(key)
            if state is None:
                state = _KeyState()
                self._states[key] = state
            return state

    async def record(
        self,
        key: str,
        now: float,
        *,
        window_seconds: float,
        limit: int,
    ) -> WindowRecord:
        """Register one attempt for ``key`` and return the updated count."""

        self._maybe_sweep(now)
        cutoff = now - window_seconds

        while True:
            state = self._get_or_create_state(key)
            with state.lock:
                # Lost a race with sweep/reset: start over on a fresh state.
                if state.evicted:
                    continue

                log = state.timestamps
                while log and log[0] <= cutoff:
                    log.popleft()
                # The log must stay sorted even if the wall clock steps back.
                log.append(max(now, log[-1]) if log else now)
                while len(log) > limit + 1:
                    log.popleft()

                state.expires_at = max(
                    state.expires_at, now + window_seconds + self._grace_seconds
                )
                count = len(log)
                release_start = log[count - limit] if count > limit else None
                return WindowRecord(
                    count=count,
                    window_start=log[0],
                    release_start=release_start,
                )

    async def peek(self, key: str, now: float, *, window_seconds: float) -> WindowRecord:
        """Return the live count for ``key`` without touching its log."""

        with self._map_lock:
            state = self._states.get(key)
        if state is None:
            return WindowRecord(count=0, window_start=now)

        cutoff = now - window_seconds
        with state.lock:
            live = [ts for ts in state.timestamps if ts > cutoff]
        if not live:
            return WindowRecord(count=0, window_start=now)
        return WindowRecord(count=len(live), window_start=live[0])

    async def reset(self, key: str) -> None:
        with self._map_lock:
            state = self._states.pop(key, None)
            if state is not None:
                with state.lock:
                    state.evicted = True

    def sweep(self, now: float | None = None) -> int:
        """Evict keys idle longer than their TTL.

        Keys whose lock is currently held are skipped; they are being
        written and therefore not idle.

        Args:
            now: UNIX time to evaluate expiry against (defaults to clock).

        Returns:
            Number of evicted keys.
        """

        current = self._clock() if now is None else now
        evicted = 0
        with self._map_lock:
            for key, state in list(self._states.items()):
                if not state.lock.acquire(blocking=False):
                    continue
                try:
                    if state.expires_at <= current:
                        state.evicted = True
                        del self._states[key]
                        evicted += 1
                finally:
                    state.lock.release()
            remaining = len(self._states)
            self._last_sweep = current

        if evicted:
            logger.debug(
                "window_store.sweep",
                extra={"evicted": evicted, "size": remaining},
            )
        return evicted

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep >= self._sweep_interval:
            self.sweep(now)
