"""Window store interfaces.

The limiter depends on this abstraction (not a concrete implementation) so
the per-key state can live in process memory for a single instance or in a
shared store when several instances must enforce one quota.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class WindowRecord:
    """Per-key window state as seen by a store operation.

    Attributes:
        count: Attempts counted inside the window (after recording, for
            ``record``). Never negative.
        window_start: UNIX time of the oldest attempt still counted, or the
            query time when the key has no live entries.
        release_start: When the count exceeds the limit, UNIX time of the
            attempt whose expiry brings the key back to admissible (the entry
            at index ``count - limit``). None otherwise.
    """

    count: int
    window_start: float
    release_start: float | None = None


class AbstractWindowStore(ABC):
    """Interface for sliding-log window stores."""

    @abstractmethod
    async def record(
        self,
        key: str,
        now: float,
        *,
        window_seconds: float,
        limit: int,
    ) -> WindowRecord:
        """Atomically register one attempt for ``key`` at ``now``.

        Entries older than ``now - window_seconds`` are dropped before the
        attempt is added. The log is capped to the ``limit + 1`` newest
        entries, which is all an admit decision can ever depend on.

        Args:
            key: Client key.
            now: UNIX time of the attempt.
            window_seconds: Sliding window length.
            limit: Maximum admitted attempts per window.

        Returns:
            WindowRecord with the count after recording.

        Raises:
            StoreUnavailableAppError: If the backing store cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    async def peek(self, key: str, now: float, *, window_seconds: float) -> WindowRecord:
        """Return the window state for ``key`` without mutating it."""
        raise NotImplementedError

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Forget all state held for ``key``."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release any resources held by the store."""
        return None
