"""Redis-backed sliding-log window store.

Each client key maps to a sorted set whose scores are attempt timestamps.
``record`` runs as a single Lua script so that pruning, insertion, capping
and counting happen atomically on the server: two instances recording the
same key concurrently can never both observe the pre-increment count.
"""

from __future__ import annotations

import logging
import uuid

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from rate_gate.adapters.window_store.base import AbstractWindowStore, WindowRecord
from rate_gate.core.errors import StoreUnavailableAppError

logger = logging.getLogger(__name__)


# KEYS[1] = sorted set key
# ARGV = now, cutoff, limit, member, ttl_ms
RECORD_SCRIPT = """
local key = KEYS[1]
local now = ARGV[1]
local cutoff = ARGV[2]
local limit = tonumber(ARGV[3])
local member = ARGV[4]
local ttl_ms = tonumber(ARGV[5])

redis.call('ZREMRANGEBYSCORE', key, '-inf', cutoff)
redis.call('ZADD', key, now, member)

local count = redis.call('ZCARD', key)
if count > limit + 1 then
    redis.call('ZREMRANGEBYRANK', key, 0, count - limit - 2)
    count = limit + 1
end

local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
redis.call('PEXPIRE', key, ttl_ms)

if count > limit then
    local release = redis.call('ZRANGE', key, count - limit, count - limit, 'WITHSCORES')
    return {count, oldest[2], release[2]}
end

return {count, oldest[2]}
"""


def _as_float(value: bytes | str | float) -> float:
    if isinstance(value, bytes):
        value = value.decode()
    return float(value)


class RedisWindowStore(AbstractWindowStore):
    """Window store shared by every instance pointing at the same Redis.

    Timestamps come from each instance's wall clock, so instances are
    expected to run with synchronized clocks (NTP).
    """

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        key_prefix: str = "rate_gate",
        grace_seconds: float = 1.0,
    ) -> None:
        """Initialize the store.

        Args:
            client: Async Redis client (``redis.asyncio.Redis``).
            key_prefix: Namespace prepended to every client key.
            grace_seconds: Idle time past the window before Redis expires
                the key.
        """
        self._client = client
        self._key_prefix = key_prefix
        self._grace_seconds = grace_seconds
        self._record_script = client.register_script(RECORD_SCRIPT)

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailableAppError:
        return StoreUnavailableAppError(
            code="store_unavailable",
            message=f"Redis window store failed during {operation}",
            details={"backend": "redis", "error_type": type(exc).__name__},
        )

    async def record(
        self,
        key: str,
        now: float,
        *,
        window_seconds: float,
        limit: int,
    ) -> WindowRecord:
        ttl_ms = int((window_seconds + self._grace_seconds) * 1000)
        member = f"{now!r}-{uuid.uuid4().hex}"

        try:
            result = await self._record_script(
                keys=[self._redis_key(key)],
                args=[repr(now), repr(now - window_seconds), limit, member, ttl_ms],
            )
        except (RedisError, OSError) as exc:
            raise self._unavailable("record", exc) from exc

        count, oldest, *release = result
        return WindowRecord(
            count=int(count),
            window_start=_as_float(oldest),
            release_start=_as_float(release[0]) if release else None,
        )

    async def peek(self, key: str, now: float, *, window_seconds: float) -> WindowRecord:
        redis_key = self._redis_key(key)
        # Exclusive lower bound mirrors the script's inclusive removal.
        lower = f"({now - window_seconds!r}"

        try:
            pipe = self._client.pipeline(transaction=False)
            pipe.zcount(redis_key, lower, "+inf")
            pipe.zrangebyscore(redis_key, lower, "+inf", start=0, num=1, withscores=True)
            count, oldest = await pipe.execute()
        except (RedisError, OSError) as exc:
            raise self._unavailable("peek", exc) from exc

        if not count or not oldest:
            return WindowRecord(count=0, window_start=now)
        return WindowRecord(count=int(count), window_start=_as_float(oldest[0][1]))

    async def reset(self, key: str) -> None:
        try:
            await self._client.delete(self._redis_key(key))
        except (RedisError, OSError) as exc:
            raise self._unavailable("reset", exc) from exc

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as exc:
            logger.warning(
                "window_store.close_failed",
                extra={"backend": "redis", "error_type": type(exc).__name__},
            )
