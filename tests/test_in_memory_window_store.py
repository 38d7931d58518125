"""Unit tests for the in-memory sliding-log window store."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest

from rate_gate.adapters.window_store.in_memory import InMemoryWindowStore


@pytest.mark.asyncio
async def test_record_counts_attempts_in_window(memory_store: InMemoryWindowStore) -> None:
    first = await memory_store.record("k", 1000.0, window_seconds=60, limit=5)
    second = await memory_store.record("k", 1010.0, window_seconds=60, limit=5)

    assert first.count == 1
    assert first.window_start == 1000.0
    assert second.count == 2
    assert second.window_start == 1000.0


@pytest.mark.asyncio
async def test_record_drops_entries_older_than_window(memory_store: InMemoryWindowStore) -> None:
    await memory_store.record("k", 1000.0, window_seconds=60, limit=5)
    await memory_store.record("k", 1030.0, window_seconds=60, limit=5)

    record = await memory_store.record("k", 1060.0, window_seconds=60, limit=5)

    # 1000.0 sits exactly on the boundary and no longer counts
    assert record.count == 2
    assert record.window_start == 1030.0


@pytest.mark.asyncio
async def test_log_is_capped_to_limit_plus_one(memory_store: InMemoryWindowStore) -> None:
    for i in range(20):
        record = await memory_store.record("k", 1000.0 + i, window_seconds=60, limit=2)

    assert record.count == 3
    # Only the newest three attempts are kept
    assert record.window_start == 1017.0


@pytest.mark.asyncio
async def test_over_limit_record_reports_release_start(memory_store: InMemoryWindowStore) -> None:
    await memory_store.record("k", 1000.0, window_seconds=60, limit=2)
    within = await memory_store.record("k", 1001.0, window_seconds=60, limit=2)
    first_over = await memory_store.record("k", 1002.0, window_seconds=60, limit=2)

    assert within.release_start is None
    assert first_over.release_start == 1001.0

    record = await memory_store.record("k", 1003.0, window_seconds=60, limit=2)

    assert record.count == 3
    assert record.window_start == 1001.0
    assert record.release_start == 1002.0


@pytest.mark.asyncio
async def test_clock_stepping_back_keeps_log_ordered(memory_store: InMemoryWindowStore) -> None:
    await memory_store.record("k", 1000.0, window_seconds=60, limit=1)
    await memory_store.record("k", 1030.0, window_seconds=60, limit=1)
    # Wall clock jumps back twenty seconds
    await memory_store.record("k", 1010.0, window_seconds=60, limit=1)

    record = await memory_store.record("k", 1085.0, window_seconds=60, limit=1)

    assert record.count == 2
    assert record.window_start == 1030.0
    assert record.window_start > 1085.0 - 60


@pytest.mark.asyncio
async def test_peek_does_not_mutate(memory_store: InMemoryWindowStore) -> None:
    await memory_store.record("k", 1000.0, window_seconds=60, limit=5)

    peeked = await memory_store.peek("k", 1001.0, window_seconds=60)
    peeked_again = await memory_store.peek("k", 1001.0, window_seconds=60)
    recorded = await memory_store.record("k", 1002.0, window_seconds=60, limit=5)

    assert peeked.count == 1
    assert peeked_again == peeked
    assert recorded.count == 2


@pytest.mark.asyncio
async def test_peek_unknown_key_is_empty(memory_store: InMemoryWindowStore) -> None:
    record = await memory_store.peek("missing", 1000.0, window_seconds=60)

    assert record.count == 0
    assert record.window_start == 1000.0
    assert len(memory_store) == 0


@pytest.mark.asyncio
async def test_peek_ignores_stale_entries(memory_store: InMemoryWindowStore) -> None:
    await memory_store.record("k", 1000.0, window_seconds=60, limit=5)

    record = await memory_store.peek("k", 1100.0, window_seconds=60)

    assert record.count == 0
    assert record.window_start == 1100.0


@pytest.mark.asyncio
async def test_reset_forgets_key(memory_store: InMemoryWindowStore) -> None:
    await memory_store.record("k", 1000.0, window_seconds=60, limit=5)
    await memory_store.reset("k")

    record = await memory_store.record("k", 1001.0, window_seconds=60, limit=5)

    assert record.count == 1


@pytest.mark.asyncio
async def test_sweep_evicts_only_idle_keys(memory_store: InMemoryWindowStore) -> None:
    await memory_store.record("old", 1000.0, window_seconds=60, limit=5)
    await memory_store.record("fresh", 1050.0, window_seconds=60, limit=5)

    # "old" expires at 1000 + 60 + 1 (grace)
    assert memory_store.sweep(1060.0) == 0
    assert memory_store.sweep(1061.5) == 1
    assert len(memory_store) == 1

    record = await memory_store.peek("fresh", 1061.5, window_seconds=60)
    assert record.count == 1


@pytest.mark.asyncio
async def test_record_triggers_lazy_sweep() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryWindowStore(sweep_interval_seconds=10, clock=clock)

    await store.record("a", 1000.0, window_seconds=60, limit=5)
    await store.record("b", 1100.0, window_seconds=60, limit=5)

    assert len(store) == 1


def test_concurrent_records_for_one_key_are_serialized() -> None:
    store = InMemoryWindowStore()

    def attempt(_: int) -> int:
        record = asyncio.run(store.record("k", 1000.0, window_seconds=60, limit=1000))
        return record.count

    with ThreadPoolExecutor(max_workers=16) as pool:
        counts = list(pool.map(attempt, range(200)))

    # Every attempt observed a distinct post-increment count
    assert sorted(counts) == list(range(1, 201))
