from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from place_discovery.cache.config import CacheConfig
from place_discovery.cache.persistence import (
    FileSnapshotStore,
    MemorySnapshotStore,
    decode_snapshot,
    load_snapshot,
)
from place_discovery.cache.result_cache import NOT_FOUND, ResultCache
from place_discovery.discovery.errors import CacheCorruption


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_cache_survives_restart_with_memory_store():
    store = MemorySnapshotStore()
    clock = FakeClock()
    first = ResultCache(CacheConfig(), store=store, clock=clock)
    first.set("k", {"ids": ["a", "b"]}, filters={"category": "food"}, complexity=3)

    second = ResultCache(CacheConfig(), store=store, clock=clock)
    assert second.get("k") == {"ids": ["a", "b"]}
    assert second.entry("k").filters == {"category": "food"}


def test_file_store_writes_json_snapshot(tmp_path):
    store = FileSnapshotStore(tmp_path)
    clock = FakeClock()
    cache = ResultCache(CacheConfig(), store=store, clock=clock)
    cache.set("k", [1, 2, 3])

    assert (tmp_path / "filterCache.json").exists()
    reloaded = ResultCache(CacheConfig(), store=FileSnapshotStore(tmp_path), clock=clock)
    assert reloaded.get("k") == [1, 2, 3]


def test_restored_entries_keep_their_age():
    store = MemorySnapshotStore()
    clock = FakeClock()
    ResultCache(CacheConfig(default_ttl=300), store=store, clock=clock).set("k", 1)

    clock.now += 301
    reloaded = ResultCache(CacheConfig(default_ttl=300), store=store, clock=clock)
    assert reloaded.get("k") is NOT_FOUND


def test_corrupt_snapshot_starts_empty():
    store = MemorySnapshotStore()
    store.set_item("filterCache", "not json at all")
    cache = ResultCache(CacheConfig(), store=store)
    assert len(cache) == 0


def test_oversized_snapshot_is_trimmed_on_load():
    store = MemorySnapshotStore()
    clock = FakeClock()
    big = ResultCache(CacheConfig(max_size=10), store=store, clock=clock)
    for i in range(10):
        big.set(f"k{i}", i)
        clock.now += 1

    small = ResultCache(CacheConfig(max_size=4), store=store, clock=clock)
    assert len(small) <= 4


def test_clear_removes_snapshot():
    store = MemorySnapshotStore()
    cache = ResultCache(CacheConfig(), store=store)
    cache.set("k", 1)
    assert store.get_item("filterCache") is not None
    cache.clear()
    assert store.get_item("filterCache") is None


def test_failed_save_does_not_break_set():
    store = MagicMock()
    store.get_item.return_value = None
    store.set_item.side_effect = OSError("disk full")
    cache = ResultCache(CacheConfig(), store=store)
    cache.set("k", 1)
    assert cache.get("k") == 1


def test_decode_rejects_non_list():
    with pytest.raises(CacheCorruption):
        decode_snapshot('{"k": 1}')


def test_decode_rejects_bad_pair():
    with pytest.raises(CacheCorruption):
        decode_snapshot('[["k"]]')


def test_decode_rejects_invalid_entry():
    with pytest.raises(CacheCorruption):
        decode_snapshot('[["k", {"key": "k", "ttl": -1}]]')


def test_load_snapshot_missing_returns_empty():
    assert load_snapshot(MemorySnapshotStore(), "filterCache") == []
