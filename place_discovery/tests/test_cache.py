from __future__ import annotations

import pytest

from place_discovery.cache.config import CacheConfig
from place_discovery.cache.result_cache import (
    NOT_FOUND,
    ResultCache,
    match_all,
    match_budget,
    match_category,
)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _cache(**overrides) -> tuple[ResultCache, FakeClock]:
    clock = FakeClock()
    return ResultCache(CacheConfig(**overrides), clock=clock), clock


def test_set_then_get_returns_payload_repeatedly():
    cache, _ = _cache()
    cache.set("k", {"places": [1, 2, 3]})
    for _ in range(20):
        assert cache.get("k") == {"places": [1, 2, 3]}
    assert cache.stats().hits == 20


def test_get_missing_counts_miss():
    cache, _ = _cache()
    assert cache.get("nope") is NOT_FOUND
    assert cache.stats().misses == 1


def test_entry_expires_after_ttl():
    cache, clock = _cache(default_ttl=300)
    cache.set("k", "v")
    clock.advance(300)
    assert cache.get("k") == "v"
    clock.advance(1)
    assert cache.get("k") is NOT_FOUND
    assert "k" not in cache


def test_compute_ttl_scales_with_complexity():
    cache, _ = _cache(default_ttl=300, min_ttl=60, max_ttl=1800)
    assert cache.compute_ttl(None, 1) == 300
    assert cache.compute_ttl(2, 1) == 150
    assert cache.compute_ttl(3, 1) == 300
    assert cache.compute_ttl(4, 1) == 450


def test_compute_ttl_scales_with_popularity():
    cache, _ = _cache(default_ttl=300, min_ttl=60, max_ttl=1800)
    assert cache.compute_ttl(3, 5) == 300
    assert cache.compute_ttl(3, 6) == 600
    assert cache.compute_ttl(3, 11) == 900
    assert cache.compute_ttl(5, 11) == 1350


def test_compute_ttl_always_clamped():
    cache, _ = _cache(default_ttl=100, min_ttl=60, max_ttl=200)
    assert cache.compute_ttl(1, 1) == 60
    assert cache.compute_ttl(5, 50) == 200
    for complexity in (None, 0, 1, 2, 3, 4, 5):
        for access in (0, 1, 5, 6, 10, 11, 100):
            assert 60 <= cache.compute_ttl(complexity, access) <= 200


def test_ttl_recomputed_every_fifth_access():
    cache, _ = _cache(default_ttl=300, min_ttl=60, max_ttl=1800)
    cache.set("k", "v", complexity=3)
    assert cache.entry("k").ttl == 300

    for _ in range(9):
        cache.get("k")
    assert cache.entry("k").access_count == 10
    assert cache.entry("k").ttl == 600

    for _ in range(5):
        cache.get("k")
    assert cache.entry("k").ttl == 900


def test_eviction_removes_lowest_scoring_entry():
    cache, clock = _cache(max_size=2)
    cache.set("a", 1)
    clock.advance(1)
    cache.set("b", 2)
    clock.advance(1)

    now = clock()
    scores = {k: cache._eviction_score(cache.entry(k), now) for k in ("a", "b")}
    loser = min(scores, key=scores.get)

    cache.set("c", 3)
    assert len(cache) == 2
    assert "c" in cache
    assert loser not in cache
    assert cache.stats().evictions == 1


def test_size_never_exceeds_max():
    cache, clock = _cache(max_size=10)
    for i in range(50):
        cache.set(f"k{i}", i)
        clock.advance(0.5)
        assert len(cache) <= 10


def test_bulk_eviction_removes_a_fifth():
    cache, clock = _cache(max_size=10)
    for i in range(10):
        cache.set(f"k{i}", i)
        clock.advance(1)
    cache.set("new", "x")
    # ceil(10 * 0.2) = 2 removed, then one inserted
    assert len(cache) == 9
    assert cache.stats().evictions == 2


def test_overwriting_key_does_not_evict():
    cache, _ = _cache(max_size=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    assert len(cache) == 2
    assert cache.get("a") == 10
    assert cache.stats().evictions == 0


def test_invalidate_by_filter_metadata():
    cache, _ = _cache()
    cache.set("f1", 1, filters={"category": "food", "budget": "P"})
    cache.set("f2", 2, filters={"category": "food", "budget": "PPP"})
    cache.set("a1", 3, filters={"category": "activity", "budget": "P"})
    cache.set("raw", 4)

    assert cache.invalidate(match_category("food")) == 2
    assert "a1" in cache and "raw" in cache

    assert cache.invalidate(match_budget("P")) == 1
    assert "raw" in cache

    assert cache.invalidate(match_all()) == 1
    assert len(cache) == 0


def test_sweep_removes_only_expired():
    cache, clock = _cache(default_ttl=300, min_ttl=60, max_ttl=1800)
    cache.set("short", 1, complexity=1)  # 150s
    cache.set("long", 2, complexity=5)  # 450s
    clock.advance(200)
    assert cache.sweep() == 1
    assert "short" not in cache
    assert "long" in cache


def test_clear_resets_stats():
    cache, _ = _cache()
    cache.set("k", 1)
    cache.get("k")
    cache.get("missing")
    cache.clear()
    stats = cache.stats()
    assert stats.size == 0
    assert stats.hits == 0
    assert stats.misses == 0


def test_stats_hit_rate():
    cache, _ = _cache(max_size=42)
    cache.set("k", 1)
    cache.get("k")
    cache.get("missing")
    stats = cache.stats()
    assert stats.hit_rate == 50.0
    assert stats.max_size == 42


def test_sweeper_thread_stops_on_close():
    cache, _ = _cache()
    cache.start_sweeper()
    thread = cache._sweeper
    assert thread is not None and thread.is_alive()
    cache.close()
    assert not thread.is_alive()
    assert cache._sweeper is None


def test_config_rejects_inverted_ttl_bounds():
    with pytest.raises(ValueError):
        CacheConfig(min_ttl=500, max_ttl=100)


def test_config_rejects_zero_size():
    with pytest.raises(ValueError):
        CacheConfig(max_size=0)
