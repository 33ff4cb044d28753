from __future__ import annotations

import random
import threading

from place_discovery.discovery.config import PoolConfig
from place_discovery.discovery.models import Candidate
from place_discovery.discovery.pool import CandidatePool, UsedIdSet


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _candidates(n: int) -> list[Candidate]:
    return [
        Candidate(
            id=f"p{i}",
            name=f"Place {i}",
            rating=3.0 + (i % 5) * 0.4,
            review_count=i * 10,
        )
        for i in range(n)
    ]


def _pool(**overrides) -> CandidatePool:
    return CandidatePool(PoolConfig(**overrides), rng=random.Random(7))


def test_store_partitions_into_groups_of_five():
    pool = _pool()
    candidates = _candidates(12)
    entry = pool.store_ranked_results("food", candidates)

    assert [len(g) for g in entry.ranked_groups] == [5, 5, 2]
    ids = [c.id for group in entry.ranked_groups for c in group]
    assert sorted(ids) == sorted(c.id for c in candidates)
    assert len(ids) == len(set(ids))


def test_groups_sorted_by_rating_then_reviews():
    pool = _pool()
    entry = pool.store_ranked_results("food", _candidates(23))
    for group in entry.ranked_groups:
        keys = [(-c.rating, -c.review_count) for c in group]
        assert keys == sorted(keys)


def test_select_draws_from_current_group_and_wraps():
    pool = _pool()
    entry = pool.store_ranked_results("food", _candidates(12))
    groups = [list(g) for g in entry.ranked_groups]

    first = pool.select_next("food")
    assert first in groups[0]
    assert entry.current_group_index == 1

    pool.select_next("food")
    pool.select_next("food")
    assert entry.current_group_index == 0


def test_round_robin_returns_to_first_group():
    pool = _pool()
    entry = pool.store_ranked_results("food", _candidates(17))
    groups = [list(g) for g in entry.ranked_groups]

    for i in range(len(groups)):
        assert pool.select_next("food") in groups[i]
    assert pool.select_next("food") in groups[0]


def test_select_prefers_unused_ids():
    pool = _pool()
    candidates = _candidates(5)
    pool.store_ranked_results("food", candidates)
    for c in candidates[:4]:
        pool.mark_used(c.id)

    assert pool.select_next("food").id == candidates[4].id


def test_select_falls_back_to_used_when_group_exhausted():
    pool = _pool()
    candidates = _candidates(3)
    pool.store_ranked_results("food", candidates)
    for c in candidates:
        pool.mark_used(c.id)
    assert pool.select_next("food") in candidates


def test_select_unknown_key_returns_none():
    assert _pool().select_next("missing") is None


def test_store_deduplicates_ids():
    pool = _pool()
    candidates = _candidates(4)
    entry = pool.store_ranked_results("food", candidates + candidates[:2])
    assert len(entry.candidates) == 4
    assert sum(len(g) for g in entry.ranked_groups) == 4


def test_remove_used_drops_empty_groups_and_fixes_index():
    pool = _pool()
    entry = pool.store_ranked_results("food", _candidates(6))
    lone = entry.ranked_groups[1][0]

    pool.select_next("food")
    assert entry.current_group_index == 1

    assert pool.remove_used("food", lone.id)
    assert len(entry.ranked_groups) == 1
    assert entry.current_group_index == 0
    assert lone.id not in {c.id for c in entry.candidates}


def test_remove_used_unknown_id_is_noop():
    pool = _pool()
    pool.store_ranked_results("food", _candidates(3))
    assert not pool.remove_used("food", "nope")
    assert not pool.remove_used("missing", "p0")


def test_needs_refresh():
    pool = _pool(places_per_result=4)
    candidates = _candidates(5)
    assert pool.needs_refresh("food")

    pool.store_ranked_results("food", candidates)
    assert not pool.needs_refresh("food")

    pool.mark_used(candidates[0].id)
    pool.mark_used(candidates[1].id)
    assert pool.needs_refresh("food")


def test_used_id_set_clears_when_full():
    used = UsedIdSet(cap=3)
    for cid in ("a", "b", "c"):
        used.add(cid)
    used.add("d")
    assert len(used) == 1
    assert "d" in used
    assert "a" not in used


def test_least_recently_used_entry_evicted_at_capacity():
    clock = FakeClock()
    pool = CandidatePool(PoolConfig(max_entries=2), rng=random.Random(1), clock=clock)
    pool.store_ranked_results("k1", _candidates(3))
    clock.now += 1
    pool.store_ranked_results("k2", _candidates(3))
    clock.now += 1
    pool.select_next("k1")
    clock.now += 1
    pool.store_ranked_results("k3", _candidates(3))

    assert "k1" in pool
    assert "k2" not in pool
    assert "k3" in pool


def test_stats():
    pool = _pool()
    candidates = _candidates(7)
    pool.store_ranked_results("food", candidates)
    pool.mark_used(candidates[0].id)

    stats = pool.stats("food")
    assert stats.total == 7
    assert stats.remaining == 6
    assert stats.group_count == 2
    assert stats.filter_key == "food"


def test_clear_empties_pool():
    pool = _pool()
    pool.store_ranked_results("food", _candidates(3))
    pool.mark_used("p0")
    pool.clear()
    assert len(pool) == 0
    assert len(pool.used_ids) == 0


def test_discard_matching_uses_stored_filters():
    pool = _pool()
    pool.store_ranked_results("f", _candidates(3), filters={"category": "food"})
    pool.store_ranked_results("a", _candidates(3), filters={"category": "activity"})
    pool.store_ranked_results("raw", _candidates(3))

    dropped = pool.discard_matching(lambda f: bool(f) and f.get("category") == "food")
    assert dropped == 1
    assert "f" not in pool
    assert "a" in pool and "raw" in pool


def test_evicted_entry_takes_its_filters_with_it():
    clock = FakeClock()
    pool = CandidatePool(PoolConfig(max_entries=1), rng=random.Random(1), clock=clock)
    pool.store_ranked_results("k1", _candidates(3), filters={"category": "food"})
    clock.now += 1
    pool.store_ranked_results("k2", _candidates(3), filters={"category": "activity"})

    assert pool.discard_matching(lambda f: True) == 1
    assert len(pool) == 0


def test_stats_consistent_while_marking_from_threads():
    pool = _pool(used_id_cap=500)
    candidates = _candidates(40)
    pool.store_ranked_results("k", candidates)

    def mark(chunk):
        for c in chunk:
            pool.mark_used(c.id)
            pool.stats("k")
            pool.needs_refresh("k")

    threads = [threading.Thread(target=mark, args=(candidates[i::4],)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stats = pool.stats("k")
    assert stats.remaining == 0
    assert pool.unused_count("k") == 0
    assert stats.needs_refresh
