from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any
from dataclasses import dataclass, field

from .config import DEFAULT_POOL_CONFIG, PoolConfig
from .models import Candidate, PoolStats

logger = logging.getLogger(__name__)


class UsedIdSet:
    """Ids already shown to the user. Cleared wholesale once it hits *cap*."""

    def __init__(self, cap: int = 50) -> None:
        self.cap = cap
        self._ids: set[str] = set()

    def add(self, candidate_id: str) -> None:
        if candidate_id in self._ids:
            return
        if len(self._ids) >= self.cap:
            self._ids.clear()
        self._ids.add(candidate_id)

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, candidate_id: object) -> bool:
        return candidate_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


@dataclass
class PoolEntry:
    filter_key: str
    candidates: list[Candidate]
    ranked_groups: list[list[Candidate]]
    current_group_index: int = 0
    last_used_at: float = field(default_factory=time.time)
    filters: dict[str, Any] | None = None


def _group_sort_key(candidate: Candidate, scores: Mapping[str, float]) -> tuple[float, int, float]:
    return (
        -(candidate.rating or 0.0),
        -(candidate.review_count or 0),
        -scores.get(candidate.id, 0.0),
    )


class CandidatePool:
    """Per-filter pools of ranked candidates for repeat "show me another" picks.

    Each pool entry is shuffled and cut into small groups that are sorted
    best-first; :meth:`select_next` draws from one group per call and moves
    round-robin to the next, so picks lean towards well-rated places without
    always landing on the same one.
    """

    def __init__(
        self,
        config: PoolConfig = DEFAULT_POOL_CONFIG,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.used_ids = UsedIdSet(config.used_id_cap)
        self._rng = rng or random.Random()
        self._clock = clock
        self._entries: dict[str, PoolEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, filter_key: str) -> bool:
        return filter_key in self._entries

    def get(self, filter_key: str) -> PoolEntry | None:
        return self._entries.get(filter_key)

    def store_ranked_results(
        self,
        filter_key: str,
        candidates: Iterable[Candidate],
        scores: Mapping[str, float] | None = None,
        filters: dict[str, Any] | None = None,
    ) -> PoolEntry:
        scores = scores or {}
        unique: dict[str, Candidate] = {}
        for candidate in candidates:
            unique.setdefault(candidate.id, candidate)
        ordered = list(unique.values())

        shuffled = list(ordered)
        self._rng.shuffle(shuffled)
        size = self.config.group_size
        groups = [
            sorted(shuffled[i:i + size], key=lambda c: _group_sort_key(c, scores))
            for i in range(0, len(shuffled), size)
        ]

        entry = PoolEntry(
            filter_key=filter_key,
            candidates=ordered,
            ranked_groups=groups,
            current_group_index=0,
            last_used_at=self._clock(),
            filters=filters,
        )
        with self._lock:
            self._entries[filter_key] = entry
            self._enforce_capacity()
        logger.debug(
            "Stored %d candidates in %d groups for %s", len(ordered), len(groups), filter_key,
        )
        return entry

    def select_next(self, filter_key: str) -> Candidate | None:
        with self._lock:
            entry = self._entries.get(filter_key)
            if entry is None:
                return None

            if entry.current_group_index >= len(entry.ranked_groups):
                entry.current_group_index = 0
            if not entry.ranked_groups:
                return None
            group = entry.ranked_groups[entry.current_group_index]
            if not group:
                return None

            fresh = [c for c in group if c.id not in self.used_ids]
            selected = self._rng.choice(fresh or group)

            entry.current_group_index += 1
            if entry.current_group_index == len(entry.ranked_groups):
                entry.current_group_index = 0
            entry.last_used_at = self._clock()
            return selected

    def remove_used(self, filter_key: str, candidate_id: str) -> bool:
        """Drop *candidate_id* from the entry so it will not come back from it."""
        with self._lock:
            entry = self._entries.get(filter_key)
            if entry is None:
                return False

            before = len(entry.candidates)
            entry.candidates = [c for c in entry.candidates if c.id != candidate_id]
            if len(entry.candidates) == before:
                return False

            groups: list[list[Candidate]] = []
            index = entry.current_group_index
            for i, group in enumerate(entry.ranked_groups):
                kept = [c for c in group if c.id != candidate_id]
                if kept:
                    groups.append(kept)
                elif i < entry.current_group_index:
                    index -= 1
            entry.ranked_groups = groups
            entry.current_group_index = min(max(index, 0), len(groups))
            if entry.current_group_index == len(groups):
                entry.current_group_index = 0
            return True

    def mark_used(self, candidate_id: str) -> None:
        with self._lock:
            self.used_ids.add(candidate_id)

    def unused_count(self, filter_key: str) -> int:
        with self._lock:
            return self._unused_count(filter_key)

    def needs_refresh(self, filter_key: str) -> bool:
        with self._lock:
            return self._unused_count(filter_key) < self.config.places_per_result

    def stats(self, filter_key: str) -> PoolStats:
        with self._lock:
            entry = self._entries.get(filter_key)
            remaining = self._unused_count(filter_key)
            return PoolStats(
                filter_key=filter_key,
                remaining=remaining,
                total=len(entry.candidates) if entry else 0,
                group_count=len(entry.ranked_groups) if entry else 0,
                current_group_index=entry.current_group_index if entry else 0,
                needs_refresh=remaining < self.config.places_per_result,
            )

    def discard_matching(self, predicate: Callable[[dict[str, Any] | None], bool]) -> int:
        """Drop every entry whose stored filters match *predicate*."""
        with self._lock:
            doomed = [k for k, e in self._entries.items() if predicate(e.filters)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def discard(self, filter_key: str) -> None:
        with self._lock:
            self._entries.pop(filter_key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.used_ids.clear()

    def _unused_count(self, filter_key: str) -> int:
        entry = self._entries.get(filter_key)
        if entry is None:
            return 0
        return sum(1 for c in entry.candidates if c.id not in self.used_ids)

    def _enforce_capacity(self) -> None:
        while len(self._entries) > self.config.max_entries:
            oldest = min(self._entries.values(), key=lambda e: e.last_used_at)
            del self._entries[oldest.filter_key]
            logger.debug("Evicted pool entry %s", oldest.filter_key)
