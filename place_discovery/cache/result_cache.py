from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from typing import Any

from .config import DEFAULT_CACHE_CONFIG, CacheConfig
from .models import CacheEntry, CacheStats
from .persistence import SnapshotStore, load_snapshot, save_snapshot

logger = logging.getLogger(__name__)

FilterPredicate = Callable[[dict[str, Any] | None], bool]


class _NotFound:
    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()


def match_all() -> FilterPredicate:
    return lambda filters: True


def match_category(category: str) -> FilterPredicate:
    return lambda filters: bool(filters) and filters.get("category") == category


def match_budget(budget: str) -> FilterPredicate:
    return lambda filters: bool(filters) and filters.get("budget") == budget


class ResultCache:
    """Key/value store with per-entry TTL, adaptive expiry and bounded size.

    Entries are lazily dropped on read once expired, swept periodically by
    :meth:`start_sweeper`, and evicted in bulk on :meth:`set` when the
    store is full. When a :class:`SnapshotStore` is given the cache is
    loaded from it on construction and written back after every mutation.
    """

    def __init__(
        self,
        config: CacheConfig = DEFAULT_CACHE_CONFIG,
        store: SnapshotStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self._store = store
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._sweeper: threading.Thread | None = None
        self._stop = threading.Event()

        if store is not None:
            for key, entry in load_snapshot(store, config.storage_key):
                self._entries[key] = entry
            # A snapshot from a bigger cache must still honour max_size.
            while len(self._entries) > config.max_size:
                self._evict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    # ------------------------------------------------------------------
    # TTL policy
    # ------------------------------------------------------------------

    def compute_ttl(self, complexity: int | None, access_count: int) -> float:
        ttl = self.config.default_ttl

        if complexity is not None:
            if complexity <= 2:
                ttl *= 0.5
            elif complexity >= 4:
                ttl *= 1.5

        if access_count > 10:
            ttl *= 3
        elif access_count > 5:
            ttl *= 2

        return min(max(ttl, self.config.min_ttl), self.config.max_ttl)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any:
        """Return the payload for *key*, or ``NOT_FOUND`` on a miss or expiry."""
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None:
                self._misses += 1
                return NOT_FOUND
            if entry.is_expired(now):
                del self._entries[key]
                self._misses += 1
                return NOT_FOUND

            entry.access_count += 1
            entry.last_accessed_at = now
            self._hits += 1
            if entry.access_count % self.config.ttl_refresh_every == 0:
                entry.ttl = self.compute_ttl(entry.complexity, entry.access_count)
            return entry.payload

    def set(
        self,
        key: str,
        payload: Any,
        filters: dict[str, Any] | None = None,
        complexity: int | None = None,
    ) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.config.max_size:
                self._evict()
            now = self._clock()
            self._entries[key] = CacheEntry(
                key=key,
                payload=payload,
                created_at=now,
                ttl=self.compute_ttl(complexity, 1),
                access_count=1,
                last_accessed_at=now,
                complexity=complexity,
                filters=filters,
            )
            self._persist()

    def invalidate(self, predicate: FilterPredicate) -> int:
        """Remove every entry whose stored filter metadata matches *predicate*."""
        with self._lock:
            doomed = [k for k, e in self._entries.items() if predicate(e.filters)]
            for key in doomed:
                del self._entries[key]
            if doomed:
                self._persist()
        logger.debug("Invalidated %d cache entries", len(doomed))
        return len(doomed)

    def sweep(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            if expired:
                self._persist()
        if expired:
            logger.info("Cleaned up %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            if self._store is not None:
                try:
                    self._store.remove_item(self.config.storage_key)
                except OSError:
                    logger.warning("Failed to remove cache snapshot", exc_info=True)

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        return CacheStats(
            size=len(self._entries),
            max_size=self.config.max_size,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            hit_rate=round(self._hits / total * 100, 1) if total > 0 else 0.0,
        )

    def entry(self, key: str) -> CacheEntry | None:
        """Peek at an entry without touching its access statistics."""
        return self._entries.get(key)

    # ------------------------------------------------------------------
    # Background sweeper
    # ------------------------------------------------------------------

    def start_sweeper(self) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="result-cache-sweeper", daemon=True,
        )
        self._sweeper.start()

    def close(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1.0)
            self._sweeper = None

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.config.cleanup_interval):
            self.sweep()

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _eviction_score(self, entry: CacheEntry, now: float) -> float:
        recency_ms = (now - entry.last_accessed_at) * 1000
        return entry.access_count * self.config.access_weight + recency_ms * self.config.recency_weight

    def _evict(self) -> None:
        if not self._entries:
            return
        now = self._clock()
        ranked = sorted(self._entries.items(), key=lambda kv: self._eviction_score(kv[1], now))
        to_remove = math.ceil(len(ranked) * self.config.eviction_fraction)
        for key, _ in ranked[:to_remove]:
            del self._entries[key]
            self._evictions += 1
        logger.debug("Evicted %d cache entries", to_remove)

    def _persist(self) -> None:
        if self._store is not None:
            save_snapshot(self._store, self.config.storage_key, list(self._entries.items()))
