"""
Result cache for discovery responses.

Responsibilities:
- Hold serialisable payloads under string keys with per-entry TTL.
- Stretch the TTL of popular entries and shorten it for simple queries.
- Bound the store size with score-based bulk eviction.
- Optionally mirror itself to a snapshot store across restarts.
"""
from __future__ import annotations

from .config import DEFAULT_CACHE_CONFIG, CacheConfig
from .persistence import FileSnapshotStore, MemorySnapshotStore, SnapshotStore
from .result_cache import (
    NOT_FOUND,
    ResultCache,
    match_all,
    match_budget,
    match_category,
)

__all__ = [
    "DEFAULT_CACHE_CONFIG",
    "NOT_FOUND",
    "CacheConfig",
    "FileSnapshotStore",
    "MemorySnapshotStore",
    "ResultCache",
    "SnapshotStore",
    "match_all",
    "match_budget",
    "match_category",
]
