from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    key: str
    payload: Any = None
    created_at: float
    ttl: float = Field(..., gt=0)
    access_count: int = Field(default=1, ge=0)
    last_accessed_at: float
    complexity: int | None = None
    filters: dict[str, Any] | None = None

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


class CacheStats(BaseModel):
    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int
    hit_rate: float
