from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class CacheConfig:
    """Tunables for the result cache. Times are in seconds."""

    max_size: int = int(os.getenv("DISCOVERY_CACHE_MAX_SIZE", "100"))
    default_ttl: float = float(os.getenv("DISCOVERY_CACHE_DEFAULT_TTL", "300"))
    max_ttl: float = float(os.getenv("DISCOVERY_CACHE_MAX_TTL", "1800"))
    min_ttl: float = float(os.getenv("DISCOVERY_CACHE_MIN_TTL", "60"))
    cleanup_interval: float = float(os.getenv("DISCOVERY_CACHE_CLEANUP_INTERVAL", "120"))
    # TTL is recomputed every N hits
    ttl_refresh_every: int = 5
    # Eviction score weights. The recency term is raw milliseconds.
    access_weight: float = 0.7
    recency_weight: float = 0.3
    eviction_fraction: float = 0.2
    storage_key: str = "filterCache"

    def __post_init__(self) -> None:
        if self.max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {self.max_size}")
        for name in ("default_ttl", "max_ttl", "min_ttl", "cleanup_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.min_ttl > self.max_ttl:
            raise ValueError(
                f"min_ttl ({self.min_ttl}) must not exceed max_ttl ({self.max_ttl})"
            )
        if self.ttl_refresh_every < 1:
            raise ValueError("ttl_refresh_every must be >= 1")
        if not 0.0 < self.eviction_fraction <= 1.0:
            raise ValueError("eviction_fraction must be in (0, 1]")


DEFAULT_CACHE_CONFIG = CacheConfig()
