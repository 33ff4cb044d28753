from __future__ import annotations

import math
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .models import Budget, Category

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


# (upper bound of the distance slider, radius in metres)
RADIUS_STEPS: list[tuple[float, int]] = [
    (1, 500),
    (2, 1000),
    (4, 2000),
    (6, 5000),
    (10, 10000),
    (15, 15000),
    (20, 20000),
    (23, 50000),
]
MAX_RADIUS = 100000

CATEGORY_PLACE_TYPES: dict[Category, list[str]] = {
    Category.food: [
        "restaurant", "cafe", "bakery", "bar", "meal_takeaway",
        "fast_food_restaurant", "pizza_place", "coffee_shop", "ice_cream_shop",
    ],
    Category.activity: [
        "amusement_park", "aquarium", "art_gallery", "bowling_alley", "gym",
        "movie_theater", "museum", "night_club", "park", "shopping_mall",
        "spa", "tourist_attraction", "zoo", "karaoke",
    ],
    Category.something_new: [
        "art_gallery", "book_store", "library", "museum",
        "performing_arts_theater", "cultural_center", "dance_studio",
        "music_venue", "comedy_club", "escape_room", "cooking_class",
    ],
}

# Inclusive price-level range for each budget tier, in tier order.
BUDGET_PRICE_LEVELS: dict[Budget, tuple[int, int]] = {
    Budget.P: (0, 1),
    Budget.PP: (1, 2),
    Budget.PPP: (2, 4),
}


@dataclass(frozen=True)
class PoolConfig:
    group_size: int = 5
    places_per_result: int = 4
    max_entries: int = int(os.getenv("DISCOVERY_POOL_MAX_ENTRIES", "50"))
    max_candidates: int = int(os.getenv("DISCOVERY_POOL_MAX_CANDIDATES", "50"))
    used_id_cap: int = 50

    def __post_init__(self) -> None:
        if self.group_size < 1:
            raise ValueError("group_size must be >= 1")
        if self.max_entries < 1 or self.max_candidates < 1 or self.used_id_cap < 1:
            raise ValueError("pool capacities must be >= 1")


@dataclass(frozen=True)
class RelaxationConfig:
    strict_mood_tolerance: float = 20.0
    relaxed_mood_tolerance: float = 40.0
    quality_floor: float = 2.0
    relevance_weight: float = 0.7
    quality_weight: float = 0.3


@dataclass(frozen=True)
class ExpansionConfig:
    target_gather_size: int = int(os.getenv("DISCOVERY_TARGET_GATHER_SIZE", "100"))
    max_attempts: int = int(os.getenv("DISCOVERY_MAX_ATTEMPTS", "3"))
    request_timeout: float = float(os.getenv("DISCOVERY_REQUEST_TIMEOUT", "12.0"))
    growth_per_attempt: float = 0.5
    jitter_degrees: float = 0.005
    # Small searches stay centred on the user.
    jitter_min_radius: int = 1000

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")


DEFAULT_POOL_CONFIG = PoolConfig()
DEFAULT_RELAXATION_CONFIG = RelaxationConfig()
DEFAULT_EXPANSION_CONFIG = ExpansionConfig()


def radius_for_distance(distance_range: float) -> int:
    """Map the 0-100 distance slider onto an initial search radius in metres."""
    rounded = math.floor(distance_range + 0.5)
    for upper, radius in RADIUS_STEPS:
        if rounded <= upper:
            return radius
    return MAX_RADIUS
