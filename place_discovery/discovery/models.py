from __future__ import annotations

import hashlib
import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidFilterSpec


class Category(str, Enum):
    food = "food"
    activity = "activity"
    something_new = "something_new"


class Budget(str, Enum):
    P = "P"
    PP = "PP"
    PPP = "PPP"


class SocialContext(str, Enum):
    solo = "solo"
    with_bae = "with_bae"
    barkada = "barkada"


class TimeOfDay(str, Enum):
    morning = "morning"
    afternoon = "afternoon"
    night = "night"


class MoodCategory(str, Enum):
    chill = "chill"
    neutral = "neutral"
    hype = "hype"


def mood_category(score: float) -> MoodCategory:
    """Collapse a 0-100 mood score into chill (<31), neutral (31-69) or hype (>=70)."""
    if score >= 70:
        return MoodCategory.hype
    if score >= 31:
        return MoodCategory.neutral
    return MoodCategory.chill


class LatLng(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)


class PriceBounds(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: int = Field(..., ge=0, le=4)
    max: int = Field(..., ge=0, le=4)


class FilterSpec(BaseModel):
    """A user's discovery query. Immutable; hashed into cache and pool keys."""

    model_config = ConfigDict(frozen=True)

    category: Category
    mood: int = Field(default=50, ge=0, le=100)
    budget: Budget | None = None
    social_context: SocialContext | None = None
    time_of_day: TimeOfDay | None = None
    distance_range: float = Field(default=10.0, ge=0.0, le=100.0)
    user_location: LatLng

    @classmethod
    def parse(cls, data: FilterSpec | dict[str, Any]) -> FilterSpec:
        if isinstance(data, cls):
            return data
        if not isinstance(data, dict):
            raise InvalidFilterSpec(f"Expected a mapping, got {type(data).__name__}")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise InvalidFilterSpec(
                f"Invalid filter spec: {exc.error_count()} error(s)",
                errors=exc.errors(include_url=False),
            ) from exc

    def cache_key(self) -> str:
        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, default=str)
        return hashlib.sha256(normalized.encode()).hexdigest()[:16]

    def complexity(self) -> int:
        """Number of preference fields set (category, mood, budget, social, time).

        distance_range is not counted: it always carries a value, so it would
        only shift every query up by one.
        """
        fields = (self.category, self.mood, self.budget, self.social_context, self.time_of_day)
        return sum(1 for f in fields if f is not None)

    @property
    def mood_category(self) -> MoodCategory:
        return mood_category(self.mood)


class PlaceRecord(BaseModel):
    """A raw result as handed back by a search collaborator."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str | None = None
    rating: float | None = Field(default=None, ge=0.0, le=5.0)
    review_count: int | None = Field(default=None, ge=0)
    price_level: int | None = Field(default=None, ge=0, le=4)
    tags: frozenset[str] = Field(default_factory=frozenset)
    location: LatLng | None = None
    address: str | None = None
    has_opening_hours: bool = False
    mood_score: float | None = Field(default=None, ge=0.0, le=100.0)


class Candidate(PlaceRecord):
    mood_score: float = Field(default=50.0, ge=0.0, le=100.0)

    @classmethod
    def from_record(cls, record: PlaceRecord, mood_score: float | None) -> Candidate:
        data = record.model_dump()
        if mood_score is not None:
            data["mood_score"] = max(0.0, min(100.0, float(mood_score)))
        elif data.get("mood_score") is None:
            data.pop("mood_score", None)
        return cls.model_validate(data)


# ---------------------------------------------------------------------------
# Result shapes
# ---------------------------------------------------------------------------


class RelaxationStage(str, Enum):
    strict = "strict"
    relax_mood = "relax_mood"
    relax_budget = "relax_budget"
    quality_floor = "quality_floor"


class Outcome(str, Enum):
    complete = "complete"
    partial = "partial"
    fallback = "fallback"


class PoolStats(BaseModel):
    filter_key: str
    remaining: int
    total: int
    group_count: int
    current_group_index: int
    needs_refresh: bool


class RelaxationSummary(BaseModel):
    stage: RelaxationStage
    result_count: int
    applied_filters: list[str] = Field(default_factory=list)
    relaxed_filters: list[str] = Field(default_factory=list)
    stage_counts: dict[str, int] = Field(default_factory=dict)


class ExpansionSummary(BaseModel):
    state: str
    attempts: int
    failed_attempts: int
    radii: list[int]
    final_radius: int
    total_found: int
    expanded: bool


class RecommendationRequest(BaseModel):
    filters: FilterSpec
    min_results: int = Field(..., ge=1, le=50)


class RecommendationResponse(BaseModel):
    filter_key: str
    selected: Candidate | None
    outcome: Outcome
    pool: PoolStats
    relaxation: RelaxationSummary | None = None
    expansion: ExpansionSummary | None = None
    from_cache: bool = False
    progress: list[dict[str, Any]] = Field(default_factory=list)


class InvalidateRequest(BaseModel):
    category: Category | None = None
    budget: Budget | None = None
