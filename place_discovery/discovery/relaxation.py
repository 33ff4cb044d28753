from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from .config import BUDGET_PRICE_LEVELS, DEFAULT_RELAXATION_CONFIG, RelaxationConfig
from .models import Budget, Candidate, FilterSpec, RelaxationStage, RelaxationSummary
from .scoring import composite_score

logger = logging.getLogger(__name__)

STAGE_ORDER: list[RelaxationStage] = [
    RelaxationStage.strict,
    RelaxationStage.relax_mood,
    RelaxationStage.relax_budget,
    RelaxationStage.quality_floor,
]


@dataclass
class RelaxationResult:
    candidates: list[Candidate]
    stage: RelaxationStage
    scores: dict[str, float] = field(default_factory=dict)
    applied_filters: list[str] = field(default_factory=list)
    relaxed_filters: list[str] = field(default_factory=list)
    stage_counts: dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.candidates)

    def summary(self) -> RelaxationSummary:
        return RelaxationSummary(
            stage=self.stage,
            result_count=len(self.candidates),
            applied_filters=list(self.applied_filters),
            relaxed_filters=list(self.relaxed_filters),
            stage_counts=dict(self.stage_counts),
        )


def _next_tier_max(budget: Budget) -> int:
    tiers = list(BUDGET_PRICE_LEVELS)
    idx = tiers.index(budget)
    if idx + 1 < len(tiers):
        return BUDGET_PRICE_LEVELS[tiers[idx + 1]][1]
    return BUDGET_PRICE_LEVELS[budget][1]


def _build_frame(candidates: Sequence[Candidate]) -> pd.DataFrame:
    frame = pd.DataFrame.from_records([
        {
            "id": c.id,
            "rating": c.rating,
            "review_count": c.review_count,
            "mood_score": c.mood_score,
            "price_level": c.price_level,
        }
        for c in candidates
    ])
    for col in ("rating", "review_count", "mood_score", "price_level"):
        frame[col] = pd.to_numeric(frame[col], errors="coerce")
    return frame


class FilterRelaxationEngine:
    """Narrow a gathered candidate set to a query, loosening it when too few survive.

    Distance and category are taken as already applied by the search. Stages:

    1. strict        mood within 20 points (or same mood band), exact budget tier
    2. relax_mood    mood within 40 points, exact budget tier
    3. relax_budget  mood within 40 points, budget tier or the one above
    4. quality_floor only drop places rated below 2.0

    Every stage keeps the quality floor, so each stage is a superset of the
    one before it. Social context and time of day never exclude anything;
    they only boost ranking.
    """

    def __init__(self, config: RelaxationConfig = DEFAULT_RELAXATION_CONFIG) -> None:
        self.config = config

    def stage_masks(self, frame: pd.DataFrame, filters: FilterSpec) -> dict[RelaxationStage, pd.Series]:
        cfg = self.config
        scores = frame["mood_score"].fillna(50.0)
        mood_diff = (scores - filters.mood).abs()
        bands = np.select([scores >= 70, scores >= 31], ["hype", "neutral"], default="chill")
        same_band = pd.Series(bands == filters.mood_category.value, index=frame.index)

        strict_mood = (mood_diff <= cfg.strict_mood_tolerance) | same_band
        relaxed_mood = strict_mood | (mood_diff <= cfg.relaxed_mood_tolerance)

        if filters.budget is None:
            strict_budget = relaxed_budget = pd.Series(True, index=frame.index)
        else:
            lo, hi = BUDGET_PRICE_LEVELS[filters.budget]
            price = frame["price_level"]
            unknown = price.isna()
            strict_budget = unknown | price.between(lo, hi)
            relaxed_budget = unknown | price.between(lo, _next_tier_max(filters.budget))

        rating = frame["rating"]
        floor = rating.isna() | (rating == 0) | (rating >= cfg.quality_floor)

        return {
            RelaxationStage.strict: floor & strict_mood & strict_budget,
            RelaxationStage.relax_mood: floor & relaxed_mood & strict_budget,
            RelaxationStage.relax_budget: floor & relaxed_mood & relaxed_budget,
            RelaxationStage.quality_floor: floor,
        }

    def evaluate(
        self, candidates: Sequence[Candidate], filters: FilterSpec,
    ) -> dict[RelaxationStage, list[Candidate]]:
        """Survivors of every stage, unranked."""
        if not candidates:
            return {stage: [] for stage in STAGE_ORDER}
        frame = _build_frame(candidates)
        masks = self.stage_masks(frame, filters)
        return {
            stage: [candidates[i] for i in frame.index[masks[stage].to_numpy()]]
            for stage in STAGE_ORDER
        }

    def relax(
        self,
        candidates: Sequence[Candidate],
        filters: FilterSpec,
        min_results: int,
    ) -> RelaxationResult:
        min_results = max(1, int(min_results))
        candidates = list(candidates)
        if not candidates:
            return RelaxationResult(
                candidates=[],
                stage=RelaxationStage.quality_floor,
                applied_filters=["quality_floor"],
                relaxed_filters=self._relaxed_filters(RelaxationStage.quality_floor, filters),
                stage_counts={stage.value: 0 for stage in STAGE_ORDER},
            )

        frame = _build_frame(candidates)
        masks = self.stage_masks(frame, filters)
        stage_counts = {stage.value: int(masks[stage].sum()) for stage in STAGE_ORDER}

        chosen = RelaxationStage.quality_floor
        for stage in STAGE_ORDER:
            if stage_counts[stage.value] >= min_results:
                chosen = stage
                break

        boosts = chosen is not RelaxationStage.quality_floor
        survivors = frame.loc[masks[chosen]].copy()
        survivors["_score"] = [
            composite_score(candidates[i], filters, boosts=boosts, config=self.config)
            for i in survivors.index
        ]
        ranked = survivors.sort_values("_score", ascending=False, kind="stable")

        logger.debug(
            "Relaxation stopped at %s with %d/%d candidates (min %d)",
            chosen.value, len(ranked), len(candidates), min_results,
        )
        return RelaxationResult(
            candidates=[candidates[i] for i in ranked.index],
            stage=chosen,
            scores={str(cid): round(float(s), 4) for cid, s in zip(ranked["id"], ranked["_score"])},
            applied_filters=self._applied_filters(chosen, filters),
            relaxed_filters=self._relaxed_filters(chosen, filters),
            stage_counts=stage_counts,
        )

    @staticmethod
    def _applied_filters(stage: RelaxationStage, filters: FilterSpec) -> list[str]:
        if stage is RelaxationStage.quality_floor:
            return ["quality_floor"]
        mood = "mood:strict" if stage is RelaxationStage.strict else "mood:relaxed"
        applied = [mood]
        if filters.budget is not None:
            budget = "budget:relaxed" if stage is RelaxationStage.relax_budget else "budget:strict"
            applied.append(budget)
        if filters.social_context is not None:
            applied.append("social_context:boost")
        if filters.time_of_day is not None:
            applied.append("time_of_day:boost")
        applied.append("quality_floor")
        return applied

    @staticmethod
    def _relaxed_filters(stage: RelaxationStage, filters: FilterSpec) -> list[str]:
        relaxed: list[str] = []
        if stage is RelaxationStage.strict:
            return relaxed
        relaxed.append("mood")
        if stage is RelaxationStage.relax_mood:
            return relaxed
        if filters.budget is not None:
            relaxed.append("budget")
        if stage is RelaxationStage.quality_floor:
            if filters.social_context is not None:
                relaxed.append("social_context")
            if filters.time_of_day is not None:
                relaxed.append("time_of_day")
        return relaxed
