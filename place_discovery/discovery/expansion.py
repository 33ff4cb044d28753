from __future__ import annotations

import asyncio
import inspect
import logging
import random
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from ..cache.result_cache import NOT_FOUND, ResultCache
from .config import (
    BUDGET_PRICE_LEVELS,
    CATEGORY_PLACE_TYPES,
    DEFAULT_EXPANSION_CONFIG,
    ExpansionConfig,
    radius_for_distance,
)
from .errors import DiscoveryFailed
from .models import (
    Candidate,
    Category,
    ExpansionSummary,
    FilterSpec,
    LatLng,
    PlaceRecord,
    PriceBounds,
)
from .progress import (
    Expanding,
    ProgressReporter,
    SearchFinished,
    SearchStarted,
    StepCompleted,
    StepFailed,
)

logger = logging.getLogger(__name__)

SearchFunction = Callable[
    [LatLng, int, list[str], PriceBounds | None],
    Awaitable[list[PlaceRecord | dict[str, Any]] | None],
]
MoodScorer = Callable[[PlaceRecord], Any]


class ExpansionState(str, Enum):
    initial = "initial"
    searching = "searching"
    expanding = "expanding"
    complete = "complete"
    error = "error"


@dataclass
class ExpansionResult:
    candidates: list[Candidate]
    state: ExpansionState
    radii: list[int] = field(default_factory=list)
    failed_attempts: int = 0
    errors: list[BaseException] = field(default_factory=list)

    @property
    def attempts(self) -> int:
        return len(self.radii)

    @property
    def final_radius(self) -> int:
        return self.radii[-1] if self.radii else 0

    def summary(self) -> ExpansionSummary:
        return ExpansionSummary(
            state=self.state.value,
            attempts=self.attempts,
            failed_attempts=self.failed_attempts,
            radii=list(self.radii),
            final_radius=self.final_radius,
            total_found=len(self.candidates),
            expanded=self.attempts > 1,
        )


def price_bounds_for(filters: FilterSpec) -> PriceBounds | None:
    # Only food places carry a usable price level.
    if filters.budget is None or filters.category is not Category.food:
        return None
    lo, hi = BUDGET_PRICE_LEVELS[filters.budget]
    return PriceBounds(min=lo, max=hi)


class SearchExpansionController:
    """Call the search collaborator with a growing radius until enough is gathered.

    Attempt *n* searches at ``base * (1 + 0.5 * n)`` metres (never smaller
    than the previous attempt), nudging the centre a little on retries so a
    wider circle also surfaces different places. Results are deduplicated by
    id across attempts and each attempt's batch is cached, so replaying the
    same expansion does not hit the network again.

    A failed or timed-out attempt is logged and counted; only when every
    attempt failed, or nothing at all was found, does :class:`DiscoveryFailed`
    reach the caller.
    """

    def __init__(
        self,
        search: SearchFunction,
        cache: ResultCache | None = None,
        scorer: MoodScorer | None = None,
        config: ExpansionConfig = DEFAULT_EXPANSION_CONFIG,
        rng: random.Random | None = None,
    ) -> None:
        self._search = search
        self._cache = cache
        self._scorer = scorer
        self.config = config
        self._rng = rng or random.Random()
        self.state = ExpansionState.initial

    def radius_for_attempt(self, base_radius: int, attempt: int) -> int:
        if attempt <= 0:
            return base_radius
        return round(base_radius * (1 + attempt * self.config.growth_per_attempt))

    def search_center(self, origin: LatLng, radius: int, attempt: int) -> LatLng:
        if attempt <= 0 or radius <= self.config.jitter_min_radius:
            return origin
        offset = attempt * self.config.jitter_degrees
        lat = origin.lat + (self._rng.random() - 0.5) * offset
        lng = origin.lng + (self._rng.random() - 0.5) * offset
        return LatLng(lat=max(-90.0, min(90.0, lat)), lng=max(-180.0, min(180.0, lng)))

    @staticmethod
    def attempt_key(filter_key: str, attempt: int, radius: int) -> str:
        return f"attempt:{filter_key}:{attempt}:{radius}"

    async def expand(
        self,
        filters: FilterSpec,
        progress: ProgressReporter | None = None,
    ) -> ExpansionResult:
        cfg = self.config
        progress = progress or ProgressReporter()
        filter_key = filters.cache_key()
        place_types = CATEGORY_PLACE_TYPES[filters.category]
        bounds = price_bounds_for(filters)
        base_radius = radius_for_distance(filters.distance_range)

        accumulated: dict[str, Candidate] = {}
        radii: list[int] = []
        errors: list[BaseException] = []
        succeeded = 0
        previous = 0

        for attempt in range(cfg.max_attempts):
            radius = max(self.radius_for_attempt(base_radius, attempt), previous)
            if attempt > 0:
                self.state = ExpansionState.expanding
                logger.info("Expanding search radius %dm -> %dm", previous, radius)
                progress.emit(Expanding(
                    step=attempt, from_radius=previous, to_radius=radius,
                    result_count=len(accumulated),
                ))

            self.state = ExpansionState.searching
            radii.append(radius)
            previous = radius
            progress.emit(SearchStarted(step=attempt, radius=radius, result_count=len(accumulated)))

            key = self.attempt_key(filter_key, attempt, radius)
            batch = self._cached_batch(key)
            from_cache = batch is not None
            if batch is None:
                center = self.search_center(filters.user_location, radius, attempt)
                try:
                    raw = await asyncio.wait_for(
                        self._search(center, radius, list(place_types), bounds),
                        timeout=cfg.request_timeout,
                    )
                except asyncio.TimeoutError as exc:
                    errors.append(exc)
                    logger.warning(
                        "Search attempt %d timed out after %.1fs (radius %dm)",
                        attempt, cfg.request_timeout, radius,
                    )
                    progress.emit(StepFailed(
                        step=attempt, radius=radius, result_count=len(accumulated),
                        error=f"timeout after {cfg.request_timeout}s",
                    ))
                    continue
                except Exception as exc:
                    errors.append(exc)
                    logger.warning(
                        "Search attempt %d failed (radius %dm)", attempt, radius, exc_info=True,
                    )
                    progress.emit(StepFailed(
                        step=attempt, radius=radius, result_count=len(accumulated),
                        error=f"{type(exc).__name__}: {exc}",
                    ))
                    continue

                batch = await self._to_candidates(raw or [])
                if self._cache is not None:
                    self._cache.set(
                        key,
                        [c.model_dump(mode="json") for c in batch],
                        filters=filters.model_dump(mode="json"),
                        complexity=filters.complexity(),
                    )

            succeeded += 1
            new_count = 0
            for candidate in batch:
                if candidate.id not in accumulated:
                    accumulated[candidate.id] = candidate
                    new_count += 1

            logger.info(
                "Attempt %d at %dm: %d new, %d total%s",
                attempt, radius, new_count, len(accumulated), " (cached)" if from_cache else "",
            )
            progress.emit(StepCompleted(
                step=attempt, radius=radius, result_count=len(accumulated),
                new_count=new_count, from_cache=from_cache,
            ))

            if len(accumulated) >= cfg.target_gather_size:
                break

        failed = len(radii) - succeeded
        if succeeded == 0 or not accumulated:
            self.state = ExpansionState.error
            progress.emit(SearchFinished(step=len(radii) - 1, result_count=0, succeeded=False))
            raise DiscoveryFailed(
                attempts=len(radii),
                last_error=errors[-1] if errors else None,
                radii=radii,
            )

        self.state = ExpansionState.complete
        progress.emit(SearchFinished(
            step=len(radii) - 1, result_count=len(accumulated), succeeded=True,
        ))
        return ExpansionResult(
            candidates=list(accumulated.values()),
            state=self.state,
            radii=radii,
            failed_attempts=failed,
            errors=errors,
        )

    def _cached_batch(self, key: str) -> list[Candidate] | None:
        if self._cache is None:
            return None
        cached = self._cache.get(key)
        if cached is NOT_FOUND:
            return None
        try:
            return [Candidate.model_validate(item) for item in cached]
        except (TypeError, ValidationError):
            logger.warning("Ignoring unreadable cached batch %s", key, exc_info=True)
            return None

    async def _to_candidates(self, raw: Iterable[PlaceRecord | dict[str, Any]]) -> list[Candidate]:
        records: list[PlaceRecord] = []
        for item in raw:
            try:
                records.append(item if isinstance(item, PlaceRecord) else PlaceRecord.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed place record", exc_info=True)
        try:
            scores = await asyncio.wait_for(
                asyncio.gather(*(self._score(record) for record in records)),
                timeout=self.config.request_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Mood scoring of %d places timed out, using defaults", len(records),
            )
            scores = [None] * len(records)
        return [Candidate.from_record(record, score) for record, score in zip(records, scores)]

    async def _score(self, record: PlaceRecord) -> float | None:
        if self._scorer is None:
            return None
        try:
            score = self._scorer(record)
            if inspect.isawaitable(score):
                score = await score
            return None if score is None else float(score)
        except Exception:
            logger.warning("Mood scorer failed for %s, using default", record.id, exc_info=True)
            return None
