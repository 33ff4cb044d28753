from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from ..analytics.store import record_event
from ..cache.result_cache import NOT_FOUND, FilterPredicate, ResultCache
from .config import DEFAULT_EXPANSION_CONFIG, ExpansionConfig, radius_for_distance
from .errors import DiscoveryFailed
from .expansion import MoodScorer, SearchExpansionController, SearchFunction
from .models import (
    Candidate,
    ExpansionSummary,
    FilterSpec,
    Outcome,
    PoolStats,
    RecommendationResponse,
    RelaxationSummary,
)
from .pool import CandidatePool
from .progress import ProgressCallback, ProgressReporter
from .relaxation import FilterRelaxationEngine

logger = logging.getLogger(__name__)

FallbackFunction = Callable[[FilterSpec], list[Candidate]]
EventRecorder = Callable[[str, dict[str, Any]], None]


@dataclass
class _Ranked:
    candidates: list[Candidate]
    scores: dict[str, float] = field(default_factory=dict)
    relaxation: RelaxationSummary | None = None
    expansion: ExpansionSummary | None = None


class DiscoveryService:
    """Answer "recommend me a place" requests for a filter set.

    Lookup order per request:

    1. the candidate pool, while it still holds enough unseen places;
    2. the response cache (ranked survivors of an earlier search);
    3. a fresh radius-expanding search, relaxed down to the requested
       minimum and stored in both of the above.

    The chosen place is marked used and dropped from its pool entry, so the
    next request for the same filters returns something else.
    """

    def __init__(
        self,
        search: SearchFunction,
        cache: ResultCache | None = None,
        pool: CandidatePool | None = None,
        engine: FilterRelaxationEngine | None = None,
        scorer: MoodScorer | None = None,
        fallback: FallbackFunction | None = None,
        expansion_config: ExpansionConfig = DEFAULT_EXPANSION_CONFIG,
        rng: random.Random | None = None,
        recorder: EventRecorder = record_event,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.cache = cache if cache is not None else ResultCache()
        self.pool = pool if pool is not None else CandidatePool(rng=rng)
        self.engine = engine or FilterRelaxationEngine()
        self.expander = SearchExpansionController(
            search, cache=self.cache, scorer=scorer, config=expansion_config, rng=rng,
        )
        self._fallback = fallback
        self._record = recorder
        self._clock = clock

    @staticmethod
    def response_key(filter_key: str, base_radius: int, min_results: int) -> str:
        return f"response:{filter_key}:r{base_radius}:m{min_results}"

    async def request_recommendation(
        self,
        filters: FilterSpec | dict[str, Any],
        min_results: int,
        on_progress: ProgressCallback | None = None,
    ) -> RecommendationResponse:
        spec = FilterSpec.parse(filters)
        if min_results < 1:
            raise ValueError(f"min_results must be >= 1, got {min_results}")

        started = self._clock()
        filter_key = spec.cache_key()
        progress = ProgressReporter(on_progress)

        if filter_key in self.pool and not self.pool.needs_refresh(filter_key):
            selected = self._take(filter_key)
            if selected is not None:
                logger.debug("Served %s from pool", filter_key)
                response = RecommendationResponse(
                    filter_key=filter_key,
                    selected=selected,
                    outcome=Outcome.complete,
                    pool=self.pool.stats(filter_key),
                    from_cache=True,
                )
                self._emit(spec, response, "pool", started)
                return response

        response_key = self.response_key(
            filter_key, radius_for_distance(spec.distance_range), min_results,
        )
        ranked = self._cached_response(response_key)
        source = "cache"
        if ranked is None:
            source = "search"
            try:
                ranked = await self._search(spec, min_results, progress)
            except DiscoveryFailed as exc:
                if self._fallback is None:
                    self._emit_failure(spec, exc, started)
                    raise
                logger.warning("Discovery failed for %s, using fallback list: %s", filter_key, exc)
                return self._serve_fallback(spec, filter_key, exc, progress, started)
            self._store_response(response_key, spec, ranked)

        self.pool.store_ranked_results(
            filter_key, ranked.candidates, ranked.scores, filters=spec.model_dump(mode="json"),
        )
        selected = self._take(filter_key)

        found = ranked.relaxation.result_count if ranked.relaxation else len(ranked.candidates)
        response = RecommendationResponse(
            filter_key=filter_key,
            selected=selected,
            outcome=Outcome.complete if found >= min_results else Outcome.partial,
            pool=self.pool.stats(filter_key),
            relaxation=ranked.relaxation,
            expansion=ranked.expansion,
            from_cache=source == "cache",
            progress=progress.as_dicts(),
        )
        self._emit(spec, response, source, started)
        return response

    def get_next_from_pool(self, filter_key: str) -> Candidate | None:
        """Next pick for an already-discovered filter set; never searches."""
        if filter_key not in self.pool:
            return None
        return self._take(filter_key)

    def pool_stats(self, filter_key: str) -> PoolStats:
        return self.pool.stats(filter_key)

    def invalidate(self, predicate: FilterPredicate) -> int:
        """Drop cached results and pool entries whose filters match *predicate*."""
        removed = self.cache.invalidate(predicate)
        dropped = self.pool.discard_matching(predicate)
        logger.info("Invalidated %d cache entries and %d pool entries", removed, dropped)
        return removed

    def close(self) -> None:
        self.cache.close()

    async def _search(
        self, spec: FilterSpec, min_results: int, progress: ProgressReporter,
    ) -> _Ranked:
        expansion = await self.expander.expand(spec, progress)
        relaxed = self.engine.relax(expansion.candidates, spec, min_results)
        limit = self.pool.config.max_candidates
        kept = relaxed.candidates[:limit]
        return _Ranked(
            candidates=kept,
            scores={c.id: relaxed.scores.get(c.id, 0.0) for c in kept},
            relaxation=relaxed.summary(),
            expansion=expansion.summary(),
        )

    def _take(self, filter_key: str) -> Candidate | None:
        selected = self.pool.select_next(filter_key)
        if selected is not None:
            self.pool.mark_used(selected.id)
            self.pool.remove_used(filter_key, selected.id)
        return selected

    def _cached_response(self, key: str) -> _Ranked | None:
        payload = self.cache.get(key)
        if payload is NOT_FOUND:
            return None
        try:
            return _Ranked(
                candidates=[Candidate.model_validate(c) for c in payload["candidates"]],
                scores={str(k): float(v) for k, v in payload.get("scores", {}).items()},
                relaxation=RelaxationSummary.model_validate(payload["relaxation"]),
                expansion=ExpansionSummary.model_validate(payload["expansion"]),
            )
        except (KeyError, TypeError, ValueError, ValidationError):
            logger.warning("Ignoring unreadable cached response %s", key, exc_info=True)
            return None

    def _store_response(self, key: str, spec: FilterSpec, ranked: _Ranked) -> None:
        payload = {
            "candidates": [c.model_dump(mode="json") for c in ranked.candidates],
            "scores": ranked.scores,
            "relaxation": ranked.relaxation.model_dump(mode="json") if ranked.relaxation else None,
            "expansion": ranked.expansion.model_dump(mode="json") if ranked.expansion else None,
        }
        self.cache.set(
            key, payload, filters=spec.model_dump(mode="json"), complexity=spec.complexity(),
        )

    def _serve_fallback(
        self,
        spec: FilterSpec,
        filter_key: str,
        exc: DiscoveryFailed,
        progress: ProgressReporter,
        started: float,
    ) -> RecommendationResponse:
        # Fallback places never enter the pool, so the next request searches again.
        candidates = list(self._fallback(spec)) if self._fallback else []
        fresh = [c for c in candidates if c.id not in self.pool.used_ids]
        selected = (fresh or candidates or [None])[0]
        if selected is not None:
            self.pool.mark_used(selected.id)
        response = RecommendationResponse(
            filter_key=filter_key,
            selected=selected,
            outcome=Outcome.fallback,
            pool=self.pool.stats(filter_key),
            expansion=ExpansionSummary(
                state="error",
                attempts=exc.attempts,
                failed_attempts=exc.attempts,
                radii=list(exc.radii),
                final_radius=exc.radii[-1] if exc.radii else 0,
                total_found=0,
                expanded=exc.attempts > 1,
            ),
            progress=progress.as_dicts(),
        )
        self._emit(spec, response, "fallback", started)
        return response

    def _emit(
        self, spec: FilterSpec, response: RecommendationResponse, source: str, started: float,
    ) -> None:
        self._record("discovery", {
            "filter_key": response.filter_key,
            "category": spec.category.value,
            "budget": spec.budget.value if spec.budget else None,
            "source": source,
            "cache_hit": source in ("pool", "cache"),
            "outcome": response.outcome.value,
            "stage": response.relaxation.stage.value if response.relaxation else None,
            "attempts": response.expansion.attempts if response.expansion else 0,
            "final_radius": response.expansion.final_radius if response.expansion else None,
            "selected_id": response.selected.id if response.selected else None,
            "response_time_ms": round((self._clock() - started) * 1000, 1),
        })

    def _emit_failure(self, spec: FilterSpec, exc: DiscoveryFailed, started: float) -> None:
        self._record("discovery", {
            "filter_key": spec.cache_key(),
            "category": spec.category.value,
            "budget": spec.budget.value if spec.budget else None,
            "source": "search",
            "cache_hit": False,
            "outcome": "failed",
            "stage": None,
            "attempts": exc.attempts,
            "final_radius": exc.radii[-1] if exc.radii else None,
            "selected_id": None,
            "response_time_ms": round((self._clock() - started) * 1000, 1),
        })
