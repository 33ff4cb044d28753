from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI, HTTPException, Request

from .analytics.aggregator import compute_analytics
from .analytics.store import get_events
from .cache.config import DEFAULT_CACHE_CONFIG
from .cache.models import CacheStats
from .cache.persistence import FileSnapshotStore
from .cache.result_cache import FilterPredicate, ResultCache, match_all, match_budget, match_category
from .discovery.config import CATEGORY_PLACE_TYPES, RADIUS_STEPS
from .discovery.data_store import get_curated_places
from .discovery.errors import DiscoveryFailed
from .discovery.models import (
    Budget,
    Candidate,
    Category,
    InvalidateRequest,
    PoolStats,
    RecommendationRequest,
    RecommendationResponse,
    SocialContext,
    TimeOfDay,
)
from .discovery.service import DiscoveryService
from .llm.groq_client import build_mood_scorer

logger = logging.getLogger(__name__)


def build_service() -> DiscoveryService:
    """Wire the service against the curated places list and, if configured, Groq."""
    cache_dir = os.environ.get("DISCOVERY_CACHE_DIR")
    store = FileSnapshotStore(cache_dir) if cache_dir else None
    curated = get_curated_places()
    return DiscoveryService(
        search=curated.search,
        cache=ResultCache(DEFAULT_CACHE_CONFIG, store=store),
        scorer=build_mood_scorer(),
        fallback=curated.fallback,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    service = build_service()
    service.cache.start_sweeper()
    app.state.discovery = service
    logger.info("Discovery service ready")
    try:
        yield
    finally:
        service.close()


app = FastAPI(title="Place Discovery API", version="1.0.0", lifespan=lifespan)


def get_service(request: Request) -> DiscoveryService:
    return request.app.state.discovery


def _invalidation_predicate(body: InvalidateRequest) -> FilterPredicate:
    checks: list[FilterPredicate] = []
    if body.category is not None:
        checks.append(match_category(body.category.value))
    if body.budget is not None:
        checks.append(match_budget(body.budget.value))
    if not checks:
        return match_all()
    return lambda filters: all(check(filters) for check in checks)


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metadata")
def metadata() -> dict:
    return {
        "categories": [c.value for c in Category],
        "budgets": [b.value for b in Budget],
        "social_contexts": [s.value for s in SocialContext],
        "times_of_day": [t.value for t in TimeOfDay],
        "place_types": {c.value: types for c, types in CATEGORY_PLACE_TYPES.items()},
        "distance_steps_km": [km for km, _ in RADIUS_STEPS],
    }


# ── Discovery endpoints ──────────────────────────────────────────────────


@app.post("/recommendations", response_model=RecommendationResponse)
async def recommendations(
    body: RecommendationRequest,
    service: DiscoveryService = Depends(get_service),
) -> RecommendationResponse:
    try:
        return await service.request_recommendation(body.filters, body.min_results)
    except DiscoveryFailed as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.get("/recommendations/{filter_key}/next", response_model=Candidate)
def next_recommendation(
    filter_key: str,
    service: DiscoveryService = Depends(get_service),
) -> Candidate:
    if filter_key not in service.pool:
        raise HTTPException(status_code=404, detail="No pool for these filters")
    selected = service.get_next_from_pool(filter_key)
    if selected is None:
        raise HTTPException(status_code=404, detail="Pool exhausted")
    return selected


@app.get("/pool/{filter_key}/stats", response_model=PoolStats)
def pool_stats(
    filter_key: str,
    service: DiscoveryService = Depends(get_service),
) -> PoolStats:
    if filter_key not in service.pool:
        raise HTTPException(status_code=404, detail="No pool for these filters")
    return service.pool_stats(filter_key)


# ── Admin endpoints ──────────────────────────────────────────────────────


@app.get("/cache/stats", response_model=CacheStats)
def cache_stats(service: DiscoveryService = Depends(get_service)) -> CacheStats:
    return service.cache.stats()


@app.post("/cache/invalidate")
def cache_invalidate(
    body: InvalidateRequest,
    service: DiscoveryService = Depends(get_service),
) -> dict:
    removed = service.invalidate(_invalidation_predicate(body))
    return {"status": "ok", "removed": removed}


@app.get("/analytics")
def analytics() -> dict:
    return compute_analytics(get_events())
