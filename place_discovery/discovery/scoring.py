"""
Ranking heuristics for candidates that survived filtering.

composite = 0.7 * relevance + 0.3 * quality

Relevance rewards rating, atmosphere keyword overlap, social-context and
time-of-day fit, "new"/"trending" tags and popularity, and is penalised by
distance from the search centre. Quality rewards rating, review volume on a
log scale and data completeness.
"""
from __future__ import annotations

import math

import numpy as np

from .config import DEFAULT_RELAXATION_CONFIG, RelaxationConfig
from .models import Candidate, Category, FilterSpec, LatLng, MoodCategory, SocialContext, TimeOfDay

EARTH_RADIUS_KM = 6371.0

MOOD_KEYWORDS: dict[MoodCategory, set[str]] = {
    MoodCategory.chill: {"cozy", "quiet", "relaxing", "peaceful", "tranquil"},
    MoodCategory.neutral: {"vibrant", "lively", "moderate", "balanced", "casual"},
    MoodCategory.hype: {"exciting", "adventurous", "thrilling", "energetic", "dynamic"},
}

SOCIAL_KEYWORDS: dict[SocialContext, set[str]] = {
    SocialContext.solo: {"quiet", "peaceful", "individual", "solo", "study", "reading"},
    SocialContext.with_bae: {"romantic", "intimate", "couple", "date", "cozy", "wine"},
    SocialContext.barkada: {"group", "friends", "party", "sharing", "social", "celebration"},
}

SOCIAL_PLACE_TYPES: dict[SocialContext, dict[Category, set[str]]] = {
    SocialContext.solo: {
        Category.food: {"cafe", "coffee_shop", "book_store"},
        Category.activity: {"museum", "art_gallery", "park", "gym", "spa"},
        Category.something_new: {"library", "book_store", "art_gallery", "museum"},
    },
    SocialContext.with_bae: {
        Category.food: {"restaurant", "cafe", "wine_bar"},
        Category.activity: {"movie_theater", "park", "spa", "art_gallery"},
        Category.something_new: {"art_gallery", "museum", "cultural_center"},
    },
    SocialContext.barkada: {
        Category.food: {"restaurant", "bar", "karaoke", "buffet"},
        Category.activity: {"bowling_alley", "karaoke", "amusement_park", "arcade"},
        Category.something_new: {"escape_room", "cooking_class", "comedy_club"},
    },
}

TIME_PLACE_TYPES: dict[TimeOfDay, set[str]] = {
    TimeOfDay.morning: {"cafe", "coffee_shop", "bakery", "breakfast_restaurant", "park"},
    TimeOfDay.afternoon: {"restaurant", "museum", "park", "shopping_mall"},
    TimeOfDay.night: {"bar", "night_club", "restaurant", "movie_theater", "karaoke"},
}


def haversine_km(a: LatLng, b: LatLng) -> float:
    lat1, lng1, lat2, lng2 = map(math.radians, (a.lat, a.lng, b.lat, b.lng))
    h = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lng2 - lng1) / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def atmosphere_keywords(filters: FilterSpec, include_social: bool = True) -> set[str]:
    keywords = set(MOOD_KEYWORDS[filters.mood_category])
    if include_social and filters.social_context is not None:
        keywords |= SOCIAL_KEYWORDS[filters.social_context]
    return keywords


def relevance_score(candidate: Candidate, filters: FilterSpec, boosts: bool = True) -> float:
    """Relevance of *candidate* to the query; social/time only count when *boosts*."""
    tags = {t.lower() for t in candidate.tags}
    score = 0.0

    if candidate.rating:
        score += candidate.rating / 5 * 30

    score += len(tags & atmosphere_keywords(filters, include_social=boosts)) * 5

    if boosts and filters.social_context is not None:
        social_types = SOCIAL_PLACE_TYPES[filters.social_context][filters.category]
        if filters.social_context.value in tags or tags & social_types:
            score += 15

    if boosts and filters.time_of_day is not None:
        matches = len(tags & TIME_PLACE_TYPES[filters.time_of_day])
        score += min(matches * 10, 20)

    if filters.category is Category.something_new and "new" in tags:
        score += 25
    if "trending" in tags:
        score += 20

    if candidate.location is not None:
        score -= min(haversine_km(filters.user_location, candidate.location), 15.0)

    if candidate.review_count:
        score += min(float(np.log10(candidate.review_count)) * 5, 10.0)

    return max(score, 0.0)


def quality_score(candidate: Candidate) -> float:
    score = 0.0
    if candidate.rating:
        score += candidate.rating / 5 * 40
    if candidate.review_count:
        score += min(float(np.log10(candidate.review_count + 1)) * 10, 20.0)
    if candidate.address:
        score += 5
    if candidate.has_opening_hours:
        score += 5
    return score


def composite_score(
    candidate: Candidate,
    filters: FilterSpec,
    boosts: bool = True,
    config: RelaxationConfig = DEFAULT_RELAXATION_CONFIG,
) -> float:
    return (
        config.relevance_weight * relevance_score(candidate, filters, boosts)
        + config.quality_weight * quality_score(candidate)
    )
