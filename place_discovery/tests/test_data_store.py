from __future__ import annotations

import asyncio

from place_discovery.discovery.config import CATEGORY_PLACE_TYPES
from place_discovery.discovery.data_store import get_curated_places
from place_discovery.discovery.models import Category, FilterSpec, LatLng, PlaceRecord, PriceBounds

BGC = LatLng(lat=14.5509, lng=121.0503)


def test_curated_places_load():
    curated = get_curated_places()
    assert len(curated) > 20
    assert {"types_list", "tags_list"} <= set(curated.df.columns)


def test_search_filters_by_radius_and_type():
    curated = get_curated_places()
    records = asyncio.run(curated.search(BGC, 1000, CATEGORY_PLACE_TYPES[Category.food]))
    ids = {r["id"] for r in records}

    assert "cur_food_001" in ids
    assert "cur_food_012" not in ids  # Intramuros, too far
    assert "cur_new_002" not in ids  # book store, not food
    for record in records:
        PlaceRecord.model_validate(record)


def test_search_respects_price_bounds():
    curated = get_curated_places()
    records = asyncio.run(
        curated.search(BGC, 1000, CATEGORY_PLACE_TYPES[Category.food], PriceBounds(min=1, max=2)),
    )
    ids = {r["id"] for r in records}
    assert "cur_food_005" in ids
    assert "cur_food_001" not in ids  # price level 3


def test_wider_radius_finds_more():
    curated = get_curated_places()
    types = CATEGORY_PLACE_TYPES[Category.activity]
    near = asyncio.run(curated.search(BGC, 2000, types))
    far = asyncio.run(curated.search(BGC, 20000, types))
    assert len(far) > len(near)


def test_fallback_sorted_by_rating_for_category():
    curated = get_curated_places()
    filters = FilterSpec(category=Category.activity, user_location=BGC)
    places = curated.fallback(filters)

    assert places
    assert places[0].id == "cur_act_001"
    ratings = [p.rating for p in places]
    assert ratings == sorted(ratings, reverse=True)
    assert all(p.id.startswith("cur_act_") for p in places)
