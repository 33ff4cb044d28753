from __future__ import annotations

import pytest

from place_discovery.discovery.errors import InvalidFilterSpec
from place_discovery.discovery.models import FilterSpec, MoodCategory

LOCATION = {"lat": 14.5547, "lng": 121.0244}


def test_complexity_counts_preferences_but_not_distance():
    bare = FilterSpec.model_validate({"category": "food", "user_location": LOCATION})
    assert bare.complexity() == 2

    far = FilterSpec.model_validate({"category": "food", "user_location": LOCATION, "distance_range": 80})
    assert far.complexity() == 2

    full = FilterSpec.model_validate({
        "category": "food", "mood": 90, "budget": "PP", "social_context": "barkada",
        "time_of_day": "night", "user_location": LOCATION,
    })
    assert full.complexity() == 5


def test_cache_key_stable_and_distinct():
    a = FilterSpec.model_validate({"category": "food", "mood": 40, "user_location": LOCATION})
    b = FilterSpec.model_validate({"mood": 40, "user_location": LOCATION, "category": "food"})
    c = FilterSpec.model_validate({"category": "food", "mood": 41, "user_location": LOCATION})
    assert a.cache_key() == b.cache_key()
    assert a.cache_key() != c.cache_key()
    assert len(a.cache_key()) == 16


def test_mood_category_bands():
    assert FilterSpec.model_validate({"category": "food", "mood": 30, "user_location": LOCATION}).mood_category is MoodCategory.chill
    assert FilterSpec.model_validate({"category": "food", "mood": 31, "user_location": LOCATION}).mood_category is MoodCategory.neutral
    assert FilterSpec.model_validate({"category": "food", "mood": 70, "user_location": LOCATION}).mood_category is MoodCategory.hype


def test_parse_rejects_bad_values():
    with pytest.raises(InvalidFilterSpec) as exc_info:
        FilterSpec.parse({"category": "shopping", "user_location": LOCATION})
    assert exc_info.value.errors
