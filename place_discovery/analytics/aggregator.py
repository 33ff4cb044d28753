from __future__ import annotations

from collections import Counter
from typing import Any


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    requests = [e for e in events if e["type"] == "discovery"]
    total = len(requests)

    # Average response time
    times = [r["response_time_ms"] for r in requests if "response_time_ms" in r]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    # Where answers came from
    source_counter: Counter[str] = Counter(r.get("source", "unknown") for r in requests)

    # Outcomes
    outcome_counter: Counter[str] = Counter(r.get("outcome", "unknown") for r in requests)

    # Relaxation stage reached
    stage_counter: Counter[str] = Counter(
        r["stage"] for r in requests if r.get("stage")
    )

    # Top categories
    category_counter: Counter[str] = Counter(r.get("category", "unknown") for r in requests)
    top_categories = [{"name": n, "count": c} for n, c in category_counter.most_common(10)]

    # Expansion effort, only for requests that actually searched
    searched = [r for r in requests if r.get("attempts")]
    avg_attempts = (
        round(sum(r["attempts"] for r in searched) / len(searched), 2) if searched else 0.0
    )
    expanded = sum(1 for r in searched if r["attempts"] > 1)
    failures = sum(1 for r in requests if r.get("outcome") in ("fallback", "failed"))

    # Cache stats
    cache_hits = sum(1 for r in requests if r.get("cache_hit"))
    cache_misses = total - cache_hits

    return {
        "total_requests": total,
        "avg_response_time_ms": avg_time,
        "top_categories": top_categories,
        "sources": dict(source_counter),
        "outcomes": dict(outcome_counter),
        "relaxation_stages": dict(stage_counter),
        "expansion": {
            "searches": len(searched),
            "avg_attempts": avg_attempts,
            "expanded": expanded,
            "expansion_rate": round(expanded / len(searched) * 100, 1) if searched else 0.0,
        },
        "failure_rate": round(failures / total * 100, 1) if total else 0.0,
        "cache_stats": {
            "hits": cache_hits,
            "misses": cache_misses,
            "hit_rate": round(cache_hits / total * 100, 1) if total else 0.0,
        },
    }
