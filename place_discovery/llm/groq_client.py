from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable

from groq import Groq

from ..discovery.models import PlaceRecord
from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You rate the atmosphere of places in Metro Manila. "
    "Given a place, estimate how energetic it feels on a 0-100 scale: "
    "0-30 is chill (quiet, relaxing), 31-69 is neutral, "
    "70-100 is hype (loud, crowded, party).\n\n"
    "Return ONLY valid JSON in this exact format:\n"
    '{"mood_score": <integer 0-100>}'
)


def _build_user_message(record: PlaceRecord) -> str:
    lines = ["## Place"]
    lines.append(f"- Name: {record.name or record.id}")
    if record.tags:
        lines.append(f"- Tags: {', '.join(sorted(record.tags))}")
    if record.rating is not None:
        lines.append(f"- Rating: {record.rating} ({record.review_count or 0} reviews)")
    if record.price_level is not None:
        lines.append(f"- Price level: {record.price_level}/4")
    if record.address:
        lines.append(f"- Address: {record.address}")
    return "\n".join(lines)


def score_mood(record: PlaceRecord, config: LLMConfig = DEFAULT_LLM_CONFIG) -> float | None:
    """
    Ask the Groq LLM how hype or chill a place feels.

    Returns a score clamped to 0-100, or None on any failure (timeout, bad
    JSON, API error) so the caller can keep its default.
    """
    if not config.enabled or not config.api_key:
        return None

    try:
        client = Groq(api_key=config.api_key, timeout=config.timeout)
        response = client.chat.completions.create(
            model=config.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": _build_user_message(record)},
            ],
            max_tokens=config.max_tokens,
            temperature=0.0,
            response_format={"type": "json_object"},
        )

        content = response.choices[0].message.content or ""
        parsed = json.loads(content)
        score = float(parsed["mood_score"])
        return max(0.0, min(100.0, score))

    except Exception:
        logger.warning("Groq mood scoring failed for %s, keeping default", record.id, exc_info=True)
        return None


def build_mood_scorer(
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> Callable[[PlaceRecord], Awaitable[float | None]] | None:
    """Scorer for the discovery service, or None when the LLM is not configured."""
    if not config.enabled or not config.api_key:
        return None

    async def scorer(record: PlaceRecord) -> float | None:
        # Places that already carry a score keep it.
        if record.mood_score is not None:
            return record.mood_score
        return await asyncio.to_thread(score_mood, record, config)

    return scorer
