from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class LLMConfig:
    api_key: str = os.getenv("GROQ_API_KEY", "")
    model: str = os.getenv("DISCOVERY_MOOD_MODEL", "llama-3.1-8b-instant")
    timeout: float = 10.0
    max_tokens: int = 64
    enabled: bool = os.getenv("DISCOVERY_MOOD_SCORING", "1") != "0"


DEFAULT_LLM_CONFIG = LLMConfig()
