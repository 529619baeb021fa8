"""Runtime configuration for the diligence scoring pipeline.

Every knob is read from the environment with a safe default and bundled
into a ``ScoringConfig`` that is passed explicitly into the pipeline.
Nothing in the engine reads ``os.environ`` after construction.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ScoringConfig:
    """Tunable settings for one scoring run."""

    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    request_timeout: float = 90.0
    max_completion_tokens: int = 8000

    # Prompt sizing
    compact_prompt_chars: int = 110_000
    fact_extraction_max_chars: int = 100_000

    # Capacity retry (token / rate limit) with exponential backoff
    retry_max_attempts: int = 3
    retry_base_delay: float = 4.0
    retry_multiplier: float = 2.0
    retry_max_delay: float = 30.0

    # Chunked fallback
    chunk_delay_seconds: float = 0.3

    # Optional passes
    investor_question_pass: bool = False
    summarize_long_notes: bool = False

    @classmethod
    def from_env(cls) -> "ScoringConfig":
        """Build a config from environment variables."""
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o").strip(),
            request_timeout=_env_float("OPENAI_REQUEST_TIMEOUT", 90.0),
            max_completion_tokens=_env_int("OPENAI_MAX_COMPLETION_TOKENS", 8000),
            compact_prompt_chars=_env_int("DILIGENCE_COMPACT_PROMPT_CHARS", 110_000),
            fact_extraction_max_chars=_env_int("DILIGENCE_FACT_EXTRACTION_MAX_CHARS", 100_000),
            retry_max_attempts=_env_int("DILIGENCE_RETRY_MAX_ATTEMPTS", 3),
            retry_base_delay=_env_float("DILIGENCE_RETRY_BASE_DELAY", 4.0),
            retry_multiplier=_env_float("DILIGENCE_RETRY_MULTIPLIER", 2.0),
            retry_max_delay=_env_float("DILIGENCE_RETRY_MAX_DELAY", 30.0),
            chunk_delay_seconds=_env_float("DILIGENCE_CHUNK_DELAY_SECONDS", 0.3),
            investor_question_pass=_env_bool("DILIGENCE_INVESTOR_QUESTION_PASS", False),
            summarize_long_notes=_env_bool("DILIGENCE_SUMMARIZE_LONG_NOTES", False),
        )


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./diligence.db")
