"""
Core configuration module for environment variables and settings management.

Design choices:
- Uses python-dotenv to load environment variables from a .env file when present.
- Avoids pydantic BaseSettings; a plain BaseModel is filled from os.getenv in get_settings().
- Provides a single get_settings() accessor with LRU caching to avoid repeated parsing.
- Every provider model id is overridable on its own so planning, evaluation and research can be tuned independently.
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return float(raw)


class Settings(BaseModel):
    environment: str = "dev"

    # Primary generative provider (pathway planning, structured extraction, research fallback)
    openai_api_key: Optional[str] = None
    openai_api_base: str = "https://api.openai.com/v1"
    planner_model: str = "o3-mini-2025-01-31"
    evaluation_model: str = "o4-mini-2025-04-16"
    research_fallback_model: str = "gpt-4o-2024-08-06"

    # Search provider; when the key is missing, program research is simulated
    perplexity_api_key: Optional[str] = None
    perplexity_api_base: str = "https://api.perplexity.ai"
    search_model: str = "sonar-pro"

    # Timeouts (seconds). None means the HTTP client's default applies.
    search_timeout_seconds: float = 15.0
    generative_timeout_seconds: Optional[float] = None
    orchestration_timeout_seconds: float = 50.0
    research_timeout_seconds: float = 25.0
    # Longer than the research sub-deadline: search retries plus the generative tier and extraction must fit
    pathway_timeout_seconds: float = 45.0

    # Pipeline limits
    max_research_pathways: int = 3
    max_concurrent_research: int = 3
    max_recommendations: int = 10
    search_max_attempts: int = 2
    feedback_context_limit: int = 5

    # HTTP layer
    api_prefix: str = "/api"
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    @property
    def search_enabled(self) -> bool:
        return bool(self.perplexity_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load environment variables (from .env if present) and build a Settings object.

    This function is cached so app startup and repeated imports are efficient.
    """
    load_dotenv()  # no-op if .env not present
    return Settings(
        environment=os.getenv("ENVIRONMENT", "dev"),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_api_base=os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1"),
        planner_model=os.getenv("PLANNER_MODEL", "o3-mini-2025-01-31"),
        evaluation_model=os.getenv("EVALUATION_MODEL", "o4-mini-2025-04-16"),
        research_fallback_model=os.getenv("RESEARCH_FALLBACK_MODEL", "gpt-4o-2024-08-06"),
        perplexity_api_key=os.getenv("PERPLEXITY_API_KEY") or None,
        perplexity_api_base=os.getenv("PERPLEXITY_API_BASE", "https://api.perplexity.ai"),
        search_model=os.getenv("SEARCH_MODEL", "sonar-pro"),
        search_timeout_seconds=float(os.getenv("SEARCH_TIMEOUT_SECONDS", "15")),
        generative_timeout_seconds=_optional_float("GENERATIVE_TIMEOUT_SECONDS"),
        orchestration_timeout_seconds=float(os.getenv("ORCHESTRATION_TIMEOUT_SECONDS", "50")),
        research_timeout_seconds=float(os.getenv("RESEARCH_TIMEOUT_SECONDS", "25")),
        pathway_timeout_seconds=float(os.getenv("PATHWAY_TIMEOUT_SECONDS", "45")),
        max_research_pathways=int(os.getenv("MAX_RESEARCH_PATHWAYS", "3")),
        max_concurrent_research=int(os.getenv("MAX_CONCURRENT_RESEARCH", "3")),
        max_recommendations=int(os.getenv("MAX_RECOMMENDATIONS", "10")),
        search_max_attempts=int(os.getenv("SEARCH_MAX_ATTEMPTS", "2")),
        feedback_context_limit=int(os.getenv("FEEDBACK_CONTEXT_LIMIT", "5")),
        api_prefix=os.getenv("API_PREFIX", "/api"),
        cors_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
