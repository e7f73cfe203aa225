"""
Ordered provider fallback for raw program research.

Tier 1 is the web-search provider (retried through tenacity on rate limiting or a
truncated answer). Tier 2 is the generative provider with a research framing. If
both tiers fail, ResearchUnavailableError names each tier's cause; the simulated
tier is applied by the caller.
"""
from __future__ import annotations

import logging
import re
import time
from typing import List, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from core.config import Settings
from core.errors import AdvisorError, ProviderError, ProviderRateLimitError, ResearchUnavailableError
from services.metrics_service import ComponentType, MetricsCollector, MetricsContext
from services.provider_client import OpenAIClient, PerplexityClient

logger = logging.getLogger("research")

PROGRAM_LIST_PREFIX = "PROGRAM LIST:\n\n"

NARROWING_SUFFIX = (
    "\n\nIMPORTANT: Focus on providing COMPLETE details for 3-5 programs rather than "
    "partial information about many programs."
)

GENERATIVE_RESEARCH_SYSTEM_PROMPT = """You are an expert educational researcher with deep knowledge of global higher education programs, universities, and admission requirements.
Your task is to provide comprehensive details on specific educational programs matching the user's query.

Follow these key guidelines:
1. Be thorough and provide complete information for at least 5 distinct programs
2. Include exact URLs to program websites
3. Include specific admission requirements, costs, deadlines, and duration
4. Include scholarship and financial aid information when available
5. Structure your response as a clearly numbered list of programs (1, 2, 3, etc.)
6. Provide comprehensive, detailed information about each program
7. Never truncate or abbreviate your response"""

_LISTING_PATTERN = re.compile(r"\d+\.\s+|Program\s+\d+:|^##\s+", re.MULTILINE)
_FUNDING_TERMS = ("scholarship", "financial aid", "funding")
_TRUNCATED_TAIL_PATTERNS = (
    re.compile(r"\d+\.\s*$"),
    re.compile(r"-\s*$"),
    re.compile(r"[,:;]\s*$"),
)


class TruncatedResponseError(ProviderError):
    """The search answer looks cut off mid-list."""


def count_program_listings(text: str) -> int:
    return len(_LISTING_PATTERN.findall(text))


def detect_truncated_response(text: str) -> bool:
    """Heuristic completeness check for a search answer."""
    listings = count_program_listings(text)
    lowered = text.lower()
    has_funding = any(term in lowered for term in _FUNDING_TERMS)
    logger.debug(f"Truncation check: {listings} listings, funding section: {has_funding}")
    if listings < 5 or not has_funding:
        return True
    tail = text[-100:]
    return any(pattern.search(tail) for pattern in _TRUNCATED_TAIL_PATTERNS)


class FallbackResearchInvoker:
    """Search provider first, generative provider second."""

    def __init__(
        self,
        search_client: PerplexityClient,
        generative_client: OpenAIClient,
        settings: Settings,
        metrics: Optional[MetricsCollector] = None,
        retry_wait_seconds: float = 1.0,
    ):
        self.search_client = search_client
        self.generative_client = generative_client
        self.settings = settings
        self.metrics = metrics
        self.retry_wait_seconds = retry_wait_seconds

    async def research(self, query: str) -> str:
        causes: List[str] = []

        try:
            async with MetricsContext(ComponentType.SEARCH, "search", collector=self.metrics, provider="perplexity"):
                return await self._search(query)
        except AdvisorError as exc:
            logger.warning(
                f"Search tier failed, falling back to generative research: {exc}",
                extra={"provider": "perplexity", "error_type": type(exc).__name__},
            )
            causes.append(f"search: {exc}")

        try:
            async with MetricsContext(ComponentType.GENERATIVE, "research", collector=self.metrics, provider="openai"):
                text = await self._generate(query)
            return PROGRAM_LIST_PREFIX + text
        except AdvisorError as exc:
            logger.error(
                f"Generative research tier failed: {exc}",
                extra={"provider": "openai", "error_type": type(exc).__name__},
            )
            causes.append(f"generative: {exc}")

        raise ResearchUnavailableError("All research providers failed (" + "; ".join(causes) + ")", provider="research")

    async def _search(self, query: str) -> str:
        narrowed = False

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, self.settings.search_max_attempts)),
            retry=retry_if_exception_type((ProviderRateLimitError, TruncatedResponseError)),
            wait=wait_fixed(self.retry_wait_seconds),
            reraise=True,
        ):
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                attempt_query = query + NARROWING_SUFFIX if narrowed else query
                start = time.perf_counter()
                text = await self.search_client.search(attempt_query)
                logger.info(
                    f"Search attempt {attempt_number} returned {len(text)} chars",
                    extra={
                        "provider": "perplexity",
                        "attempt": attempt_number,
                        "duration_ms": round((time.perf_counter() - start) * 1000),
                    },
                )
                if detect_truncated_response(text):
                    narrowed = True
                    raise TruncatedResponseError(
                        f"Truncated search response on attempt {attempt_number}", provider="perplexity"
                    )
                return text

        raise ResearchUnavailableError("Search tier made no attempts", provider="perplexity")

    async def _generate(self, query: str) -> str:
        return await self.generative_client.chat(
            [
                {"role": "system", "content": GENERATIVE_RESEARCH_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f"Please provide detailed information about educational programs matching these criteria: "
                        f"{query}\n\nMake sure to include at least 5 specific programs with complete details "
                        f"formatted as a numbered list."
                    ),
                },
            ],
            model=self.settings.research_fallback_model,
            temperature=0.3,
            max_tokens=4000,
        )
