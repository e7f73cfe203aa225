"""
Error taxonomy for the recommendation pipeline.

Provider failures are recovered by falling back to the next tier; only
ConfigurationError is allowed to reach the HTTP layer as a 500.
"""
from __future__ import annotations

from typing import Optional


class AdvisorError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(AdvisorError):
    """A required credential or setting is missing."""


class ProviderError(AdvisorError):
    """An external provider call failed."""

    def __init__(self, message: str, provider: str = "unknown", status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.provider = provider
        self.status = status
        self.body = body


class ProviderTimeoutError(ProviderError):
    """The provider did not answer within its timeout."""


class ProviderAuthError(ProviderError):
    """401/403 from a provider. Never retried against the same provider."""


class ProviderRateLimitError(ProviderError):
    """429 from a provider."""


class ProviderRefusalError(ProviderError):
    """The model explicitly declined to answer."""


class EmptyResponseError(ProviderError):
    """The provider answered 2xx without any usable content."""


class ResearchUnavailableError(ProviderError):
    """Every research tier failed."""


class SchemaParseError(AdvisorError):
    """Structured output could not be parsed or did not match its schema."""

    def __init__(self, message: str, preview: str = ""):
        super().__init__(message)
        self.preview = preview


class PathwayPlanningError(AdvisorError):
    """Pathway generation failed; wraps the underlying cause."""


class OrchestrationTimeoutError(AdvisorError):
    """A pipeline deadline was exceeded. Recovered inside the orchestrator."""
