"""
HTTP clients for the external AI/search providers.

This module provides:
- A ProviderClient base that owns the auth header, the timeout and the mapping of
  HTTP/transport failures onto the pipeline's error taxonomy
- PerplexityClient for web-search-augmented research
- OpenAIClient for Chat Completions (research fallback) and the Responses API
  (schema-constrained extraction)

Clients never retry; fallbacks are decided by the caller.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from core.config import Settings
from core.errors import (
    ConfigurationError,
    EmptyResponseError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)

logger = logging.getLogger("providers")

SEARCH_SYSTEM_PROMPT = (
    "You are an expert educational researcher with global knowledge about universities, colleges, "
    "and educational programs. Your task is to provide comprehensive, detailed responses that include "
    "as many relevant educational programs as possible that match the user's query. Do not stop your "
    "response prematurely - be thorough and exhaustive in your research. Include ALL the details of "
    "the programs you can find that match the criteria."
)


class ProviderClient:
    """Thin request/response wrapper around one provider's HTTP API."""

    provider_name = "provider"

    def __init__(self, api_key: Optional[str], base_url: str, timeout: Optional[float] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def _send(self, url: str, payload: Dict[str, Any]) -> Tuple[int, str]:
        """POST the payload and return (status, body). Cancelling the caller aborts the request."""
        session_kwargs: Dict[str, Any] = {}
        if self.timeout:
            session_kwargs["timeout"] = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(**session_kwargs) as session:
            async with session.post(url, json=payload, headers=self._headers()) as response:
                return response.status, await response.text()

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ConfigurationError(f"{self.provider_name} API key is not configured")

        url = f"{self.base_url}/{path.lstrip('/')}"
        start = time.perf_counter()
        try:
            status, body = await self._send(url, payload)
        except asyncio.TimeoutError as exc:
            logger.error(f"{self.provider_name} request timed out after {self.timeout}s",
                         extra={"provider": self.provider_name})
            raise ProviderTimeoutError(
                f"{self.provider_name} request timed out after {self.timeout}s",
                provider=self.provider_name,
            ) from exc
        except aiohttp.ClientError as exc:
            logger.error(f"{self.provider_name} transport error: {exc}", extra={"provider": self.provider_name})
            raise ProviderError(f"{self.provider_name} request failed: {exc}", provider=self.provider_name) from exc
        except UnicodeDecodeError as exc:
            logger.error(f"{self.provider_name} returned an undecodable body: {exc}",
                         extra={"provider": self.provider_name})
            raise ProviderError(
                f"{self.provider_name} returned an undecodable body: {exc}", provider=self.provider_name
            ) from exc

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{self.provider_name} responded with {status}",
                    extra={"provider": self.provider_name, "duration_ms": round(duration_ms)})

        if status in (401, 403):
            raise ProviderAuthError(
                f"{self.provider_name} authentication failed ({status})",
                provider=self.provider_name, status=status, body=body[:500],
            )
        if status == 429:
            raise ProviderRateLimitError(
                f"{self.provider_name} rate limit exceeded ({status})",
                provider=self.provider_name, status=status, body=body[:500],
            )
        if not 200 <= status < 300:
            raise ProviderError(
                f"{self.provider_name} API error {status}: {body[:200]}",
                provider=self.provider_name, status=status, body=body[:500],
            )

        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise ProviderError(
                f"{self.provider_name} returned invalid JSON: {exc}",
                provider=self.provider_name, status=status, body=body[:500],
            ) from exc

    @staticmethod
    def _message_content(data: Dict[str, Any]) -> Optional[str]:
        choices = data.get("choices") or []
        if not choices:
            return None
        message = choices[0].get("message") or {}
        return message.get("content")

    async def invoke(self, request: Dict[str, Any]) -> str:
        raise NotImplementedError


class PerplexityClient(ProviderClient):
    """Search-capable provider (chat completions with web search)."""

    provider_name = "perplexity"

    def __init__(self, api_key: Optional[str], base_url: str = "https://api.perplexity.ai",
                 timeout: Optional[float] = 15.0, model: str = "sonar-pro"):
        super().__init__(api_key, base_url, timeout)
        self.model = model

    async def invoke(self, request: Dict[str, Any]) -> str:
        data = await self._post_json("chat/completions", request)
        if data.get("usage"):
            logger.debug(f"perplexity usage: {data['usage']}", extra={"provider": self.provider_name})
        content = self._message_content(data)
        if not content or not content.strip():
            raise EmptyResponseError("No content returned from perplexity", provider=self.provider_name)
        return content

    async def search(self, query: str) -> str:
        request = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SEARCH_SYSTEM_PROMPT},
                {"role": "user", "content": query},
            ],
            "temperature": 0.1,
            "max_tokens": 8000,
            "top_p": 0.95,
            "web_search_options": {"search_context_size": "high"},
        }
        return await self.invoke(request)


class OpenAIClient(ProviderClient):
    """Generative provider: Chat Completions for free text, Responses API for structured output."""

    provider_name = "openai"

    def __init__(self, api_key: Optional[str], base_url: str = "https://api.openai.com/v1",
                 timeout: Optional[float] = None):
        super().__init__(api_key, base_url, timeout)

    async def invoke(self, request: Dict[str, Any]) -> str:
        data = await self._post_json("chat/completions", request)
        content = self._message_content(data)
        if not content or not content.strip():
            raise EmptyResponseError("No content returned from openai chat completion", provider=self.provider_name)
        return content

    async def chat(self, messages: List[Dict[str, str]], model: str,
                   temperature: float = 0.3, max_tokens: int = 4000) -> str:
        return await self.invoke({
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })

    async def create_response(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Call the Responses API and return its raw JSON body."""
        return await self._post_json("responses", request)


def build_search_client(settings: Settings) -> PerplexityClient:
    return PerplexityClient(
        api_key=settings.perplexity_api_key,
        base_url=settings.perplexity_api_base,
        timeout=settings.search_timeout_seconds,
        model=settings.search_model,
    )


def build_generative_client(settings: Settings) -> OpenAIClient:
    return OpenAIClient(
        api_key=settings.openai_api_key,
        base_url=settings.openai_api_base,
        timeout=settings.generative_timeout_seconds,
    )
