import asyncio
import json

import aiohttp
import pytest

from core.errors import (
    ConfigurationError,
    EmptyResponseError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from services.metrics_service import MetricsCollector
from services.provider_client import OpenAIClient, PerplexityClient, build_search_client
from services.research_invoker import PROGRAM_LIST_PREFIX, FallbackResearchInvoker


class StubbedSend:
    """Replaces the HTTP round trip with a canned (status, body) or exception."""

    def __init__(self, result):
        self.result = result
        self.requests = []

    async def __call__(self, url, payload):
        self.requests.append((url, payload))
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


def _chat_body(content):
    return json.dumps({"choices": [{"message": {"role": "assistant", "content": content}}]})


def _perplexity(result, api_key="pplx-test"):
    client = PerplexityClient(api_key)
    client._send = StubbedSend(result)
    return client


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error_type",
    [
        (401, ProviderAuthError),
        (403, ProviderAuthError),
        (429, ProviderRateLimitError),
        (500, ProviderError),
    ],
)
async def test_http_status_maps_to_error(status, error_type):
    client = _perplexity((status, "upstream says no"))

    with pytest.raises(error_type) as exc_info:
        await client.search("query")

    assert exc_info.value.status == status
    assert exc_info.value.provider == "perplexity"


@pytest.mark.asyncio
async def test_timeout_maps_to_provider_timeout():
    client = _perplexity(asyncio.TimeoutError())

    with pytest.raises(ProviderTimeoutError):
        await client.search("query")


@pytest.mark.asyncio
async def test_transport_error_maps_to_provider_error():
    client = _perplexity(aiohttp.ClientConnectionError("connection reset"))

    with pytest.raises(ProviderError) as exc_info:
        await client.search("query")

    assert "connection reset" in str(exc_info.value)


@pytest.mark.asyncio
async def test_undecodable_body_maps_to_provider_error():
    client = _perplexity(UnicodeDecodeError("utf-8", b'{"choices": \xff\xfe}', 12, 13, "invalid start byte"))

    with pytest.raises(ProviderError) as exc_info:
        await client.search("query")

    assert exc_info.value.provider == "perplexity"
    assert "undecodable" in str(exc_info.value)


@pytest.mark.asyncio
async def test_undecodable_search_body_falls_back_to_generative(settings):
    search = _perplexity(UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"))
    generative = OpenAIClient("sk-test")
    generative._send = StubbedSend((200, _chat_body("1. Generated Program")))
    invoker = FallbackResearchInvoker(search, generative, settings, metrics=MetricsCollector(), retry_wait_seconds=0)

    assert await invoker.research("query") == PROGRAM_LIST_PREFIX + "1. Generated Program"


@pytest.mark.asyncio
async def test_invalid_json_maps_to_provider_error():
    client = _perplexity((200, "<html>oops</html>"))

    with pytest.raises(ProviderError):
        await client.search("query")


@pytest.mark.asyncio
async def test_empty_content_raises():
    client = _perplexity((200, _chat_body("   ")))

    with pytest.raises(EmptyResponseError):
        await client.search("query")


@pytest.mark.asyncio
async def test_missing_key_never_sends():
    client = _perplexity((200, _chat_body("text")), api_key=None)

    with pytest.raises(ConfigurationError):
        await client.search("query")

    assert client._send.requests == []


@pytest.mark.asyncio
async def test_search_request_shape():
    client = _perplexity((200, _chat_body("1. Program")))

    assert await client.search("MSc CS Canada") == "1. Program"

    [(url, payload)] = client._send.requests
    assert url == "https://api.perplexity.ai/chat/completions"
    assert payload["model"] == "sonar-pro"
    assert payload["temperature"] == 0.1
    assert payload["max_tokens"] == 8000
    assert payload["web_search_options"] == {"search_context_size": "high"}
    assert payload["messages"][-1] == {"role": "user", "content": "MSc CS Canada"}


@pytest.mark.asyncio
async def test_create_response_posts_to_responses_endpoint():
    client = OpenAIClient("sk-test", base_url="https://api.openai.com/v1/")
    client._send = StubbedSend((200, json.dumps({"id": "resp_1", "output": []})))

    body = await client.create_response({"model": "o4-mini", "input": []})

    assert body["id"] == "resp_1"
    assert client._send.requests[0][0] == "https://api.openai.com/v1/responses"


@pytest.mark.asyncio
async def test_chat_returns_message_content():
    client = OpenAIClient("sk-test")
    client._send = StubbedSend((200, _chat_body("generated")))

    assert await client.chat([{"role": "user", "content": "hi"}], model="gpt-4o") == "generated"
    assert client._send.requests[0][1]["temperature"] == 0.3


def test_build_search_client_uses_settings(settings):
    client = build_search_client(settings)

    assert client.configured
    assert client.timeout == settings.search_timeout_seconds
    assert client.model == settings.search_model
