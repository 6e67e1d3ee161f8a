"""Tests for AsyncCompletionsClient construction and endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from helpers import ScriptedTransport, ok, sse_body, status, streamed
from open_completions.config import ServiceConfig
from open_completions.errors import AuthError, ConfigError, ServerError
from open_completions.events import EventBus
from open_completions.llm.client import AsyncCompletionsClient
from open_completions.llm.variants import CHAT_COMPLETIONS, RESPONSES
from open_completions.types import EventType


def _client(config: ServiceConfig, replies, variant=None, **kwargs) -> tuple[AsyncCompletionsClient, ScriptedTransport]:
    transport = ScriptedTransport(replies)
    return AsyncCompletionsClient(config, variant, transport=transport, **kwargs), transport


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

class TestConstruction:
    def test_missing_api_key(self):
        with pytest.raises(ConfigError, match="API key is required"):
            AsyncCompletionsClient(ServiceConfig(base_url="http://api.test/v1"))

    def test_empty_api_key(self):
        with pytest.raises(ConfigError, match="API key is required"):
            AsyncCompletionsClient(ServiceConfig(api_key="", base_url="http://api.test/v1"))

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            AsyncCompletionsClient(ServiceConfig())

    def test_chat_variant_requires_base_url(self):
        with pytest.raises(ConfigError, match="Base URL is required"):
            AsyncCompletionsClient(ServiceConfig(api_key="k"), "chat")

    async def test_responses_variant_default_base_url(self):
        client = AsyncCompletionsClient(ServiceConfig(api_key="k"), "responses")
        assert client.base_url == "https://api.openai.com/v1"
        assert client.variant is RESPONSES
        await client.close()

    async def test_variant_from_config(self):
        client = AsyncCompletionsClient(ServiceConfig(api_key="k", variant="responses"))
        assert client.variant is RESPONSES
        await client.close()

    def test_unknown_variant(self):
        with pytest.raises(ValueError, match="Unknown API variant"):
            AsyncCompletionsClient(ServiceConfig(api_key="k"), "legacy")

    async def test_retry_defaults(self):
        client = AsyncCompletionsClient(ServiceConfig(api_key="k", base_url="http://x/v1"))
        assert client.retry_policy.max_retries == 3
        assert client.retry_policy.base_delay_ms == 1000
        await client.close()

    async def test_proxy_state_logged(self, caplog):
        with caplog.at_level("INFO", logger="open_completions.llm.client"):
            client = AsyncCompletionsClient(ServiceConfig(api_key="k", base_url="http://x/v1"))
        assert "[OpenAI] System proxy disabled" in caplog.text
        await client.close()


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class TestGenerateContent:
    async def test_headers_and_endpoint(self, config: ServiceConfig):
        client, transport = _client(config, [ok({"choices": []})])
        async with client:
            result = await client.generate_content("gpt-test", {"messages": []})
        assert result == {"choices": []}
        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://api.test/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer test-key"
        assert request.headers["content-type"] == "application/json"

    async def test_model_filled_in(self, config: ServiceConfig):
        client, transport = _client(config, [ok({})])
        async with client:
            await client.generate_content("gpt-test", {"messages": []})
        assert transport.bodies()[0] == {"messages": [], "model": "gpt-test"}

    async def test_body_model_wins(self, config: ServiceConfig):
        client, transport = _client(config, [ok({})])
        body = {"model": "from-body", "messages": []}
        async with client:
            await client.generate_content("gpt-test", body)
        assert transport.bodies()[0]["model"] == "from-body"

    async def test_responses_endpoint(self, config: ServiceConfig):
        client, transport = _client(config, [ok({"output": []})], variant=RESPONSES)
        async with client:
            await client.generate_content("gpt-test", {"input": "hi"})
        assert transport.requests[0].url.path == "/v1/responses"

    async def test_retry_uses_config(self, config: ServiceConfig, bus: EventBus):
        client, transport = _client(config, [status(500), ok({"ok": True})], events=bus)
        async with client:
            assert await client.generate_content("m", {}) == {"ok": True}
        assert transport.calls == 2
        (retry,) = bus.of_type(EventType.REQUEST_RETRY)
        assert retry.data["delay_ms"] == config.base_delay_ms

    async def test_auth_failure_propagates(self, config: ServiceConfig):
        client, transport = _client(config, [status(401, {"error": "invalid key"})])
        async with client:
            with pytest.raises(AuthError) as exc_info:
                await client.generate_content("m", {})
        assert exc_info.value.data == {"error": "invalid key"}
        assert transport.calls == 1


class TestGenerateContentStream:
    async def test_stream_events(self, config: ServiceConfig):
        chunks = [
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
        ]
        client, transport = _client(config, [streamed(sse_body(*chunks))])
        async with client:
            events = [e async for e in client.generate_content_stream("m", {"messages": []})]
        assert events == chunks
        assert transport.bodies()[0] == {"messages": [], "model": "m", "stream": True}

    async def test_stream_retry_on_rate_limit(self, config: ServiceConfig):
        client, transport = _client(
            config, [status(429), streamed(sse_body({"n": 1}))], variant=CHAT_COMPLETIONS,
        )
        with patch("open_completions.llm.executor.asyncio.sleep", new_callable=AsyncMock) as sleep:
            async with client:
                events = [e async for e in client.generate_content_stream("m", {})]
        assert events == [{"n": 1}]
        sleep.assert_awaited_once_with(0.01)

    async def test_stream_api_custom_endpoint(self, config: ServiceConfig):
        client, transport = _client(config, [streamed(sse_body({"n": 1}))])
        async with client:
            events = [e async for e in client.stream_api("/custom", {"q": 1})]
        assert events == [{"n": 1}]
        assert transport.requests[0].url.path == "/v1/custom"


class TestRedirects:
    async def test_redirect_followed(self, config: ServiceConfig):
        moved = httpx.Response(307, headers={"Location": "http://api.test/v2/chat/completions"})
        client, transport = _client(config, [moved, ok({"id": "cmpl-1"})])
        async with client:
            assert await client.generate_content("m", {"messages": []}) == {"id": "cmpl-1"}
        assert transport.calls == 2
        assert transport.requests[1].method == "POST"
        assert transport.requests[1].url.path == "/v2/chat/completions"
        assert transport.bodies()[1]["model"] == "m"


class TestListModels:
    async def test_list_models(self, config: ServiceConfig):
        client, transport = _client(config, [ok({"data": [{"id": "m1"}]})])
        async with client:
            assert await client.list_models() == {"data": [{"id": "m1"}]}
        assert transport.requests[0].method == "GET"
        assert transport.requests[0].url.path == "/v1/models"

    async def test_list_models_no_retry(self, config: ServiceConfig):
        client, transport = _client(config, [status(503), ok({})])
        async with client:
            with pytest.raises(ServerError):
                await client.list_models()
        assert transport.calls == 1
