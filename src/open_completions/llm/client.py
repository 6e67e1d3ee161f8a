"""Async client for OpenAI-style completion APIs.

Wraps one ``httpx.AsyncClient`` (bearer auth, JSON content type, bounded
connection pool) and a :class:`RequestExecutor` that adds retry and SSE
decoding.  The API variant only picks the endpoint and default base URL.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

import httpx

from open_completions.config import ServiceConfig
from open_completions.errors import ConfigError
from open_completions.events import EventBus

from .executor import RequestExecutor
from .retry import RetryPolicy
from .variants import ApiVariant, get_variant

_logger = logging.getLogger(__name__)


class AsyncCompletionsClient:
    """Buffered and streaming access to a chat-completion style endpoint.

    Construction fails with :class:`ConfigError` when the API key is missing,
    or when neither the config nor the variant supplies a base URL.
    """

    def __init__(
        self,
        config: ServiceConfig,
        variant: ApiVariant | str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        events: EventBus | None = None,
    ) -> None:
        if isinstance(variant, str) or variant is None:
            variant = get_variant(variant or config.variant)
        if not config.api_key:
            raise ConfigError(f"API key is required for {variant.label} client.")
        base_url = config.base_url or variant.default_base_url
        if not base_url:
            raise ConfigError(f"Base URL is required for {variant.label} client.")

        self.config = config
        self.variant = variant
        self.base_url = base_url
        self.events = events
        _logger.info(
            "[%s] System proxy %s",
            variant.label, "enabled" if config.use_system_proxy else "disabled",
        )

        pool = config.pool
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {config.api_key}",
            },
            timeout=httpx.Timeout(pool.timeout),
            limits=httpx.Limits(
                max_connections=pool.max_connections,
                max_keepalive_connections=pool.max_keepalive_connections,
                keepalive_expiry=pool.keepalive_expiry,
            ),
            # Proxy environment variables are honoured only when asked for
            trust_env=config.use_system_proxy,
            follow_redirects=True,
            transport=transport,
        )
        self._executor = RequestExecutor(
            self._client,
            RetryPolicy(
                max_retries=config.max_retries,
                base_delay_ms=config.base_delay_ms,
            ),
            events=events,
            label=variant.label,
            restart_emitted_streams=config.restart_emitted_streams,
        )

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._executor.policy

    # ------------------------------------------------------------------
    # Generic calls
    # ------------------------------------------------------------------

    async def call_api(self, endpoint: str, body: dict[str, Any]) -> Any:
        return await self._executor.call(endpoint, body)

    async def stream_api(self, endpoint: str, body: dict[str, Any]) -> AsyncIterator[Any]:
        async for event in self._executor.stream(endpoint, body):
            yield event

    # ------------------------------------------------------------------
    # Completion endpoints
    # ------------------------------------------------------------------

    async def generate_content(self, model: str | None, request_body: dict[str, Any]) -> Any:
        """Buffered completion request; returns the JSON response."""
        return await self.call_api(self.variant.endpoint, _with_model(model, request_body))

    async def generate_content_stream(
        self,
        model: str | None,
        request_body: dict[str, Any],
    ) -> AsyncIterator[Any]:
        """Streaming completion request; yields one JSON payload per SSE event."""
        async for event in self.stream_api(
            self.variant.endpoint, _with_model(model, request_body),
        ):
            yield event

    async def list_models(self) -> Any:
        return await self._executor.get(self.variant.models_endpoint)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AsyncCompletionsClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def _with_model(model: str | None, body: dict[str, Any]) -> dict[str, Any]:
    """Fill in ``model`` unless the body already names one."""
    if not model or "model" in body:
        return body
    return {**body, "model": model}
