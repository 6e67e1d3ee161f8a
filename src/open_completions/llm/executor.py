"""Request execution with classification-driven retry.

:class:`RequestExecutor` sends one logical request over an
``httpx.AsyncClient`` and retries it while the failure is retryable and the
retry budget lasts.  Buffered calls return the decoded body; streaming
calls yield SSE payloads decoded by :class:`SSEDecoder`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

import httpx

from open_completions.errors import ApiError, ErrorKind, error_from_exception, response_body
from open_completions.events import EventBus
from open_completions.types import EventType

from .retry import AttemptState, RetryPolicy
from .sse import SSEDecoder

_logger = logging.getLogger(__name__)


class RequestExecutor:
    """Send requests and decide, per failure, whether to retry.

    Policy (identical for buffered and streaming calls):

    - 401/403: raise :class:`AuthError` at once, whatever budget remains.
    - 429 and 5xx: wait ``base_delay_ms * 2**retry_count`` ms and try again
      while ``retry_count < max_retries``.
    - anything else, or an exhausted budget: raise the classified error.

    For streams the policy guards the whole attempt.  A retryable failure
    after events were yielded starts the stream over from the beginning,
    so the caller may see early events twice; set
    ``restart_emitted_streams=False`` to raise instead.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: RetryPolicy | None = None,
        *,
        events: EventBus | None = None,
        label: str = "API",
        restart_emitted_streams: bool = True,
    ) -> None:
        self._client = client
        self.policy = policy or RetryPolicy()
        self._events = events
        self._label = label
        self._restart_emitted_streams = restart_emitted_streams

    # ------------------------------------------------------------------
    # Buffered
    # ------------------------------------------------------------------

    async def call(self, endpoint: str, payload: dict[str, Any]) -> Any:
        """POST *payload* to *endpoint* and return the response body."""
        state = self.policy.start()
        while True:
            try:
                resp = await self._client.post(endpoint, json=payload)
                resp.raise_for_status()
            except httpx.HTTPError as e:
                error = error_from_exception(e)
                if await self._retry_or_give_up(error, state, endpoint):
                    continue
                raise error from e
            return response_body(resp)

    async def get(self, endpoint: str) -> Any:
        """GET *endpoint* once; failures are classified but never retried."""
        try:
            resp = await self._client.get(endpoint)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            error = error_from_exception(e)
            _logger.error(
                "Error calling %s %s (Status: %s): %s",
                self._label, endpoint, error.status_code, error.data or error.message,
            )
            await self._publish(
                EventType.REQUEST_FAILED,
                endpoint=endpoint, status=error.status_code, kind=error.kind.value, attempts=1,
            )
            raise error from e
        return response_body(resp)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream(self, endpoint: str, payload: dict[str, Any]) -> AsyncIterator[Any]:
        """POST *payload* with ``stream: true`` and yield decoded SSE payloads."""
        body = {**payload, "stream": True}
        state = self.policy.start()
        total = 0
        while True:
            decoder = SSEDecoder()
            emitted = 0
            try:
                async with self._client.stream("POST", endpoint, json=body) as resp:
                    if resp.status_code >= 400:
                        # Read the error body so it can be attached to the raised error
                        await resp.aread()
                    resp.raise_for_status()
                    await self._publish(
                        EventType.STREAM_STARTED, endpoint=endpoint, attempt=state.attempt,
                    )
                    async for chunk in resp.aiter_bytes():
                        for event in decoder.feed(chunk):
                            emitted += 1
                            yield event
                        await self._report_anomalies(decoder, endpoint)
                        if decoder.done:
                            break
                    for event in decoder.finish():
                        emitted += 1
                        yield event
                    await self._report_anomalies(decoder, endpoint)
            except httpx.HTTPError as e:
                total += emitted
                error = error_from_exception(e)
                if emitted and not self._restart_emitted_streams:
                    error.attempts = state.attempt
                    _logger.error(
                        "%s stream failed after %d events (Status: %s): %s",
                        self._label, emitted, error.status_code, error.data or error.message,
                    )
                    await self._publish_failed(error, endpoint, streaming=True)
                    raise error from e
                if await self._retry_or_give_up(error, state, endpoint, streaming=True):
                    if emitted:
                        _logger.warning(
                            "%s stream restarting from the beginning; %d events were already delivered",
                            self._label, emitted,
                        )
                    continue
                raise error from e
            total += emitted
            await self._publish(
                EventType.STREAM_COMPLETED,
                endpoint=endpoint, events=total, attempts=state.attempt, done=decoder.done,
            )
            return

    # ------------------------------------------------------------------
    # Retry decision
    # ------------------------------------------------------------------

    async def _retry_or_give_up(
        self,
        error: ApiError,
        state: AttemptState,
        endpoint: str,
        streaming: bool = False,
    ) -> bool:
        """Back off and return True if the failed attempt should be retried.

        Returns False when the caller must raise *error*.
        """
        error.attempts = state.attempt
        during = " during stream" if streaming else ""

        if error.kind is ErrorKind.AUTH:
            _logger.error(
                "[%s] Received %s%s. API key might be invalid or expired.",
                self._label, error.status_code, during,
            )
            await self._publish_failed(error, endpoint, streaming)
            return False

        if not state.should_retry(error.kind):
            _logger.error(
                "Error calling %s%s (Status: %s): %s",
                self._label, " streaming API" if streaming else " API",
                error.status_code, error.data or error.message,
            )
            await self._publish_failed(error, endpoint, streaming)
            return False

        delay_ms = state.next_delay_ms()
        reason = (
            "429 (Too Many Requests)"
            if error.kind is ErrorKind.RATE_LIMITED
            else f"{error.status_code} server error"
        )
        _logger.warning(
            "[%s] Received %s%s. Retrying in %dms... (attempt %d/%d)",
            self._label, reason, during, delay_ms,
            state.retry_count + 1, state.policy.max_retries,
        )
        await self._publish(
            EventType.REQUEST_RETRY,
            endpoint=endpoint,
            status=error.status_code,
            kind=error.kind.value,
            retry=state.retry_count + 1,
            max_retries=state.policy.max_retries,
            delay_ms=delay_ms,
            streaming=streaming,
        )
        await asyncio.sleep(delay_ms / 1000)
        state.advance()
        return True

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def _report_anomalies(self, decoder: SSEDecoder, endpoint: str) -> None:
        for anomaly in decoder.drain_anomalies():
            await self._publish(
                EventType.STREAM_PARSE_ANOMALY,
                endpoint=endpoint, payload=anomaly.payload, error=anomaly.error,
            )

    async def _publish_failed(self, error: ApiError, endpoint: str, streaming: bool) -> None:
        await self._publish(
            EventType.REQUEST_FAILED,
            endpoint=endpoint,
            status=error.status_code,
            kind=error.kind.value,
            attempts=error.attempts,
            streaming=streaming,
        )

    async def _publish(self, event_type: EventType, **data: Any) -> None:
        if self._events is not None:
            await self._events.publish(event_type, **data)
