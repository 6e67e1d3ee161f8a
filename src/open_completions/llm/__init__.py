"""Completion API client, request executor and SSE decoder."""

from open_completions.llm.client import AsyncCompletionsClient
from open_completions.llm.executor import RequestExecutor
from open_completions.llm.retry import AttemptState, RetryPolicy
from open_completions.llm.sse import SSEDecoder, aiter_sse_events, iter_sse_events
from open_completions.llm.variants import CHAT_COMPLETIONS, RESPONSES, ApiVariant, get_variant

__all__ = [
    "AsyncCompletionsClient",
    "ApiVariant",
    "AttemptState",
    "CHAT_COMPLETIONS",
    "RESPONSES",
    "RequestExecutor",
    "RetryPolicy",
    "SSEDecoder",
    "aiter_sse_events",
    "get_variant",
    "iter_sse_events",
]
