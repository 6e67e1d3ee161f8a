"""open_completions: async chat-completion client with SSE decoding and retry."""

from open_completions.config import ServiceConfig, apply_env, load_config
from open_completions.errors import (
    ApiError,
    AuthError,
    CompletionsError,
    ConfigError,
    ErrorKind,
    OtherHttpError,
    RateLimitedError,
    ServerError,
    StreamTransportError,
)
from open_completions.llm import AsyncCompletionsClient, SSEDecoder

__version__ = "0.1.0"

__all__ = [
    "ApiError",
    "AsyncCompletionsClient",
    "AuthError",
    "CompletionsError",
    "ConfigError",
    "ErrorKind",
    "OtherHttpError",
    "RateLimitedError",
    "SSEDecoder",
    "ServerError",
    "ServiceConfig",
    "StreamTransportError",
    "apply_env",
    "load_config",
]
