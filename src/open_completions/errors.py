"""Error taxonomy and HTTP status classification.

Every failed request is mapped to an :class:`ErrorKind` from its HTTP
status (when there is one).  The kind decides whether the executor may
retry; the concrete :class:`ApiError` subclass is what reaches the caller.
"""

from __future__ import annotations

import enum
from typing import Any

import httpx


class ErrorKind(str, enum.Enum):
    """Failure categories derived from an HTTP status code."""

    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    OTHER = "other"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR)


def classify_status(status: int | None) -> ErrorKind:
    """Map an HTTP status (or ``None`` when there was no response)."""
    if status in (401, 403):
        return ErrorKind.AUTH
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status is not None and 500 <= status < 600:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.OTHER


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class CompletionsError(Exception):
    """Base class for all errors raised by open_completions."""


class ConfigError(CompletionsError, ValueError):
    """Raised when a client cannot be built from the given configuration."""


class ApiError(CompletionsError):
    """A request to the remote API failed.

    ``status_code`` and ``data`` carry the original response status and body
    (JSON-decoded when possible) so callers can inspect what the server said.
    ``attempts`` is the number of requests made before giving up.
    """

    kind: ErrorKind = ErrorKind.OTHER

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        data: Any = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.data = data
        self.attempts = attempts

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"[{self.status_code}] {self.message}"


class AuthError(ApiError):
    kind = ErrorKind.AUTH


class RateLimitedError(ApiError):
    kind = ErrorKind.RATE_LIMITED


class ServerError(ApiError):
    kind = ErrorKind.SERVER_ERROR


class OtherHttpError(ApiError):
    kind = ErrorKind.OTHER


class StreamTransportError(ApiError):
    """Transport-level failure with no HTTP status (connect, read, timeout)."""

    kind = ErrorKind.OTHER


_ERROR_TYPES: dict[ErrorKind, type[ApiError]] = {
    ErrorKind.AUTH: AuthError,
    ErrorKind.RATE_LIMITED: RateLimitedError,
    ErrorKind.SERVER_ERROR: ServerError,
    ErrorKind.OTHER: OtherHttpError,
}


def response_body(response: httpx.Response) -> Any:
    """Decoded body: JSON when it parses, text otherwise, None when empty."""
    try:
        content = response.content
    except httpx.ResponseNotRead:
        return None
    if not content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def error_from_response(response: httpx.Response, message: str = "") -> ApiError:
    """Build the classified error for a non-2xx *response*.

    The body must already have been read (streaming responses are read by
    the executor before calling this).
    """
    status = response.status_code
    error_type = _ERROR_TYPES[classify_status(status)]
    text = message or response.reason_phrase or "HTTP error"
    return error_type(text, status_code=status, data=response_body(response))


def error_from_exception(exc: Exception) -> ApiError:
    """Convert an httpx (or already classified) exception into an ApiError."""
    if isinstance(exc, ApiError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        return error_from_response(exc.response, str(exc))
    return StreamTransportError(str(exc) or type(exc).__name__)
