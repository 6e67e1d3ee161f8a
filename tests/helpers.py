"""A scripted ``httpx.MockTransport`` standing in for the remote API."""

from __future__ import annotations

import json
import time
from typing import Any, Callable

import httpx


def sse_body(*events: Any, done: bool = True) -> bytes:
    """Encode *events* as an SSE response body."""
    lines = [f"data: {json.dumps(e, ensure_ascii=False)}\n\n" for e in events]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


async def byte_stream(*chunks: bytes | Exception):
    """Yield *chunks*; an exception instance in the sequence is raised."""
    for chunk in chunks:
        if isinstance(chunk, Exception):
            raise chunk
        yield chunk


class ScriptedTransport(httpx.MockTransport):
    """Serve one scripted reply per request and record what was sent.

    Each reply is an ``httpx.Response``, a callable taking the request and
    returning one, or an exception instance to raise.  The last reply is
    repeated once the script runs out.
    """

    def __init__(self, replies: list[Any]) -> None:
        self.replies = list(replies)
        self.requests: list[httpx.Request] = []
        self.times: list[float] = []
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.times.append(time.monotonic())
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        return reply

    @property
    def calls(self) -> int:
        return len(self.requests)

    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    def gaps(self) -> list[float]:
        """Seconds elapsed between consecutive requests."""
        return [b - a for a, b in zip(self.times, self.times[1:])]


def status(code: int, body: Any = None) -> httpx.Response:
    if body is None:
        body = {"error": {"message": f"status {code}"}}
    return httpx.Response(code, json=body)


def ok(body: Any) -> httpx.Response:
    return httpx.Response(200, json=body)


def streamed(*chunks: bytes | Exception) -> Callable[[httpx.Request], httpx.Response]:
    """Reply factory for an SSE response; each request gets fresh chunks."""
    return lambda request: httpx.Response(
        200,
        headers={"Content-Type": "text/event-stream"},
        content=byte_stream(*chunks),
    )
