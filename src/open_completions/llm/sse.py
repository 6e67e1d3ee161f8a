"""Server-sent-event decoding for streamed completion responses.

The network delivers bytes in arbitrary chunks: a ``data:`` line, or even a
single multi-byte UTF-8 character, may be split across two of them.
:class:`SSEDecoder` turns such a chunk sequence into parsed JSON payloads,
one per ``data:`` line, regardless of where the splits fall.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Iterable, Iterator

from open_completions.types import ParseAnomaly

_logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


class SSEDecoder:
    """Incremental ``data:``-line decoder for a single stream.

    Bytes are converted to text only through a stateful UTF-8 decoder, which
    holds back an incomplete trailing sequence until the next chunk arrives.
    An instance decodes one stream; create a new one per stream.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._anomalies: list[ParseAnomaly] = []
        self._done = False
        self._closed = False
        self._started = False

    @property
    def done(self) -> bool:
        """True once the ``[DONE]`` sentinel has been seen."""
        return self._done

    @property
    def closed(self) -> bool:
        return self._closed or self._done

    @property
    def anomalies(self) -> list[ParseAnomaly]:
        return list(self._anomalies)

    def drain_anomalies(self) -> list[ParseAnomaly]:
        """Return anomalies recorded since the last drain, and forget them."""
        drained, self._anomalies = self._anomalies, []
        return drained

    # ------------------------------------------------------------------
    # Push API
    # ------------------------------------------------------------------

    def feed(self, chunk: bytes | str) -> list[Any]:
        """Consume one chunk and return the events it completed."""
        if self.closed:
            return []
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self._buffer += self._decoder.decode(chunk)

        events: list[Any] = []
        while not self._done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            self._handle_line(line, events)
        if self._done:
            self._buffer = ""
        return events

    def finish(self) -> list[Any]:
        """Flush decoder residue and parse whatever is left in the buffer.

        The trailing text is treated as a final line even if the stream did
        not end it with a newline.
        """
        if self.closed:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        events: list[Any] = []
        for line in remainder.split("\n"):
            if self._done:
                break
            self._handle_line(line, events, final=True)
        self._closed = True
        return events

    # ------------------------------------------------------------------
    # Pull API
    # ------------------------------------------------------------------

    async def decode(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[Any]:
        """Lazily decode an async chunk source.

        Stops pulling from *chunks* as soon as ``[DONE]`` is seen.
        """
        self._claim()
        async for chunk in chunks:
            for event in self.feed(chunk):
                yield event
            if self._done:
                return
        for event in self.finish():
            yield event

    def iter_events(self, chunks: Iterable[bytes]) -> Iterator[Any]:
        """Synchronous counterpart of :meth:`decode`."""
        self._claim()
        for chunk in chunks:
            yield from self.feed(chunk)
            if self._done:
                return
        yield from self.finish()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _claim(self) -> None:
        if self._started:
            raise RuntimeError("SSEDecoder instances decode a single stream")
        self._started = True

    def _handle_line(self, raw: str, events: list[Any], final: bool = False) -> None:
        line = raw.strip()
        if not line.startswith(DATA_PREFIX):
            # Blank separators, comments and id/event/retry fields
            return
        payload = line[len(DATA_PREFIX):].strip()
        if payload == DONE_SENTINEL:
            self._done = True
            return
        try:
            events.append(json.loads(payload, parse_constant=_reject_constant))
        except ValueError as e:
            _logger.warning(
                "Failed to parse %sstream chunk JSON: %s (data: %r)",
                "final " if final else "", e, payload,
            )
            self._anomalies.append(ParseAnomaly(payload=payload, error=str(e), final=final))


async def aiter_sse_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[Any]:
    """Decode *chunks* with a fresh :class:`SSEDecoder`."""
    async for event in SSEDecoder().decode(chunks):
        yield event


def iter_sse_events(chunks: Iterable[bytes]) -> Iterator[Any]:
    """Synchronous :func:`aiter_sse_events`."""
    return SSEDecoder().iter_events(chunks)
