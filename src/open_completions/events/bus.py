"""Async pub/sub bus for request diagnostics (retries, failures, anomalies)."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from open_completions.types import ClientEvent, EventType

_logger = logging.getLogger(__name__)

# Subscribing to this key receives every event
WILDCARD = "*"

Handler = Callable[[ClientEvent], Any]


class EventBus:
    """Fan out :class:`ClientEvent` objects to sync or async handlers.

    A failing handler is logged and never breaks the request that emitted
    the event.  The last ``max_history`` events are kept for inspection.
    """

    def __init__(self, max_history: int = 200) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._history: list[ClientEvent] = []
        self._max_history = max_history

    def subscribe(self, event_type: EventType | str, handler: Handler) -> None:
        self._handlers.setdefault(self._key(event_type), []).append(handler)

    def unsubscribe(self, event_type: EventType | str, handler: Handler) -> None:
        handlers = self._handlers.get(self._key(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: ClientEvent) -> None:
        self._history.append(event)
        if len(self._history) > self._max_history:
            del self._history[: len(self._history) - self._max_history]

        handlers = list(self._handlers.get(self._key(event.type), []))
        handlers.extend(self._handlers.get(WILDCARD, []))
        if handlers:
            await asyncio.gather(*(self._call(h, event) for h in handlers))

    async def publish(self, event_type: EventType, **data: Any) -> None:
        """Shorthand for ``emit(ClientEvent(event_type, data))``."""
        await self.emit(ClientEvent(type=event_type, data=data))

    @property
    def history(self) -> list[ClientEvent]:
        return list(self._history)

    def of_type(self, event_type: EventType) -> list[ClientEvent]:
        return [e for e in self._history if e.type is event_type]

    def clear(self) -> None:
        self._handlers.clear()
        self._history.clear()

    @staticmethod
    def _key(event_type: EventType | str) -> str:
        if isinstance(event_type, EventType):
            return event_type.value
        return str(event_type)

    @staticmethod
    async def _call(handler: Handler, event: ClientEvent) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            _logger.exception(
                "Event handler %s failed for %s",
                getattr(handler, "__name__", handler),
                event.type.value,
            )
