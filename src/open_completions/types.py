"""Shared data types for open_completions."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Stream types
# ---------------------------------------------------------------------------

@dataclass
class ParseAnomaly:
    """A ``data:`` line whose payload was not valid JSON."""

    payload: str
    error: str
    final: bool = False  # seen during the end-of-stream flush


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

class EventType(enum.Enum):
    """Diagnostic events emitted by the request executor."""

    REQUEST_RETRY = "request.retry"
    REQUEST_FAILED = "request.failed"

    STREAM_STARTED = "stream.started"
    STREAM_COMPLETED = "stream.completed"
    STREAM_PARSE_ANOMALY = "stream.parse_anomaly"


@dataclass
class ClientEvent:
    """Event delivered to ``EventBus`` subscribers."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
