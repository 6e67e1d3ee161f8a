"""Diagnostic event bus."""

from open_completions.events.bus import WILDCARD, EventBus

__all__ = ["EventBus", "WILDCARD"]
