"""Shared fixtures."""

from __future__ import annotations

import pytest

from open_completions.config import ServiceConfig
from open_completions.events import EventBus


@pytest.fixture
def config() -> ServiceConfig:
    return ServiceConfig(
        api_key="test-key",
        base_url="http://api.test/v1",
        max_retries=3,
        base_delay_ms=10,
    )


@pytest.fixture
def bus() -> EventBus:
    return EventBus()
