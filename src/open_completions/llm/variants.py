"""API variants served by the same executor core.

The chat-completions and responses APIs differ only in endpoint path,
default base URL and the label used in log messages.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ApiVariant:
    name: str
    endpoint: str
    label: str
    default_base_url: str | None = None  # None: base URL must be configured
    models_endpoint: str = "/models"


CHAT_COMPLETIONS = ApiVariant(
    name="chat",
    endpoint="/chat/completions",
    label="OpenAI",
)

RESPONSES = ApiVariant(
    name="responses",
    endpoint="/responses",
    label="OpenAIResponses",
    default_base_url="https://api.openai.com/v1",
)

VARIANTS: dict[str, ApiVariant] = {v.name: v for v in (CHAT_COMPLETIONS, RESPONSES)}


def get_variant(name: str) -> ApiVariant:
    try:
        return VARIANTS[name]
    except KeyError:
        raise ValueError(
            f"Unknown API variant {name!r} (expected one of: {', '.join(VARIANTS)})"
        ) from None
