"""Retry policy: attempt bookkeeping and exponential backoff."""

from __future__ import annotations

from dataclasses import dataclass

from open_completions.config import DEFAULT_BASE_DELAY_MS, DEFAULT_MAX_RETRIES
from open_completions.errors import ErrorKind


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry, and how long to wait before each retry.

    ``delay_ms(n) = base_delay_ms * 2**n`` where *n* is the zero-based index
    of the retry about to happen.  There is no jitter and no cap other than
    ``max_retries``.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS

    def delay_ms(self, retry_count: int) -> int:
        return self.base_delay_ms * (2 ** retry_count)

    def delays_ms(self) -> list[int]:
        """Every delay the policy can produce, in order."""
        return [self.delay_ms(n) for n in range(self.max_retries)]

    def start(self) -> AttemptState:
        return AttemptState(policy=self)


@dataclass
class AttemptState:
    """Retry counter for one logical call (including all its retries)."""

    policy: RetryPolicy
    retry_count: int = 0

    @property
    def attempt(self) -> int:
        """One-based number of the attempt in progress."""
        return self.retry_count + 1

    @property
    def exhausted(self) -> bool:
        return self.retry_count >= self.policy.max_retries

    def should_retry(self, kind: ErrorKind) -> bool:
        """AUTH and OTHER never retry; the rest retry while budget remains."""
        return kind.retryable and not self.exhausted

    def next_delay_ms(self) -> int:
        return self.policy.delay_ms(self.retry_count)

    def advance(self) -> None:
        self.retry_count += 1
