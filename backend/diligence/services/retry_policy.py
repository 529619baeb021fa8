"""Explicit retry policy for reasoning-service calls.

Only errors the predicate classifies as retryable (token / rate limit by
default) are retried; everything else propagates on the first failure.
Backoff is exponential: base_delay * multiplier ** (attempt - 1), capped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, TypeVar

from ..config import ScoringConfig
from .openai_client import is_token_limit_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 4.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    is_retryable: Callable[[BaseException], bool] = field(default=is_token_limit_error)

    @classmethod
    def from_config(cls, config: ScoringConfig) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, config.retry_max_attempts),
            base_delay=config.retry_base_delay,
            multiplier=config.retry_multiplier,
            max_delay=config.retry_max_delay,
        )

    def with_attempts(self, max_attempts: int) -> "RetryPolicy":
        return replace(self, max_attempts=max(1, max_attempts))

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        return min(self.max_delay, self.base_delay * (self.multiplier ** max(0, attempt - 1)))

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        return attempt < self.max_attempts and self.is_retryable(exc)


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "LLM",
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """Await ``fn()`` until it succeeds or the policy says stop; re-raise the last error."""
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except Exception as exc:
            if not policy.should_retry(exc, attempt):
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "[RETRY] %s capacity error on attempt %d/%d, retrying in %.1fs: %s",
                label, attempt, policy.max_attempts, delay, exc,
            )
            await sleep(delay)
