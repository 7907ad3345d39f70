"""
retry.py - Bounded exponential backoff for Jupiter calls

Only RateLimited is retried. Everything else propagates on first occurrence.
The policy holds no state between calls, so quote and swap-build requests never
share backoff state.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, TypeVar

from loguru import logger

from ...errors import RateLimited, RateLimitExceeded


T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff before retry n (0-indexed) is min(base * 2^n, cap).

    With the defaults, three rate limits followed by a success sleep
    1.0s, 2.0s, 4.0s; a fourth rate limit raises RateLimitExceeded.
    """
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10_000
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False, repr=False)

    def delay_ms(self, attempt: int) -> int:
        return min(self.base_delay_ms * (2 ** attempt), self.max_delay_ms)

    def schedule_ms(self) -> List[int]:
        """All delays the policy may apply, in order."""
        return [self.delay_ms(n) for n in range(self.max_retries)]

    async def call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await fn()
            except RateLimited:
                if attempt >= self.max_retries:
                    logger.error(f"{operation} | rate limit exceeded | attempts={attempt + 1}")
                    raise RateLimitExceeded(operation, attempt + 1) from None

                delay_ms = self.delay_ms(attempt)
                logger.warning(
                    f"{operation} | rate limited | retry in {delay_ms}ms "
                    f"(attempt {attempt + 2}/{self.max_retries + 1})"
                )
                await self.sleep(delay_ms / 1000)
                attempt += 1


__all__ = ["RetryPolicy"]
