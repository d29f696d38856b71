# watchsync/services/reconciliation/backoff.py
"""
Retry and pacing policies.

Policies only compute delays. The executor decides when to wait and awaits
through an injected sleeper, so tests can run the full retry path without
real sleeps.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

Sleeper = Callable[[float], Awaitable[None]]


async def real_sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


def _uniform(rng: Optional[random.Random], low: float, high: float) -> float:
    if high <= low:
        return max(low, 0.0)
    source = rng or random
    return source.uniform(low, high)


@dataclass
class RetryPolicy:
    """Up to max_attempts tries, sleeping a random interval in [min_delay, max_delay] between them."""
    max_attempts: int = 3
    min_delay: float = 2.0
    max_delay: float = 10.0
    rng: Optional[random.Random] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.min_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    def should_retry(self, attempt: int) -> bool:
        """attempt is the 1-based number of the attempt that just failed"""
        return attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        return _uniform(self.rng, self.min_delay, self.max_delay)

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        return cls(max_attempts=1, min_delay=0.0, max_delay=0.0)


@dataclass
class PacingPolicy:
    """Random gap between successive remote writes of the same kind."""
    min_delay: float = 0.0
    max_delay: float = 0.0
    rng: Optional[random.Random] = field(default=None, repr=False, compare=False)

    @property
    def enabled(self) -> bool:
        return self.max_delay > 0

    def next_delay(self) -> float:
        return _uniform(self.rng, self.min_delay, self.max_delay)
