"""
Rate limiting implementations for controlling API request rates.

Provides asyncio token buckets to ensure compliance with provider
rate limits, plus a registry holding one bucket per provider so rate
budgets are never shared.
"""

from __future__ import annotations

import asyncio
import math
import time
from typing import Awaitable, Callable, Dict, Optional

from .base import RateLimiter


class TokenBucket(RateLimiter):
    """
    Token bucket rate limiter.

    Maintains a bucket of "tokens" that refill at a specified rate
    (requests per second). Each request consumes one token. When the
    bucket is empty, `acquire()` sleeps until the next token is due and
    checks again, since another waiter may have taken it first.

    Refill is lazy: whole tokens are added whenever the bucket is
    inspected. All mutation happens between await points, so no lock
    is needed on a single event loop.
    """

    def __init__(
        self,
        rate: float,
        capacity: Optional[int] = None,
        clock: Callable[[], float] = time.perf_counter,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize token bucket.

        Args:
            rate: Tokens per second (i.e., requests per second allowed)
            capacity: Maximum bucket size (defaults to max(2x rate, 5))
            clock: Monotonic clock returning seconds
            sleep: Coroutine used to wait for tokens
        """
        if rate <= 0:
            raise ValueError("rate must be > 0")
        if capacity is not None and capacity < 1:
            raise ValueError("capacity must be >= 1")

        self.rate = float(rate)
        self.capacity = capacity or max(math.ceil(rate * 2), 5)
        self.interval = 1.0 / self.rate
        self._clock = clock
        self._sleep = sleep
        self.tokens = self.capacity
        self.last_refill = clock()

    def _refill(self) -> None:
        now = self._clock()
        new_tokens = math.floor((now - self.last_refill) / self.interval)
        if new_tokens <= 0:
            return
        self.tokens = min(self.capacity, self.tokens + new_tokens)
        if self.tokens == self.capacity:
            self.last_refill = now
        else:
            # keep the fractional progress toward the next token
            self.last_refill += new_tokens * self.interval

    async def acquire(self) -> None:
        """Suspend until a token is available, then consume it."""
        while True:
            self._refill()
            if self.tokens > 0:
                self.tokens -= 1
                return
            await self._sleep(self.time_until_next_token())

    def try_acquire(self) -> bool:
        """Consume a token if one is available. Never waits."""
        self._refill()
        if self.tokens > 0:
            self.tokens -= 1
            return True
        return False

    def available_tokens(self) -> int:
        self._refill()
        return self.tokens

    def time_until_next_token(self) -> float:
        self._refill()
        if self.tokens > 0:
            return 0.0
        return max(0.0, self.interval - (self._clock() - self.last_refill))

    def reset(self) -> None:
        """Refill the bucket completely."""
        self.tokens = self.capacity
        self.last_refill = self._clock()


class NoOpRateLimiter(RateLimiter):
    """
    Rate limiter that does nothing (for testing/development).

    Useful when you want to disable rate limiting without changing code.
    """

    async def acquire(self) -> None:
        """Do nothing."""
        pass

    def try_acquire(self) -> bool:
        return True

    def available_tokens(self) -> int:
        return 0

    def time_until_next_token(self) -> float:
        return 0.0


class RateLimiterRegistry:
    """
    Maps provider identifiers to their token buckets.

    Construct one per process or job and pass it to whatever needs it.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.perf_counter,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._clock = clock
        self._sleep = sleep
        self._limiters: Dict[str, TokenBucket] = {}

    def get(self, name: str, rate: float, capacity: Optional[int] = None) -> TokenBucket:
        """
        Return the bucket for `name`, creating it on first use.

        Later calls return the existing bucket unchanged.
        """
        limiter = self._limiters.get(name)
        if limiter is None:
            limiter = TokenBucket(rate, capacity, clock=self._clock, sleep=self._sleep)
            self._limiters[name] = limiter
        return limiter

    def __contains__(self, name: str) -> bool:
        return name in self._limiters

    def __len__(self) -> int:
        return len(self._limiters)

    async def acquire(self, name: str) -> None:
        await self._limiters[name].acquire()

    def status(self) -> Dict[str, Dict[str, float]]:
        return {
            name: {
                "tokens_per_second": limiter.rate,
                "bucket_size": limiter.capacity,
                "current_tokens": limiter.available_tokens(),
                "time_until_next_token": limiter.time_until_next_token(),
            }
            for name, limiter in self._limiters.items()
        }

    def reset_all(self) -> None:
        for limiter in self._limiters.values():
            limiter.reset()
