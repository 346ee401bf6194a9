"""
Exponential backoff with jitter for retrying transient geocoding failures.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RetryPolicy:
    """
    Stateful backoff for one row's sequence of attempts.

    Delay for attempt n is min(base_delay * 2**n, max_delay) plus a random
    jitter of up to delay * jitter_factor, so rows retrying at the same
    time drift apart.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter_factor: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        """
        Initialize retry policy.

        Args:
            max_retries: Retries allowed after the first attempt
            base_delay: Delay before the first retry, in seconds
            max_delay: Upper bound for the exponential part, in seconds
            jitter_factor: Fraction of the delay added as random jitter
            sleep: Coroutine used to wait
            rng: Source of uniform random numbers in [0, 1)
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if base_delay < 0 or max_delay < 0:
            raise ValueError("delays must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_factor = jitter_factor
        self._sleep = sleep
        self._rng = rng
        self.attempt = 0

    def next_delay(self) -> float:
        """Delay the next `wait()` would use, jitter included."""
        delay = min(self.base_delay * (2 ** self.attempt), self.max_delay)
        return delay + delay * self.jitter_factor * self._rng()

    def should_retry(self) -> bool:
        return self.attempt < self.max_retries

    async def wait(self, minimum: Optional[float] = None) -> float:
        """
        Sleep for the computed delay, then advance the attempt counter.

        Args:
            minimum: Lower bound for the delay, e.g. a Retry-After hint.
                Still capped at max_delay.

        Returns:
            The delay slept, in seconds
        """
        delay = self.next_delay()
        if minimum is not None and minimum > delay:
            delay = min(minimum, self.max_delay)
        logger.debug(f"Retry {self.attempt + 1}/{self.max_retries} in {delay:.2f}s")
        await self._sleep(delay)
        self.attempt += 1
        return delay

    def reset(self) -> None:
        self.attempt = 0
