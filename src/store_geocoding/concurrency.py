"""
Bounded concurrency for in-flight geocode calls.
"""

import asyncio


class ConcurrencyGate:
    """
    Counting semaphore limiting simultaneous geocode calls.

    Waiters are woken in arrival order. The gate bounds local work
    (open connections, in-flight requests); it is independent of any
    provider rate limit.

    Usage:
        async with gate:
            await manager.geocode(address)
    """

    def __init__(self, limit: int = 3):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0
        self._waiting = 0

    @property
    def in_use(self) -> int:
        """Permits currently held."""
        return self._in_use

    @property
    def available(self) -> int:
        return self.limit - self._in_use

    @property
    def waiting(self) -> int:
        return self._waiting

    async def acquire(self) -> None:
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1
        self._in_use += 1

    def release(self) -> None:
        if self._in_use == 0:
            raise RuntimeError("ConcurrencyGate released more times than acquired")
        self._in_use -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "ConcurrencyGate":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()
