"""Stub providers and a fake clock shared by the tests."""

from __future__ import annotations

import asyncio
from typing import Callable, List, Optional

from store_geocoding.base import GeocodeProvider
from store_geocoding.models import (
    ErrorCategory,
    GeocodeErrorDetails,
    GeocodeResult,
    ImportRow,
    Precision,
    ProviderConfig,
    ProviderName,
)


class FakeClock:
    """Manually advanced clock whose sleep advances time instantly."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class StubProvider(GeocodeProvider):
    """
    Provider returning scripted outcomes.

    Outcomes are consumed in order; once exhausted every call succeeds.
    An Exception in the script is raised instead of returned.
    """

    def __init__(
        self,
        name: ProviderName = ProviderName.NOMINATIM,
        outcomes: Optional[list] = None,
        delay: float = 0.0,
        configured: bool = True,
        enabled: bool = True,
        on_call: Optional[Callable[[str], None]] = None,
    ):
        self.name = name
        super().__init__(ProviderConfig(enabled=enabled, rate_limit=100.0))
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.configured = configured
        self.on_call = on_call
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def is_configured(self) -> bool:
        return self.configured

    async def geocode(self, address: str):
        self.calls.append(address)
        if self.on_call is not None:
            self.on_call(address)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.outcomes:
                outcome = self.outcomes.pop(0)
            else:
                outcome = ok(self.name)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1

    def _send(self, address):
        raise NotImplementedError

    def _parse(self, payload):
        raise NotImplementedError


def ok(provider: ProviderName = ProviderName.NOMINATIM, lat: float = 52.52, lng: float = 13.405) -> GeocodeResult:
    return GeocodeResult(lat=lat, lng=lng, precision=Precision.CITY, provider=provider)


def rate_limited(provider: ProviderName = ProviderName.NOMINATIM, retry_after: Optional[float] = None) -> GeocodeErrorDetails:
    return GeocodeErrorDetails(
        error="Rate limit exceeded",
        retryable=True,
        status_code=429,
        provider=provider,
        category=ErrorCategory.RATE_LIMIT,
        retry_after=retry_after,
    )


def not_found(provider: ProviderName = ProviderName.NOMINATIM) -> GeocodeErrorDetails:
    return GeocodeErrorDetails(
        error="No results found for address",
        retryable=False,
        provider=provider,
        category=ErrorCategory.VALIDATION,
    )


def make_rows(count: int, start: int = 1, **fields) -> List[ImportRow]:
    defaults = {"address": "Main St 1", "city": "Berlin", "country": "Germany"}
    defaults.update(fields)
    return [ImportRow(id=str(i), **defaults) for i in range(start, start + count)]
