"""
Abstract base classes for the geocoding system.

These define the interfaces that all concrete rate limiters and
providers must follow. GeocodeProvider also carries the behavior every
provider shares: rate limiting, the per-call timeout, HTTP status
mapping and result validation.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional

import requests

from .errors import classify_status
from .models import (
    ErrorCategory,
    GeocodeErrorDetails,
    GeocodeOutcome,
    GeocodeResult,
    Precision,
    ProviderConfig,
    ProviderName,
    is_valid_coordinate,
)

logger = logging.getLogger(__name__)


class RateLimiter(ABC):
    """
    Abstract base for rate limiters.

    Rate limiters control the rate at which requests are made,
    useful for respecting API rate limits. They never fail, only delay.
    """

    @abstractmethod
    async def acquire(self) -> None:
        """Suspend until a request slot is available, then consume it."""
        pass

    @abstractmethod
    def try_acquire(self) -> bool:
        """Consume a slot only if one is available right now."""
        pass

    @abstractmethod
    def available_tokens(self) -> int:
        pass

    @abstractmethod
    def time_until_next_token(self) -> float:
        """Seconds until the next slot frees up (0 if one is available)."""
        pass

    def reset(self) -> None:
        pass


@dataclass(frozen=True)
class ConnectionTestResult:
    """Outcome of a provider self-test."""
    success: bool
    message: str
    response_time_ms: Optional[float] = None


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header into seconds.

    Args:
        value: Header value, either delta-seconds or an HTTP date

    Returns:
        Seconds to wait, or None if the header is absent or unparseable
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class GeocodeProvider(ABC):
    """
    Abstract base for geocoding providers.

    Providers turn a formatted address into a GeocodeResult or a
    classified GeocodeErrorDetails. `geocode()` never raises for
    ordinary failures.

    Subclasses implement `_send()` (the blocking HTTP request, run in a
    worker thread) and `_parse()` (turning the decoded payload into an
    outcome).
    """

    name: ClassVar[ProviderName]
    test_address: ClassVar[str] = "Berlin, Germany"

    def __init__(
        self,
        config: ProviderConfig,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize provider.

        Args:
            config: Provider configuration (rate limit, timeout, credentials)
            rate_limiter: Limiter owned by this provider (defaults to none)
            session: Optional requests session to reuse connections
        """
        # Imported here to avoid a cycle with throttling -> base
        from .throttling import NoOpRateLimiter

        self.config = config
        self.rate_limiter = rate_limiter or NoOpRateLimiter()
        self.session = session or requests.Session()

    @property
    def timeout(self) -> float:
        return self.config.timeout

    def is_enabled(self) -> bool:
        return self.config.enabled

    def is_configured(self) -> bool:
        """Whether the provider has what it needs to make requests."""
        return True

    def is_available(self) -> bool:
        return self.is_enabled() and self.is_configured()

    def error(
        self,
        message: str,
        retryable: bool,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ) -> GeocodeErrorDetails:
        return GeocodeErrorDetails(
            error=message,
            retryable=retryable,
            status_code=status_code,
            provider=self.name,
            category=category,
            retry_after=retry_after,
        )

    def result(self, lat: Any, lng: Any, precision: Precision) -> GeocodeOutcome:
        """Build a result, rejecting out-of-range or non-numeric coordinates."""
        try:
            lat, lng = float(lat), float(lng)
        except (TypeError, ValueError):
            return self.error("Invalid coordinates in response", False, ErrorCategory.VALIDATION)
        if not is_valid_coordinate(lat, lng):
            return self.error("Invalid coordinates in response", False, ErrorCategory.VALIDATION)
        return GeocodeResult(lat=lat, lng=lng, precision=precision, provider=self.name)

    def http_error(self, response: requests.Response) -> GeocodeErrorDetails:
        """Map a non-2xx response to an error value."""
        status = response.status_code
        category, retryable = classify_status(status)
        if category == ErrorCategory.RATE_LIMIT:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            message = "Rate limit exceeded"
            if retry_after is not None:
                message = f"Rate limit exceeded (retry after {retry_after:g}s)"
            return self.error(message, True, category, status, retry_after)
        if category == ErrorCategory.NETWORK:
            return self.error(f"Server error: HTTP {status}", retryable, category, status)
        if category == ErrorCategory.VALIDATION:
            return self.error(f"Client error: HTTP {status}", retryable, category, status)
        return self.error(f"Unexpected response: HTTP {status}", retryable, category, status)

    async def geocode(self, address: str) -> GeocodeOutcome:
        """
        Geocode a single formatted address.

        Waits on the provider's rate limiter, then runs the request with
        the configured timeout.

        Args:
            address: Comma separated address string

        Returns:
            GeocodeResult on success, GeocodeErrorDetails otherwise
        """
        if not address or not address.strip():
            return self.error("Address is required", False, ErrorCategory.VALIDATION)
        if not self.is_enabled():
            return self.error(f"Provider {self.name} is disabled", False, ErrorCategory.CONFIGURATION)
        if not self.is_configured():
            return self.error(f"Provider {self.name} is not configured", False, ErrorCategory.CONFIGURATION)

        await self.rate_limiter.acquire()
        logger.debug(f"{self.name}: geocoding {address!r}")

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self._send, address),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, requests.Timeout):
            logger.warning(f"{self.name}: request timed out after {self.timeout}s")
            return self.error("Request timeout", True, ErrorCategory.NETWORK)
        except requests.ConnectionError as e:
            logger.warning(f"{self.name}: connection error: {e}")
            return self.error(f"Network error: {e}", True, ErrorCategory.NETWORK)
        except requests.RequestException as e:
            return self.error(f"Request failed: {e}", False, ErrorCategory.UNKNOWN)

        if not response.ok:
            details = self.http_error(response)
            logger.warning(f"{self.name}: {details.error}")
            return details

        try:
            payload = response.json()
        except ValueError:
            return self.error("Malformed response from provider", False, ErrorCategory.UNKNOWN, response.status_code)

        return self._parse(payload)

    async def test_connection(self) -> ConnectionTestResult:
        """Geocode a well-known address and report reachability."""
        if not self.is_available():
            return ConnectionTestResult(False, f"Provider {self.name} is not configured")
        start = time.perf_counter()
        outcome = await self.geocode(self.test_address)
        elapsed_ms = (time.perf_counter() - start) * 1000
        if isinstance(outcome, GeocodeResult):
            return ConnectionTestResult(True, "Connection successful", elapsed_ms)
        return ConnectionTestResult(False, outcome.error, elapsed_ms)

    @abstractmethod
    def _send(self, address: str) -> requests.Response:
        """Perform the blocking HTTP request."""
        pass

    @abstractmethod
    def _parse(self, payload: Any) -> GeocodeOutcome:
        """Convert a decoded response body into an outcome."""
        pass
