"""
Core data models for the batch geocoding pipeline.

These frozen dataclasses serve as the contract between the providers,
the provider manager and the batch processor. A geocode attempt always
produces either a GeocodeResult or a GeocodeErrorDetails; expected
failures travel as values, never as exceptions.
"""

import copy
import math
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, List, Optional, Union


INSUFFICIENT_ADDRESS = "Insufficient address information"
OPERATION_CANCELLED = "Operation cancelled"


class ProviderName(StrEnum):
    """Identifier of a geocoding provider."""
    NOMINATIM = "nominatim"
    GOOGLE = "google"
    NONE = "none"


class Precision(StrEnum):
    """Coarse category of how specific a resolved coordinate is."""
    EXACT = "exact"
    STREET = "street"
    NEIGHBORHOOD = "neighborhood"
    CITY = "city"
    POSTAL = "postal"
    REGION = "region"
    COUNTRY = "country"
    APPROXIMATE = "approximate"
    EXISTING = "existing"


class ErrorCategory(StrEnum):
    """Failure taxonomy shared by providers and the error aggregator."""
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class Severity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def is_valid_coordinate(lat: Any, lng: Any) -> bool:
    """
    Check that a latitude/longitude pair is numeric, finite and in range.

    Booleans are rejected even though they are ints in Python.
    """
    for value in (lat, lng):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value):
            return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


@dataclass(frozen=True)
class ImportRow:
    """
    A single address row handed over by the import collaborator.

    Column mapping and country inference are already resolved; `id` is
    stable for the lifetime of the job.
    """
    id: str
    country: str = ""
    address: Optional[str] = None
    city: Optional[str] = None
    postcode: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def has_coordinates(self) -> bool:
        """True when the row is pre-resolved and must not be geocoded."""
        return is_valid_coordinate(self.latitude, self.longitude)

    def has_minimum_address(self) -> bool:
        """A country plus either a street address or a city."""
        return _present(self.country) and (_present(self.address) or _present(self.city))

    def address_string(self) -> str:
        """Join the address components, dropping blanks."""
        return format_address(self.address, self.city, self.postcode, self.country)


def format_address(*components: Optional[str]) -> str:
    """
    Join address components into a single provider query.

    Args:
        *components: Components in the order address, city, postcode, country

    Returns:
        Comma separated address with empty/whitespace components dropped
    """
    return ", ".join(c.strip() for c in components if _present(c))


@dataclass(frozen=True)
class GeocodeResult:
    """A resolved coordinate."""
    lat: float
    lng: float
    precision: Precision
    provider: ProviderName

    def to_dict(self) -> dict[str, Any]:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "precision": self.precision.value,
            "provider": self.provider.value,
        }


@dataclass(frozen=True)
class GeocodeErrorDetails:
    """
    A classified geocoding failure.

    `retry_after` is only set for rate limited responses that carried a
    Retry-After hint (seconds).
    """
    error: str
    retryable: bool
    status_code: Optional[int] = None
    provider: Optional[ProviderName] = None
    category: ErrorCategory = ErrorCategory.UNKNOWN
    retry_after: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error,
            "retryable": self.retryable,
            "status_code": self.status_code,
            "provider": self.provider.value if self.provider else None,
            "category": self.category.value,
            "retry_after": self.retry_after,
        }


GeocodeOutcome = Union[GeocodeResult, GeocodeErrorDetails]


def existing_result(row: ImportRow) -> GeocodeResult:
    """Result for a row that already carries coordinates."""
    return GeocodeResult(
        lat=float(row.latitude),
        lng=float(row.longitude),
        precision=Precision.EXISTING,
        provider=ProviderName.NONE,
    )


@dataclass(frozen=True)
class GeocodeError:
    """Per-row, user facing failure record."""
    row_id: str
    address: str
    reason: str
    retryable: bool
    provider: Optional[ProviderName] = None

    @classmethod
    def from_details(cls, row: ImportRow, details: GeocodeErrorDetails) -> "GeocodeError":
        return cls(
            row_id=row.id,
            address=row.address_string(),
            reason=details.error,
            retryable=details.retryable,
            provider=details.provider,
        )


@dataclass
class GeocodeProgress:
    """
    Live progress of one geocoding job.

    Owned and mutated by the batch processor only. Callbacks receive a
    copy from `snapshot()`.
    """
    total: int
    completed: int = 0
    failed: int = 0
    in_progress: bool = True
    errors: List[GeocodeError] = field(default_factory=list)
    current_batch: int = 0
    total_batches: int = 0

    @property
    def processed(self) -> int:
        return self.completed + self.failed

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return 100.0 * self.processed / self.total

    def snapshot(self) -> "GeocodeProgress":
        return copy.deepcopy(self)


@dataclass(frozen=True)
class RowResult:
    """A row paired with its final outcome."""
    row: ImportRow
    result: GeocodeOutcome

    @property
    def succeeded(self) -> bool:
        return isinstance(self.result, GeocodeResult)

    @property
    def skipped(self) -> bool:
        return self.succeeded and self.result.precision == Precision.EXISTING


@dataclass(frozen=True)
class BatchSummary:
    """Aggregate counts; total == successful + failed + skipped."""
    total: int
    successful: int
    failed: int
    skipped: int

    @classmethod
    def from_results(cls, results: List[RowResult]) -> "BatchSummary":
        skipped = sum(1 for r in results if r.skipped)
        successful = sum(1 for r in results if r.succeeded) - skipped
        return cls(
            total=len(results),
            successful=successful,
            failed=len(results) - successful - skipped,
            skipped=skipped,
        )


@dataclass(frozen=True)
class ProviderConfig:
    """
    Per-provider configuration.

    `rate_limit` is requests per second and `timeout` is seconds. Google
    style providers need `api_key`; Nominatim style ones use `base_url`
    and `user_agent`.
    """
    enabled: bool = True
    rate_limit: float = 1.0
    timeout: float = 10.0
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    user_agent: Optional[str] = None
    bucket_size: Optional[int] = None
