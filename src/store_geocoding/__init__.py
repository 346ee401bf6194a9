"""
Batch geocoding for imported store address rows.

- Models: Data structures (ImportRow, GeocodeResult, GeocodeProgress, ...)
- Base classes: Abstract interfaces (RateLimiter, GeocodeProvider)
- Throttling: Token bucket rate limiting per provider
- Geocoders: Nominatim and Google Maps providers
- Manager: Provider selection and self-tests
- Retry / Concurrency: Backoff policy and the in-flight call gate
- Batch: Job orchestration, progress and cancellation
- Errors: Exception hierarchy, classification and aggregation
- Service: Request/response facade and settings
"""

from .models import (
    ProviderName,
    Precision,
    ErrorCategory,
    Severity,
    ImportRow,
    GeocodeResult,
    GeocodeErrorDetails,
    GeocodeOutcome,
    GeocodeError,
    GeocodeProgress,
    RowResult,
    BatchSummary,
    ProviderConfig,
    format_address,
    is_valid_coordinate,
)

from .base import (
    RateLimiter,
    GeocodeProvider,
    ConnectionTestResult,
)

from .throttling import (
    TokenBucket,
    NoOpRateLimiter,
    RateLimiterRegistry,
)

from .geocoders import (
    NominatimGeocoder,
    GoogleMapsGeocoder,
)

from .manager import (
    ProviderManager,
    ProviderStatus,
)

from .retry import RetryPolicy
from .concurrency import ConcurrencyGate

from .batch import (
    BatchProcessor,
    BatchResult,
    calculate_optimal_batch_size,
    estimate_processing_time,
    validate_rows_for_geocoding,
)

from .errors import (
    GeocodingError,
    RateLimitError,
    NetworkError,
    AddressValidationError,
    ConfigurationError,
    RequestValidationError,
    ErrorAggregator,
    ErrorClassification,
    ErrorSummary,
    classify,
    classify_status,
    is_retryable,
)

from .schemas import (
    GeocodeRequest,
    GeocodeRow,
    GeocodeResponse,
    GeocodeResultDto,
    parse_request,
)

from .settings import GeocodingSettings, load_settings
from .service import GeocodeService

__all__ = [
    # Models
    "ProviderName",
    "Precision",
    "ErrorCategory",
    "Severity",
    "ImportRow",
    "GeocodeResult",
    "GeocodeErrorDetails",
    "GeocodeOutcome",
    "GeocodeError",
    "GeocodeProgress",
    "RowResult",
    "BatchSummary",
    "ProviderConfig",
    "format_address",
    "is_valid_coordinate",
    # Base classes
    "RateLimiter",
    "GeocodeProvider",
    "ConnectionTestResult",
    # Throttling
    "TokenBucket",
    "NoOpRateLimiter",
    "RateLimiterRegistry",
    # Geocoders
    "NominatimGeocoder",
    "GoogleMapsGeocoder",
    # Manager
    "ProviderManager",
    "ProviderStatus",
    # Retry / concurrency
    "RetryPolicy",
    "ConcurrencyGate",
    # Batch
    "BatchProcessor",
    "BatchResult",
    "calculate_optimal_batch_size",
    "estimate_processing_time",
    "validate_rows_for_geocoding",
    # Errors
    "GeocodingError",
    "RateLimitError",
    "NetworkError",
    "AddressValidationError",
    "ConfigurationError",
    "RequestValidationError",
    "ErrorAggregator",
    "ErrorClassification",
    "ErrorSummary",
    "classify",
    "classify_status",
    "is_retryable",
    # Schemas / service
    "GeocodeRequest",
    "GeocodeRow",
    "GeocodeResponse",
    "GeocodeResultDto",
    "parse_request",
    "GeocodingSettings",
    "load_settings",
    "GeocodeService",
]
