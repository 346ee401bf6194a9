"""
Error taxonomy, classification and aggregation.

Expected geocoding failures are carried as GeocodeErrorDetails values.
The exception hierarchy below is for boundary errors (bad requests,
missing configuration) and for classifying foreign exceptions such as
those raised by requests.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

import requests
from pydantic import ValidationError

from .models import (
    ErrorCategory,
    GeocodeError,
    GeocodeErrorDetails,
    ProviderName,
    Severity,
)

logger = logging.getLogger(__name__)


class GeocodingError(Exception):
    """Base class for geocoding exceptions."""

    category = ErrorCategory.UNKNOWN
    retryable = False

    def __init__(
        self,
        message: str,
        provider: Optional[ProviderName] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
            "provider": self.provider.value if self.provider else None,
            "status_code": self.status_code,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_details(cls, details: GeocodeErrorDetails) -> "GeocodingError":
        """Raise-able counterpart of an error value."""
        error_cls = _CATEGORY_EXCEPTIONS.get(details.category, GeocodingError)
        kwargs: Dict[str, Any] = {
            "provider": details.provider,
            "status_code": details.status_code,
            "retryable": details.retryable,
        }
        if error_cls is RateLimitError:
            kwargs["retry_after"] = details.retry_after
        return error_cls(details.error, **kwargs)


class RateLimitError(GeocodingError):
    category = ErrorCategory.RATE_LIMIT
    retryable = True

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        if retry_after is not None:
            self.context.setdefault("retry_after", retry_after)


class NetworkError(GeocodingError):
    category = ErrorCategory.NETWORK
    retryable = True


class AddressValidationError(GeocodingError):
    category = ErrorCategory.VALIDATION


class ConfigurationError(GeocodingError):
    category = ErrorCategory.CONFIGURATION


class RequestValidationError(GeocodingError):
    """A geocode request payload failed schema validation."""

    category = ErrorCategory.VALIDATION

    def __init__(self, source: str, errors: list[dict[str, Any]], original: ValidationError | None = None):
        self.source = source
        self.errors = errors
        self.original = original
        super().__init__(f"Validation failed for {len(errors)} fields of '{source}'")

    def summary(self, limit: int = 5) -> str:
        """Human-readable summary of the first few validation issues."""
        lines = []
        for err in self.errors[:limit]:
            loc = ".".join(str(p) for p in err.get("loc", []))
            lines.append(f"- {loc}: {err.get('msg')} ({err.get('type')})")
        if len(self.errors) > limit:
            lines.append(f"... ({len(self.errors) - limit} more)")
        return "\n".join(lines)


_CATEGORY_EXCEPTIONS = {
    ErrorCategory.RATE_LIMIT: RateLimitError,
    ErrorCategory.NETWORK: NetworkError,
    ErrorCategory.VALIDATION: AddressValidationError,
    ErrorCategory.CONFIGURATION: ConfigurationError,
}


def classify_status(status_code: int) -> Tuple[ErrorCategory, bool]:
    """
    Map an HTTP status code to a category and retryable flag.

    Args:
        status_code: HTTP response status

    Returns:
        Tuple of (category, retryable)
    """
    if status_code == 429:
        return ErrorCategory.RATE_LIMIT, True
    if status_code == 408 or status_code >= 500:
        return ErrorCategory.NETWORK, True
    if 400 <= status_code < 500:
        return ErrorCategory.VALIDATION, False
    return ErrorCategory.UNKNOWN, False


@dataclass(frozen=True)
class ErrorClassification:
    category: ErrorCategory
    severity: Severity
    retryable: bool


AnyError = Union[BaseException, GeocodeErrorDetails, GeocodeError]


def _severity(category: ErrorCategory) -> Severity:
    if category in (ErrorCategory.VALIDATION, ErrorCategory.CONFIGURATION):
        return Severity.HIGH
    return Severity.MEDIUM


def _build(category: ErrorCategory, retryable: bool) -> ErrorClassification:
    # validation and configuration failures are never retried
    if category in (ErrorCategory.VALIDATION, ErrorCategory.CONFIGURATION):
        retryable = False
    elif category in (ErrorCategory.NETWORK, ErrorCategory.RATE_LIMIT):
        retryable = True
    return ErrorClassification(category, _severity(category), retryable)


def classify(error: AnyError) -> ErrorClassification:
    """
    Classify an error value or exception.

    Args:
        error: GeocodeErrorDetails, GeocodeError or any exception

    Returns:
        ErrorClassification with category, severity and retryable flag
    """
    if isinstance(error, GeocodeErrorDetails):
        return _build(error.category, error.retryable)
    if isinstance(error, GeocodeError):
        category = ErrorCategory.NETWORK if error.retryable else ErrorCategory.UNKNOWN
        return ErrorClassification(category, Severity.MEDIUM, error.retryable)
    if isinstance(error, GeocodingError):
        return _build(error.category, error.retryable)
    if isinstance(error, requests.HTTPError) and error.response is not None:
        return _build(*classify_status(error.response.status_code))
    if isinstance(error, (requests.Timeout, requests.ConnectionError, asyncio.TimeoutError, ConnectionError)):
        return _build(ErrorCategory.NETWORK, True)
    return ErrorClassification(ErrorCategory.UNKNOWN, Severity.MEDIUM, False)


def is_retryable(error: AnyError) -> bool:
    return classify(error).retryable


_FRIENDLY_MESSAGES = {
    ErrorCategory.NETWORK: "A network problem interrupted geocoding. Retrying usually helps.",
    ErrorCategory.RATE_LIMIT: "The geocoding provider is rate limiting requests. Try again shortly.",
    ErrorCategory.VALIDATION: "The address could not be geocoded. Check the address details.",
    ErrorCategory.CONFIGURATION: "Geocoding is not configured. Contact an administrator.",
    ErrorCategory.UNKNOWN: "An unexpected error occurred while geocoding.",
}


def user_friendly_message(error: AnyError) -> str:
    return _FRIENDLY_MESSAGES[classify(error).category]


def _describe(error: AnyError) -> str:
    if isinstance(error, GeocodeErrorDetails):
        return error.error
    if isinstance(error, GeocodeError):
        return error.reason
    return str(error) or type(error).__name__


def log_error(error: AnyError, context: Optional[Dict[str, Any]] = None) -> ErrorClassification:
    """Log an error at a level matching its severity."""
    info = classify(error)
    level = {
        Severity.HIGH: logging.ERROR,
        Severity.MEDIUM: logging.WARNING,
        Severity.LOW: logging.INFO,
    }[info.severity]
    logger.log(level, f"[{info.category}] {_describe(error)} context={context or {}}")
    return info


@dataclass(frozen=True)
class AggregatedError:
    error: AnyError
    classification: ErrorClassification
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return _describe(self.error)


@dataclass(frozen=True)
class ErrorSummary:
    total: int
    retryable: int
    non_retryable: int
    categories: Dict[str, int]


class ErrorAggregator:
    """
    Collects failures of a job and summarizes them for the caller.

    The retryable view drives "retry selected" re-submission; the
    summary feeds an error panel.
    """

    def __init__(self) -> None:
        self._errors: List[AggregatedError] = []

    def add(self, error: AnyError, context: Optional[Dict[str, Any]] = None) -> AggregatedError:
        entry = AggregatedError(error, classify(error), dict(context or {}))
        self._errors.append(entry)
        return entry

    @property
    def errors(self) -> List[AggregatedError]:
        return list(self._errors)

    @property
    def count(self) -> int:
        return len(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def retryable_errors(self) -> List[AggregatedError]:
        return [e for e in self._errors if e.classification.retryable]

    def non_retryable_errors(self) -> List[AggregatedError]:
        return [e for e in self._errors if not e.classification.retryable]

    def is_empty(self) -> bool:
        return not self._errors

    def clear(self) -> None:
        self._errors.clear()

    def summary(self) -> ErrorSummary:
        categories: Dict[str, int] = {}
        for entry in self._errors:
            key = entry.classification.category.value
            categories[key] = categories.get(key, 0) + 1
        retryable = len(self.retryable_errors())
        return ErrorSummary(
            total=len(self._errors),
            retryable=retryable,
            non_retryable=len(self._errors) - retryable,
            categories=categories,
        )
