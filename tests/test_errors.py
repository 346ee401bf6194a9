from __future__ import annotations

import asyncio
import logging

import pytest
import requests
from pydantic import BaseModel, ValidationError

from store_geocoding.errors import (
    AddressValidationError,
    ConfigurationError,
    ErrorAggregator,
    GeocodingError,
    NetworkError,
    RateLimitError,
    RequestValidationError,
    classify,
    classify_status,
    is_retryable,
    log_error,
    user_friendly_message,
)
from store_geocoding.models import (
    ErrorCategory,
    GeocodeError,
    GeocodeErrorDetails,
    ProviderName,
    Severity,
)


@pytest.mark.parametrize("status, category, retryable", [
    (429, ErrorCategory.RATE_LIMIT, True),
    (500, ErrorCategory.NETWORK, True),
    (503, ErrorCategory.NETWORK, True),
    (408, ErrorCategory.NETWORK, True),
    (400, ErrorCategory.VALIDATION, False),
    (404, ErrorCategory.VALIDATION, False),
    (302, ErrorCategory.UNKNOWN, False),
])
def test_classify_status(status, category, retryable):
    assert classify_status(status) == (category, retryable)


def test_validation_and_configuration_are_high_severity_and_final():
    details = GeocodeErrorDetails("bad", retryable=True, category=ErrorCategory.VALIDATION)
    info = classify(details)
    assert info.severity == Severity.HIGH
    assert info.retryable is False

    info = classify(ConfigurationError("no key"))
    assert info.category == ErrorCategory.CONFIGURATION
    assert info.severity == Severity.HIGH
    assert info.retryable is False


def test_network_and_rate_limit_are_medium_and_retryable():
    for error in (RateLimitError("slow down", retry_after=2), NetworkError("reset")):
        info = classify(error)
        assert info.severity == Severity.MEDIUM
        assert info.retryable is True


def test_foreign_exceptions():
    assert classify(requests.Timeout()).category == ErrorCategory.NETWORK
    assert is_retryable(requests.ConnectionError())
    assert is_retryable(asyncio.TimeoutError())

    response = requests.Response()
    response.status_code = 503
    assert classify(requests.HTTPError(response=response)).retryable is True
    response.status_code = 404
    assert classify(requests.HTTPError(response=response)).category == ErrorCategory.VALIDATION

    info = classify(ValueError("bug"))
    assert info.category == ErrorCategory.UNKNOWN
    assert info.retryable is False


def test_geocoding_error_from_details():
    details = GeocodeErrorDetails(
        "Rate limit exceeded",
        retryable=True,
        status_code=429,
        provider=ProviderName.GOOGLE,
        category=ErrorCategory.RATE_LIMIT,
        retry_after=4.0,
    )

    error = GeocodingError.from_details(details)

    assert isinstance(error, RateLimitError)
    assert error.retry_after == 4.0
    payload = error.to_dict()
    assert payload["name"] == "RateLimitError"
    assert payload["provider"] == "google"
    assert payload["status_code"] == 429
    assert payload["context"] == {"retry_after": 4.0}

    unknown = GeocodingError.from_details(GeocodeErrorDetails("odd", retryable=False))
    assert type(unknown) is GeocodingError


def test_aggregator_views_and_summary():
    aggregator = ErrorAggregator()
    assert aggregator.is_empty()

    aggregator.add(GeocodeErrorDetails("timeout", True, category=ErrorCategory.NETWORK), {"row_id": "1"})
    aggregator.add(GeocodeErrorDetails("429", True, category=ErrorCategory.RATE_LIMIT), {"row_id": "2"})
    aggregator.add(AddressValidationError("bad address"), {"row_id": "3"})
    aggregator.add(GeocodeError("4", "x", "Operation cancelled", retryable=False))

    summary = aggregator.summary()
    assert summary.total == 4
    assert summary.retryable == 2
    assert summary.non_retryable == 2
    assert summary.categories == {"network": 1, "rate_limit": 1, "validation": 1, "unknown": 1}
    assert [e.context["row_id"] for e in aggregator.retryable_errors()] == ["1", "2"]
    assert [e.message for e in aggregator.non_retryable_errors()] == ["bad address", "Operation cancelled"]

    aggregator.clear()
    assert aggregator.count == 0
    assert aggregator.is_empty()


def test_request_validation_error_summary():
    class Payload(BaseModel):
        a: int
        b: int

    with pytest.raises(ValidationError) as excinfo:
        Payload.model_validate({"a": "x"})

    err = RequestValidationError("payload", excinfo.value.errors(), excinfo.value)

    assert err.source == "payload"
    assert err.category == ErrorCategory.VALIDATION
    lines = err.summary(limit=1).splitlines()
    assert lines[0].startswith("- a:")
    assert lines[1] == "... (1 more)"


def test_log_error_level_follows_severity(caplog):
    with caplog.at_level(logging.INFO, logger="store_geocoding.errors"):
        log_error(ConfigurationError("missing key"), {"provider": "google"})
        log_error(NetworkError("reset"))

    levels = [record.levelno for record in caplog.records]
    assert levels == [logging.ERROR, logging.WARNING]


def test_user_friendly_message():
    assert "rate limiting" in user_friendly_message(RateLimitError("x"))
    assert "not configured" in user_friendly_message(ConfigurationError("x"))
