from __future__ import annotations

import pytest

from helpers import StubProvider, ok, rate_limited
from store_geocoding.geocoders import GoogleMapsGeocoder, NominatimGeocoder
from store_geocoding.manager import NO_PROVIDERS, ProviderManager
from store_geocoding.models import ErrorCategory, GeocodeErrorDetails, GeocodeResult, ProviderName
from store_geocoding.settings import GeocodingSettings
from store_geocoding.throttling import RateLimiterRegistry

NOMINATIM = ProviderName.NOMINATIM
GOOGLE = ProviderName.GOOGLE


def make_manager(google_configured=True, nominatim_enabled=True):
    google = StubProvider(GOOGLE, configured=google_configured)
    nominatim = StubProvider(NOMINATIM, enabled=nominatim_enabled)
    return ProviderManager([nominatim, google]), google, nominatim


def test_commercial_provider_preferred_when_configured():
    manager, google, _ = make_manager()
    assert manager.select_provider() is google


def test_open_data_provider_when_no_credentials():
    manager, _, nominatim = make_manager(google_configured=False)
    assert manager.select_provider() is nominatim
    assert manager.available_providers() == [NOMINATIM]


def test_explicit_preference_wins():
    manager, _, nominatim = make_manager()
    assert manager.select_provider(NOMINATIM) is nominatim
    assert manager.select_provider("nominatim") is nominatim


def test_unavailable_preference_falls_back():
    manager, google, _ = make_manager(nominatim_enabled=False)
    assert manager.select_provider(NOMINATIM) is google


def test_exclusion_selects_another_provider():
    manager, _, nominatim = make_manager()
    assert manager.select_provider(exclude={GOOGLE}) is nominatim


def test_exclusion_ignored_when_nothing_else_available():
    manager, _, nominatim = make_manager(google_configured=False)
    assert manager.select_provider(exclude={NOMINATIM}) is nominatim


@pytest.mark.asyncio
async def test_geocode_uses_selected_provider_once():
    manager, google, nominatim = make_manager()
    google.outcomes = [rate_limited(GOOGLE)]

    result = await manager.geocode("Berlin, Germany")

    # no mid-call fallback
    assert isinstance(result, GeocodeErrorDetails)
    assert google.calls == ["Berlin, Germany"]
    assert nominatim.calls == []


@pytest.mark.asyncio
async def test_geocode_without_providers_is_configuration_error():
    manager = ProviderManager([StubProvider(NOMINATIM, configured=False)])

    result = await manager.geocode("Berlin")

    assert result.error == NO_PROVIDERS
    assert result.category == ErrorCategory.CONFIGURATION
    assert result.retryable is False


@pytest.mark.asyncio
async def test_test_all_providers_reports_each():
    manager, google, nominatim = make_manager(google_configured=False)
    nominatim.outcomes = [ok(NOMINATIM)]

    report = await manager.test_all_providers()

    assert report[NOMINATIM].available is True
    assert report[NOMINATIM].connection_test.success is True
    assert report[GOOGLE].configured is False
    assert report[GOOGLE].available is False
    assert google.calls == []


def test_from_settings_builds_rate_limited_providers():
    settings = GeocodingSettings(_env_file=None, google_api_key="key", nominatim_rate_limit=1, google_rate_limit=10)
    registry = RateLimiterRegistry()

    manager = ProviderManager.from_settings(settings, limiters=registry)

    nominatim = manager.get_provider(NOMINATIM)
    google = manager.get_provider(GOOGLE)
    assert isinstance(nominatim, NominatimGeocoder)
    assert isinstance(google, GoogleMapsGeocoder)
    assert nominatim.rate_limiter is registry.get("nominatim", 1)
    assert nominatim.rate_limiter is not google.rate_limiter
    assert nominatim.rate_limiter.capacity == 5
    assert google.rate_limiter.capacity == 20
    assert manager.select_provider() is google


def test_stats_and_summary():
    settings = GeocodingSettings(_env_file=None)
    manager = ProviderManager.from_settings(settings)

    stats = manager.provider_stats()
    summary = manager.configuration_summary()

    assert stats["nominatim"]["configured"] is True
    assert stats["google"]["configured"] is False
    assert stats["nominatim"]["current_tokens"] == 5
    assert summary["available_providers"] == ["nominatim"]
    assert summary["fallback_order"] == ["google", "nominatim"]
    assert summary["has_available_provider"] is True


def test_reset_rate_limiters():
    settings = GeocodingSettings(_env_file=None)
    manager = ProviderManager.from_settings(settings)
    limiter = manager.get_provider(NOMINATIM).rate_limiter
    limiter.try_acquire()

    manager.reset_rate_limiters()

    assert limiter.available_tokens() == limiter.capacity
