from __future__ import annotations

import pytest

from helpers import FakeClock, StubProvider, not_found
from store_geocoding.batch import BatchProcessor
from store_geocoding.errors import ConfigurationError, RequestValidationError
from store_geocoding.manager import ProviderManager
from store_geocoding.models import Precision, ProviderName
from store_geocoding.schemas import GeocodeResponse, parse_request
from store_geocoding.service import GeocodeService


def make_service(*providers):
    clock = FakeClock()
    processor = BatchProcessor(ProviderManager(providers), sleep=clock.sleep)
    return GeocodeService(processor)


def test_parse_request_accepts_camel_case():
    request = parse_request({
        "providerPreference": "google",
        "rows": [{"id": 7, "address": " Main St 1 ", "country": "Germany"}],
    })

    assert request.provider_preference == ProviderName.GOOGLE
    row = request.rows[0].to_import_row()
    assert row.id == "7"
    assert row.address == "Main St 1"


def test_parse_request_rejects_bad_payload():
    with pytest.raises(RequestValidationError) as excinfo:
        parse_request({"providerPreference": "bing", "rows": [{"id": "1"}]})

    assert excinfo.value.source == "geocode_request"
    assert len(excinfo.value.errors) == 2


@pytest.mark.asyncio
async def test_batch_geocode_returns_one_dto_per_row():
    nominatim = StubProvider(ProviderName.NOMINATIM, outcomes=[not_found()])
    service = make_service(nominatim)

    response = await service.batch_geocode({
        "rows": [
            {"id": "a", "city": "Nowhere", "country": "DE"},
            {"id": "b", "city": "Berlin", "country": "DE"},
            {"id": "c", "address": "Main St", "country": ""},
        ],
    })

    assert isinstance(response, GeocodeResponse)
    results = {dto.id: dto for dto in response.results}
    assert results["a"].error == "No results found for address"
    assert results["a"].lat is None
    assert results["b"].precision == Precision.CITY
    assert results["b"].provider == ProviderName.NOMINATIM
    assert results["c"].error == "Insufficient address information"
    assert service.last_result.summary.total == 3


@pytest.mark.asyncio
async def test_request_preference_overrides_default():
    google = StubProvider(ProviderName.GOOGLE)
    nominatim = StubProvider(ProviderName.NOMINATIM)
    service = make_service(google, nominatim)
    service.default_provider = ProviderName.GOOGLE

    await service.batch_geocode({"providerPreference": "nominatim", "rows": [{"id": "1", "city": "Berlin", "country": "DE"}]})

    assert len(nominatim.calls) == 1
    assert google.calls == []


@pytest.mark.asyncio
async def test_test_provider():
    service = make_service(StubProvider(ProviderName.NOMINATIM))

    result = await service.test_provider(ProviderName.NOMINATIM)
    assert result.success is True

    with pytest.raises(ConfigurationError):
        await service.test_provider(ProviderName.GOOGLE)


def test_from_settings_wires_processor():
    from store_geocoding.settings import GeocodingSettings

    settings = GeocodingSettings(_env_file=None, batch_size=5, preferred_provider="nominatim")
    service = GeocodeService.from_settings(settings)

    assert service.processor.batch_size == 5
    assert service.default_provider == ProviderName.NOMINATIM
    assert service.manager.available_providers() == [ProviderName.NOMINATIM]
