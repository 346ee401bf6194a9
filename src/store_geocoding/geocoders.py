"""
Concrete geocoding providers.

- NominatimGeocoder: OpenStreetMap Nominatim search API
  (https://nominatim.org/release-docs/latest/api/Search/)
- GoogleMapsGeocoder: Google Maps Geocoding API
  (https://developers.google.com/maps/documentation/geocoding)
"""

import logging
from typing import Any, Iterable, Optional

import requests

from .base import GeocodeProvider, RateLimiter
from .models import ErrorCategory, GeocodeOutcome, Precision, ProviderConfig, ProviderName

logger = logging.getLogger(__name__)

NOMINATIM_BASE_URL = "https://nominatim.openstreetmap.org"
NOMINATIM_USER_AGENT = "store-geocoding/0.1"
GOOGLE_BASE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

# Checked in order, most specific first
_NOMINATIM_TYPES = [
    ({"house", "building", "house_number"}, Precision.EXACT),
    ({"road", "street", "residential", "primary", "secondary", "tertiary"}, Precision.STREET),
    ({"suburb", "neighbourhood", "neighborhood", "quarter", "city_district"}, Precision.NEIGHBORHOOD),
    ({"city", "town", "village", "municipality", "hamlet"}, Precision.CITY),
    ({"postcode"}, Precision.POSTAL),
    ({"state", "province", "region", "county"}, Precision.REGION),
    ({"country"}, Precision.COUNTRY),
]

_GOOGLE_TYPES = [
    ({"street_address", "premise", "subpremise"}, Precision.EXACT),
    ({"route", "intersection"}, Precision.STREET),
    ({"neighborhood", "sublocality", "sublocality_level_1"}, Precision.NEIGHBORHOOD),
    ({"locality", "postal_town"}, Precision.CITY),
    ({"postal_code"}, Precision.POSTAL),
    ({"administrative_area_level_1", "administrative_area_level_2"}, Precision.REGION),
    ({"country"}, Precision.COUNTRY),
]


def _match_types(types: Iterable[str], table: list) -> Optional[Precision]:
    found = {t for t in types if t}
    for names, precision in table:
        if found & names:
            return precision
    return None


def nominatim_precision(place: dict[str, Any]) -> Precision:
    """
    Derive precision from a Nominatim search hit.

    Uses `addresstype` when present, then `type`, then the `class`
    (a `highway` or `building` class is enough on its own).
    """
    candidates = [place.get("addresstype"), place.get("type")]
    precision = _match_types(candidates, _NOMINATIM_TYPES)
    if precision is not None:
        return precision
    osm_class = place.get("class")
    if osm_class == "building":
        return Precision.EXACT
    if osm_class == "highway":
        return Precision.STREET
    return Precision.APPROXIMATE


def google_precision(result: dict[str, Any]) -> Precision:
    """
    Derive precision from a Google geocoding result.

    ROOFTOP and RANGE_INTERPOLATED location types are decisive; for
    approximate geometry the result's `types` decide.
    """
    location_type = result.get("geometry", {}).get("location_type")
    if location_type == "ROOFTOP":
        return Precision.EXACT
    if location_type == "RANGE_INTERPOLATED":
        return Precision.STREET
    return _match_types(result.get("types", []), _GOOGLE_TYPES) or Precision.APPROXIMATE


class NominatimGeocoder(GeocodeProvider):
    """
    OpenStreetMap Nominatim provider.

    Needs no credentials, but the usage policy requires an identifying
    User-Agent and at most one request per second on the public server.
    """

    name = ProviderName.NOMINATIM
    test_address = "Berlin, Germany"

    def __init__(
        self,
        config: ProviderConfig,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(config, rate_limiter, session)
        self.base_url = (config.base_url or NOMINATIM_BASE_URL).rstrip("/")
        self.user_agent = config.user_agent or NOMINATIM_USER_AGENT
        logger.info(f"Initialized NominatimGeocoder: {self.base_url}, timeout={self.timeout}s")

    def _send(self, address: str) -> requests.Response:
        return self.session.get(
            f"{self.base_url}/search",
            params={"q": address, "format": "json", "limit": 1, "addressdetails": 1},
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            timeout=self.timeout,
        )

    def _parse(self, payload: Any) -> GeocodeOutcome:
        if not isinstance(payload, list):
            return self.error("Unexpected response format", False, ErrorCategory.UNKNOWN)
        if not payload:
            return self.error("No results found for address", False, ErrorCategory.VALIDATION)
        place = payload[0]
        return self.result(place.get("lat"), place.get("lon"), nominatim_precision(place))


class GoogleMapsGeocoder(GeocodeProvider):
    """
    Google Maps Geocoding API provider.

    Requires an API key. Google reports most failures with HTTP 200 and
    a `status` field, which is mapped to the shared error taxonomy here.
    """

    name = ProviderName.GOOGLE
    test_address = "Times Square, New York, NY, USA"

    # status -> (message, retryable, category)
    STATUS_ERRORS = {
        "ZERO_RESULTS": ("No results found for address", False, ErrorCategory.VALIDATION),
        "OVER_QUERY_LIMIT": ("API quota exceeded", True, ErrorCategory.RATE_LIMIT),
        "OVER_DAILY_LIMIT": ("API quota exceeded", True, ErrorCategory.RATE_LIMIT),
        "REQUEST_DENIED": ("Request denied - check API key", False, ErrorCategory.CONFIGURATION),
        "INVALID_REQUEST": ("Invalid request", False, ErrorCategory.VALIDATION),
        "UNKNOWN_ERROR": ("Server error occurred", True, ErrorCategory.NETWORK),
    }

    def __init__(
        self,
        config: ProviderConfig,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(config, rate_limiter, session)
        self.base_url = config.base_url or GOOGLE_BASE_URL
        logger.info(
            f"Initialized GoogleMapsGeocoder: configured={self.is_configured()}, timeout={self.timeout}s"
        )

    def is_configured(self) -> bool:
        return bool(self.config.api_key and self.config.api_key.strip())

    def _send(self, address: str) -> requests.Response:
        return self.session.get(
            self.base_url,
            params={"address": address, "key": self.config.api_key, "language": "en"},
            timeout=self.timeout,
        )

    def _parse(self, payload: Any) -> GeocodeOutcome:
        if not isinstance(payload, dict):
            return self.error("Unexpected response format", False, ErrorCategory.UNKNOWN)
        status = payload.get("status")
        if status != "OK":
            message, retryable, category = self.STATUS_ERRORS.get(
                status, (f"Geocoding failed: {status}", False, ErrorCategory.UNKNOWN)
            )
            api_message = payload.get("error_message")
            if api_message:
                message = f"{message}: {api_message}"
            return self.error(message, retryable, category)

        results = payload.get("results") or []
        if not results:
            return self.error("No results found for address", False, ErrorCategory.VALIDATION)
        best = results[0]
        location = best.get("geometry", {}).get("location", {})
        return self.result(location.get("lat"), location.get("lng"), google_precision(best))
