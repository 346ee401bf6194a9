"""
Request/response shapes exchanged with the import layer.

Pydantic models validate inbound payloads (camelCase or snake_case keys)
and serialize responses with camelCase aliases.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import RequestValidationError
from .models import GeocodeResult, ImportRow, Precision, ProviderName, RowResult


class GeocodeRow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    address: Optional[str] = None
    city: Optional[str] = None
    postcode: Optional[str] = None
    country: str

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # spreadsheet ids often arrive as numbers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("address", "city", "postcode", "country")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if isinstance(value, str) else value

    def to_import_row(self) -> ImportRow:
        return ImportRow(
            id=self.id,
            country=self.country,
            address=self.address,
            city=self.city,
            postcode=self.postcode,
        )


class GeocodeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provider_preference: Optional[ProviderName] = Field(None, alias="providerPreference")
    rows: List[GeocodeRow]

    @field_validator("provider_preference")
    @classmethod
    def _real_provider(cls, value: Optional[ProviderName]) -> Optional[ProviderName]:
        if value == ProviderName.NONE:
            raise ValueError("providerPreference must be 'nominatim' or 'google'")
        return value


class GeocodeResultDto(BaseModel):
    id: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    precision: Optional[Precision] = None
    provider: Optional[ProviderName] = None
    error: Optional[str] = None

    @classmethod
    def from_row_result(cls, row_result: RowResult) -> "GeocodeResultDto":
        result = row_result.result
        if isinstance(result, GeocodeResult):
            return cls(
                id=row_result.row.id,
                lat=result.lat,
                lng=result.lng,
                precision=result.precision,
                provider=result.provider,
            )
        return cls(id=row_result.row.id, provider=result.provider, error=result.error)


class GeocodeResponse(BaseModel):
    results: List[GeocodeResultDto]


def parse_request(payload: Any) -> GeocodeRequest:
    """
    Validate a raw request payload.

    Raises:
        RequestValidationError: if the payload does not match GeocodeRequest
    """
    try:
        return GeocodeRequest.model_validate(payload)
    except ValidationError as e:
        raise RequestValidationError("geocode_request", e.errors(), e) from e
