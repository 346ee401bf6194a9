from typing import Any, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .geocoders import GOOGLE_BASE_URL, NOMINATIM_BASE_URL, NOMINATIM_USER_AGENT
from .models import ProviderConfig, ProviderName


class GeocodingSettings(BaseSettings):
    """Geocoding configuration read from the environment and `.env`."""

    enabled: bool = True

    batch_size: int = Field(15, ge=1, le=50)
    concurrency_limit: int = Field(3, ge=1, le=10)
    max_retries: int = Field(3, ge=0, le=5)
    timeout_ms: int = Field(10_000, gt=0)
    base_delay_ms: int = Field(1_000, ge=0)
    max_delay_ms: int = Field(30_000, ge=0)
    jitter_factor: float = Field(0.1, ge=0, le=1)
    batch_pause_ms: int = Field(100, ge=0)

    preferred_provider: Optional[ProviderName] = None

    nominatim_enabled: bool = True
    nominatim_base_url: str = Field(
        NOMINATIM_BASE_URL,
        validation_alias=AliasChoices("GEOCODING_NOMINATIM_BASE_URL", "NOMINATIM_URL"),
    )
    nominatim_user_agent: str = Field(
        NOMINATIM_USER_AGENT,
        validation_alias=AliasChoices("GEOCODING_NOMINATIM_USER_AGENT", "NOMINATIM_USER_AGENT"),
    )
    nominatim_rate_limit: float = Field(1.0, gt=0)

    google_enabled: bool = True
    google_api_key: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("GEOCODING_GOOGLE_API_KEY", "GOOGLE_MAPS_API_KEY"),
    )
    google_base_url: str = GOOGLE_BASE_URL
    google_rate_limit: float = Field(10.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="GEOCODING_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    def provider_config(self, name: ProviderName) -> ProviderConfig:
        timeout = self.timeout_ms / 1000
        if name == ProviderName.NOMINATIM:
            return ProviderConfig(
                enabled=self.enabled and self.nominatim_enabled,
                rate_limit=self.nominatim_rate_limit,
                timeout=timeout,
                base_url=self.nominatim_base_url,
                user_agent=self.nominatim_user_agent,
                bucket_size=max(int(self.nominatim_rate_limit * 2), 5),
            )
        if name == ProviderName.GOOGLE:
            return ProviderConfig(
                enabled=self.enabled and self.google_enabled,
                rate_limit=self.google_rate_limit,
                timeout=timeout,
                api_key=self.google_api_key,
                base_url=self.google_base_url,
                bucket_size=max(int(self.google_rate_limit * 2), 10),
            )
        raise ValueError(f"Unknown provider: {name}")


def load_settings(**overrides: Any) -> GeocodingSettings:
    """
    Build settings from `.env`, the environment and explicit overrides.

    Overrides win over the environment. Invalid values raise
    pydantic.ValidationError.
    """
    load_dotenv(find_dotenv(usecwd=True), override=False)
    return GeocodingSettings(**overrides)
