"""
Provider ownership and selection.

The manager picks one provider per call and never falls back mid-call;
switching providers between attempts is left to the batch processor's
retry loop.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Collection, Dict, Iterable, List, Optional

import requests

from .base import ConnectionTestResult, GeocodeProvider
from .geocoders import GoogleMapsGeocoder, NominatimGeocoder
from .models import ErrorCategory, GeocodeErrorDetails, GeocodeOutcome, ProviderName
from .throttling import RateLimiterRegistry

logger = logging.getLogger(__name__)

NO_PROVIDERS = "No geocoding providers are enabled and configured"


@dataclass(frozen=True)
class ProviderStatus:
    available: bool
    configured: bool
    connection_test: Optional[ConnectionTestResult] = None


class ProviderManager:
    """
    Owns provider instances and selects one per geocode call.

    Selection order: the preferred provider if it is enabled and
    configured, then FALLBACK_ORDER (the commercial provider first when
    it has credentials), then any other registered provider.
    """

    FALLBACK_ORDER = (ProviderName.GOOGLE, ProviderName.NOMINATIM)

    def __init__(
        self,
        providers: Iterable[GeocodeProvider] = (),
        limiters: Optional[RateLimiterRegistry] = None,
    ):
        self.limiters = limiters or RateLimiterRegistry()
        self._providers: Dict[ProviderName, GeocodeProvider] = {}
        for provider in providers:
            self.register(provider)

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        limiters: Optional[RateLimiterRegistry] = None,
        session: Optional[requests.Session] = None,
    ) -> "ProviderManager":
        """
        Build Nominatim and Google providers from GeocodingSettings.

        Each provider gets its own bucket from the shared registry.
        """
        limiters = limiters or RateLimiterRegistry()
        manager = cls(limiters=limiters)
        for name, provider_cls in (
            (ProviderName.NOMINATIM, NominatimGeocoder),
            (ProviderName.GOOGLE, GoogleMapsGeocoder),
        ):
            config = settings.provider_config(name)
            limiter = limiters.get(name.value, config.rate_limit, config.bucket_size)
            manager.register(provider_cls(config, rate_limiter=limiter, session=session))
        return manager

    def register(self, provider: GeocodeProvider) -> None:
        self._providers[provider.name] = provider

    def get_provider(self, name: ProviderName) -> Optional[GeocodeProvider]:
        return self._providers.get(name)

    @property
    def providers(self) -> List[GeocodeProvider]:
        return list(self._providers.values())

    def available_providers(self) -> List[ProviderName]:
        return [name for name, p in self._providers.items() if p.is_available()]

    def _candidates(self, preferred: Optional[ProviderName]) -> List[ProviderName]:
        order: List[ProviderName] = []
        if preferred is not None:
            order.append(ProviderName(preferred))
        order.extend(self.FALLBACK_ORDER)
        order.extend(self._providers)
        # dedupe, keep first occurrence
        return list(dict.fromkeys(order))

    def select_provider(
        self,
        preferred: Optional[ProviderName] = None,
        exclude: Collection[ProviderName] = (),
    ) -> Optional[GeocodeProvider]:
        """
        Pick the provider for the next call.

        Args:
            preferred: Provider to use if it is available
            exclude: Providers to avoid (e.g. ones that just failed). Ignored
                when every available provider is excluded.

        Returns:
            The selected provider, or None if none is available
        """
        available = [
            self._providers[name]
            for name in self._candidates(preferred)
            if name in self._providers and self._providers[name].is_available()
        ]
        for provider in available:
            if provider.name not in exclude:
                return provider
        return available[0] if available else None

    async def geocode(
        self,
        address: str,
        preferred: Optional[ProviderName] = None,
        exclude: Collection[ProviderName] = (),
    ) -> GeocodeOutcome:
        provider = self.select_provider(preferred, exclude)
        if provider is None:
            return GeocodeErrorDetails(
                error=NO_PROVIDERS,
                retryable=False,
                category=ErrorCategory.CONFIGURATION,
            )
        return await provider.geocode(address)

    async def test_all_providers(self) -> Dict[ProviderName, ProviderStatus]:
        """Run one lightweight request against each available provider."""
        names = list(self._providers)
        tests = await asyncio.gather(*(self._providers[n].test_connection() for n in names))
        report = {}
        for name, test in zip(names, tests):
            provider = self._providers[name]
            report[name] = ProviderStatus(
                available=provider.is_available() and test.success,
                configured=provider.is_configured(),
                connection_test=test,
            )
            logger.info(f"Provider {name}: success={test.success} ({test.message})")
        return report

    def provider_stats(self) -> Dict[str, Dict[str, Any]]:
        stats = {}
        for name, provider in self._providers.items():
            limiter = provider.rate_limiter
            stats[name.value] = {
                "enabled": provider.is_enabled(),
                "configured": provider.is_configured(),
                "rate_limit": provider.config.rate_limit,
                "current_tokens": limiter.available_tokens(),
                "time_until_next_token": limiter.time_until_next_token(),
            }
        return stats

    def reset_rate_limiters(self) -> None:
        self.limiters.reset_all()
        for provider in self._providers.values():
            provider.rate_limiter.reset()

    def configuration_summary(self) -> Dict[str, Any]:
        available = self.available_providers()
        return {
            "total_providers": len(self._providers),
            "available_providers": [n.value for n in available],
            "fallback_order": [n.value for n in self._candidates(None) if n in self._providers],
            "has_available_provider": bool(available),
        }
