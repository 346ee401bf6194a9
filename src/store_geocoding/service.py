"""
Service facade used by the import API layer.

Translates GeocodeRequest/GeocodeResponse DTOs to the batch processor
and exposes provider self-tests.
"""

import logging
from typing import Any, Dict, Optional

from .base import ConnectionTestResult
from .batch import BatchProcessor, BatchResult, ProgressCallback
from .errors import ConfigurationError
from .manager import ProviderManager, ProviderStatus
from .models import ProviderName
from .schemas import GeocodeRequest, GeocodeResponse, GeocodeResultDto, parse_request
from .settings import GeocodingSettings, load_settings

logger = logging.getLogger(__name__)


class GeocodeService:
    def __init__(self, processor: BatchProcessor, default_provider: Optional[ProviderName] = None):
        self.processor = processor
        self.default_provider = default_provider
        self.last_result: Optional[BatchResult] = None

    @classmethod
    def from_settings(cls, settings: Optional[GeocodingSettings] = None) -> "GeocodeService":
        settings = settings or load_settings()
        processor = BatchProcessor.from_settings(settings)
        return cls(processor, default_provider=settings.preferred_provider)

    @property
    def manager(self) -> ProviderManager:
        return self.processor.manager

    async def batch_geocode(
        self,
        request: GeocodeRequest | Dict[str, Any],
        on_progress: Optional[ProgressCallback] = None,
    ) -> GeocodeResponse:
        """
        Geocode every row of a request.

        Args:
            request: A GeocodeRequest or a raw payload to validate
            on_progress: Optional progress callback

        Returns:
            GeocodeResponse with one entry per requested row

        Raises:
            RequestValidationError: if a raw payload is malformed
        """
        if not isinstance(request, GeocodeRequest):
            request = parse_request(request)
        rows = [row.to_import_row() for row in request.rows]
        preferred = request.provider_preference or self.default_provider
        result = await self.processor.process_rows(rows, preferred, on_progress)
        self.last_result = result
        return GeocodeResponse(results=[GeocodeResultDto.from_row_result(r) for r in result.results])

    async def test_provider(self, name: ProviderName) -> ConnectionTestResult:
        provider = self.manager.get_provider(ProviderName(name))
        if provider is None:
            raise ConfigurationError(f"Unknown provider: {name}")
        result = await provider.test_connection()
        logger.info(f"Provider test {name}: success={result.success} in {result.response_time_ms}ms")
        return result

    async def test_all_providers(self) -> Dict[ProviderName, ProviderStatus]:
        return await self.manager.test_all_providers()

    def cancel(self) -> None:
        self.processor.cancel()
