"""
Batch geocoding orchestration.

BatchProcessor walks the rows batch by batch. Within a batch up to
`concurrency_limit` rows run at once; each row retries transient
failures with exponential backoff. Progress is reported after every
batch and the job can be cancelled between batches and before each
provider call.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Set, Tuple

from .concurrency import ConcurrencyGate
from .errors import ErrorAggregator, is_retryable, log_error
from .manager import NO_PROVIDERS, ProviderManager
from .models import (
    INSUFFICIENT_ADDRESS,
    OPERATION_CANCELLED,
    BatchSummary,
    ErrorCategory,
    GeocodeError,
    GeocodeErrorDetails,
    GeocodeOutcome,
    GeocodeProgress,
    GeocodeResult,
    ImportRow,
    ProviderName,
    RowResult,
    existing_result,
)
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[GeocodeProgress], None]
BatchCallback = Callable[[int, List[GeocodeOutcome]], None]


@dataclass
class BatchResult:
    """Final outcome of `process_rows`."""
    results: List[RowResult]
    summary: BatchSummary
    errors: ErrorAggregator

    def failed_rows(self) -> List[ImportRow]:
        return [r.row for r in self.results if not r.succeeded]

    def retryable_rows(self) -> List[ImportRow]:
        """Rows whose final failure is transient, for re-submission."""
        return [
            r.row for r in self.results
            if isinstance(r.result, GeocodeErrorDetails) and r.result.retryable
        ]


class BatchProcessor:
    """
    Orchestrates a geocoding job over many rows.

    One processor runs one job at a time; `cancel()` applies to the job
    currently running.
    """

    def __init__(
        self,
        manager: ProviderManager,
        batch_size: int = 15,
        max_retries: int = 3,
        concurrency_limit: int = 3,
        batch_pause: float = 0.1,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter_factor: float = 0.1,
        provider_fallback: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize batch processor.

        Args:
            manager: Provider manager used for every geocode call
            batch_size: Rows per batch (1-50)
            max_retries: Retries per row for transient failures
            concurrency_limit: Rows of a batch geocoded simultaneously
            batch_pause: Pause between batches, in seconds
            base_delay: First backoff delay, in seconds
            max_delay: Backoff ceiling, in seconds
            jitter_factor: Backoff jitter as a fraction of the delay
            provider_fallback: Prefer a different provider after a
                transient failure when another one is available
            sleep: Coroutine used for pauses and backoff
        """
        if not 1 <= batch_size <= 50:
            raise ValueError("batch_size must be between 1 and 50")
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        self.manager = manager
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.concurrency_limit = concurrency_limit
        self.batch_pause = batch_pause
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_factor = jitter_factor
        self.provider_fallback = provider_fallback
        self._sleep = sleep
        self._cancelled = False

    @classmethod
    def from_settings(cls, settings: Any, manager: Optional[ProviderManager] = None, **kwargs: Any) -> "BatchProcessor":
        """Build a processor (and by default its manager) from GeocodingSettings."""
        return cls(
            manager or ProviderManager.from_settings(settings),
            batch_size=settings.batch_size,
            max_retries=settings.max_retries,
            concurrency_limit=settings.concurrency_limit,
            batch_pause=settings.batch_pause_ms / 1000,
            base_delay=settings.base_delay_ms / 1000,
            max_delay=settings.max_delay_ms / 1000,
            jitter_factor=settings.jitter_factor,
            **kwargs,
        )

    def cancel(self) -> None:
        """Stop issuing batches and provider calls for the running job."""
        if not self._cancelled:
            logger.warning("Geocoding cancellation requested")
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def new_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter_factor=self.jitter_factor,
            sleep=self._sleep,
        )

    def create_batches(self, rows: Sequence[ImportRow]) -> List[List[ImportRow]]:
        return [list(rows[i:i + self.batch_size]) for i in range(0, len(rows), self.batch_size)]

    async def process_rows(
        self,
        rows: Sequence[ImportRow],
        preferred_provider: Optional[ProviderName] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_batch_complete: Optional[BatchCallback] = None,
    ) -> BatchResult:
        """
        Geocode every row that does not already carry coordinates.

        Args:
            rows: Rows to geocode; rows with valid coordinates are skipped
            preferred_provider: Provider to try first for every row
            on_progress: Called with a progress snapshot initially, after
                every batch and once more when the job ends
            on_batch_complete: Called with the 1-based batch number and
                the outcomes of that batch

        Returns:
            BatchResult with one RowResult per input row, the summary
            and the job's error aggregator
        """
        self._cancelled = False
        skipped = [row for row in rows if row.has_coordinates()]
        to_geocode = [row for row in rows if not row.has_coordinates()]
        batches = self.create_batches(to_geocode)

        results = [RowResult(row, existing_result(row)) for row in skipped]
        errors = ErrorAggregator()
        progress = GeocodeProgress(total=len(to_geocode), total_batches=len(batches))
        gate = ConcurrencyGate(self.concurrency_limit)

        logger.info(
            f"Geocode started: {len(rows)} rows, {len(skipped)} skipped, "
            f"{len(to_geocode)} to geocode in {len(batches)} batches"
        )
        self._notify(on_progress, progress)

        try:
            if to_geocode and not self.manager.available_providers():
                self._fail_unconfigured(to_geocode, results, errors, progress)
            else:
                await self._run_batches(
                    batches, preferred_provider, gate, results, errors, progress,
                    on_progress, on_batch_complete,
                )
        finally:
            progress.in_progress = False
            self._notify(on_progress, progress)

        summary = BatchSummary.from_results(results)
        logger.info(
            f"Geocode complete: total={summary.total} successful={summary.successful} "
            f"failed={summary.failed} skipped={summary.skipped} cancelled={self._cancelled}"
        )
        return BatchResult(results=results, summary=summary, errors=errors)

    async def _run_batches(
        self,
        batches: List[List[ImportRow]],
        preferred: Optional[ProviderName],
        gate: ConcurrencyGate,
        results: List[RowResult],
        errors: ErrorAggregator,
        progress: GeocodeProgress,
        on_progress: Optional[ProgressCallback],
        on_batch_complete: Optional[BatchCallback],
    ) -> None:
        for index, batch in enumerate(batches, start=1):
            if self._cancelled:
                self._fail_cancelled([row for b in batches[index - 1:] for row in b], results, errors, progress)
                return

            progress.current_batch = index
            batch_results = await asyncio.gather(
                *(self._process_row(row, preferred, gate) for row in batch)
            )
            self._record(batch_results, results, errors, progress)

            logger.info(
                f"Batch {index}/{len(batches)} done: {progress.completed} completed, "
                f"{progress.failed} failed of {progress.total}"
            )
            self._notify(on_progress, progress)
            if on_batch_complete is not None:
                on_batch_complete(index, [r.result for r in batch_results])

            if index < len(batches):
                await self._sleep(self.batch_pause)

    def _record(
        self,
        batch_results: Sequence[RowResult],
        results: List[RowResult],
        errors: ErrorAggregator,
        progress: GeocodeProgress,
    ) -> None:
        for row_result in batch_results:
            results.append(row_result)
            if row_result.succeeded:
                progress.completed += 1
                continue
            details = row_result.result
            progress.failed += 1
            progress.errors.append(GeocodeError.from_details(row_result.row, details))
            errors.add(details, {"row_id": row_result.row.id})

    def _fail_rows(
        self,
        rows: Sequence[ImportRow],
        details: GeocodeErrorDetails,
        results: List[RowResult],
        progress: GeocodeProgress,
    ) -> None:
        for row in rows:
            results.append(RowResult(row, details))
            progress.failed += 1
            progress.errors.append(GeocodeError.from_details(row, details))

    def _fail_cancelled(
        self,
        rows: Sequence[ImportRow],
        results: List[RowResult],
        errors: ErrorAggregator,
        progress: GeocodeProgress,
    ) -> None:
        logger.warning(f"Geocoding cancelled, {len(rows)} rows not started")
        details = GeocodeErrorDetails(error=OPERATION_CANCELLED, retryable=False)
        self._fail_rows(rows, details, results, progress)
        for row in rows:
            errors.add(details, {"row_id": row.id})

    def _fail_unconfigured(
        self,
        rows: Sequence[ImportRow],
        results: List[RowResult],
        errors: ErrorAggregator,
        progress: GeocodeProgress,
    ) -> None:
        details = GeocodeErrorDetails(
            error=NO_PROVIDERS,
            retryable=False,
            category=ErrorCategory.CONFIGURATION,
        )
        # reported once for the job, not once per row
        errors.add(details, {"rows": len(rows)})
        log_error(details, {"rows": len(rows)})
        self._fail_rows(rows, details, results, progress)

    async def _process_row(
        self,
        row: ImportRow,
        preferred: Optional[ProviderName],
        gate: ConcurrencyGate,
    ) -> RowResult:
        await gate.acquire()
        try:
            outcome = await self._geocode_with_retry(row, preferred)
        except Exception as e:
            logger.exception(f"Unexpected error geocoding row {row.id}")
            outcome = GeocodeErrorDetails(error=f"Processing failed: {e}", retryable=False)
        finally:
            gate.release()
        return RowResult(row, outcome)

    async def _geocode_with_retry(
        self,
        row: ImportRow,
        preferred: Optional[ProviderName],
    ) -> GeocodeOutcome:
        if not row.has_minimum_address():
            return GeocodeErrorDetails(
                error=INSUFFICIENT_ADDRESS,
                retryable=False,
                category=ErrorCategory.VALIDATION,
            )

        address = row.address_string()
        policy = self.new_retry_policy()
        failed_providers: Set[ProviderName] = set()

        while True:
            if self._cancelled:
                return GeocodeErrorDetails(error=OPERATION_CANCELLED, retryable=False)

            outcome = await self.manager.geocode(address, preferred, failed_providers)
            if isinstance(outcome, GeocodeResult):
                return outcome
            if not is_retryable(outcome) or not policy.should_retry():
                return outcome

            logger.warning(
                f"Row {row.id}: {outcome.error} (attempt {policy.attempt + 1}/{policy.max_retries + 1})"
            )
            if self.provider_fallback and outcome.provider is not None:
                failed_providers.add(outcome.provider)
            await policy.wait(outcome.retry_after)

    def _notify(self, callback: Optional[ProgressCallback], progress: GeocodeProgress) -> None:
        if callback is not None:
            callback(progress.snapshot())


def calculate_optimal_batch_size(row_count: int, rate_limit: float, max_batch_size: int = 50) -> int:
    """
    Suggest a batch size for a job.

    Small jobs use small batches so progress moves visibly; large jobs
    scale with the provider rate and row count.
    """
    if row_count <= 0:
        return 1
    if row_count <= 20:
        return min(5, row_count)
    if row_count <= 100:
        return min(10, max_batch_size)
    by_rate = math.ceil(rate_limit * 2)
    by_rows = math.ceil(row_count / 10)
    return min(max(min(by_rate, max_batch_size, by_rows), 5), max_batch_size)


def estimate_processing_time(row_count: int, batch_size: int, rate_limit: float, batch_pause: float = 0.1) -> float:
    """
    Rough job duration in seconds, bounded by the provider rate.

    Args:
        row_count: Rows to geocode
        batch_size: Rows per batch
        rate_limit: Provider requests per second
        batch_pause: Pause between batches, in seconds
    """
    if row_count <= 0:
        return 0.0
    batches = math.ceil(row_count / batch_size)
    return row_count / rate_limit + max(batches - 1, 0) * batch_pause


def validate_rows_for_geocoding(rows: Sequence[ImportRow]) -> Tuple[List[ImportRow], List[Tuple[ImportRow, str]]]:
    """
    Split rows into geocodable ones and ones with a rejection reason.

    Rows that already carry coordinates count as valid.
    """
    valid: List[ImportRow] = []
    invalid: List[Tuple[ImportRow, str]] = []
    for row in rows:
        if row.has_coordinates():
            valid.append(row)
        elif not (row.country and row.country.strip()):
            invalid.append((row, "Missing country information"))
        elif not row.has_minimum_address():
            invalid.append((row, "Missing both address and city information"))
        else:
            valid.append(row)
    return valid, invalid
