# Script that geocodes a CSV of store addresses and writes the results next to it
from argparse import ArgumentParser
import asyncio
import logging
from pathlib import Path

import pandas as pd
from colorama import Fore, Style
from tqdm import tqdm

from store_geocoding import (
    BatchProcessor,
    GeocodeProgress,
    ProviderManager,
    ProviderName,
    calculate_optimal_batch_size,
    estimate_processing_time,
    load_settings,
    validate_rows_for_geocoding,
)
from store_geocoding.frames import results_to_frame, rows_from_frame


async def test_providers(manager: ProviderManager) -> None:
    report = await manager.test_all_providers()
    for name, status in report.items():
        colour = Fore.GREEN if status.available else Fore.RED
        test = status.connection_test
        print(f"{colour}{name:<10}{Style.RESET_ALL} configured={status.configured} "
              f"{test.message if test else ''}")


async def geocode(args) -> None:
    overrides = {}
    if args.batch_size:
        overrides['batch_size'] = args.batch_size
    settings = load_settings(**overrides)
    manager = ProviderManager.from_settings(settings)

    if args.test_providers:
        await test_providers(manager)
        return

    frame = pd.read_csv(args.input, dtype={'id': str})
    rows = rows_from_frame(frame)

    _, invalid = validate_rows_for_geocoding(rows)
    for row, reason in invalid[:10]:
        print(f'{Fore.YELLOW}row {row.id}: {reason}{Style.RESET_ALL}')

    processor = BatchProcessor.from_settings(settings, manager=manager)
    if args.auto_batch:
        rate = settings.provider_config(args.provider or ProviderName.NOMINATIM).rate_limit
        processor.batch_size = calculate_optimal_batch_size(len(rows), rate)
        print(f'Using batch size {processor.batch_size}, '
              f'estimated {estimate_processing_time(len(rows), processor.batch_size, rate):.0f}s')

    bar = tqdm(total=len(rows), unit='row')

    def on_progress(progress: GeocodeProgress) -> None:
        bar.total = progress.total
        bar.n = progress.processed
        bar.set_postfix(batch=f'{progress.current_batch}/{progress.total_batches}', failed=progress.failed)
        bar.refresh()

    try:
        result = await processor.process_rows(rows, args.provider, on_progress)
    finally:
        bar.close()

    output = args.output or args.input.with_name(f'{args.input.stem}_geocoded.csv')
    results_to_frame(result.results).to_csv(output, index=False)

    summary = result.summary
    print(f'{Fore.GREEN}{summary.successful} geocoded{Style.RESET_ALL}, '
          f'{summary.skipped} skipped, '
          f'{Fore.RED}{summary.failed} failed{Style.RESET_ALL} of {summary.total} -> {output}')
    errors = result.errors.summary()
    if errors.total:
        print(f'{errors.retryable} retryable, {errors.non_retryable} not retryable: {errors.categories}')


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s', filename='./geocode_stores.log')

    parser = ArgumentParser()
    parser.add_argument('input', type=Path, nargs='?')
    parser.add_argument('--output', '-o', type=Path)
    parser.add_argument('--provider', '-p', type=ProviderName, choices=[ProviderName.NOMINATIM, ProviderName.GOOGLE])
    parser.add_argument('--batch-size', '-b', type=int)
    parser.add_argument('--auto-batch', '-a', action='store_true')
    parser.add_argument('--test-providers', '-t', action='store_true')
    args = parser.parse_args()

    if args.input is None and not args.test_providers:
        parser.error('input is required unless --test-providers is given')

    asyncio.run(geocode(args))
