# Batch-enrich a CSV of addresses and write the results table
from argparse import ArgumentParser
import json
import logging
import sys

import pandas as pd
from colorama import Fore, Style
from dotenv import load_dotenv

from locationmart.batch import BatchState, BatchRunner, write_csv
from locationmart.defaults import build_service, default_catalog
from locationmart.enrichment import Catalog, EnrichmentSpec
from locationmart.settings import get_settings

from pathlib import Path


def _print_step(step_name: str, error: Exception | str | None = None) -> None:
    padding = len('Enrich Addresses') - len(step_name) + 4
    if error is None:
        print(f'Batch -- {step_name} {"-" * padding}> {Fore.GREEN}Complete{Style.RESET_ALL}')
    else:
        print(f'Batch -- {step_name} {"-" * padding}> {Fore.RED}Failed{Style.RESET_ALL}: {error}')


if __name__ == '__main__':
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    parser = ArgumentParser()
    parser.add_argument('input', type=Path)
    parser.add_argument('--output', '-o', type=Path, default=Path('./enriched.csv'))
    parser.add_argument('--enrichments', '-e', nargs='+', default=['elev', 'fips'])
    parser.add_argument('--radius', '-r', action='append', default=[], metavar='ID=MILES',
                        help='Radius override for one enrichment, e.g. poi_parks=2')
    parser.add_argument('--columns', '-c', nargs='+', help='Columns joined into the address, in order')
    parser.add_argument('--catalog', type=Path, help='JSON catalog overriding the built-in one')
    parser.add_argument('--detailed', '-d', action='store_true', help='Write one row per returned feature')
    parser.add_argument('--list', '-l', action='store_true', help='List the available enrichments and exit')
    args = parser.parse_args()

    settings = get_settings()
    catalog = Catalog.from_json(args.catalog) if args.catalog else default_catalog(settings)

    if args.list:
        for section, entries in catalog.sections().items():
            print(f'{Style.BRIGHT}{section or "other"}{Style.RESET_ALL}')
            for entry in entries:
                radius = f' (default {entry.default_radius} mi)' if entry.default_radius is not None else ''
                print(f'  {entry.id:<24} {entry.label}{radius}')
        sys.exit(0)

    radii = {}
    for override in args.radius:
        identifier, _, miles = override.partition('=')
        radii[identifier] = float(miles)
    specs = EnrichmentSpec.from_radii(args.enrichments, radii)

    try:
        frame = pd.read_csv(args.input, dtype=str, keep_default_na=False)
        _print_step('Load Input')
    except (OSError, pd.errors.ParserError) as e:
        _print_step('Load Input', e)
        sys.exit(1)

    service = build_service(settings, catalog)
    runner = BatchRunner(service, address_columns=args.columns, show_progress=True)
    run = runner.start(frame.to_dict(orient='records'), specs)
    if run.state == BatchState.ABORTED:
        _print_step('Enrich Addresses', run.abort_reason)
    else:
        _print_step('Enrich Addresses')

    path = write_csv(run, args.output, detailed=args.detailed)
    _print_step('Write Output')

    failures = {}
    for item in run.failed_items():
        failures[item.failure.reason] = failures.get(item.failure.reason, 0) + 1
    print(f'{len(run.results())}/{run.total_count} rows enriched -> {path}')
    if failures:
        print(f'{Fore.YELLOW}Failures{Style.RESET_ALL}: {json.dumps(failures)}')
