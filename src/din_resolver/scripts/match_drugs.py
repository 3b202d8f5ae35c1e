#!/usr/bin/env python3
"""Resolve drug rows to DINs against the Health Canada Drug Product Database.

Reads a sheet tab (or TSV file) with Type, Name, Ingredients, Strength, Form
and Country columns, and writes the matched DIN into the result column. The
assembled registry is cached in MongoDB for REGISTRY_CACHE_TTL_HOURS.

Usage:
    uv run din-match --spreadsheet "Formulary 2026" --worksheet drugs
    uv run din-match -i data/private/drugs.tsv -o output/drugs_matched.tsv --verbose
"""

import sys
from pathlib import Path

import click

from din_resolver.config import load_settings
from din_resolver.errors import ConfigurationError, RegistryUnavailable
from din_resolver.jobs import run_matching_job
from din_resolver.scripts.cli_common import build_layout, build_source, setup_logging, table_options


@click.command()
@table_options
@click.option("--overwrite", is_flag=True, help="Re-resolve rows that already have an identifier")
@click.option("--verbose", "-v", is_flag=True, help="Log every row's match decision")
def main(
    spreadsheet: str | None,
    worksheet: str | None,
    input_path: Path | None,
    output_path: Path | None,
    result_column: str,
    secondary_column: str,
    overwrite: bool,
    verbose: bool,
) -> None:
    """Match drug rows to registry DINs (start-matching)."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        source = build_source(spreadsheet, worksheet, input_path, output_path, settings.google_credentials)
        click.echo(f"Matching rows from {source.describe()}")
        summary = run_matching_job(source, settings, build_layout(result_column, secondary_column), overwrite=overwrite)
    except (ConfigurationError, RegistryUnavailable) as e:
        click.echo(f"ERROR: {e}")
        sys.exit(1)

    click.echo("\n" + "=" * 60)
    click.echo("Matching Summary:")
    click.echo("=" * 60)
    click.echo(f"  Rows in table:            {summary.total_rows}")
    click.echo(f"  Matched:                  {summary.matched}")
    click.echo(f"  Not matched:              {summary.unmatched}")
    click.echo(f"  Skipped (unknown type):   {summary.skipped_kind}")
    click.echo(f"  Skipped (already set):    {summary.skipped_existing}")
    click.echo(f"  Skipped (other country):  {summary.skipped_country}")


if __name__ == "__main__":
    main()
