#!/usr/bin/env python3
"""Fill the secondary-code column for rows that already have a DIN.

Each identifier costs one request to the secondary-code registry, so a run
stops once ENRICH_TIME_BUDGET_SECONDS is spent, saves its cursor, and
schedules a follow-up. ``din-run-pending`` (from cron) resumes it.

Usage:
    uv run din-enrich --spreadsheet "Formulary 2026" --worksheet drugs
    uv run din-enrich -i output/drugs_matched.tsv --time-budget 120
    uv run din-enrich --stop
"""

import sys
from pathlib import Path

import click

from din_resolver.config import load_settings
from din_resolver.errors import ConfigurationError
from din_resolver.jobs import open_services, run_enrichment_job, stop_enrichment
from din_resolver.scripts.cli_common import build_layout, build_source, setup_logging, table_options


@click.command()
@table_options
@click.option("--time-budget", type=float, default=None, help="Seconds before suspending (default: from env)")
@click.option("--stop", is_flag=True, help="Cancel an in-progress enrichment (stop-enrichment)")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(
    spreadsheet: str | None,
    worksheet: str | None,
    input_path: Path | None,
    output_path: Path | None,
    result_column: str,
    secondary_column: str,
    time_budget: float | None,
    stop: bool,
    verbose: bool,
) -> None:
    """Look up secondary codes for matched rows (start-enrichment)."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        if stop:
            services = open_services(settings)
            stop_enrichment(services.properties, services.scheduler)
            click.echo("Enrichment stopped; progress cursor and pending follow-ups cleared.")
            return

        if time_budget is not None:
            settings.time_budget_seconds = time_budget
        source = build_source(spreadsheet, worksheet, input_path, output_path, settings.google_credentials)
        click.echo(f"Enriching rows from {source.describe()}")
        outcome = run_enrichment_job(source, settings, build_layout(result_column, secondary_column))
    except ConfigurationError as e:
        click.echo(f"ERROR: {e}")
        sys.exit(1)

    click.echo(f"  Lookups this run:   {outcome.looked_up}")
    click.echo(f"  Lookup errors:      {outcome.errors}")
    if outcome.completed:
        click.echo("\n✓ Enrichment completed")
    else:
        click.echo(
            f"\n⏸ Time budget reached at row {outcome.next_cursor}; "
            f"follow-up scheduled in {settings.follow_up_delay_seconds:.0f}s (run din-run-pending)"
        )


if __name__ == "__main__":
    main()
