#!/usr/bin/env python3
"""Start every follow-up run that has come due.

Intended to be run from cron (e.g. every minute). A suspended enrichment
records its table and columns when it schedules itself, so this command
needs no arguments.

Usage:
    uv run din-run-pending
"""

import logging
import sys

import click

from din_resolver.config import load_settings
from din_resolver.errors import ConfigurationError
from din_resolver.jobs import open_services, run_enrichment_job
from din_resolver.scheduler import ENRICH_JOB
from din_resolver.scripts.cli_common import build_layout, setup_logging
from din_resolver.tabular import TableSource

logger = logging.getLogger(__name__)


@click.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """Run due follow-up invocations."""
    setup_logging(verbose)
    try:
        settings = load_settings()
    except ConfigurationError as e:
        click.echo(f"ERROR: {e}")
        sys.exit(1)

    services = open_services(settings)
    due = services.scheduler.due_runs()
    if not due:
        click.echo("No follow-up runs are due")
        return

    failures = 0
    for run in due:
        if run.job != ENRICH_JOB:
            logger.warning(f"No runner for job '{run.job}', leaving it pending")
            continue
        # Claim the run before starting it; a suspended run reschedules itself
        services.scheduler.cancel_all(run.job)
        try:
            source = TableSource.from_params(run.params, settings.google_credentials)
            layout = build_layout(
                run.params.get("result_column", "DIN"),
                run.params.get("secondary_column", "Secondary Codes"),
            )
            outcome = run_enrichment_job(source, settings, layout, services=services)
        except ConfigurationError as e:
            click.echo(f"ERROR: {run.job} - {e}")
            failures += 1
            continue
        except Exception as e:
            # The cursor is still stored, so put the claimed run back for the next pass
            logger.exception(f"Follow-up run of '{run.job}' failed, rescheduling")
            services.scheduler.schedule(run.job, settings.follow_up_delay_seconds, params=run.params)
            click.echo(f"ERROR: {run.job} - {e} (rescheduled)")
            failures += 1
            continue
        state = "completed" if outcome.completed else f"suspended at row {outcome.next_cursor}"
        click.echo(f"  {run.job}: {outcome.looked_up} lookups, {outcome.errors} errors, {state}")

    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
