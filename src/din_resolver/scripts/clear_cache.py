#!/usr/bin/env python3
"""Drop the cached drug registry so the next matching run refetches all feeds."""

import click

from din_resolver.config import load_settings
from din_resolver.jobs import clear_cache, open_services
from din_resolver.scripts.cli_common import setup_logging


@click.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """Clear the cached registry (clear-cache)."""
    setup_logging(verbose)
    services = open_services(load_settings())
    removed = clear_cache(services.cache)
    click.echo(f"Registry cache cleared ({removed} chunk(s) removed)")


if __name__ == "__main__":
    main()
