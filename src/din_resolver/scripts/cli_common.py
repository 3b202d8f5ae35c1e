"""Options and helpers shared by the din-resolver scripts."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from din_resolver.tabular import ColumnLayout, TableSource


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def table_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Add the options that select a table and its result columns."""
    options = [
        click.option("--spreadsheet", "-s", default=None, help="Google Sheets name or ID"),
        click.option("--worksheet", "-w", default=None, help="Worksheet/tab name (default: first tab)"),
        click.option(
            "--input",
            "-i",
            "input_path",
            type=click.Path(exists=True, dir_okay=False, path_type=Path),
            default=None,
            help="TSV file to read instead of a spreadsheet",
        ),
        click.option(
            "--output",
            "-o",
            "output_path",
            type=click.Path(dir_okay=False, path_type=Path),
            default=None,
            help="TSV file to write (default: overwrite --input)",
        ),
        click.option("--result-column", default="DIN", show_default=True, help="Column receiving identifiers"),
        click.option(
            "--secondary-column",
            default="Secondary Codes",
            show_default=True,
            help="Column receiving secondary codes",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_source(
    spreadsheet: str | None,
    worksheet: str | None,
    input_path: Path | None,
    output_path: Path | None,
    credentials_path: str | None,
) -> TableSource:
    return TableSource(
        spreadsheet=spreadsheet,
        worksheet=worksheet,
        input_path=input_path,
        output_path=output_path,
        credentials_path=credentials_path,
    )


def build_layout(result_column: str, secondary_column: str) -> ColumnLayout:
    return ColumnLayout(result=result_column, secondary=secondary_column)
