"""Adapter between tables (sheet tabs or TSV files) and typed rows.

Tables are pandas DataFrames with string cells. A ColumnLayout names the
columns of interest; the core only ever sees TargetRecord and EnrichmentRow.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from din_resolver.errors import ConfigurationError
from din_resolver.gsheets import read_worksheet, write_worksheet
from din_resolver.models import EnrichmentRow, RecordKind, TargetRecord

logger = logging.getLogger(__name__)


@dataclass
class ColumnLayout:
    """Header names of the columns the jobs read and write."""

    kind: str = "Type"
    name: str = "Name"
    ingredients: str = "Ingredients"
    strength: str = "Strength"
    form: str = "Form"
    country: str = "Country"
    result: str = "DIN"
    secondary: str = "Secondary Codes"

    def matching_columns(self) -> list[str]:
        """Columns that must already exist for a matching run."""
        return [self.kind, self.name, self.ingredients, self.strength, self.form, self.country]


def read_tsv(path: Path) -> pd.DataFrame:
    """Read a TSV file with every cell as a string."""
    return pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False)


def write_tsv(df: pd.DataFrame, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep="\t", index=False)


def require_columns(df: pd.DataFrame, columns: list[str]) -> None:
    """Raise ConfigurationError naming every missing column."""
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise ConfigurationError(f"Missing required columns: {', '.join(missing)}")


def ensure_column(df: pd.DataFrame, column: str) -> None:
    """Append an empty column if the table does not have it yet."""
    if column not in df.columns:
        logger.info(f"Creating column '{column}'")
        df[column] = ""


def _cell(row: dict[str, Any], column: str) -> str:
    value = row.get(column)
    return "" if value is None else str(value).strip()


def target_records(df: pd.DataFrame, layout: ColumnLayout) -> list[TargetRecord]:
    """Build TargetRecords from a table.

    Rows whose kind cell is neither brand nor generic are left out; their
    positions are simply absent from the returned list.

    Raises:
        ConfigurationError: If any matching column is missing
    """
    require_columns(df, layout.matching_columns())
    ensure_column(df, layout.result)

    records: list[TargetRecord] = []
    for row_index, row in enumerate(df.to_dict("records")):
        kind = RecordKind.parse(_cell(row, layout.kind))
        if kind is None:
            continue
        records.append(
            TargetRecord(
                row_index=row_index,
                kind=kind,
                name=_cell(row, layout.name),
                strength_text=_cell(row, layout.strength),
                ingredients_text=_cell(row, layout.ingredients),
                form=_cell(row, layout.form),
                country_code=_cell(row, layout.country),
                identifier=_cell(row, layout.result),
            )
        )
    return records


def enrichment_rows(df: pd.DataFrame, layout: ColumnLayout) -> list[EnrichmentRow]:
    """Build one EnrichmentRow per table row, in table order.

    Raises:
        ConfigurationError: If the identifier column is missing
    """
    require_columns(df, [layout.result])
    ensure_column(df, layout.secondary)
    return [
        EnrichmentRow(
            row_index=row_index,
            identifier=_cell(row, layout.result),
            secondary_code=_cell(row, layout.secondary),
        )
        for row_index, row in enumerate(df.to_dict("records"))
    ]


def apply_column(df: pd.DataFrame, column: str, values: dict[int, str]) -> None:
    """Write values into ``column`` by zero-based row position."""
    ensure_column(df, column)
    position = df.columns.get_loc(column)
    for row_index, value in values.items():
        df.iat[row_index, position] = value


@dataclass
class TableSource:
    """Where a job's table lives: a sheet tab or a TSV file.

    TSV tables are written to ``output_path`` when given, otherwise back over
    ``input_path``.
    """

    spreadsheet: str | None = None
    worksheet: str | None = None
    input_path: Path | None = None
    output_path: Path | None = None
    credentials_path: str | None = None

    def __post_init__(self) -> None:
        if bool(self.spreadsheet) == bool(self.input_path):
            raise ConfigurationError("Specify exactly one of a spreadsheet or an input TSV file")

    def describe(self) -> str:
        if self.spreadsheet:
            return f"sheet '{self.spreadsheet}' tab '{self.worksheet or '(first)'}'"
        return f"file {self.input_path}"

    def load(self) -> pd.DataFrame:
        if self.spreadsheet:
            return read_worksheet(self.spreadsheet, self.worksheet, self.credentials_path)
        if self.input_path is None:
            raise ConfigurationError("No input TSV file to read")
        return read_tsv(self.input_path)

    def save(self, df: pd.DataFrame) -> None:
        if self.spreadsheet:
            write_worksheet(self.spreadsheet, self.worksheet, df, self.credentials_path)
            return
        target = self.output_path or self.input_path
        if target is None:
            raise ConfigurationError("No TSV file to write")
        write_tsv(df, target)

    def to_params(self) -> dict[str, str]:
        """Parameters for resuming against the table as this run leaves it."""
        if self.spreadsheet:
            params = {"spreadsheet": self.spreadsheet}
            if self.worksheet:
                params["worksheet"] = self.worksheet
            return params
        return {"input": str(self.output_path or self.input_path)}

    @classmethod
    def from_params(cls, params: dict[str, str], credentials_path: str | None = None) -> "TableSource":
        input_path = params.get("input")
        return cls(
            spreadsheet=params.get("spreadsheet"),
            worksheet=params.get("worksheet"),
            input_path=Path(input_path) if input_path else None,
            credentials_path=credentials_path,
        )
