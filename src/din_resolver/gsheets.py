"""Google Sheets access for the matching and enrichment tables.

A service account authenticates every call. Its key file is taken from the
``credentials_path`` argument, then GOOGLE_APPLICATION_CREDENTIALS, then
gspread's default ~/.config/gspread/service_account.json.

Cells are read and written as raw strings so identifiers keep their leading
zeros.

Example:
    >>> from din_resolver.gsheets import read_worksheet
    >>> df = read_worksheet("Formulary 2026", "drugs")
"""

import os
from pathlib import Path

import gspread
import pandas as pd
from google.oauth2.service_account import Credentials

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.readonly",
]

# Sheets keys are long opaque strings; human titles rarely are
SHEET_KEY_MIN_LENGTH = 31


def _credentials_file(credentials_path: str | None) -> str:
    candidates = [credentials_path, os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")]
    for candidate in candidates:
        if candidate:
            return candidate
    default_path = Path.home() / ".config" / "gspread" / "service_account.json"
    if default_path.exists():
        return str(default_path)
    raise FileNotFoundError(
        "No Google service account key found: pass credentials, set "
        "GOOGLE_APPLICATION_CREDENTIALS, or create ~/.config/gspread/service_account.json"
    )


def get_gspread_client(credentials_path: str | None = None) -> gspread.Client:
    """Authorize a gspread client with a service account key.

    Raises:
        FileNotFoundError: If no key file can be located
    """
    creds = Credentials.from_service_account_file(_credentials_file(credentials_path), scopes=SCOPES)
    return gspread.authorize(creds)


def get_worksheet(
    name_or_id: str,
    worksheet_name: str | None = None,
    credentials_path: str | None = None,
) -> gspread.Worksheet:
    """Open a tab by spreadsheet title or key.

    Args:
        name_or_id: Spreadsheet title or Google Sheets key
        worksheet_name: Tab name; the first tab when None
        credentials_path: Optional service account key file
    """
    client = get_gspread_client(credentials_path)
    if len(name_or_id) >= SHEET_KEY_MIN_LENGTH:
        spreadsheet = client.open_by_key(name_or_id)
    else:
        spreadsheet = client.open(name_or_id)
    return spreadsheet.worksheet(worksheet_name) if worksheet_name else spreadsheet.sheet1


def read_worksheet(
    spreadsheet_name: str,
    worksheet_name: str | None = None,
    credentials_path: str | None = None,
) -> pd.DataFrame:
    worksheet = get_worksheet(spreadsheet_name, worksheet_name, credentials_path)
    return worksheet_to_frame(worksheet)


def worksheet_to_frame(worksheet: gspread.Worksheet) -> pd.DataFrame:
    """First row as header, remaining rows as string cells."""
    values = worksheet.get_all_values()
    if not values:
        return pd.DataFrame()
    header, *rows = values
    return pd.DataFrame(rows, columns=header, dtype=str)


def write_worksheet(
    spreadsheet_name: str,
    worksheet_name: str | None,
    df: pd.DataFrame,
    credentials_path: str | None = None,
) -> None:
    """Overwrite a tab from A1 with the header and every row of ``df``."""
    worksheet = get_worksheet(spreadsheet_name, worksheet_name, credentials_path)
    data = [df.columns.tolist(), *df.astype(str).values.tolist()]
    worksheet.update(data, "A1", value_input_option="RAW")
