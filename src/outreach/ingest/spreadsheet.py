"""Spreadsheet ingestion with pandas.

Reads an uploaded workbook (.xlsx/.xlsm via openpyxl) or a CSV file into
normalized customer records:

1. Pick the first sheet whose name contains "customer" (any case),
   otherwise the first sheet
2. Convert empty cells (NaN/NaT) to None and dates to ISO strings
3. Canonicalize column names (accountNo, Account No -> ACCOUNT_NO)
4. Require NAME and ACCOUNT_NO columns and at least one row

Usage:
    from outreach.ingest.spreadsheet import read_customers

    result = read_customers(uploaded_bytes, "branch_customers.xlsx")
    print(result.sheet_name, len(result.customers))
"""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, BinaryIO

import pandas as pd

from outreach.classifier.records import ACCOUNT_KEY, canonical_key, normalize_record
from outreach.core.errors import IngestionError, InputValidationError
from outreach.core.logging import get_logger

logger = get_logger(__name__)

EXCEL_SUFFIXES = frozenset({".xlsx", ".xlsm"})
CSV_SUFFIXES = frozenset({".csv"})
REQUIRED_COLUMNS = ("NAME", ACCOUNT_KEY)


@dataclass(frozen=True)
class SpreadsheetImport:
    """Parsed spreadsheet contents.

    Attributes:
        customers: Normalized customer records in sheet order
        sheet_name: Sheet the records were read from ('' for CSV)
        available_sheets: All sheet names in the workbook
        columns: Canonical column names
    """

    customers: list[dict[str, Any]]
    sheet_name: str = ""
    available_sheets: list[str] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)

    def to_dict(self, sample_size: int = 3) -> dict[str, Any]:
        return {
            "count": len(self.customers),
            "customers": self.customers,
            "sheet_name": self.sheet_name,
            "available_sheets": self.available_sheets,
            "columns": self.columns,
            "sample_data": self.customers[:sample_size],
        }


def pick_sheet(sheet_names: list[str]) -> str | None:
    """First sheet with 'customer' in its name, else the first sheet."""
    for name in sheet_names:
        if "customer" in name.lower():
            return name
    return sheet_names[0] if sheet_names else None


def _cell_value(value: Any) -> Any:
    if value is None or (not isinstance(value, str | bytes) and pd.isna(value)):
        return None
    if isinstance(value, datetime):
        if value.hour or value.minute or value.second:
            return value.isoformat()
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def frame_to_records(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Convert a DataFrame to plain dict rows with None for empty cells."""
    df = df.dropna(how="all")
    return [
        {str(column): _cell_value(value) for column, value in row.items()}
        for row in df.astype(object).to_dict(orient="records")
    ]


def _open_source(source: bytes | Path | str | BinaryIO) -> BinaryIO | Path:
    if isinstance(source, bytes):
        return io.BytesIO(source)
    if isinstance(source, str):
        return Path(source)
    return source


def read_customers(
    source: bytes | Path | str | BinaryIO,
    filename: str | None = None,
) -> SpreadsheetImport:
    """Read customer records from a spreadsheet.

    Args:
        source: File contents, a path, or a binary file object
        filename: Original file name (used for the format when source is not a path)

    Returns:
        SpreadsheetImport with normalized records

    Raises:
        InputValidationError: Unsupported format, no sheets, no rows or
            missing required columns
        IngestionError: The file could not be parsed
    """
    name = filename or (str(source) if isinstance(source, str | Path) else "")
    suffix = Path(name).suffix.lower()
    if suffix not in EXCEL_SUFFIXES | CSV_SUFFIXES:
        raise InputValidationError(
            f"Unsupported file type '{suffix or name}'. Upload an .xlsx or .csv file "
            "(save .xls workbooks as .xlsx first).",
            field="file",
        )

    handle = _open_source(source)
    sheet_name = ""
    sheet_names: list[str] = []
    try:
        if suffix in CSV_SUFFIXES:
            df = pd.read_csv(handle)
        else:
            with pd.ExcelFile(handle, engine="openpyxl") as workbook:
                sheet_names = [str(s) for s in workbook.sheet_names]
                picked = pick_sheet(sheet_names)
                if picked is None:
                    raise InputValidationError(
                        "The uploaded workbook contains no sheets", field="file"
                    )
                sheet_name = picked
                df = workbook.parse(sheet_name)
    except pd.errors.EmptyDataError as e:
        raise InputValidationError("The uploaded file contains no data", field="file") from e
    except (ValueError, OSError, zipfile.BadZipFile, pd.errors.ParserError) as e:
        raise IngestionError(
            f"Unable to read '{name}': {e}. Check that the file is a valid spreadsheet."
        ) from e

    rows = frame_to_records(df)
    if not rows:
        raise InputValidationError(
            f"Sheet '{sheet_name or name}' contains no customer rows", field="file"
        )

    columns = list(dict.fromkeys(canonical_key(c) for c in df.columns))
    missing = [c for c in REQUIRED_COLUMNS if c not in columns]
    if missing:
        raise InputValidationError(
            f"Missing required column(s): {', '.join(missing)}. "
            f"Found columns: {', '.join(columns)}",
            field="file",
        )

    customers = [normalize_record(row) for row in rows]
    logger.info(
        "spreadsheet_parsed",
        filename=name,
        sheet=sheet_name or None,
        rows=len(customers),
        columns=len(columns),
    )
    return SpreadsheetImport(
        customers=customers,
        sheet_name=sheet_name,
        available_sheets=sheet_names,
        columns=columns,
    )
