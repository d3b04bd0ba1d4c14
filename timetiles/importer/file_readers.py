"""Windowed reads of uploaded CSV and spreadsheet files.

Import jobs process large files in fixed-size batches. ``read_batch`` returns
one window of data rows as dicts keyed by the header row; the header itself
is never counted as a data row.
"""

import logging
import math
import zipfile
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from timetiles.core.config import settings

logger = logging.getLogger(__name__)

# Extension -> pandas Excel engine (None for CSV)
SUPPORTED_EXTENSIONS: dict[str, str | None] = {
    ".csv": None,
    ".xlsx": "openpyxl",
    ".xls": "xlrd",
}

CSV_COUNT_CHUNK_SIZE = 10_000


class FileFormatError(ValueError):
    """Raised for unsupported or unreadable import files."""


def import_file_path(filename: str, upload_dir: str | Path | None = None) -> Path:
    """Location of an uploaded import file on disk."""
    return Path(upload_dir or settings.UPLOAD_DIR_IMPORT_FILES) / filename


def _resolve(file_path: str | Path) -> tuple[Path, str]:
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    extension = path.suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise FileFormatError(f"Unsupported file type: {extension or path.name}")
    return path, extension


def _to_native(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "item"):
        # numpy scalar
        return _to_native(value.item())
    return value


def _records(df: pd.DataFrame) -> list[dict[str, Any]]:
    columns = [str(column) for column in df.columns]
    return [
        {column: _to_native(value) for column, value in zip(columns, row)}
        for row in df.itertuples(index=False, name=None)
    ]


def _sheet_count(path: Path, engine: str) -> int:
    with pd.ExcelFile(path, engine=engine) as workbook:
        return len(workbook.sheet_names)


def read_batch(
    file_path: str | Path,
    *,
    sheet_index: int = 0,
    start_row: int = 0,
    limit: int = 100,
) -> list[dict[str, Any]]:
    """Read data rows ``[start_row, start_row + limit)`` from a file.

    Args:
        file_path: Path to a .csv, .xlsx or .xls file
        sheet_index: Worksheet to read for spreadsheets (ignored for CSV)
        start_row: Zero-based index of the first data row
        limit: Maximum number of rows to return

    Returns:
        Rows as dicts keyed by header. Empty list past the end of the data
        or when the sheet does not exist.

    Raises:
        FileNotFoundError: If the file does not exist
        FileFormatError: For unsupported extensions or unreadable content
    """
    path, extension = _resolve(file_path)
    if limit <= 0:
        return []

    # Keep the header (line 0) and skip the data rows before the window
    skiprows = range(1, start_row + 1) if start_row > 0 else None
    engine = SUPPORTED_EXTENSIONS[extension]

    try:
        if engine is None:
            df = pd.read_csv(path, skiprows=skiprows, nrows=limit)
        else:
            if sheet_index < 0 or sheet_index >= _sheet_count(path, engine):
                logger.warning(f"Sheet {sheet_index} not found in {path.name}")
                return []
            df = pd.read_excel(
                path,
                sheet_name=sheet_index,
                engine=engine,
                skiprows=skiprows,
                nrows=limit,
            )
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, zipfile.BadZipFile, ValueError) as e:
        raise FileFormatError(f"Could not read {path.name}: {e}") from e

    return _records(df)


def get_file_row_count(file_path: str | Path, sheet_index: int = 0) -> int:
    """Count data rows (header excluded).

    Returns 0 when the sheet does not exist, so callers should read 0 as
    "unknown" rather than "empty".
    """
    path, extension = _resolve(file_path)
    engine = SUPPORTED_EXTENSIONS[extension]

    try:
        if engine is None:
            with pd.read_csv(path, chunksize=CSV_COUNT_CHUNK_SIZE) as reader:
                return sum(len(chunk) for chunk in reader)
        if sheet_index < 0 or sheet_index >= _sheet_count(path, engine):
            return 0
        return len(pd.read_excel(path, sheet_name=sheet_index, engine=engine))
    except pd.errors.EmptyDataError:
        return 0
    except (pd.errors.ParserError, zipfile.BadZipFile, ValueError) as e:
        raise FileFormatError(f"Could not read {path.name}: {e}") from e
