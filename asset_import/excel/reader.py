from __future__ import annotations

from pathlib import Path
from typing import Any

import pandas as pd

"""Spreadsheet reader: CSV / XLS / XLSX -> list of raw row dicts.

Both formats normalize to the same shape before header mapping: one dict
per data line keyed by the file's literal header strings (first row).
Cells are read as text so identifiers such as "00123" keep their leading
zeros; blank cells become None and fully blank lines are dropped.
"""

__all__ = [
    "SUPPORTED_SUFFIXES",
    "EmptyFileError",
    "UnsupportedFileError",
    "read_rows",
    "frame_to_rows",
]

SUPPORTED_SUFFIXES = (".csv", ".xlsx", ".xls")


class UnsupportedFileError(Exception):
    """Raised for a file extension the importer cannot parse."""


class EmptyFileError(Exception):
    """Raised when a file has a header but no data rows."""


def _read_frame(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path, dtype=str, keep_default_na=False, skip_blank_lines=True)
    if suffix == ".xlsx":
        return pd.read_excel(path, sheet_name=0, dtype=str, keep_default_na=False, engine="openpyxl")
    if suffix == ".xls":
        # 旧形式 (Excel 97-2003)
        return pd.read_excel(path, sheet_name=0, dtype=str, keep_default_na=False, engine="xlrd")
    raise UnsupportedFileError(
        f"unsupported file type '{path.suffix}' for {path.name} (expected one of {', '.join(SUPPORTED_SUFFIXES)})"
    )


def frame_to_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Convert a text DataFrame into raw row dicts.

    Unnamed columns that are blank on every line (trailing separators,
    formatted-but-empty Excel columns) are dropped.
    """
    columns = [str(c) for c in df.columns]
    df = df.copy()
    df.columns = columns
    df = df.fillna("")
    keep = [
        c for c in columns
        if not (c.startswith("Unnamed:") and (df[c].astype(str).str.strip() == "").all())
    ]

    rows: list[dict[str, Any]] = []
    for record in df[keep].to_dict(orient="records"):
        row: dict[str, Any] = {}
        for header, value in record.items():
            text = str(value)
            row[header] = None if text.strip() == "" else text
        if all(v is None for v in row.values()):
            continue
        rows.append(row)
    return rows


def read_rows(path: Path) -> list[dict[str, Any]]:
    """Read the first sheet (or the CSV) at ``path`` into raw rows.

    Raises:
        FileNotFoundError: path does not exist
        UnsupportedFileError: extension is not csv/xlsx/xls
        EmptyFileError: no data rows after dropping blank lines
    """
    if not path.exists():
        raise FileNotFoundError(f"file not found: {path}")
    try:
        df = _read_frame(path)
    except pd.errors.EmptyDataError as e:
        raise EmptyFileError(f"No data found in the file: {path.name}") from e
    rows = frame_to_rows(df)
    if not rows:
        raise EmptyFileError(f"No data found in the file: {path.name}")
    return rows
