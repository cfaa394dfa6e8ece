from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.validation import ValidationSummary

"""Failed-records export.

Pure client-side derivation: the originally parsed rows are zipped with the
validation messages of the record built from them and written as CSV with an
extra ``Error_Reason`` column. When the data was grouped, one record stands
for several source rows; each of those rows is exported with the record's
messages.
"""

__all__ = [
    "ERROR_COLUMN",
    "failed_records_frame",
    "export_failed_records",
]

ERROR_COLUMN = "Error_Reason"


def failed_records_frame(
    raw_rows: Sequence[Mapping[str, Any]],
    summary: ValidationSummary,
    source_rows: Sequence[Sequence[int]] | None = None,
) -> pd.DataFrame:
    """Build the failed-records table.

    Args:
        raw_rows: rows as parsed from the file, original headers
        summary: validation summary; ``all_errors`` rows index the validated records
        source_rows: for grouped data, the 1-based raw rows behind each record
    """
    headers: list[str] = []
    for row in raw_rows:
        for h in row.keys():
            if h not in headers:
                headers.append(h)

    lines: list[dict[str, Any]] = []
    for row_errors in summary.all_errors:
        if source_rows is not None:
            raw_numbers = list(source_rows[row_errors.row - 1])
        else:
            raw_numbers = [row_errors.row]
        reason = "; ".join(row_errors.messages)
        for n in raw_numbers:
            raw = raw_rows[n - 1]
            line = {h: raw.get(h) for h in headers}
            line[ERROR_COLUMN] = reason
            lines.append(line)

    return pd.DataFrame(lines, columns=[*headers, ERROR_COLUMN])


def export_failed_records(
    path: Path,
    raw_rows: Sequence[Mapping[str, Any]],
    summary: ValidationSummary,
    source_rows: Sequence[Sequence[int]] | None = None,
) -> int:
    """Write failed records to ``path``; returns the number of lines written."""
    df = failed_records_frame(raw_rows, summary, source_rows)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, encoding="utf-8")
    return len(df)
