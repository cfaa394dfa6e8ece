from __future__ import annotations

from ..models.asset_group import GroupingSummary
from ..models.import_result import ImportResult
from ..models.validation import ValidationSummary

"""One-line summary rendering for CLI output.

Formats (space separated key=value pairs, fixed key order):

    SUMMARY imported={n} duplicates={n} skipped={n} failed={n} warnings={n}
    VALIDATION rows={n} valid={n} invalid={n}
    GROUPING rows={n} assets={n} grouped_rows={n} peripherals={n} conflicts={n} reduction_pct={n}

All four import counts are always rendered, including zeros.
"""

__all__ = [
    "render_summary_line",
    "render_validation_line",
    "render_grouping_line",
]


def render_summary_line(result: ImportResult) -> str:
    """Render the SUMMARY line for a finished import.

    Examples:
        >>> render_summary_line(ImportResult(success=True, imported=3, failed=1))
        'SUMMARY imported=3 duplicates=0 skipped=0 failed=1 warnings=0'
    """
    return (
        f"SUMMARY imported={result.imported} "
        f"duplicates={result.duplicates} "
        f"skipped={result.skipped} "
        f"failed={result.failed} "
        f"warnings={len(result.warnings)}"
    )


def render_validation_line(summary: ValidationSummary) -> str:
    return (
        f"VALIDATION rows={summary.total_rows} "
        f"valid={summary.valid_rows} "
        f"invalid={summary.invalid_rows}"
    )


def render_grouping_line(summary: GroupingSummary) -> str:
    return (
        f"GROUPING rows={summary.total_input_rows} "
        f"assets={summary.unique_assets} "
        f"grouped_rows={summary.rows_grouped} "
        f"peripherals={summary.total_peripherals} "
        f"conflicts={len(summary.conflicts)} "
        f"reduction_pct={summary.reduction_percentage}"
    )
