from __future__ import annotations

import logging
import re
from collections.abc import Callable, MutableMapping, Sequence
from typing import Any

from ..models.validation import RowErrors, ValidationError, ValidationSummary

"""Record-level validation for canonical rows and grouped payloads.

validate_data() returns one error list per input row (same order, same
length). Errors never stop the pass; the caller decides later whether to
drop invalid rows or submit them anyway.
"""

__all__ = [
    "REQUIRED_FIELDS",
    "VALID_STATUSES",
    "SERIAL_NUMBER_PATTERN",
    "validate_row",
    "validate_data",
    "build_summary",
]

logger = logging.getLogger(__name__)

# (reported field, accepted keys)
REQUIRED_FIELDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("project_reference_num", ("project_ref_num", "project_reference_num")),
    ("serial_number", ("serial_number",)),
    ("tag_id", ("tag_id",)),
    ("item_name", ("item_name",)),
)

VALID_STATUSES: tuple[str, ...] = ("Active", "Inactive", "Maintenance")
_STATUS_LOOKUP = {s.lower(): s for s in VALID_STATUSES}

SERIAL_NUMBER_PATTERN = re.compile(r"[a-zA-Z0-9\-_]+")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:  # NaN
        return True
    return str(value).strip() == ""


def validate_row(
    row: MutableMapping[str, Any],
    seen_serials: set[str] | None = None,
    seen_tags: set[str] | None = None,
) -> list[ValidationError]:
    """Validate a single row.

    Passing ``seen_serials`` / ``seen_tags`` enables the in-file uniqueness
    check; the sets are updated in place. A recognised ``status`` is
    rewritten to its canonical casing.
    """
    errors: list[ValidationError] = []

    for field, keys in REQUIRED_FIELDS:
        if all(_is_blank(row.get(k)) for k in keys):
            errors.append(ValidationError(field, f"{field} is required"))

    if seen_serials is not None and not _is_blank(row.get("serial_number")):
        serial = str(row["serial_number"]).strip()
        if serial in seen_serials:
            errors.append(
                ValidationError("serial_number", f"Serial number '{serial}' must be unique within the file")
            )
        else:
            seen_serials.add(serial)

    if seen_tags is not None and not _is_blank(row.get("tag_id")):
        tag = str(row["tag_id"]).strip()
        if tag in seen_tags:
            errors.append(ValidationError("tag_id", f"Tag ID '{tag}' must be unique within the file"))
        else:
            seen_tags.add(tag)

    if not _is_blank(row.get("status")):
        canonical = _STATUS_LOOKUP.get(str(row["status"]).strip().lower())
        if canonical is None:
            errors.append(
                ValidationError(
                    "status",
                    f"Status '{row['status']}' must be one of: {', '.join(VALID_STATUSES)}",
                )
            )
        else:
            row["status"] = canonical

    if not _is_blank(row.get("serial_number")):
        if not SERIAL_NUMBER_PATTERN.fullmatch(str(row["serial_number"])):
            errors.append(
                ValidationError(
                    "serial_number",
                    "Serial number should contain only alphanumeric characters, hyphens, and underscores",
                )
            )

    for i, peripheral in enumerate(row.get("peripherals") or []):
        name = peripheral.get("peripheral_name")
        if not _is_blank(name) and _is_blank(peripheral.get("serial_code")):
            errors.append(
                ValidationError(
                    f"peripherals[{i}].serial_code",
                    f"Peripheral '{name}' is missing serial_code",
                )
            )

    return errors


def validate_data(
    rows: Sequence[MutableMapping[str, Any]],
    is_grouped_data: bool = False,
    on_row: Callable[[list[ValidationError]], None] | None = None,
) -> list[list[ValidationError]]:
    """Validate every row, returning a list parallel to ``rows``.

    ``on_row`` is called with each row's errors as soon as the row is checked.

    Uniqueness of serial_number / tag_id is only checked on ungrouped data:
    grouped payloads are already one record per asset key, and re-checking
    them would flag assets that merely share a tag.
    """
    seen_serials: set[str] | None = None if is_grouped_data else set()
    seen_tags: set[str] | None = None if is_grouped_data else set()

    results: list[list[ValidationError]] = []
    for row in rows:
        errors = validate_row(row, seen_serials, seen_tags)
        results.append(errors)
        if on_row is not None:
            on_row(errors)

    invalid = sum(1 for errs in results if errs)
    logger.debug(f"validated rows={len(rows)} invalid={invalid} grouped={is_grouped_data}")
    return results


def build_summary(
    validation: Sequence[Sequence[ValidationError]], max_errors: int = 10
) -> ValidationSummary:
    """Aggregate per-row results; ``errors`` is capped at ``max_errors``."""
    all_errors = [
        RowErrors(row=index + 1, errors=list(errs))
        for index, errs in enumerate(validation)
        if errs
    ]
    total = len(validation)
    return ValidationSummary(
        total_rows=total,
        valid_rows=total - len(all_errors),
        invalid_rows=len(all_errors),
        errors=all_errors[:max_errors],
        all_errors=all_errors,
    )
