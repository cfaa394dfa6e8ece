from __future__ import annotations

from dataclasses import dataclass, field

"""Record-level validation models.

ValidationError here is a plain value object describing one failed check on
one row; it is not an exception. Rows are reported 1-based.
"""

__all__ = [
    "ValidationError",
    "RowErrors",
    "ValidationSummary",
]


@dataclass(frozen=True)
class ValidationError:
    field: str  # canonical field or a path such as peripherals[0].serial_code
    message: str


@dataclass(frozen=True)
class RowErrors:
    row: int  # 1-based
    errors: list[ValidationError]

    @property
    def messages(self) -> list[str]:
        return [e.message for e in self.errors]


@dataclass(frozen=True)
class ValidationSummary:
    """Aggregated validation outcome for a whole dataset.

    ``errors`` is the preview list (capped), ``all_errors`` keeps every
    invalid row for the failed-records export.
    """
    total_rows: int
    valid_rows: int
    invalid_rows: int
    errors: list[RowErrors] = field(default_factory=list)
    all_errors: list[RowErrors] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return self.invalid_rows > 0
