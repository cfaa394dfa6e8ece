from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""Header mapping models for the asset spreadsheet importer.

CanonicalField is the closed vocabulary every uploaded header is reconciled
into. Member order is significant: keyword fallback matching walks the fields
in declaration order and the first hit wins.
"""

__all__ = [
    "CanonicalField",
    "HeaderMapping",
    "MappingValidation",
]


class CanonicalField(str, Enum):
    """Canonical asset attributes understood by the import pipeline."""
    # identity
    SERIAL_NUMBER = "serial_number"
    TAG_ID = "tag_id"
    PROJECT_REFERENCE_NUM = "project_reference_num"
    # classification
    CATEGORY = "category"
    MODEL = "model"
    STATUS = "status"
    # assignment
    RECIPIENT_NAME = "recipient_name"
    DEPARTMENT_NAME = "department_name"
    # customer
    CUSTOMER_NAME = "customer_name"
    CUSTOMER_REFERENCE_NUMBER = "customer_reference_number"
    BRANCH = "branch"
    # descriptive
    ITEM_NAME = "item_name"
    REMARKS = "remarks"
    # peripheral sub-fields
    PERIPHERAL_NAME = "peripheral_name"
    SERIAL_CODE = "serial_code"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class HeaderMapping:
    """Result of reconciling raw spreadsheet headers.

    Attributes:
        mapping: raw header -> canonical field name (only matched headers)
        unmapped: raw headers with no match, in input order
        duplicates: canonical fields claimed by more than one raw header
        duplicate_details: canonical field -> every raw header that claimed it
        standard_fields: canonical fields in the order they were first claimed
    """
    mapping: dict[str, str]
    unmapped: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    duplicate_details: dict[str, list[str]] = field(default_factory=dict)
    standard_fields: list[str] = field(default_factory=list)

    @property
    def needs_review(self) -> bool:
        return bool(self.unmapped or self.duplicates)


@dataclass(frozen=True)
class MappingValidation:
    is_valid: bool
    missing_required: list[str]
