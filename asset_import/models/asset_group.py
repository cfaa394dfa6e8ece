from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Asset grouping models.

An AssetGroup is one physical asset rebuilt from one or more spreadsheet
rows that share an asset key. Row numbers are 1-based data-row positions in
the uploaded file so every peripheral and conflict can be traced back to the
line it came from.
"""

__all__ = [
    "PeripheralRecord",
    "AssetGroup",
    "Conflict",
    "GroupingInfo",
    "GroupingResult",
    "GroupingSummary",
    "GroupingPreview",
]


@dataclass(frozen=True)
class PeripheralRecord:
    """Accessory attached to an asset (keyboard, mouse, cable...)."""
    source_row: int  # 1-based data row the peripheral was declared on
    peripheral_name: str | None = None
    serial_code: str | None = None

    def to_payload(self) -> dict[str, str]:
        payload: dict[str, str] = {}
        if self.peripheral_name is not None:
            payload["peripheral_name"] = self.peripheral_name
        if self.serial_code is not None:
            payload["serial_code"] = self.serial_code
        return payload


@dataclass
class AssetGroup:
    """One asset consolidated from every row sharing ``asset_key``.

    ``fields`` holds the core values of the first row seen for the key
    (first occurrence wins) plus any passthrough columns from that row.
    """
    asset_key: str
    fields: dict[str, Any]
    peripherals: list[PeripheralRecord] = field(default_factory=list)
    source_rows: list[int] = field(default_factory=list)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


@dataclass(frozen=True)
class Conflict:
    """Disagreement between a later row and the stored core value of its group."""
    asset_key: str
    field: str
    existing_value: Any
    new_value: Any
    existing_rows: list[int]  # group rows at the time the conflict was found
    conflict_row: int


@dataclass
class GroupingInfo:
    total_rows: int = 0
    unique_assets: int = 0
    assets_with_multiple_peripherals: int = 0
    total_peripherals: int = 0
    rows_grouped: int = 0  # rows folded into an already-seen asset
    conflicts: list[Conflict] = field(default_factory=list)


@dataclass(frozen=True)
class GroupingResult:
    grouped_assets: list[AssetGroup]
    grouping_info: GroupingInfo

    @property
    def has_conflicts(self) -> bool:
        return len(self.grouping_info.conflicts) > 0


@dataclass(frozen=True)
class GroupingSummary:
    total_input_rows: int
    unique_assets: int
    rows_grouped: int
    assets_with_peripherals: int
    assets_with_multiple_peripherals: int
    total_peripherals: int
    conflicts: list[Conflict]
    reduction_percentage: int  # rounded share of input rows removed by grouping


@dataclass(frozen=True)
class GroupingPreview:
    summary: GroupingSummary
    preview: list[dict[str, Any]]  # multi-row assets, read-only view
    has_more: bool
