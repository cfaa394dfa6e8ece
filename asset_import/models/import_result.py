from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Result models for the bulk-create and new-options APIs.

The bulk-create endpoint reports four independent counts (imported,
duplicates, skipped, failed). Older backend builds only send ``imported`` /
``failed`` and an ``errors`` list, so every count falls back to 0.
"""

__all__ = [
    "RecordResult",
    "ImportResult",
    "NewOptions",
]


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class RecordResult:
    """Per-record outcome returned by the backend."""
    success: bool
    asset_id: Any = None
    serial_number: str | None = None
    row: int | None = None
    error: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecordResult:
        return cls(
            success=bool(data.get("success", False)),
            asset_id=data.get("assetId", data.get("asset_id")),
            serial_number=data.get("serialNumber", data.get("serial_number")),
            row=data.get("row"),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class ImportResult:
    success: bool
    imported: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0
    warnings: list[str] = field(default_factory=list)
    records: list[RecordResult] = field(default_factory=list)
    message: str | None = None
    error: str | None = None

    @property
    def total(self) -> int:
        return self.imported + self.duplicates + self.skipped + self.failed

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> ImportResult:
        records = [RecordResult.from_dict(r) for r in data.get("results") or []]
        if not records:
            # 旧形式: 失敗分のみ errors[] で返る
            records = [
                RecordResult.from_dict({**e, "success": False})
                for e in data.get("errors") or []
                if isinstance(e, dict)
            ]
        imported = _as_int(data.get("imported", data.get("assetsCreated")))
        return cls(
            success=bool(data.get("success", imported > 0)),
            imported=imported,
            duplicates=_as_int(data.get("duplicates")),
            skipped=_as_int(data.get("skipped")),
            failed=_as_int(data.get("failed")),
            warnings=[str(w) for w in data.get("warnings") or []],
            records=records,
            message=data.get("message"),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class NewOptions:
    """Reference values that the import would create (informational only)."""
    categories: list[str] = field(default_factory=list)
    models: list[str] = field(default_factory=list)
    software: list[str] = field(default_factory=list)
    windows: list[str] = field(default_factory=list)
    office: list[str] = field(default_factory=list)

    @property
    def has_any(self) -> bool:
        return any((self.categories, self.models, self.software, self.windows, self.office))

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> NewOptions:
        body = data.get("newOptions", data)
        return cls(
            categories=list(body.get("categories") or []),
            models=list(body.get("models") or []),
            software=list(body.get("software") or []),
            windows=list(body.get("windows") or []),
            office=list(body.get("office") or []),
        )
