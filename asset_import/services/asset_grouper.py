from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

from ..models.asset_group import (
    AssetGroup,
    Conflict,
    GroupingInfo,
    GroupingPreview,
    GroupingResult,
    GroupingSummary,
    PeripheralRecord,
)
from ..models.config_models import DEFAULT_DUPLICATE_RATE_THRESHOLD

"""Asset grouping: fold one-row-per-peripheral spreadsheets into assets.

Spreadsheets exported from other inventory tools frequently repeat the asset
on every line and vary only the peripheral columns::

    serial_number  tag_id  peripheral_name  serial_code
    COW7B74        IKU109  mouse            M09909
    COW7B74        IKU109  keyboard         K09092

group_assets() turns that into a single asset carrying both peripherals.
Rows are matched on a derived asset key (see generate_asset_key). The first
row seen for a key owns the core values; later rows that disagree are
recorded as conflicts and never overwrite.
"""

__all__ = [
    "CORE_ASSET_FIELDS",
    "PERIPHERAL_FIELDS",
    "generate_asset_key",
    "has_peripheral_data",
    "extract_peripheral",
    "extract_core_asset_data",
    "detect_conflicts",
    "group_assets",
    "needs_grouping",
    "transform_for_backend",
    "get_grouping_summary",
    "preview_grouping",
]

logger = logging.getLogger(__name__)

CORE_ASSET_FIELDS: tuple[str, ...] = (
    "serial_number",
    "tag_id",
    "project_reference_num",
    "item_name",
    "category",
    "model",
    "status",
    "recipient_name",
    "department_name",
    "customer_name",
    "customer_reference_number",
    "branch",
    "remarks",
)

PERIPHERAL_FIELDS: tuple[str, ...] = (
    "peripheral_name",
    "serial_code",
)


def _text(value: Any) -> str:
    """Cell value as trimmed text; blanks (None, NaN, whitespace) become ''."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def _split_list(value: Any) -> list[str]:
    return [part.strip() for part in _text(value).split(",") if part.strip()]


def generate_asset_key(row: Mapping[str, Any]) -> str:
    """Derive the identity key of the asset a row describes.

    Priority: serial number, tag id, project reference + item name, then a
    concatenation of every non-blank core value. Always returns a non-empty
    string; identical field values always give the identical key.
    """
    serial = _text(row.get("serial_number")).lower()
    if serial:
        return f"serial:{serial}"

    tag = _text(row.get("tag_id")).lower()
    if tag:
        return f"tag:{tag}"

    project = _text(row.get("project_reference_num")).lower()
    item = _text(row.get("item_name")).lower()
    if project and item:
        return f"combo:{project}:{item}"

    core_values = (_text(row.get(f)).lower() for f in CORE_ASSET_FIELDS)
    return "hash:" + "|".join(v for v in core_values if v)


def has_peripheral_data(row: Mapping[str, Any]) -> bool:
    return bool(_text(row.get("peripheral_name")) or _text(row.get("serial_code")))


def extract_peripheral(row: Mapping[str, Any]) -> list[dict[str, str]]:
    """Extract the peripherals declared on one row.

    Both peripheral cells may hold comma separated lists ("Mouse, Keyboard"
    with "M001, K002"). The lists are paired by position up to the longer
    one; when the counts differ the extra entries yield records carrying only
    the field that has a value. Mismatches are not treated as errors.
    """
    names = _split_list(row.get("peripheral_name"))
    codes = _split_list(row.get("serial_code"))

    peripherals: list[dict[str, str]] = []
    for i in range(max(len(names), len(codes))):
        peripheral: dict[str, str] = {}
        if i < len(names):
            peripheral["peripheral_name"] = names[i]
        if i < len(codes):
            peripheral["serial_code"] = codes[i]
        peripherals.append(peripheral)
    return peripherals


def extract_core_asset_data(row: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of the row without the peripheral columns (passthrough kept)."""
    return {k: v for k, v in row.items() if k not in PERIPHERAL_FIELDS}


def detect_conflicts(group: AssetGroup, row: Mapping[str, Any], row_number: int) -> list[Conflict]:
    """Compare a later row against the stored core values of its group.

    Only fields that are non-blank on both sides are compared, and the
    comparison ignores case. The group itself is left untouched.
    """
    conflicts: list[Conflict] = []
    for field in CORE_ASSET_FIELDS:
        existing = _text(group.fields.get(field)).lower()
        new = _text(row.get(field)).lower()
        if existing and new and existing != new:
            conflicts.append(
                Conflict(
                    asset_key=group.asset_key,
                    field=field,
                    existing_value=group.fields.get(field),
                    new_value=row.get(field),
                    existing_rows=list(group.source_rows),
                    conflict_row=row_number,
                )
            )
    return conflicts


def group_assets(rows: Sequence[Mapping[str, Any]]) -> GroupingResult:
    """Merge rows sharing an asset key into AssetGroup records.

    Single ordered pass; groups come back in first-occurrence order and every
    peripheral keeps the 1-based row it was declared on.
    """
    groups: dict[str, AssetGroup] = {}
    info = GroupingInfo(total_rows=len(rows))

    for index, row in enumerate(rows):
        row_number = index + 1
        key = generate_asset_key(row)
        peripherals = [
            PeripheralRecord(source_row=row_number, **p) for p in extract_peripheral(row)
        ]

        group = groups.get(key)
        if group is None:
            groups[key] = AssetGroup(
                asset_key=key,
                fields=extract_core_asset_data(row),
                peripherals=peripherals,
                source_rows=[row_number],
            )
            continue

        conflicts = detect_conflicts(group, row, row_number)
        if conflicts:
            info.conflicts.extend(conflicts)
            for c in conflicts:
                logger.debug(
                    f"conflict asset={key} field={c.field} row={row_number} "
                    f"kept='{c.existing_value}' ignored='{c.new_value}'"
                )
        group.peripherals.extend(peripherals)
        group.source_rows.append(row_number)
        info.rows_grouped += 1

    grouped = list(groups.values())
    info.unique_assets = len(grouped)
    info.assets_with_multiple_peripherals = sum(1 for g in grouped if len(g.peripherals) > 1)
    info.total_peripherals = sum(len(g.peripherals) for g in grouped)

    logger.info(
        f"grouping rows={info.total_rows} assets={info.unique_assets} "
        f"peripherals={info.total_peripherals} conflicts={len(info.conflicts)}"
    )
    return GroupingResult(grouped_assets=grouped, grouping_info=info)


def needs_grouping(
    rows: Sequence[Mapping[str, Any]],
    threshold: float = DEFAULT_DUPLICATE_RATE_THRESHOLD,
) -> bool:
    """Dataset-wide heuristic deciding whether to offer grouping review.

    duplicate rate = max(rows with a repeated serial, rows with a repeated
    tag) / total rows. Grouping is suggested when that rate exceeds
    ``threshold`` OR when any repeated identifier exists and any row at all
    carries peripheral data. The two conditions are independent, so repeated
    identifiers alone can trigger review on a file with no peripherals.
    """
    if len(rows) < 2:
        return False

    serial_counts: dict[str, int] = {}
    tag_counts: dict[str, int] = {}
    has_peripherals = False

    for row in rows:
        serial = _text(row.get("serial_number")).lower()
        tag = _text(row.get("tag_id")).lower()
        if serial:
            serial_counts[serial] = serial_counts.get(serial, 0) + 1
        if tag:
            tag_counts[tag] = tag_counts.get(tag, 0) + 1
        if not has_peripherals and has_peripheral_data(row):
            has_peripherals = True

    duplicate_serials = sum(c for c in serial_counts.values() if c > 1)
    duplicate_tags = sum(c for c in tag_counts.values() if c > 1)
    has_duplicates = duplicate_serials > 0 or duplicate_tags > 0

    duplicate_rate = max(duplicate_serials, duplicate_tags) / len(rows)
    should_group = duplicate_rate > threshold or (has_duplicates and has_peripherals)

    logger.debug(
        f"grouping detection rows={len(rows)} unique_serials={len(serial_counts)} "
        f"unique_tags={len(tag_counts)} duplicate_serial_rows={duplicate_serials} "
        f"duplicate_tag_rows={duplicate_tags} peripherals={has_peripherals} "
        f"rate={duplicate_rate:.4f} threshold={threshold} -> {should_group}"
    )
    return should_group


def transform_for_backend(groups: Sequence[AssetGroup]) -> list[dict[str, Any]]:
    """Bulk-create payloads: core fields plus bare peripheral dicts.

    Grouping bookkeeping (asset key, source rows, per-peripheral source row)
    is not part of the payload.
    """
    payloads: list[dict[str, Any]] = []
    for group in groups:
        payload = dict(group.fields)
        payload["peripherals"] = [p.to_payload() for p in group.peripherals]
        payloads.append(payload)
    return payloads


def get_grouping_summary(result: GroupingResult) -> GroupingSummary:
    info = result.grouping_info
    groups = result.grouped_assets
    if info.total_rows > 0:
        reduction = math.floor((info.total_rows - info.unique_assets) / info.total_rows * 100 + 0.5)
    else:
        reduction = 0
    return GroupingSummary(
        total_input_rows=info.total_rows,
        unique_assets=info.unique_assets,
        rows_grouped=info.rows_grouped,
        assets_with_peripherals=sum(1 for g in groups if g.peripherals),
        assets_with_multiple_peripherals=info.assets_with_multiple_peripherals,
        total_peripherals=info.total_peripherals,
        conflicts=list(info.conflicts),
        reduction_percentage=reduction,
    )


def preview_grouping(
    rows: Sequence[Mapping[str, Any]], max_preview_items: int = 5
) -> GroupingPreview:
    """Read-only preview of the assets that grouping would merge."""
    result = group_assets(rows)
    groups = result.grouped_assets

    candidates = [
        {
            "serial_number": g.get("serial_number"),
            "tag_id": g.get("tag_id"),
            "item_name": g.get("item_name"),
            "source_rows": list(g.source_rows),
            "peripheral_count": len(g.peripherals),
            "peripherals": [
                {"name": p.peripheral_name, "serial": p.serial_code, "source_row": p.source_row}
                for p in g.peripherals
            ],
        }
        for g in groups
        if len(g.source_rows) > 1 or len(g.peripherals) > 1
    ]
    return GroupingPreview(
        summary=get_grouping_summary(result),
        preview=candidates[:max_preview_items],
        has_more=len(candidates) > max_preview_items,
    )
