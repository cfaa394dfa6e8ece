from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from ..models.header_mapping import CanonicalField, HeaderMapping, MappingValidation

"""Header reconciliation for uploaded asset spreadsheets.

Users upload files with whatever column titles they like ("Serial No",
"Asset Tag", "Project Ref" ...). This module resolves those titles to the
canonical field vocabulary in two passes:

1. exact match of the normalized header against every field's variant list
2. keyword (substring) fallback, walking fields in declaration order

The keyword pass deliberately returns the FIRST field whose keyword occurs in
the header, not the most specific one. Fields with overlapping keywords
(serial_number / serial_code both use "serial") therefore resolve by order;
callers rely on this being stable.
"""

__all__ = [
    "HEADER_VARIANTS",
    "FIELD_KEYWORDS",
    "REQUIRED_FIELDS",
    "normalize_header",
    "get_keywords",
    "find_matching_field",
    "map_headers",
    "transform_data",
    "validate_mapping",
    "get_required_fields",
    "get_standard_fields",
    "get_suggestions",
]

logger = logging.getLogger(__name__)

F = CanonicalField

# (field, variants) 順序付きペア。dict にしないこと (照合順序に意味がある)
HEADER_VARIANTS: tuple[tuple[CanonicalField, tuple[str, ...]], ...] = (
    (F.SERIAL_NUMBER, (
        "serial_number", "serial number", "serial no", "serial",
        "serial #", "asset serial", "asset serial number",
        "serial_num", "ser_no", "sno", "serialnumber", "assetserialnumber",
    )),
    (F.TAG_ID, (
        "tag_id", "tag id", "asset tag", "tag", "asset tag id",
        "tag number", "asset tag number", "tag_no", "asset_tag",
        "tagid", "assettag", "tagnumber",
    )),
    (F.PROJECT_REFERENCE_NUM, (
        "project_reference_num", "project reference num", "project_ref_num",
        "project ref num", "project ref", "project reference", "project id",
        "project no", "project number", "project_ref", "proj_ref",
        "project reference number", "projectreferencenumber", "projectref",
        "projectid",
    )),
    (F.CATEGORY, (
        "category", "asset category", "type", "equipment type",
        "category type", "asset type", "equipment category",
        "assetcategory", "equipmenttype", "assettype",
    )),
    (F.MODEL, (
        "model", "model name", "model number", "device model",
        "equipment model", "model_name", "model_number",
        "modelname", "modelnumber", "devicemodel",
    )),
    (F.STATUS, (
        "status", "asset status", "condition", "status type",
        "state", "asset_status", "assetstatus", "assetcondition",
    )),
    (F.RECIPIENT_NAME, (
        "recipient_name", "recipient name", "assigned to", "user",
        "owner", "holder", "assigned user", "recipient",
        "recipientname", "assignedto", "assigneduser", "username",
    )),
    (F.DEPARTMENT_NAME, (
        "department_name", "department name", "department", "dept",
        "unit", "division", "team", "departmentname",
    )),
    (F.CUSTOMER_NAME, (
        "customer_name", "customer name", "customer", "client",
        "client name", "customername", "clientname",
    )),
    (F.CUSTOMER_REFERENCE_NUMBER, (
        "customer_reference_number", "customer reference number",
        "customer ref", "customer reference", "customer ref no",
        "customer ref num", "customer ref number", "cust ref num",
        "cust ref number", "cust reference number", "client ref num",
        "client ref number", "client reference number",
        "customerreferencenumber", "customerrefnum", "customerref",
        "clientref", "clientrefnum", "customer_ref_num", "customer_ref_number",
        "cust_ref_num", "client_ref_num",
    )),
    (F.BRANCH, (
        "branch", "branch name", "location", "site",
        "office", "branchname", "branchlocation",
    )),
    (F.ITEM_NAME, (
        "item_name", "item name", "asset name", "item",
        "equipment name", "device name", "asset_name", "equipment",
        "itemname", "assetname", "equipmentname", "devicename",
    )),
    (F.REMARKS, (
        "remarks", "notes", "comments", "description",
        "additional info", "remark", "note", "comment",
        "additionalinfo", "desc", "additional_info",
    )),
    (F.PERIPHERAL_NAME, (
        "peripheral_name", "peripheral name", "peripheral", "accessory",
        "component", "attached device", "peripheralname",
        "accessories", "components", "peripheal",  # よくある綴り間違い
    )),
    (F.SERIAL_CODE, (
        "serial_code", "serial code", "peripheral serial",
        "accessory serial", "component serial", "peripheral_serial",
        "serialcode", "peripheralserial", "serial_code_name",
        "serial code name", "serialcodename", "peripheral serial number",
        "peripheral_serial_number", "accessory serial number",
    )),
)

FIELD_KEYWORDS: tuple[tuple[CanonicalField, tuple[str, ...]], ...] = (
    (F.SERIAL_NUMBER, ("serial", "sno", "ser")),
    (F.TAG_ID, ("tag", "asset")),
    (F.PROJECT_REFERENCE_NUM, ("project", "ref", "reference", "proj")),
    (F.CATEGORY, ("categor", "type")),
    (F.MODEL, ("model",)),
    (F.STATUS, ("status", "condition", "state")),
    (F.RECIPIENT_NAME, ("recipient", "assign", "user", "owner")),
    (F.DEPARTMENT_NAME, ("department", "dept", "unit")),
    (F.CUSTOMER_NAME, ("customer", "client")),
    (F.CUSTOMER_REFERENCE_NUMBER, ("customer", "client", "cust")),
    (F.BRANCH, ("branch", "location", "site")),
    (F.ITEM_NAME, ("item", "asset", "name", "equipment", "device")),
    (F.REMARKS, ("remark", "note", "comment")),
    (F.PERIPHERAL_NAME, ("peripheral", "accessory", "component")),
    (F.SERIAL_CODE, ("serial", "code")),
)

REQUIRED_FIELDS: tuple[CanonicalField, ...] = (
    F.PROJECT_REFERENCE_NUM,
    F.SERIAL_NUMBER,
    F.TAG_ID,
    F.ITEM_NAME,
)

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_header(header: Any) -> str:
    """Lowercase and strip every non-alphanumeric character."""
    if header is None:
        return ""
    return _NON_ALNUM.sub("", str(header).lower())


_NORMALIZED_VARIANTS: tuple[tuple[CanonicalField, frozenset[str]], ...] = tuple(
    (f, frozenset(normalize_header(v) for v in variants)) for f, variants in HEADER_VARIANTS
)
_KEYWORDS_BY_FIELD: dict[CanonicalField, tuple[str, ...]] = dict(FIELD_KEYWORDS)


def get_keywords(field: CanonicalField | str) -> tuple[str, ...]:
    try:
        return _KEYWORDS_BY_FIELD[CanonicalField(field)]
    except ValueError:
        return (str(field),)


def find_matching_field(header: Any) -> CanonicalField | None:
    """Resolve one raw header to a canonical field, or None."""
    normalized = normalize_header(header)
    if not normalized:
        return None

    for field, variants in _NORMALIZED_VARIANTS:
        if normalized in variants:
            return field

    for field, keywords in FIELD_KEYWORDS:
        if any(k in normalized for k in keywords):
            return field
    return None


def map_headers(headers: Iterable[str]) -> HeaderMapping:
    """Build the raw -> canonical mapping for a file's headers.

    Every matched header is kept in ``mapping`` even when its field was
    already claimed; such fields are reported in ``duplicates`` together with
    the headers involved in ``duplicate_details``.
    """
    mapping: dict[str, str] = {}
    unmapped: list[str] = []
    duplicates: list[str] = []
    duplicate_details: dict[str, list[str]] = {}
    first_claim: dict[str, str] = {}

    for header in headers:
        field = find_matching_field(header)
        if field is None:
            unmapped.append(header)
            logger.debug(f"header '{header}' -> (unmapped)")
            continue
        name = field.value
        if name in first_claim:
            if name not in duplicates:
                duplicates.append(name)
                duplicate_details[name] = [first_claim[name]]
            duplicate_details[name].append(header)
        else:
            first_claim[name] = header
        mapping[header] = name
        logger.debug(f"header '{header}' -> {name}")

    return HeaderMapping(
        mapping=mapping,
        unmapped=unmapped,
        duplicates=duplicates,
        duplicate_details=duplicate_details,
        standard_fields=list(first_claim.keys()),
    )


def transform_data(
    rows: Iterable[Mapping[str, Any]], mapping: Mapping[str, str]
) -> list[dict[str, Any]]:
    """Rewrite row keys through ``mapping``.

    Headers without a mapping (or mapped to an empty value) keep their
    original key so unrecognized columns travel through untouched.
    """
    out: list[dict[str, Any]] = []
    for row in rows:
        transformed: dict[str, Any] = {}
        for header, value in row.items():
            target = mapping.get(header)
            transformed[str(target) if target else header] = value
        out.append(transformed)
    return out


def validate_mapping(mapping: Mapping[str, str] | HeaderMapping) -> MappingValidation:
    """Check that every required canonical field is bound to some header."""
    if isinstance(mapping, HeaderMapping):
        mapping = mapping.mapping
    mapped = {str(v) for v in mapping.values() if v}
    missing = [f.value for f in REQUIRED_FIELDS if f.value not in mapped]
    return MappingValidation(is_valid=not missing, missing_required=missing)


def get_required_fields() -> list[str]:
    return [f.value for f in REQUIRED_FIELDS]


def get_standard_fields() -> list[str]:
    return [f.value for f in CanonicalField]


def get_suggestions(header: str) -> list[str]:
    """Fields whose keywords partially overlap an unmapped header."""
    normalized = normalize_header(header)
    if not normalized:
        return []
    return [
        field.value
        for field, keywords in FIELD_KEYWORDS
        if any(k in normalized or normalized in k for k in keywords)
    ]
