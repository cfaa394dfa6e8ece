from __future__ import annotations

from pathlib import Path

import pandas as pd

"""Import template writer.

Produces a CSV that already uses the canonical headers, so a file filled in
from it maps without review.
"""

TEMPLATE_ROW = {
    "project_reference_num": "QT240000000015729",
    "customer_name": "NADMA",
    "customer_reference_number": "M24050",
    "branch": "Putrajaya",
    "serial_number": "SN-001",
    "tag_id": "TAG-001",
    "item_name": "Desktop Computer",
    "category": "Desktop",
    "model": "Dell OptiPlex 3090",
    "status": "Active",
    "recipient_name": "John Doe",
    "department_name": "IT Department",
    "remarks": "",
    "peripheral_name": "Mouse, Keyboard",
    "serial_code": "M-001, K-001",
}


def write_template(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame([TEMPLATE_ROW]).to_csv(path, index=False, encoding="utf-8")
    return path
