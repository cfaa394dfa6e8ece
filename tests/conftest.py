# Shared pytest fixtures
from __future__ import annotations
import tempfile
from pathlib import Path
from typing import Any

import pytest

from asset_import.logging.init import reset_logging


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("ASSET_API_BASE_URL", raising=False)
        monkeypatch.delenv("ASSET_API_TOKEN", raising=False)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """api:
  base_url: http://localhost:5000/api
  timeout: 30
grouping:
  duplicate_rate_threshold: 0.05
preview:
  max_rows: 10
  max_errors: 10
import:
  strategy: valid-only
error_log_dir: ./logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def clean_logging():
    # setup_logging() は初回の sys.stdout を握るため capsys 前にリセット
    reset_logging()
    yield
    reset_logging()


def make_row(serial: str | None, tag: str | None, **extra: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "Serial Number": serial,
        "Asset Tag": tag,
        "Item": extra.pop("item", "Laptop"),
        "Project Ref": extra.pop("project", "PRJ-001"),
    }
    row.update(extra)
    return row


@pytest.fixture()
def raw_rows() -> list[dict[str, Any]]:
    """Three clean rows with spreadsheet style headers."""
    return [
        make_row("SN-001", "TAG-001", Status="active"),
        make_row("SN-002", "TAG-002", Status="Inactive"),
        make_row("SN-003", "TAG-003", Status="Maintenance"),
    ]


@pytest.fixture()
def peripheral_rows() -> list[dict[str, Any]]:
    """One asset repeated per peripheral (needs grouping)."""
    return [
        {"Serial Number": "COW7B74", "Asset Tag": "IKU109", "Item": "Desktop", "Project Ref": "P1",
         "Peripheral Name": "Mouse", "Serial Code": "M09909"},
        {"Serial Number": "COW7B74", "Asset Tag": "IKU109", "Item": "Desktop", "Project Ref": "P1",
         "Peripheral Name": "Keyboard", "Serial Code": "K09092"},
        {"Serial Number": "COW7B75", "Asset Tag": "IKU110", "Item": "Desktop", "Project Ref": "P1",
         "Peripheral Name": "Mouse", "Serial Code": "M09910"},
    ]


@pytest.fixture()
def sample_csv(temp_workdir: Path, raw_rows: list[dict[str, Any]]) -> Path:
    import pandas as pd

    path = temp_workdir / "data" / "assets.csv"
    pd.DataFrame(raw_rows).to_csv(path, index=False)
    return path
