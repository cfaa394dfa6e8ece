from __future__ import annotations

import re
from pathlib import Path
from unittest.mock import MagicMock, patch

import pandas as pd

from asset_import.api.client import AssetApiError
from asset_import.cli import main as cli_main
from asset_import.models.import_result import ImportResult, NewOptions, RecordResult

"""Exit code contract: 0 ok, 1 fatal, 2 partial, 3 review required."""

SUMMARY_RE = re.compile(
    r"^SUMMARY imported=(\d+) duplicates=(\d+) skipped=(\d+) failed=(\d+) warnings=(\d+)$", re.M
)


def _run(argv: list[str], bulk_create) -> int:
    client = MagicMock()
    client.check_new_options.return_value = NewOptions()
    client.bulk_create.side_effect = bulk_create
    with patch("asset_import.cli.app.AssetApiClient") as mock_cls:
        mock_cls.from_config.return_value = client
        return cli_main(argv)


def test_exit_code_fatal_startup(temp_workdir: Path, clean_logging, capsys):
    # config/import.yml 無し → exit 1
    code = cli_main(["data/assets.csv"])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_fatal_empty_file(temp_workdir: Path, write_config, clean_logging, capsys):
    path = temp_workdir / "data" / "empty.csv"
    path.write_text("Serial Number,Asset Tag\n", encoding="utf-8")
    code = cli_main([str(path)])
    assert code == 1
    assert "ERROR file: No data found in the file: empty.csv" in capsys.readouterr().out


def test_exit_code_all_success(write_config, sample_csv, clean_logging, capsys):
    code = _run([str(sample_csv), "--yes"], lambda assets: ImportResult(success=True, imported=len(assets)))
    out = capsys.readouterr().out
    assert code == 0
    assert SUMMARY_RE.search(out).groups() == ("3", "0", "0", "0", "0")


def test_exit_code_partial_on_backend_skips(write_config, sample_csv, clean_logging, capsys):
    def bulk_create(assets):
        return ImportResult(
            success=True,
            imported=2,
            skipped=1,
            warnings=["Row 3 skipped: invalid category"],
            records=[RecordResult(success=False, row=3, serial_number="SN-003", error="invalid category")],
        )

    code = _run([str(sample_csv), "--yes", "--strategy", "attempt-all"], bulk_create)
    out = capsys.readouterr().out
    assert code == 2
    assert SUMMARY_RE.search(out).groups() == ("2", "0", "1", "0", "1")
    assert "WARN backend: Row 3 skipped: invalid category" in out


def test_exit_code_partial_on_duplicates(write_config, sample_csv, clean_logging, capsys):
    def bulk_create(assets):
        raise AssetApiError("Assets already exist", status_code=409)

    code = _run([str(sample_csv), "--yes"], bulk_create)
    out = capsys.readouterr().out
    assert code == 2
    assert "INFO All 3 records already exist" in out
    assert SUMMARY_RE.search(out).groups() == ("0", "3", "0", "0", "0")


def test_exit_code_partial_on_transport_failure(write_config, sample_csv, clean_logging, capsys):
    def bulk_create(assets):
        raise AssetApiError("request to http://localhost:5000/api/assets/bulk-import failed: refused")

    code = _run([str(sample_csv), "--yes"], bulk_create)
    out = capsys.readouterr().out
    assert code == 2
    assert "ERROR import: request to" in out
    assert SUMMARY_RE.search(out).groups() == ("0", "0", "0", "3", "0")


def test_exit_code_review_required(temp_workdir: Path, write_config, clean_logging, capsys):
    path = temp_workdir / "data" / "assets.csv"
    pd.DataFrame([{"Serial Number": "S1", "Asset Tag": "T1", "Item": "PC", "Project Ref": "P", "Colour": "red"}]).to_csv(
        path, index=False
    )
    code = _run([str(path), "--yes"], lambda assets: ImportResult(success=True, imported=len(assets)))
    assert code == 3
