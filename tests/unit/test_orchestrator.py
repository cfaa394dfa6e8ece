from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from asset_import.api.client import AssetApiError
from asset_import.models.config_models import ApiConfig, ImportConfig
from asset_import.models.import_result import ImportResult, NewOptions, RecordResult
from asset_import.services.orchestrator import (
    ImportInProgressError,
    ImportPipelineError,
    ImportSession,
    ImportStep,
    ImportStrategy,
    InvalidTransitionError,
    MappingError,
    is_duplicate_error,
)


@pytest.fixture()
def config(tmp_path: Path) -> ImportConfig:
    return ImportConfig(api=ApiConfig(base_url="http://api.test"), error_log_dir=str(tmp_path / "logs"))


@pytest.fixture()
def api() -> MagicMock:
    client = MagicMock()
    client.check_new_options.return_value = NewOptions()
    client.bulk_create.side_effect = lambda assets: ImportResult(success=True, imported=len(assets))
    return client


@pytest.fixture()
def session(config: ImportConfig, api: MagicMock) -> ImportSession:
    return ImportSession(config, api=api)


@pytest.fixture()
def rows_with_invalid(raw_rows):
    invalid = {"Serial Number": None, "Asset Tag": None, "Item": "Monitor", "Project Ref": "PRJ-001"}
    return [raw_rows[0], invalid, raw_rows[1]]


def _error_log_lines(config: ImportConfig) -> list[dict]:
    files = sorted(Path(config.error_log_dir).glob("errors-*.log"))
    assert len(files) == 1
    return [json.loads(line) for line in files[0].read_text(encoding="utf-8").splitlines()]


def _to_confirm(session: ImportSession, rows) -> None:
    session.load_rows(rows, file_name="assets.csv")
    assert session.step is ImportStep.PREVIEW_VALIDATE
    session.request_import()
    assert session.step is ImportStep.CONFIRM_IMPORT


def test_clean_file_goes_straight_to_preview(session: ImportSession, raw_rows):
    step = session.load_rows(raw_rows, file_name="assets.csv")

    assert step is ImportStep.PREVIEW_VALIDATE
    assert session.grouped is False
    assert session.records[0]["serial_number"] == "SN-001"
    assert session.records[0]["status"] == "Active"  # canonicalized
    assert session.source_rows == [[1], [2], [3]]
    assert session.summary.valid_rows == 3
    # 元データは変更されない
    assert raw_rows[0]["Status"] == "active"


def test_unmapped_header_pauses_for_review(session: ImportSession, raw_rows):
    rows = [dict(r, Colour="red") for r in raw_rows]

    assert session.load_rows(rows) is ImportStep.HEADER_MAP_REVIEW
    assert session.header_mapping.unmapped == ["Colour"]

    assert session.confirm_mapping() is ImportStep.PREVIEW_VALIDATE
    assert session.records[0]["Colour"] == "red"


def test_missing_required_blocks_until_corrected(session: ImportSession):
    rows = [{"Serial Number": "S1", "Label": "T1", "Item": "Laptop", "Project Ref": "P1"}]
    assert session.load_rows(rows) is ImportStep.HEADER_MAP_REVIEW

    with pytest.raises(MappingError) as e:
        session.confirm_mapping()
    assert e.value.missing_required == ["tag_id"]
    assert "tag_id" in str(e.value)
    assert session.step is ImportStep.HEADER_MAP_REVIEW

    corrected = dict(session.mapping, Label="tag_id")
    assert session.confirm_mapping(corrected) is ImportStep.PREVIEW_VALIDATE
    assert session.records == [
        {"serial_number": "S1", "tag_id": "T1", "item_name": "Laptop", "project_reference_num": "P1"}
    ]


def test_confirm_mapping_rejects_unknown_field(session: ImportSession):
    rows = [{"Serial Number": "S1", "Label": "T1", "Item": "Laptop", "Project Ref": "P1"}]
    session.load_rows(rows)
    with pytest.raises(MappingError, match="unknown field 'colour'"):
        session.confirm_mapping(dict(session.mapping, Label="colour"))


def test_grouping_review_and_confirm(session: ImportSession, peripheral_rows):
    assert session.load_rows(peripheral_rows) is ImportStep.GROUPING_REVIEW
    assert session.grouping_summary.unique_assets == 2

    assert session.confirm_grouping() is ImportStep.PREVIEW_VALIDATE
    assert session.grouped is True
    assert len(session.records) == 2
    assert session.source_rows == [[1, 2], [3]]
    assert session.records[0]["peripherals"] == [
        {"peripheral_name": "Mouse", "serial_code": "M09909"},
        {"peripheral_name": "Keyboard", "serial_code": "K09092"},
    ]
    # grouped payloads are not re-checked for repeated serials
    assert session.summary.invalid_rows == 0


def test_cancel_resets_from_any_step(session: ImportSession, peripheral_rows):
    session.load_rows(peripheral_rows)
    assert session.cancel() is ImportStep.UPLOAD
    assert session.raw_rows == []
    assert session.grouping_result is None
    assert session.records == []
    assert session.summary is None


def test_operations_out_of_order(session: ImportSession, raw_rows):
    with pytest.raises(InvalidTransitionError):
        session.confirm_grouping()
    session.load_rows(raw_rows)
    with pytest.raises(InvalidTransitionError):
        session.execute(ImportStrategy.VALID_ONLY)


def test_step_without_its_state_is_rejected(session: ImportSession, api: MagicMock):
    # step だけ進んで中間データが無い状態
    session.step = ImportStep.GROUPING_REVIEW
    with pytest.raises(InvalidTransitionError, match="no grouping result"):
        session.confirm_grouping()

    session.step = ImportStep.CONFIRM_IMPORT
    with pytest.raises(InvalidTransitionError, match="never validated"):
        session.execute(ImportStrategy.ATTEMPT_ALL)
    api.bulk_create.assert_not_called()
    assert session.in_flight is False


def test_new_options_failure_does_not_block(session: ImportSession, api: MagicMock, raw_rows):
    api.check_new_options.side_effect = AssetApiError("connection refused")
    session.load_rows(raw_rows)

    assert session.request_import() is ImportStep.CONFIRM_IMPORT
    assert session.new_options is None
    assert session.can_submit is True


def test_valid_only_excludes_invalid_rows(session: ImportSession, api: MagicMock, config, rows_with_invalid):
    _to_confirm(session, rows_with_invalid)
    assert session.summary.invalid_rows == 1

    result = session.execute(ImportStrategy.VALID_ONLY)

    sent = api.bulk_create.call_args.args[0]
    assert [r["serial_number"] for r in sent] == ["SN-001", "SN-002"]
    assert result.imported == 2
    assert session.step is ImportStep.RESULT

    records = _error_log_lines(config)
    assert {(r["row"], r["field"], r["error_type"]) for r in records} == {
        (2, "serial_number", "VALIDATION_ERROR"),
        (2, "tag_id", "VALIDATION_ERROR"),
    }


def test_attempt_all_sends_everything(session: ImportSession, api: MagicMock, rows_with_invalid):
    _to_confirm(session, rows_with_invalid)
    session.execute("attempt-all")
    assert len(api.bulk_create.call_args.args[0]) == 3


def test_all_valid_requires_zero_invalid(session: ImportSession, api: MagicMock, rows_with_invalid):
    _to_confirm(session, rows_with_invalid)
    with pytest.raises(ImportPipelineError, match="all-valid"):
        session.execute(ImportStrategy.ALL_VALID)
    api.bulk_create.assert_not_called()
    assert session.step is ImportStep.CONFIRM_IMPORT


def test_duplicate_failure_is_soft_success(session: ImportSession, api: MagicMock, config, raw_rows):
    api.bulk_create.side_effect = AssetApiError("Assets already exist", status_code=409)
    _to_confirm(session, raw_rows)

    result = session.execute(ImportStrategy.VALID_ONLY)

    assert result.success is True
    assert result.imported == 0
    assert result.duplicates == 3
    assert [r["error_type"] for r in _error_log_lines(config)] == ["IMPORT_DUPLICATE"]


def test_other_api_failure_becomes_failed_result(session: ImportSession, api: MagicMock, raw_rows):
    api.bulk_create.side_effect = AssetApiError("Internal server error", status_code=500)
    _to_confirm(session, raw_rows)

    result = session.execute(ImportStrategy.VALID_ONLY)

    assert result.success is False
    assert result.failed == 3
    assert result.imported == 0
    assert result.error == "Internal server error"
    assert session.step is ImportStep.RESULT
    assert session.in_flight is False


def test_record_failures_logged_with_source_row(session: ImportSession, api: MagicMock, config, rows_with_invalid):
    api.bulk_create.side_effect = lambda assets: ImportResult(
        success=True,
        imported=1,
        failed=1,
        records=[
            RecordResult(success=True, serial_number="SN-001", row=1),
            RecordResult(success=False, serial_number="SN-002", row=2, error="Invalid category"),
        ],
    )
    _to_confirm(session, rows_with_invalid)
    session.execute(ImportStrategy.VALID_ONLY)

    failed = [r for r in _error_log_lines(config) if r["error_type"] == "IMPORT_FAILED"]
    # 送信 2 件目 = ファイル 3 行目
    assert [(r["row"], r["message"]) for r in failed] == [(3, "Invalid category")]


def test_execute_is_not_reentrant(session: ImportSession, api: MagicMock, raw_rows):
    def nested(assets):
        assert session.in_flight is True
        assert session.can_submit is False
        session.execute(ImportStrategy.VALID_ONLY)

    api.bulk_create.side_effect = nested
    _to_confirm(session, raw_rows)

    with pytest.raises(ImportInProgressError):
        session.execute(ImportStrategy.VALID_ONLY)
    assert session.in_flight is False
    assert api.bulk_create.call_count == 1


def test_select_file_reads_csv(session: ImportSession, sample_csv: Path):
    assert session.select_file(sample_csv) is ImportStep.PREVIEW_VALIDATE
    assert session.file_name == "assets.csv"
    assert len(session.records) == 3


def test_preview_rows_bounded(config: ImportConfig, api: MagicMock):
    rows = [
        {"Serial Number": f"SN-{i}", "Asset Tag": f"T-{i}", "Item": "Laptop", "Project Ref": "P"}
        for i in range(25)
    ]
    session = ImportSession(config, api=api)
    session.load_rows(rows)
    assert len(session.preview_rows) == 10
    assert len(session.records) == 25


def test_export_failed_records(session: ImportSession, tmp_path: Path, rows_with_invalid):
    session.load_rows(rows_with_invalid)
    out = tmp_path / "failed.csv"

    assert session.export_failed_records(out) == 1
    df = pd.read_csv(out, dtype=str, keep_default_na=False)
    assert list(df.columns) == ["Serial Number", "Asset Tag", "Item", "Project Ref", "Status", "Error_Reason"]
    assert df.loc[0, "Item"] == "Monitor"
    assert df.loc[0, "Error_Reason"] == "serial_number is required; tag_id is required"


def test_is_duplicate_error():
    assert is_duplicate_error("Asset SN-1 already exists")
    assert is_duplicate_error("Duplicate serial number")
    assert not is_duplicate_error("timeout")
    assert not is_duplicate_error(None)


def test_validation_progress_shows_running_invalid_count(session: ImportSession, rows_with_invalid):
    mock_pbar = MagicMock()
    with patch('asset_import.services.progress.is_tty_enabled', return_value=True), \
         patch('asset_import.services.progress.tqdm', return_value=mock_pbar):
        session.load_rows(rows_with_invalid)

    assert mock_pbar.update.call_count == 3
    mock_pbar.set_postfix.assert_called_once_with(invalid=1)
    mock_pbar.close.assert_called_once()
