from __future__ import annotations
import json
from pathlib import Path
from asset_import.logging.error_log import ErrorRecord, ErrorLogBuffer

KEYS = {"timestamp", "file", "row", "field", "error_type", "message"}


def test_error_log_buffer_flush(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(ErrorRecord.create("assets.xlsx", 2, "serial_number", "VALIDATION_ERROR", "serial_number is required"))
    buf.append(ErrorRecord.create("assets.xlsx", -1, "Colour", "MAPPING_ERROR", "unknown field 'colour'"))
    path = buf.flush()
    assert path.exists()
    assert path.parent == Path("./logs")
    assert path.name.startswith("errors-") and path.suffix == ".log"
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    for raw in lines:
        assert set(json.loads(raw).keys()) == KEYS
    # flush 後バッファクリア
    assert len(buf) == 0


def test_error_log_buffer_multiple_flushes(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(ErrorRecord.create("a.csv", 1, "", "IMPORT_FAILED", "bad"))
    path = buf.flush()
    size1 = path.stat().st_size
    buf.append(ErrorRecord.create("a.csv", 2, "", "IMPORT_FAILED", "bad2"))
    path2 = buf.flush()
    assert path == path2
    assert path2.stat().st_size > size1


def test_error_log_buffer_empty_flush_writes_nothing(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path / "logs")
    assert buf.flush() is None
    assert not (tmp_path / "logs").exists()


def test_error_log_buffer_clear_and_records(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path)
    rec = ErrorRecord.create("a.csv", 3, "tag_id", "VALIDATION_ERROR", "tag_id is required")
    buf.append(rec)
    assert buf.records == [rec]
    buf.clear()
    assert buf.records == []
