from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from pathlib import Path
from typing import Any

from ..api.client import AssetApiClient, AssetApiError
from ..excel.reader import read_rows
from ..logging.error_log import ErrorLogBuffer
from ..models.asset_group import GroupingResult, GroupingSummary
from ..models.config_models import ImportConfig
from ..models.error_record import ErrorRecord
from ..models.header_mapping import HeaderMapping
from ..models.import_result import ImportResult, NewOptions
from ..models.validation import ValidationError, ValidationSummary
from . import asset_grouper, header_mapper
from .failed_export import export_failed_records
from .progress import ProgressTracker
from .summary import render_grouping_line, render_validation_line
from .validator import build_summary, validate_data

"""Import orchestration: the upload -> review -> validate -> import state machine.

Steps (numbers as shown to users)::

    UPLOAD (1)
      -> HEADER_MAP_REVIEW (1.5)   only if the mapping is invalid or has
                                   unmapped / duplicate headers
      -> GROUPING_REVIEW (1.7)     only if needs_grouping() fires
      -> PREVIEW_VALIDATE (2)
      -> CONFIRM_IMPORT            confirmation modal, strategy choice
      -> EXECUTE
      -> RESULT (3)

A clean file goes from UPLOAD straight to PREVIEW_VALIDATE without stopping.
cancel() from any step throws every intermediate structure away. One
ImportSession handles one upload at a time and holds the whole dataset in
memory; only the preview is truncated.
"""

__all__ = [
    "ImportStep",
    "ImportStrategy",
    "ImportPipelineError",
    "MappingError",
    "InvalidTransitionError",
    "ImportInProgressError",
    "is_duplicate_error",
    "ImportSession",
]

logger = logging.getLogger(__name__)

DUPLICATE_MARKERS = ("already exist", "duplicate")


class ImportStep(Enum):
    UPLOAD = "upload"
    HEADER_MAP_REVIEW = "header_map_review"
    GROUPING_REVIEW = "grouping_review"
    PREVIEW_VALIDATE = "preview_validate"
    CONFIRM_IMPORT = "confirm_import"
    EXECUTE = "execute"
    RESULT = "result"


class ImportStrategy(str, Enum):
    VALID_ONLY = "valid-only"  # drop rows with validation errors before sending
    ATTEMPT_ALL = "attempt-all"  # send everything, backend skips what it rejects
    ALL_VALID = "all-valid"  # only offered when no row is invalid


class ImportPipelineError(Exception):
    """Base exception for import pipeline errors."""
    pass


class MappingError(ImportPipelineError):
    """Header mapping cannot be accepted as it stands."""

    def __init__(
        self,
        message: str,
        *,
        missing_required: Sequence[str] = (),
        unmapped: Sequence[str] = (),
        duplicates: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.missing_required = list(missing_required)
        self.unmapped = list(unmapped)
        self.duplicates = list(duplicates)


class InvalidTransitionError(ImportPipelineError):
    pass


class ImportInProgressError(ImportPipelineError):
    pass


def is_duplicate_error(message: str | None) -> bool:
    """True when a backend failure says the records already exist."""
    text = (message or "").lower()
    return any(marker in text for marker in DUPLICATE_MARKERS)


class ImportSession:
    """Drives one spreadsheet through the import steps.

    Args:
        config: loaded ImportConfig
        api: backend client; optional until request_import()/execute()
        error_log: buffer receiving structured error records
        reader: file parsing collaborator, path -> raw rows
    """

    def __init__(
        self,
        config: ImportConfig,
        api: AssetApiClient | None = None,
        error_log: ErrorLogBuffer | None = None,
        reader: Callable[[Path], list[dict[str, Any]]] = read_rows,
    ) -> None:
        self.config = config
        self.api = api
        self.error_log = error_log if error_log is not None else ErrorLogBuffer(Path(config.error_log_dir))
        self._reader = reader
        self._in_flight = False
        self.reset()

    # ------------------------------------------------------------------ state
    def reset(self) -> None:
        """Back to UPLOAD with no intermediate state."""
        self.step = ImportStep.UPLOAD
        self.file_name = "<memory>"
        self.raw_rows: list[dict[str, Any]] = []
        self.headers: list[str] = []
        self.header_mapping: HeaderMapping | None = None
        self.mapping: dict[str, str] = {}
        self.canonical_rows: list[dict[str, Any]] = []
        self.grouping_result: GroupingResult | None = None
        self.grouped = False
        self.records: list[dict[str, Any]] = []
        self.source_rows: list[list[int]] = []
        self.validation: list[list[ValidationError]] = []
        self.summary: ValidationSummary | None = None
        self.new_options: NewOptions | None = None
        self.import_result: ImportResult | None = None
        self._submitted_source_rows: list[list[int]] = []
        self.error_log.clear()

    def cancel(self) -> ImportStep:
        if self._in_flight:
            raise ImportInProgressError("cannot cancel while an import request is in flight")
        logger.info(f"import cancelled at step={self.step.value}")
        self.reset()
        return self.step

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def can_submit(self) -> bool:
        return self.step is ImportStep.CONFIRM_IMPORT and not self._in_flight

    @property
    def preview_rows(self) -> list[dict[str, Any]]:
        return self.records[: self.config.preview_rows]

    @property
    def grouping_summary(self) -> GroupingSummary | None:
        if self.grouping_result is None:
            return None
        return asset_grouper.get_grouping_summary(self.grouping_result)

    def _require(self, action: str, *steps: ImportStep) -> None:
        if self.step not in steps:
            expected = ", ".join(s.value for s in steps)
            raise InvalidTransitionError(
                f"cannot {action} in step '{self.step.value}' (expected: {expected})"
            )

    def _log_error(self, row: int, field: str, error_type: str, message: str) -> None:
        self.error_log.append(ErrorRecord.create(self.file_name, row, field, error_type, message))

    # ----------------------------------------------------------------- upload
    def select_file(self, path: Path) -> ImportStep:
        """Parse ``path`` and start the pipeline; replaces any prior selection."""
        if self._in_flight:
            raise ImportInProgressError("cannot select a file while an import request is in flight")
        self.reset()
        rows = self._reader(path)
        return self.load_rows(rows, file_name=path.name)

    def load_rows(self, rows: Sequence[Mapping[str, Any]], file_name: str = "<memory>") -> ImportStep:
        """Start the pipeline from already parsed raw rows."""
        if self._in_flight:
            raise ImportInProgressError("cannot load rows while an import request is in flight")
        self.reset()
        self.file_name = file_name
        if not rows:
            raise ImportPipelineError(f"No data found in the file: {file_name}")
        self.raw_rows = [dict(r) for r in rows]

        headers: list[str] = []
        for row in self.raw_rows:
            for h in row.keys():
                if h not in headers:
                    headers.append(h)
        self.headers = headers

        result = header_mapper.map_headers(headers)
        self.header_mapping = result
        check = header_mapper.validate_mapping(result.mapping)
        logger.info(
            f"file={file_name} rows={len(self.raw_rows)} headers={len(headers)} "
            f"mapped={len(result.mapping)} unmapped={len(result.unmapped)}"
        )

        if not check.is_valid or result.needs_review:
            for h in result.unmapped:
                logger.warning(f"header '{h}' could not be mapped; suggestions: {header_mapper.get_suggestions(h)}")
            for f in result.duplicates:
                logger.warning(f"field '{f}' claimed by several headers: {result.duplicate_details.get(f)}")
            for f in check.missing_required:
                logger.warning(f"required field '{f}' is not mapped to any header")
            self.mapping = dict(result.mapping)
            self.step = ImportStep.HEADER_MAP_REVIEW
            return self.step

        return self._apply_mapping(result.mapping)

    # --------------------------------------------------------- header review
    def confirm_mapping(self, mapping: Mapping[str, str | None] | None = None) -> ImportStep:
        """Accept the (optionally corrected) mapping and continue.

        Values may be a canonical field name or empty/None for "not mapped".
        An invalid mapping raises MappingError and leaves the session in
        HEADER_MAP_REVIEW; nothing is repaired automatically.
        """
        self._require("confirm header mapping", ImportStep.HEADER_MAP_REVIEW)
        candidate = dict(self.mapping if mapping is None else mapping)

        standard = set(header_mapper.get_standard_fields())
        for header, field in candidate.items():
            if field and str(field) not in standard:
                self._log_error(-1, header, "MAPPING_ERROR", f"unknown field '{field}'")
                raise MappingError(f"header '{header}' mapped to unknown field '{field}'")

        cleaned = {h: str(f) for h, f in candidate.items() if f}
        check = header_mapper.validate_mapping(cleaned)
        if not check.is_valid:
            for f in check.missing_required:
                self._log_error(-1, f, "MAPPING_ERROR", f"required field '{f}' is not mapped")
            raise MappingError(
                f"Missing required fields: {', '.join(check.missing_required)}",
                missing_required=check.missing_required,
                unmapped=[h for h in self.headers if h not in cleaned],
            )
        self.mapping = cleaned
        return self._apply_mapping(cleaned)

    def _apply_mapping(self, mapping: Mapping[str, str]) -> ImportStep:
        self.mapping = dict(mapping)
        self.canonical_rows = header_mapper.transform_data(self.raw_rows, self.mapping)

        if asset_grouper.needs_grouping(self.canonical_rows, self.config.duplicate_rate_threshold):
            self.grouping_result = asset_grouper.group_assets(self.canonical_rows)
            summary = asset_grouper.get_grouping_summary(self.grouping_result)
            logger.info(render_grouping_line(summary))
            self.step = ImportStep.GROUPING_REVIEW
            return self.step

        records = [dict(r) for r in self.canonical_rows]
        sources = [[i + 1] for i in range(len(records))]
        return self._prepare_preview(records, sources, grouped=False)

    # ------------------------------------------------------- grouping review
    def confirm_grouping(self) -> ImportStep:
        self._require("confirm grouping", ImportStep.GROUPING_REVIEW)
        if self.grouping_result is None:
            raise InvalidTransitionError("cannot confirm grouping: no grouping result")
        groups = self.grouping_result.grouped_assets
        records = asset_grouper.transform_for_backend(groups)
        sources = [list(g.source_rows) for g in groups]
        return self._prepare_preview(records, sources, grouped=True)

    # ------------------------------------------------------- preview/validate
    def _prepare_preview(
        self, records: list[dict[str, Any]], sources: list[list[int]], grouped: bool
    ) -> ImportStep:
        self.records = records
        self.source_rows = sources
        self.grouped = grouped

        with ProgressTracker(len(records), description="Validating rows") as progress:
            invalid = 0

            def _tick(errors: list[ValidationError]) -> None:
                nonlocal invalid
                progress.advance()
                if errors:
                    invalid += 1
                    progress.set_postfix(invalid=invalid)

            self.validation = validate_data(records, is_grouped_data=grouped, on_row=_tick)
        self.summary = build_summary(self.validation, self.config.max_preview_errors)

        for row_errors in self.summary.all_errors:
            raw_row = sources[row_errors.row - 1][0]
            for err in row_errors.errors:
                self._log_error(raw_row, err.field, "VALIDATION_ERROR", err.message)

        logger.info(render_validation_line(self.summary))
        self.step = ImportStep.PREVIEW_VALIDATE
        return self.step

    def request_import(self) -> ImportStep:
        """Open the confirmation step, checking for reference values first.

        A failing new-options check never blocks the import.
        """
        self._require("request import", ImportStep.PREVIEW_VALIDATE)
        self.new_options = None
        if self.api is not None:
            try:
                self.new_options = self.api.check_new_options(self.records)
            except AssetApiError as e:
                logger.warning(f"new options check failed, continuing without it: {e}")
        if self.new_options is not None and self.new_options.has_any:
            opts = self.new_options
            logger.info(
                f"new options will be created: categories={opts.categories} models={opts.models} "
                f"software={opts.software} windows={opts.windows} office={opts.office}"
            )
        self.step = ImportStep.CONFIRM_IMPORT
        return self.step

    # --------------------------------------------------------------- execute
    def records_for(self, strategy: ImportStrategy | str) -> tuple[list[dict[str, Any]], list[list[int]]]:
        """Records (and their source rows) that ``strategy`` would submit."""
        strategy = ImportStrategy(strategy)
        if strategy is ImportStrategy.VALID_ONLY:
            picked = [i for i, errs in enumerate(self.validation) if not errs]
        else:
            picked = list(range(len(self.records)))
        return [self.records[i] for i in picked], [self.source_rows[i] for i in picked]

    def execute(self, strategy: ImportStrategy | str = ImportStrategy.VALID_ONLY) -> ImportResult:
        if self._in_flight:
            raise ImportInProgressError("an import request is already in flight")
        self._require("execute import", ImportStep.CONFIRM_IMPORT)
        strategy = ImportStrategy(strategy)
        if self.summary is None:
            raise InvalidTransitionError("cannot execute import: rows were never validated")
        if strategy is ImportStrategy.ALL_VALID and self.summary.invalid_rows > 0:
            raise ImportPipelineError(
                f"strategy 'all-valid' needs zero invalid rows, found {self.summary.invalid_rows}"
            )
        if self.api is None:
            raise ImportPipelineError("no API client configured for import")

        records, sources = self.records_for(strategy)
        self._submitted_source_rows = sources
        excluded = len(self.records) - len(records)
        if excluded:
            logger.info(f"strategy={strategy.value} excluded {excluded} invalid records")

        self._in_flight = True
        self.step = ImportStep.EXECUTE
        try:
            if not records:
                result = ImportResult(success=False, message="No valid records to import")
            else:
                result = self._submit(records)
        finally:
            self._in_flight = False

        self.import_result = result
        self.step = ImportStep.RESULT
        try:
            path = self.error_log.flush()
            if path is not None:
                logger.info(f"error log written: {path}")
        except OSError as e:
            logger.warning(f"failed to write error log: {e}")
        return result

    def _submit(self, records: list[dict[str, Any]]) -> ImportResult:
        try:
            result = self.api.bulk_create(records)  # type: ignore[union-attr]
        except AssetApiError as e:
            if is_duplicate_error(str(e)):
                return self._duplicate_result(records, str(e))
            logger.error(f"bulk import failed: {e}")
            self._log_error(-1, "", "TRANSPORT_ERROR", str(e))
            return ImportResult(success=False, imported=0, failed=len(records), error=str(e))

        if not result.success and result.imported == 0 and is_duplicate_error(result.error or result.message):
            return self._duplicate_result(records, result.error or result.message or "")

        for rec in result.records:
            if rec.success:
                continue
            row = -1
            if rec.row is not None and 1 <= rec.row <= len(self._submitted_source_rows):
                row = self._submitted_source_rows[rec.row - 1][0]
            field = "serial_number" if rec.serial_number else ""
            self._log_error(row, field, "IMPORT_FAILED", rec.error or "import failed")
        for w in result.warnings:
            logger.warning(f"backend: {w}")
        return result

    def _duplicate_result(self, records: list[dict[str, Any]], message: str) -> ImportResult:
        # 同一ファイル再取込は想定内: 失敗扱いにしない
        logger.warning(f"backend reports existing records, nothing imported: {message}")
        self._log_error(-1, "", "IMPORT_DUPLICATE", message)
        return ImportResult(
            success=True,
            imported=0,
            duplicates=len(records),
            message=f"All {len(records)} records already exist",
        )

    # ---------------------------------------------------------------- export
    def export_failed_records(self, path: Path) -> int:
        if self.summary is None:
            raise InvalidTransitionError("no validation results to export")
        return export_failed_records(path, self.raw_rows, self.summary, self.source_rows)
