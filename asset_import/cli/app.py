from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from asset_import.api.client import AssetApiClient
from asset_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from asset_import.excel.reader import EmptyFileError, UnsupportedFileError
from asset_import.logging.init import log_summary, setup_logging
from asset_import.models.import_result import ImportResult
from asset_import.services.asset_grouper import preview_grouping
from asset_import.services.header_mapper import get_suggestions
from asset_import.services.orchestrator import (
    ImportPipelineError,
    ImportSession,
    ImportStep,
    ImportStrategy,
    MappingError,
)
from asset_import.services.summary import render_summary_line
from asset_import.services.template import write_template

"""CLI entrypoint.

Drives one ImportSession through its steps non-interactively:

- parse the file, map headers
- HEADER_MAP_REVIEW: apply ``--map`` corrections; without ``--accept-mapping``
  print the mapping table and stop (exit 3)
- GROUPING_REVIEW: without ``--accept-grouping`` print the grouping preview
  and stop (exit 3)
- PREVIEW_VALIDATE: print validation summary; ``--dry-run`` stops here
- CONFIRM_IMPORT: new-options pre-check; without ``--yes`` stop (exit 3)
- EXECUTE with ``--strategy`` (or ``import.strategy`` from config)

The last line is always ``SUMMARY imported=.. duplicates=.. skipped=.. failed=.. warnings=..``
once an import (or dry run) got as far as validation.
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2
EXIT_REVIEW_REQUIRED = 3


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True: .env の値で既存環境変数を上書き (API 接続先を最優先化)。
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_mapping_arg(value: str) -> tuple[str, str]:
    header, sep, field = value.partition("=")
    if not sep or not header.strip():
        raise argparse.ArgumentTypeError(f"expected 'Header=field', got '{value}'")
    return header.strip(), field.strip()


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Spreadsheet -> asset tracker bulk importer")
    p.add_argument("file", nargs="?", help="CSV / XLSX / XLS file to import")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument(
        "--map",
        dest="mappings",
        action="append",
        default=[],
        type=_parse_mapping_arg,
        metavar="HEADER=FIELD",
        help="Correct the mapping of one header (empty FIELD unmaps it); repeatable",
    )
    p.add_argument("--accept-mapping", action="store_true", help="Accept the header mapping under review")
    p.add_argument("--accept-grouping", action="store_true", help="Accept the proposed asset grouping")
    p.add_argument(
        "--strategy",
        choices=[s.value for s in ImportStrategy],
        default=None,
        help="Import strategy (default: import.strategy from config)",
    )
    p.add_argument("--yes", action="store_true", help="Confirm the import")
    p.add_argument("--dry-run", action="store_true", help="Stop after validation")
    p.add_argument("--export-failed", type=Path, default=None, metavar="PATH", help="Write invalid rows as CSV")
    p.add_argument("--template", type=Path, default=None, metavar="PATH", help="Write the import template and exit")
    return p.parse_args(argv)


def _print_mapping_review(session: ImportSession, logger: logging.Logger) -> None:
    mapping = session.mapping
    for header in session.headers:
        field = mapping.get(header)
        if field:
            logger.info(f"map: '{header}' -> {field}")
        else:
            logger.info(f"map: '{header}' -> (unmapped) suggestions={get_suggestions(header)}")
    logger.info("header mapping needs review: re-run with --map HEADER=FIELD and/or --accept-mapping")


def _print_grouping_review(session: ImportSession, logger: logging.Logger) -> None:
    summary = session.grouping_summary
    if summary is None:
        return
    preview = preview_grouping(session.canonical_rows, max_preview_items=session.config.preview_rows)
    for item in preview.preview:
        names = ", ".join(p["name"] or "?" for p in item["peripherals"])
        logger.info(
            f"group: serial={item['serial_number']} tag={item['tag_id']} "
            f"rows={item['source_rows']} peripherals=[{names}]"
        )
    if preview.has_more:
        logger.info("group: ...")
    logger.info(
        f"{summary.total_input_rows} rows -> {summary.unique_assets} assets "
        f"({summary.reduction_percentage}% fewer records); re-run with --accept-grouping"
    )


def _log_conflicts(session: ImportSession, logger: logging.Logger) -> None:
    summary = session.grouping_summary
    if summary is None:
        return
    for c in summary.conflicts:
        logger.warning(
            f"duplicate detected: {c.asset_key} field={c.field} kept='{c.existing_value}' "
            f"ignored='{c.new_value}' (row {c.conflict_row})"
        )


def _print_validation(session: ImportSession, logger: logging.Logger) -> None:
    summary = session.summary
    if summary is None:
        return
    for row_errors in summary.errors:
        # グループ化後は 1 レコード = 複数行
        rows = session.source_rows[row_errors.row - 1]
        where = f"row {rows[0]}" if len(rows) == 1 else f"rows {rows}"
        logger.warning(f"{where}: {'; '.join(row_errors.messages)}")
    hidden = len(summary.all_errors) - len(summary.errors)
    if hidden > 0:
        logger.warning(f"... and {hidden} more invalid rows")


def _exit_code_for(session: ImportSession) -> int:
    result = session.import_result
    if result is None or session.summary is None:
        return EXIT_FATAL
    if (
        not result.success
        or session.summary.invalid_rows > 0
        or result.skipped
        or result.failed
        or result.duplicates
    ):
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # 空リスト [] を渡されたときに sys.argv が混入しないよう None のみ判定
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)

    if args.debug:
        for h in logger.handlers:
            h.setLevel("DEBUG")
        logger.setLevel("DEBUG")
        logger.debug("debug mode enabled")

    if args.template is not None:
        path = write_template(args.template)
        logger.info(f"template written: {path}")
        return EXIT_SUCCESS_ALL

    if not args.file:
        logger.error("no input file given")
        return EXIT_FATAL

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    session = ImportSession(cfg, api=AssetApiClient.from_config(cfg.api))
    source = Path(args.file)
    try:
        step = session.select_file(source)
    except (FileNotFoundError, EmptyFileError, UnsupportedFileError, ImportPipelineError) as e:
        logger.error(f"file: {e}")
        return EXIT_FATAL

    if step is ImportStep.HEADER_MAP_REVIEW:
        corrected = dict(session.mapping)
        for header, field in args.mappings:
            if header not in session.headers:
                logger.warning(f"--map: header '{header}' not found in {source.name}")
                continue
            corrected[header] = field
        session.mapping = {h: f for h, f in corrected.items() if f}
        if not args.accept_mapping:
            _print_mapping_review(session, logger)
            return EXIT_REVIEW_REQUIRED
        try:
            step = session.confirm_mapping(corrected)
        except MappingError as e:
            logger.error(f"mapping: {e}")
            return EXIT_FATAL

    if step is ImportStep.GROUPING_REVIEW:
        _log_conflicts(session, logger)
        if not args.accept_grouping:
            _print_grouping_review(session, logger)
            return EXIT_REVIEW_REQUIRED
        step = session.confirm_grouping()

    _print_validation(session, logger)
    summary = session.summary
    if summary is None:
        logger.error(f"validation: no summary at step={session.step.value}")
        return EXIT_FATAL

    if args.export_failed is not None and summary.invalid_rows > 0:
        written = session.export_failed_records(args.export_failed)
        logger.info(f"failed records exported: {args.export_failed} ({written} rows)")

    if args.dry_run:
        logger.info(f"dry run: {summary.valid_rows} valid / {summary.invalid_rows} invalid, nothing imported")
        log_summary(render_summary_line(ImportResult(success=True))[len("SUMMARY "):])
        return EXIT_SUCCESS_ALL if summary.invalid_rows == 0 else EXIT_PARTIAL_FAILURE

    session.request_import()
    if not args.yes:
        logger.info(f"ready to import {len(session.records)} records: re-run with --yes to confirm")
        return EXIT_REVIEW_REQUIRED

    strategy = ImportStrategy(args.strategy or cfg.default_strategy)
    try:
        result = session.execute(strategy)
    except ImportPipelineError as e:
        logger.error(f"import: {e}")
        return EXIT_FATAL

    if result.error:
        logger.error(f"import: {result.error}")
    elif result.message:
        logger.info(result.message)

    # log_summary が "SUMMARY " を付与するので接頭辞を除く
    log_summary(render_summary_line(result)[len("SUMMARY "):])
    return _exit_code_for(session)
