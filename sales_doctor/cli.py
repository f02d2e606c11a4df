from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd

from sales_doctor import __version__ as TOOL_VERSION
from sales_doctor.config import ConfigError, ValidationSettings, default_config_payload, load_settings
from sales_doctor.contracts import document_header
from sales_doctor.detection import detect_data_type, infer_data_type
from sales_doctor.issue_taxonomy import explain
from sales_doctor.loader import LoadedTable, load_table
from sales_doctor.mapping import map_columns, suggest_column_mappings
from sales_doctor.models import CorrectionDecisions, CorrectionTier, DataType, cell_text
from sales_doctor.pipeline import PipelineRun, revalidate, run_pipeline
from sales_doctor.report import build_fix_summary, build_validation_report, render_text_report
from sales_doctor.workbook import write_review_workbook

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_VALIDATE_WARNINGS = 3
EXIT_FIX_ERRORS_REMAIN = 4
EXIT_VALIDATE_FAILED = 5

DATASET_TYPES = [item.value for item in DataType if item is not DataType.UNKNOWN]
ACCEPTABLE_TIERS = [CorrectionTier.AUTO.value, CorrectionTier.SUGGESTED.value, CorrectionTier.MANUAL.value]


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class SalesDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def timestamp_token() -> str:
    override = os.environ.get("SALES_DOCTOR_OUTPUT_STAMP")
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir(input_path: Path) -> Path:
    return Path.cwd() / "sales-doctor-output" / f"{input_path.stem}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace, input_path: Path) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(input_path)


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, payload: str) -> None:
    ensure_parent(path)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def remove_generated_at(value: Any) -> Any:
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key == "generated_at":
                result[key] = "1970-01-01T00:00:00Z"
            else:
                result[key] = remove_generated_at(item)
        return result
    if isinstance(value, list):
        return [remove_generated_at(item) for item in value]
    return value


def safe_output_path(path: Path) -> Path:
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, (ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def resolve_settings(args: argparse.Namespace) -> ValidationSettings:
    try:
        return load_settings(getattr(args, "config", None))
    except ConfigError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc


def load_input(args: argparse.Namespace) -> tuple[Path, LoadedTable]:
    input_path = Path(args.input)
    if not input_path.exists():
        raise CliError(f"File not found: {input_path}", EXIT_COMMAND_ERROR)
    return input_path, load_table(input_path, sheet_name=getattr(args, "sheet_name", None))


def run_for_args(args: argparse.Namespace, table: LoadedTable) -> PipelineRun:
    return run_pipeline(
        table.rows,
        args.type,
        settings=resolve_settings(args),
        normalize=not args.no_normalize,
    )


def exit_code_for_result(run: PipelineRun) -> int:
    if run.result.errors:
        return EXIT_VALIDATE_FAILED
    if run.result.warnings:
        return EXIT_VALIDATE_WARNINGS
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = SalesDoctorArgumentParser(
        prog="sales-doctor",
        description="Local data-quality checks and corrections for sales, offer and demographic CSV data.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Validate a dataset and write a report.")
    validate.add_argument("input", help="Input file path")
    validate.add_argument("--type", choices=DATASET_TYPES, help="Skip detection and validate as this dataset type")
    validate.add_argument("--no-normalize", action="store_true", help="Validate raw values without normalising them first")
    validate.add_argument("--config", help="Settings file (.json)")
    validate.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
    validate.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    validate.add_argument("--output", help="Explicit report output path")
    validate.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    validate.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    validate.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")

    fix = subparsers.add_parser("fix", help="Apply accepted corrections and write corrected data.")
    fix.add_argument("input", help="Input file path")
    fix.add_argument("--type", choices=DATASET_TYPES, help="Skip detection and validate as this dataset type")
    fix.add_argument("--tier", dest="tiers", action="append", choices=ACCEPTABLE_TIERS, help="Accept corrections of this tier (repeatable, default auto)")
    fix.add_argument("--all", dest="accept_all", action="store_true", help="Accept every row-level correction")
    fix.add_argument("--no-normalize", action="store_true", help="Validate raw values without normalising them first")
    fix.add_argument("--drop-empty-rows", action="store_true", help="Remove rows with no values from the corrected output")
    fix.add_argument("--config", help="Settings file (.json)")
    fix.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
    fix.add_argument("--format", choices=["csv", "xlsx"], default="csv", help="Corrected data output format")
    fix.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    fix.add_argument("--output", help="Explicit corrected data output path")
    fix.add_argument("--json-summary", dest="json_summary", help="Explicit JSON summary output path")
    fix.add_argument("--dry-run", action="store_true", help="Compute corrections without writing outputs")
    fix.add_argument("--fail-on-errors", action="store_true", help="Return exit code 5 instead of 4 when errors remain")
    fix.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    fix.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    fix.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")

    detect = subparsers.add_parser("detect", help="Detect the dataset type and column mapping.")
    detect.add_argument("input", help="Input file path")
    detect.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
    detect.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    detect.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default="sales-doctor.json", help="Config output path")

    explain_parser = subparsers.add_parser("explain", help="Explain a stable rule id.")
    explain_parser.add_argument("rule_id", help="Rule identifier")
    explain_parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_validate(args: argparse.Namespace) -> int:
    try:
        input_path, table = load_input(args)
        run = run_for_args(args, table)
        out_dir = determine_output_dir(args, input_path)
        report_path = Path(args.output) if args.output else out_dir / "report.json"
        report = remove_generated_at(
            build_validation_report(run, input_path, warnings=table.warnings)
        )
        write_json(report_path, report)
        if args.json:
            maybe_emit_json_stdout(report, True)
        else:
            emit_human(render_text_report(run.result, input_path=input_path).rstrip(), quiet=args.quiet)
            emit_human(f"Report written: {report_path}", quiet=args.quiet)
        return exit_code_for_result(run)
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def fix_default_paths(args: argparse.Namespace, input_path: Path) -> tuple[Path, Path]:
    out_dir = determine_output_dir(args, input_path)
    if args.output:
        output_path = Path(args.output)
    else:
        output_path = out_dir / f"{input_path.stem}-corrected.{args.format}"
    summary_path = Path(args.json_summary) if args.json_summary else out_dir / "fix-summary.json"
    return output_path, summary_path


def select_decisions(args: argparse.Namespace, run: PipelineRun) -> tuple[CorrectionDecisions, list[CorrectionTier]]:
    decisions = CorrectionDecisions()
    corrections = run.result.corrections
    if args.accept_all:
        decisions.accept_all(corrections)
        return decisions, [CorrectionTier(value) for value in ACCEPTABLE_TIERS]
    tiers = [CorrectionTier(value) for value in (args.tiers or [CorrectionTier.AUTO.value])]
    for tier in tiers:
        decisions.accept_tier(corrections, tier)
    return decisions, tiers


def output_headers(rows: list[dict[str, Any]], fallback: list[str]) -> list[str]:
    headers: list[str] = []
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)
    return headers or list(fallback)


def write_corrected_csv(rows: list[dict[str, Any]], headers: list[str], path: Path) -> None:
    frame = pd.DataFrame(
        [[cell_text(row.get(header)) for header in headers] for row in rows],
        columns=headers,
    )
    ensure_parent(path)
    frame.to_csv(path, index=False)


def render_fix_text(summary: dict[str, Any], output_path: Path | None) -> str:
    quality = summary["quality"]
    lines = [
        "sales-doctor fix",
        f"Input: {summary['run_summary']['input_file']}",
        f"Output: {output_path if output_path else '[dry run]'}",
        f"Type: {summary['data_type']}",
        f"Accepted tiers: {', '.join(summary['accepted_tiers'])}",
        f"Corrections applied: {summary['corrections_applied']}",
        f"Empty rows dropped: {summary['empty_rows_dropped']}",
        f"Quality: {quality['summary']}",
        f"Errors: {summary['before']['errors_count']} -> {summary['after']['errors_count']}",
        f"Warnings: {summary['before']['warnings_count']} -> {summary['after']['warnings_count']}",
    ]
    if summary["remaining_errors"]:
        lines.append("Remaining errors:")
        lines.extend(f"- {issue['message']}" for issue in summary["remaining_errors"][:10])
        hidden = len(summary["remaining_errors"]) - 10
        if hidden > 0:
            lines.append(f"- ... {hidden} more")
    return "\n".join(lines) + "\n"


def run_fix(args: argparse.Namespace) -> int:
    try:
        input_path, table = load_input(args)
        output_path, summary_path = fix_default_paths(args, input_path)
        if not args.dry_run:
            safe_output_path(output_path)
            safe_output_path(summary_path)

        run = run_for_args(args, table)
        decisions, tiers = select_decisions(args, run)
        outcome = revalidate(run, decisions, drop_empty=args.drop_empty_rows)
        summary = remove_generated_at(
            build_fix_summary(
                run,
                outcome,
                tiers=tiers,
                input_path=input_path,
                output_path=None if args.dry_run else output_path,
                warnings=table.warnings,
            )
        )

        if not args.dry_run:
            headers = output_headers(outcome.rows, table.headers)
            if args.format == "xlsx":
                write_review_workbook(
                    outcome.rows,
                    headers,
                    outcome.result,
                    run.result.corrections,
                    decisions,
                    output_path,
                )
            else:
                write_corrected_csv(outcome.rows, headers, output_path)
            write_json(summary_path, summary)

        if args.json:
            maybe_emit_json_stdout(summary, True)
        else:
            emit_human(render_fix_text(summary, None if args.dry_run else output_path).rstrip(), quiet=args.quiet)
            if not args.dry_run:
                emit_human(f"Fix summary: {summary_path}", quiet=args.quiet)

        if outcome.result.errors:
            return EXIT_VALIDATE_FAILED if args.fail_on_errors else EXIT_FIX_ERRORS_REMAIN
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_detect(args: argparse.Namespace) -> int:
    try:
        input_path, table = load_input(args)
        strict = detect_data_type(table.headers)
        data_type = infer_data_type(table.headers)
        mapping = map_columns(table.rows, data_type).report
        payload = {
            **document_header("sales_doctor.detection"),
            "input_file": str(input_path),
            "headers": table.headers,
            "data_type": data_type.value,
            "detected_by": "markers" if strict is data_type else "aliases",
            "mapping": mapping.to_dict(),
            "column_suggestions": suggest_column_mappings(table.headers, data_type),
            "loader": table.to_dict(),
        }
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            lines = [
                "sales-doctor detect",
                f"Input: {input_path}",
                f"Type: {data_type.value}",
                f"Detected by: {payload['detected_by']}",
            ]
            if mapping.mapped:
                lines.append("Mapped columns:")
                lines.extend(f"- {source} -> {target}" for source, target in mapping.mapped.items())
            if mapping.unmapped:
                lines.append("Unmapped columns: " + ", ".join(mapping.unmapped))
            if mapping.suggestions:
                lines.append("Possible mappings (not applied):")
                lines.extend(
                    f"- {source} -> {item['suggested']} ({item['reason']})"
                    for source, item in mapping.suggestions.items()
                )
            print("\n".join(lines))
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_json(config_path, default_config_payload())
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_explain(args: argparse.Namespace) -> int:
    payload = explain(args.rule_id)
    if payload is None:
        eprint(f"Unknown rule id: {args.rule_id}")
        return EXIT_COMMAND_ERROR
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(
            "\n".join(
                [
                    f"Rule: {args.rule_id}",
                    f"Severity: {payload['severity']}",
                    f"What it does: {payload['description']}",
                    f"What triggers it: {payload['evidence']}",
                    f"Advisory: {'yes' if payload['advisory'] else 'no'}",
                    f"How to avoid/disable it: {payload['disable_hint']}",
                ]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(getattr(args, "verbose", False))
        if args.command == "validate":
            return run_validate(args)
        if args.command == "fix":
            return run_fix(args)
        if args.command == "detect":
            return run_detect(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "explain":
            return run_explain(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
