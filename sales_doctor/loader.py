"""
loader.py: file → rows for the sales-doctor CLI

Supports: .csv .tsv .txt .xlsx .xlsm .xls .ods .json .jsonl

The validation pipeline itself only ever sees parsed rows; this module is
the thin edge that turns a file on disk into those rows.

    table = load_table("path/to/file.csv")
    rows  = table.rows
"""

from __future__ import annotations

import csv
import io
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import chardet
import pandas as pd

logger = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm", ".xls"}
ODS_FORMATS = {".ods"}
JSON_FORMATS = {".json"}
JSONL_FORMATS = {".jsonl"}
ALL_FORMATS = TEXT_FORMATS | EXCEL_FORMATS | ODS_FORMATS | JSON_FORMATS | JSONL_FORMATS

DELIMITER_CANDIDATES = [",", ";", "\t", "|"]


@dataclass
class LoadedTable:
    rows: list[dict[str, Any]]
    headers: list[str]
    detected_format: str
    encoding: str | None = None
    delimiter: str | None = None
    sheet_name: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": len(self.rows),
            "headers": list(self.headers),
            "detected_format": self.detected_format,
            "encoding": self.encoding,
            "delimiter": self.delimiter,
            "sheet_name": self.sheet_name,
            "warnings": list(self.warnings),
        }


# ══════════════════════════════════════════════════════════════════════════════
# TEXT DECODING
# ══════════════════════════════════════════════════════════════════════════════

def detect_encoding(raw: bytes) -> str:
    if not raw:
        return "utf-8"
    detected = chardet.detect(raw).get("encoding")
    return detected or "utf-8"


def read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line by line: UTF-8, then the detected encoding, then
    latin-1. Null bytes are dropped.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for encoding in ("utf-8", preferred_encoding, "latin-1"):
            try:
                decoded = raw_line.decode(encoding)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


def detect_delimiter(text: str) -> str:
    """csv.Sniffer first; otherwise score candidates by row-width consistency."""
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])
    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters="".join(DELIMITER_CANDIDATES)).delimiter
        except csv.Error:
            pass

    best_delimiter = ","
    best_score = float("-inf")
    for delimiter in DELIMITER_CANDIDATES:
        rows = [
            row
            for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delimiter)
            if any(cell.strip() for cell in row)
        ]
        if len(rows) < 2:
            continue
        widths = Counter(len(row) for row in rows)
        mode_width, mode_count = widths.most_common(1)[0]
        score = mode_width * 2.0 + (mode_count / len(rows)) * mode_width
        if len(rows[0]) == mode_width:
            score += 1.0
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score = score
            best_delimiter = delimiter
    return best_delimiter


# ══════════════════════════════════════════════════════════════════════════════
# LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def dataframe_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    df = df.astype(object).where(df.notna(), None)
    return [{str(key): value for key, value in record.items()} for record in df.to_dict(orient="records")]


def _load_text(path: Path, suffix: str) -> LoadedTable:
    raw = path.read_bytes()
    encoding = detect_encoding(raw)
    text = read_text_safely(raw, encoding)
    if not text.strip():
        raise ValueError(f"{path.name} is empty")

    delimiter = "\t" if suffix == ".tsv" else detect_delimiter(text)
    sep = r"\|" if delimiter == "|" else delimiter
    overlong: list[list[str]] = []
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            on_bad_lines=overlong.append,
            sep=sep,
            engine="python",
        )
    except (ValueError, csv.Error) as exc:
        raise ValueError(f"Could not parse {suffix} file: {exc}") from exc

    warnings: list[str] = []
    if overlong:
        sample = "; ".join(delimiter.join(fields) for fields in overlong[:3])
        extra = f" (+{len(overlong) - 3} more)" if len(overlong) > 3 else ""
        warnings.append(
            f"{len(overlong)} rows had more than {len(df.columns)} fields and were skipped: {sample}{extra}"
        )
        logger.warning("Skipped %d over-long rows in %s", len(overlong), path)

    return LoadedTable(
        rows=dataframe_rows(df),
        headers=[str(column) for column in df.columns],
        detected_format=suffix.lstrip("."),
        encoding=encoding,
        delimiter=delimiter,
        warnings=warnings,
    )


def _load_workbook(path: Path, suffix: str, sheet_name: str | None) -> LoadedTable:
    engine = "odf" if suffix in ODS_FORMATS else None
    try:
        df = pd.read_excel(
            path,
            sheet_name=sheet_name if sheet_name is not None else 0,
            dtype=str,
            keep_default_na=False,
            engine=engine,
        )
    except ImportError as exc:
        extra = "ods" if suffix in ODS_FORMATS else "excel-legacy"
        raise ImportError(f"Reading {suffix} files needs an optional dependency: pip install 'sales-doctor[{extra}]'") from exc
    return LoadedTable(
        rows=dataframe_rows(df),
        headers=[str(column) for column in df.columns],
        detected_format=suffix.lstrip("."),
        sheet_name=sheet_name,
    )


def _load_json(path: Path) -> LoadedTable:
    raw = path.read_bytes()
    text = raw.decode(detect_encoding(raw), errors="replace")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON: {exc}") from exc

    warnings: list[str] = []
    if isinstance(data, list):
        records = data
    elif isinstance(data, dict):
        list_keys = [key for key, value in data.items() if isinstance(value, list)]
        if list_keys:
            records = data[list_keys[0]]
            warnings.append(f"Nested JSON: used array at top-level key '{list_keys[0]}'")
        else:
            records = [data]
            warnings.append("JSON is a single object; treated as a one-row table")
    else:
        raise ValueError(f"JSON root must be an array or object, got {type(data).__name__}")

    df = pd.json_normalize(records) if records else pd.DataFrame()
    return LoadedTable(
        rows=dataframe_rows(df),
        headers=[str(column) for column in df.columns],
        detected_format="json",
        warnings=warnings,
    )


def _load_jsonl(path: Path) -> LoadedTable:
    raw = path.read_bytes()
    text = raw.decode(detect_encoding(raw), errors="replace")
    records: list[dict] = []
    parse_errors: list[str] = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as exc:
            parse_errors.append(f"line {line_number}: {exc}")

    warnings: list[str] = []
    if parse_errors:
        sample = "; ".join(parse_errors[:3])
        extra = f" (+{len(parse_errors) - 3} more)" if len(parse_errors) > 3 else ""
        warnings.append(f"{len(parse_errors)} lines could not be parsed: {sample}{extra}")
        logger.warning("Skipped %d unparseable JSONL lines in %s", len(parse_errors), path)

    df = pd.json_normalize(records) if records else pd.DataFrame()
    return LoadedTable(
        rows=dataframe_rows(df),
        headers=[str(column) for column in df.columns],
        detected_format="jsonl",
        warnings=warnings,
    )


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_table(path: str | Path, sheet_name: str | None = None) -> LoadedTable:
    """
    Load any supported file into rows.

    Raises:
        FileNotFoundError  if the file does not exist.
        ValueError         if the format is unsupported or unreadable.
        ImportError        if a required optional dependency is missing.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")

    if suffix in TEXT_FORMATS:
        table = _load_text(path, suffix)
    elif suffix in EXCEL_FORMATS or suffix in ODS_FORMATS:
        table = _load_workbook(path, suffix, sheet_name)
    elif suffix in JSON_FORMATS:
        table = _load_json(path)
    else:
        table = _load_jsonl(path)
    logger.debug("Loaded %d rows from %s (%s)", len(table.rows), path, table.detected_format)
    return table
