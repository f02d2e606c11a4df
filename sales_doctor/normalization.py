from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Mapping, Sequence

import pandas as pd

from sales_doctor.models import DataType, cell_text, is_blank

logger = logging.getLogger(__name__)


SMART_QUOTES = {
    "“": '"',
    "”": '"',
    "‘": "'",
    "’": "'",
}

DATE_PATTERNS = [
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), "ymd", "YYYY-MM-DD"),
    (re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), "ymd", "YYYY/MM/DD"),
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), "mdy", "MM/DD/YYYY"),
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), "mdy", "MM-DD-YYYY"),
    (re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$"), "mdy", "MM.DD.YYYY"),
]
DATETIME_RE = re.compile(r"^\d{4}-\d{1,2}-\d{1,2}[ T]\d{1,2}:\d{2}")
FREE_FORM_YEAR_RE = re.compile(r"(?<!\d)\d{4}(?!\d)")

CURRENCY_CHARS_RE = re.compile(r"[$£€¥₹,\s]")
NON_NUMERIC_RE = re.compile(r"[^\d.\-]")
ACCOUNTING_NEGATIVE_RE = re.compile(r"^\((.*)\)$")

AGE_GROUPS = ("Under 18", "16-24", "25-34", "35-44", "45-54", "55-64", "65+")
AGE_GROUP_VARIANTS = {
    "16-24": ("16 - 24", "16 to 24", "16-25", "16-23"),
    "25-34": ("25 - 34", "25 to 34", "25-35", "25-33"),
    "35-44": ("35 - 44", "35 to 44", "35-45", "35-43"),
    "45-54": ("45 - 54", "45 to 54", "45-55", "45-53"),
    "55-64": ("55 - 64", "55 to 64", "55-65", "55-63"),
    "65+": ("65 +", "65 plus", "65 and over", "65 and older", "over 65"),
    "Under 18": ("under18", "<18", "< 18", "under-18"),
}
AGE_SUBSTRING_KEYS = (
    ("under 18", "Under 18"),
    ("over 65", "65+"),
    ("16-24", "16-24"),
    ("25-34", "25-34"),
    ("35-44", "35-44"),
    ("45-54", "45-54"),
    ("55-64", "55-64"),
    ("65+", "65+"),
)
AGE_NUMBER_RE = re.compile(r"^(\d{1,3})(?:\.\d+)?\s*(?:y|yr|yrs|years?|years old)?$", re.IGNORECASE)

GENDER_CANONICAL = {
    "male": "Male",
    "female": "Female",
    "other": "Other",
    "prefer not to say": "Prefer not to say",
}
GENDER_ALIASES = {
    "man": "Male",
    "boy": "Male",
    "woman": "Female",
    "girl": "Female",
    "non-binary": "Other",
    "non binary": "Other",
    "nonbinary": "Other",
    "nb": "Other",
    "prefer not to answer": "Prefer not to say",
    "rather not say": "Prefer not to say",
}


# ── Dates ──────────────────────────────────────────────────────────────────

def _build_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(value: Any) -> date | None:
    """
    Parse a cell into a calendar date.

    Slash, dash and dot separated dates are read month-first and fall back
    to day-first only when month-first is impossible (13/02/2025). Free-form
    text is handed to pandas, but only when it contains a four-digit year so
    bare numbers like "27" never turn into dates.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = cell_text(value).strip()
    if not text:
        return None

    for pattern, order, _ in DATE_PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        first, second, third = (int(group) for group in match.groups())
        if order == "ymd":
            return _build_date(first, second, third)
        return _build_date(third, first, second) or _build_date(third, second, first)

    if not FREE_FORM_YEAR_RE.search(text):
        return None
    try:
        parsed = pd.to_datetime(text)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.date()


def date_format_label(value: Any) -> str | None:
    text = cell_text(value).strip()
    if not text or parse_date(text) is None:
        return None
    for pattern, _, label in DATE_PATTERNS:
        if pattern.match(text):
            return label
    if DATETIME_RE.match(text):
        return "YYYY-MM-DD HH:MM:SS"
    return "other"


def standardize_date(value: Any) -> Any:
    if is_blank(value):
        return value
    parsed = parse_date(value)
    if parsed is None:
        return value
    return parsed.strftime("%Y-%m-%d")


# ── Numbers ────────────────────────────────────────────────────────────────

def clean_numeric(value: Any) -> float | None:
    """
    Plain numbers (including exponent notation) parse as-is; otherwise strip
    currency symbols and separators. None when nothing numeric is left.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    text = str(value).strip()
    if not text:
        return None
    plain = parse_number(text)
    if plain is not None:
        return plain
    negative = ACCOUNTING_NEGATIVE_RE.match(text)
    if negative:
        text = "-" + negative.group(1)
    cleaned = NON_NUMERIC_RE.sub("", CURRENCY_CHARS_RE.sub("", text))
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_number(value: Any) -> float | None:
    """Strict parse used by validators: no symbol stripping."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def format_number(number: float) -> str:
    if number.is_integer():
        return str(int(number))
    return repr(number)


# ── Text ───────────────────────────────────────────────────────────────────

def collapse_whitespace(value: str) -> str:
    return " ".join(value.split())


def clean_text(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    text = value
    for smart, straight in SMART_QUOTES.items():
        text = text.replace(smart, straight)
    text = collapse_whitespace(text)
    text = re.sub(r'^"|"$', "", text)
    return text.strip()


# ── Categoricals ───────────────────────────────────────────────────────────

def bucket_age(age: int) -> str:
    if age < 18:
        return "Under 18"
    if age <= 24:
        return "16-24"
    if age <= 34:
        return "25-34"
    if age <= 44:
        return "35-44"
    if age <= 54:
        return "45-54"
    if age <= 64:
        return "55-64"
    return "65+"


def lookup_age_group(value: Any) -> str | None:
    """Exact canonical or known-variant match, case-insensitive."""
    text = collapse_whitespace(cell_text(value)).lower()
    if not text:
        return None
    for canonical in AGE_GROUPS:
        if text == canonical.lower():
            return canonical
    for canonical, variants in AGE_GROUP_VARIANTS.items():
        if text in variants:
            return canonical
    return None


def age_from_number(value: Any) -> str | None:
    match = AGE_NUMBER_RE.match(cell_text(value).strip())
    if not match:
        return None
    return bucket_age(int(match.group(1)))


def standardize_age_group(value: Any) -> Any:
    if is_blank(value):
        return value
    known = lookup_age_group(value)
    if known:
        return known
    lowered = cell_text(value).lower()
    for key, canonical in AGE_SUBSTRING_KEYS:
        if key in lowered:
            return canonical
    number = re.search(r"\d+", lowered)
    if number:
        return bucket_age(int(number.group()))
    return value


def standardize_gender(value: Any) -> Any:
    if is_blank(value):
        return value
    text = collapse_whitespace(cell_text(value)).lower()
    if text in GENDER_CANONICAL:
        return GENDER_CANONICAL[text]
    if text in GENDER_ALIASES:
        return GENDER_ALIASES[text]
    for target in ("female", "male", "other"):
        if target.startswith(text):
            return GENDER_CANONICAL[target]
    return value


# ── Row normalisation ──────────────────────────────────────────────────────

Transformer = Callable[[Any], Any]

TRANSFORMATION_RULES: dict[DataType, dict[str, Transformer]] = {
    DataType.SALES: {
        "receipt_date": standardize_date,
        "receipt_total": clean_numeric,
        "product_name": clean_text,
        "chain": clean_text,
    },
    DataType.OFFERS: {
        "created_at": standardize_date,
        "hit_id": clean_text,
        "offer_name": clean_text,
        "age_group": standardize_age_group,
        "gender": standardize_gender,
    },
    DataType.DEMOGRAPHICS: {
        "age_group": standardize_age_group,
        "gender": standardize_gender,
        "user_id": clean_text,
        "location": clean_text,
    },
}


@dataclass
class NormalizationReport:
    total_rows: int = 0
    transformed_values: int = 0
    transformed_fields: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "transformed_values": self.transformed_values,
            "transformed_fields": list(self.transformed_fields),
            "failures": list(self.failures),
        }


@dataclass
class NormalizedRows:
    rows: list[dict[str, Any]]
    report: NormalizationReport


def _changed(before: Any, after: Any) -> bool:
    if type(before) is not type(after):
        return True
    return before != after


def normalize_rows(rows: Sequence[Mapping[str, Any]], data_type: DataType) -> NormalizedRows:
    """Run the per-column transformers for ``data_type``; never raises for cell data."""
    rules = TRANSFORMATION_RULES.get(data_type, {})
    report = NormalizationReport(total_rows=len(rows))
    normalized: list[dict[str, Any]] = []

    for row_number, row in enumerate(rows, start=1):
        new_row = dict(row)
        for column, transformer in rules.items():
            if column not in new_row:
                continue
            original = new_row[column]
            try:
                transformed = transformer(original)
            except Exception as exc:
                logger.debug("Row %d: %s transformer failed on %r: %s", row_number, column, original, exc)
                report.failures.append(f"Row {row_number}: could not transform {column}: {exc}")
                continue
            if _changed(original, transformed):
                new_row[column] = transformed
                report.transformed_values += 1
                if column not in report.transformed_fields:
                    report.transformed_fields.append(column)
        normalized.append(new_row)

    logger.debug(
        "Normalised %d rows as %s: %d values changed",
        len(normalized),
        data_type.value,
        report.transformed_values,
    )
    return NormalizedRows(rows=normalized, report=report)
