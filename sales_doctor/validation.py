"""
Row and consistency validation.

``validate_rows`` never raises for anything found in the data: every
problem becomes a ``ValidationIssue`` on the returned result. Structural
problems (no rows, no columns) stop the pass early; everything else is
collected and the pass runs to the end.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from rapidfuzz.distance import Levenshtein

from sales_doctor.config import ValidationSettings
from sales_doctor.corrections import (
    Suggester,
    canonical_retailer,
    fix_retailer_name,
    is_retailer_variant,
)
from sales_doctor.issue_taxonomy import build_issue
from sales_doctor.mapping import clean_header
from sales_doctor.models import (
    Correction,
    CorrectionTier,
    DataType,
    ValidationResult,
    cell_text,
    is_blank,
)
from sales_doctor.normalization import collapse_whitespace, date_format_label, standardize_date
from sales_doctor.schemas import DatasetSchema

logger = logging.getLogger(__name__)

DATE_COLUMN_KEYWORDS = ("date", "created_at")
RETAILER_COLUMN_KEYWORDS = ("chain", "retailer")


def _is_date_column(header: Any) -> bool:
    name = clean_header(header)
    return any(keyword in name for keyword in DATE_COLUMN_KEYWORDS)


def _is_retailer_column(header: Any) -> bool:
    name = clean_header(header)
    return any(keyword in name for keyword in RETAILER_COLUMN_KEYWORDS)


def _already_proposed(result: ValidationResult, row: int, column: str, value: Any) -> bool:
    return any(c.corrected_value == value for c in result.corrections_for(row, column))


class RowValidator:
    """One validation pass over one row set."""

    def __init__(
        self,
        rows: Sequence[Mapping[str, Any]],
        schema: DatasetSchema | None,
        *,
        data_type: DataType,
        settings: ValidationSettings,
        suggester: Suggester | None,
    ) -> None:
        self.rows = rows
        self.schema = schema
        self.data_type = data_type
        self.settings = settings
        self.suggester = suggester
        self.result = ValidationResult(data_type=data_type)

    def run(self) -> ValidationResult:
        result = self.result
        if not self.rows:
            result.add_issue(build_issue("structure_empty_dataset", "CSV file is empty or contains no data rows"))
            return result.finalize()

        result.stats.total_rows = len(self.rows)
        headers = list(self.rows[0].keys())
        if not headers:
            result.add_issue(build_issue("structure_no_columns", "No columns found in CSV file"))
            return result.finalize()

        header_lookup: dict[str, Any] = {}
        for header in headers:
            header_lookup.setdefault(clean_header(header), header)

        if self.schema is None:
            if self.settings.rule_enabled("structure_unknown_type"):
                result.add_issue(
                    build_issue(
                        "structure_unknown_type",
                        "Unknown data type detected. Using generic validation.",
                    )
                )
        else:
            self.check_required_columns(self.schema, header_lookup)

        self.check_rows(header_lookup)
        if len(self.rows) >= 2:
            self.check_consistency(headers)
        return result.finalize()

    # ── Columns ────────────────────────────────────────────────────────────

    def check_required_columns(self, schema: DatasetSchema, header_lookup: dict[str, Any]) -> None:
        for column in schema.required_columns:
            if column in header_lookup:
                continue
            correction = self.result.propose(
                row=None,
                column=column,
                original_value=None,
                corrected_value=None,
                tier=CorrectionTier.CRITICAL,
                description=f"Add a '{column}' column to the source file",
            )
            self.result.add_issue(
                build_issue(
                    "columns_missing_required",
                    f"Missing required column: {column}",
                    column=column,
                    correction=correction,
                )
            )

    # ── Rows ───────────────────────────────────────────────────────────────

    def check_rows(self, header_lookup: dict[str, Any]) -> None:
        validators = []
        recognised: set[str] | None = None
        if self.schema is not None:
            recognised = self.schema.known_columns()
            validators = [
                (header_lookup[column], validator)
                for column, validator in self.schema.validators.items()
                if column in header_lookup
            ]
        validated_headers = {header for header, _ in validators}

        for row_number, row in enumerate(self.rows, start=1):
            if all(is_blank(value) for value in row.values()):
                self.result.stats.empty_rows += 1
                if self.settings.rule_enabled("data_empty_row"):
                    self.result.add_issue(
                        build_issue("data_empty_row", f"Row {row_number} is empty", row=row_number)
                    )
                continue

            failures = 0
            for header, validator in validators:
                value = row.get(header)
                if validator.check(value):
                    continue
                failures += 1
                correction = self.suggest(row_number, str(header), value)
                self.result.add_issue(
                    build_issue(
                        "data_invalid_value",
                        f'Row {row_number}, Column "{header}": {validator.describe()}. Got: "{cell_text(value)}"',
                        row=row_number,
                        column=str(header),
                        correction=correction,
                    )
                )

            for header, value in row.items():
                if header in validated_headers or is_blank(value):
                    continue
                self.check_improvement(row_number, str(header), value)

            self.check_long_values(row_number, row)

            has_recognised_data = any(
                not is_blank(value)
                and (recognised is None or clean_header(header) in recognised)
                for header, value in row.items()
            )
            if failures:
                self.result.stats.invalid_rows += 1
            elif has_recognised_data:
                self.result.stats.valid_rows += 1

    def suggest(self, row_number: int, column: str, value: Any) -> Correction | None:
        if self.suggester is None:
            return None
        suggestions = self.suggester(column, value, self.data_type)
        if not suggestions:
            return None
        best = suggestions[0]
        correction = self.result.propose(
            row=row_number,
            column=column,
            original_value=value,
            corrected_value=best.value,
            tier=best.tier,
            description=best.description,
            confidence=best.confidence,
        )
        if best.value != "":
            self.result.add_correction(correction)
        return correction

    def check_improvement(self, row_number: int, column: str, value: Any) -> None:
        if self.suggester is None or not self.settings.rule_enabled("data_suggested_improvement"):
            return
        suggestions = self.suggester(column, value, self.data_type)
        if not suggestions or suggestions[0].confidence <= self.settings.improvement_confidence_threshold:
            return
        best = suggestions[0]
        correction = self.result.propose(
            row=row_number,
            column=column,
            original_value=value,
            corrected_value=best.value,
            tier=best.tier,
            description=best.description,
            confidence=best.confidence,
        )
        self.result.add_correction(correction)
        self.result.add_issue(
            build_issue(
                "data_suggested_improvement",
                f'Row {row_number}, Column "{column}": Suggested improvement available',
                row=row_number,
                column=column,
                correction=correction,
            )
        )

    def check_long_values(self, row_number: int, row: Mapping[str, Any]) -> None:
        if not self.settings.rule_enabled("data_long_value"):
            return
        limit = self.settings.long_value_threshold
        for header, value in row.items():
            length = len(cell_text(value))
            if length > limit:
                self.result.add_issue(
                    build_issue(
                        "data_long_value",
                        f'Row {row_number}, Column "{header}": Very long value ({length} characters)',
                        row=row_number,
                        column=str(header),
                    )
                )

    # ── Consistency ────────────────────────────────────────────────────────

    def check_consistency(self, headers: list[Any]) -> None:
        if self.settings.rule_enabled("consistency_column_count"):
            expected = len(headers)
            for row_number, row in enumerate(self.rows, start=1):
                if len(row) != expected:
                    self.result.add_issue(
                        build_issue(
                            "consistency_column_count",
                            f"Row {row_number} has {len(row)} columns, expected {expected}",
                            row=row_number,
                        )
                    )

        for header in headers:
            if _is_date_column(header) and self.settings.rule_enabled("consistency_mixed_date_formats"):
                self.check_date_formats(header)
            if _is_retailer_column(header):
                if self.settings.rule_enabled("consistency_retailer_spelling"):
                    self.check_retailer_spelling(header)
                if self.settings.rule_enabled("consistency_near_duplicate_values"):
                    self.check_near_duplicates(header)

    def check_date_formats(self, header: Any) -> None:
        column = str(header)
        formats: list[str] = []
        for row_number, row in enumerate(self.rows, start=1):
            value = row.get(header)
            label = date_format_label(value)
            if label is None:
                continue
            if label not in formats:
                formats.append(label)
            standard = standardize_date(cell_text(value).strip())
            if standard != cell_text(value) and not _already_proposed(self.result, row_number, column, standard):
                self.result.add_correction(
                    self.result.propose(
                        row=row_number,
                        column=column,
                        original_value=value,
                        corrected_value=standard,
                        tier=CorrectionTier.AUTO,
                        description="Standardize date format to YYYY-MM-DD",
                        confidence=0.9,
                    )
                )

        if len(formats) > 1:
            correction = self.result.propose(
                row=None,
                column=column,
                original_value=None,
                corrected_value="YYYY-MM-DD",
                tier=CorrectionTier.AUTO,
                description="Standardize all dates to YYYY-MM-DD format",
                confidence=0.9,
            )
            self.result.add_issue(
                build_issue(
                    "consistency_mixed_date_formats",
                    f'Column "{column}" has mixed date formats: {", ".join(formats)}',
                    column=column,
                    correction=correction,
                )
            )

    def check_retailer_spelling(self, header: Any) -> None:
        column = str(header)
        for row_number, row in enumerate(self.rows, start=1):
            value = row.get(header)
            if is_blank(value):
                continue
            text = cell_text(value)
            fixed = fix_retailer_name(text)
            if fixed == text or _already_proposed(self.result, row_number, column, fixed):
                continue
            if collapse_whitespace(text) == fixed:
                self.result.add_correction(
                    self.result.propose(
                        row=row_number,
                        column=column,
                        original_value=value,
                        corrected_value=fixed,
                        tier=CorrectionTier.AUTO,
                        description="Remove extra whitespace",
                        confidence=0.95,
                    )
                )
                continue

            correction = self.result.propose(
                row=row_number,
                column=column,
                original_value=value,
                corrected_value=fixed,
                tier=CorrectionTier.SUGGESTED,
                description="Fix retailer name spelling",
                confidence=0.7,
            )
            self.result.add_correction(correction)
            reason = "a known misspelling" if is_retailer_variant(text) else "a non-standard spelling"
            self.result.add_issue(
                build_issue(
                    "consistency_retailer_spelling",
                    f'Row {row_number}, Column "{column}": "{text}" is {reason} of "{fixed}"',
                    row=row_number,
                    column=column,
                    correction=correction,
                )
            )

    def check_near_duplicates(self, header: Any) -> None:
        column = str(header)
        spellings: dict[str, str] = {}
        for row in self.rows:
            value = row.get(header)
            if is_blank(value):
                continue
            raw = collapse_whitespace(cell_text(value))
            spellings.setdefault(raw.lower(), raw)

        limit = self.settings.near_duplicate_max_distinct
        if len(spellings) > limit:
            logger.warning(
                "Skipping near-duplicate scan of %r: %d distinct values exceeds limit of %d",
                column,
                len(spellings),
                limit,
            )
            return

        max_distance = self.settings.near_duplicate_max_distance
        max_delta = self.settings.near_duplicate_max_length_delta
        keys = list(spellings)
        for index, first in enumerate(keys):
            for second in keys[index + 1:]:
                if abs(len(first) - len(second)) > max_delta:
                    continue
                if Levenshtein.distance(first, second, score_cutoff=max_distance) > max_distance:
                    continue
                first_raw, second_raw = spellings[first], spellings[second]
                if self.settings.skip_known_retailer_pairs and _distinct_known_retailers(first_raw, second_raw):
                    continue
                preferred = preferred_spelling(first_raw, second_raw)
                correction = self.result.propose(
                    row=None,
                    column=column,
                    original_value=None,
                    corrected_value=preferred,
                    tier=CorrectionTier.MANUAL,
                    description="Review and standardize retailer names",
                )
                self.result.add_issue(
                    build_issue(
                        "consistency_near_duplicate_values",
                        f'Potential duplicate retailers with different spellings: "{first_raw}" and "{second_raw}"',
                        column=column,
                        correction=correction,
                    )
                )


def _distinct_known_retailers(first: str, second: str) -> bool:
    known = {canonical_retailer(first), canonical_retailer(second)} - {None}
    return len(known) > 1


def preferred_spelling(first: str, second: str) -> str:
    """Known retailer name first, then the shorter spelling, then the first seen."""
    for candidate in (first, second):
        canonical = canonical_retailer(candidate)
        if canonical:
            return canonical
    if len(second) < len(first):
        return second
    return first


def validate_rows(
    rows: Sequence[Mapping[str, Any]] | None,
    schema: DatasetSchema | None,
    *,
    data_type: DataType | None = None,
    settings: ValidationSettings | None = None,
    suggester: Suggester | None = None,
) -> ValidationResult:
    if data_type is None:
        data_type = schema.data_type if schema is not None else DataType.UNKNOWN
    validator = RowValidator(
        rows or [],
        schema,
        data_type=data_type,
        settings=settings or ValidationSettings(),
        suggester=suggester,
    )
    result = validator.run()
    logger.debug(
        "Validated %d rows as %s: %d errors, %d warnings, score %.2f",
        result.stats.total_rows,
        data_type.value,
        result.stats.errors_count,
        result.stats.warnings_count,
        result.data_quality_score,
    )
    return result
