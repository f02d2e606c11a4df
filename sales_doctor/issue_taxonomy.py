"""
Shared issue taxonomy.

Severity, category and explain text live in one place so the validator,
the text report and ``sales-doctor explain`` do not drift.
"""

from __future__ import annotations

from sales_doctor.models import Correction, IssueCategory, Severity, ValidationIssue


ISSUE_DEFINITIONS = {
    "structure_empty_dataset": {
        "severity": Severity.ERROR,
        "category": IssueCategory.STRUCTURE,
        "description": "The dataset has no rows at all.",
        "evidence": "The parsed row list is empty or missing.",
        "advisory": False,
        "disable_hint": "Cannot be disabled; upload a file with data rows.",
    },
    "structure_no_columns": {
        "severity": Severity.ERROR,
        "category": IssueCategory.STRUCTURE,
        "description": "The first row has no columns.",
        "evidence": "The header row parsed to zero column names.",
        "advisory": False,
        "disable_hint": "Cannot be disabled; check the delimiter and header row.",
    },
    "structure_unknown_type": {
        "severity": Severity.WARNING,
        "category": IssueCategory.STRUCTURE,
        "description": "The dataset type could not be detected, so only generic checks ran.",
        "evidence": "None of the sales, offers or demographics marker columns were found.",
        "advisory": True,
        "disable_hint": "Pass an explicit --type to validate against a known schema.",
    },
    "structure_internal_error": {
        "severity": Severity.ERROR,
        "category": IssueCategory.STRUCTURE,
        "description": "Validation could not run because of a configuration or schema problem.",
        "evidence": "An unexpected exception was raised while building the schema or settings.",
        "advisory": False,
        "disable_hint": "Fix the requested type or settings file; this is never caused by cell data.",
    },
    "columns_missing_required": {
        "severity": Severity.ERROR,
        "category": IssueCategory.COLUMNS,
        "description": "A column required by the dataset schema is missing.",
        "evidence": "No header matches the required column name after alias mapping.",
        "advisory": False,
        "disable_hint": "Add the column to the source file or rename an existing one to a known alias.",
    },
    "data_invalid_value": {
        "severity": Severity.ERROR,
        "category": IssueCategory.DATA,
        "description": "A cell fails the rule configured for its column.",
        "evidence": "The column validator rejected the value (format, emptiness or allowed values).",
        "advisory": False,
        "disable_hint": "Fix the value at the source or accept the proposed correction.",
    },
    "data_empty_row": {
        "severity": Severity.WARNING,
        "category": IssueCategory.DATA,
        "description": "A row where every cell is empty or whitespace.",
        "evidence": "All values in the row are blank.",
        "advisory": True,
        "disable_hint": "Add data_empty_row to disabled_rules to stop reporting blank rows.",
    },
    "data_long_value": {
        "severity": Severity.WARNING,
        "category": IssueCategory.DATA,
        "description": "A suspiciously long cell value, often encoded data or a mis-paste.",
        "evidence": "The value is longer than long_value_threshold characters.",
        "advisory": True,
        "disable_hint": "Raise long_value_threshold or add data_long_value to disabled_rules.",
    },
    "data_suggested_improvement": {
        "severity": Severity.WARNING,
        "category": IssueCategory.DATA,
        "description": "A valid cell that a high-confidence heuristic would still tidy up.",
        "evidence": "A correction heuristic above improvement_confidence_threshold changed the value.",
        "advisory": True,
        "disable_hint": "Add data_suggested_improvement to disabled_rules.",
    },
    "consistency_column_count": {
        "severity": Severity.WARNING,
        "category": IssueCategory.CONSISTENCY,
        "description": "A row has a different number of columns than the header row.",
        "evidence": "The row's key count differs from the first row's key count.",
        "advisory": True,
        "disable_hint": "Add consistency_column_count to disabled_rules.",
    },
    "consistency_mixed_date_formats": {
        "severity": Severity.WARNING,
        "category": IssueCategory.CONSISTENCY,
        "description": "A date-like column contains more than one date format.",
        "evidence": "More than one recognised date pattern was found in the same column.",
        "advisory": True,
        "disable_hint": "Add consistency_mixed_date_formats to disabled_rules.",
    },
    "consistency_retailer_spelling": {
        "severity": Severity.WARNING,
        "category": IssueCategory.CONSISTENCY,
        "description": "A retailer value matches a known misspelling of a canonical retailer name.",
        "evidence": "Case-insensitive match against the static retailer variant table.",
        "advisory": True,
        "disable_hint": "Add consistency_retailer_spelling to disabled_rules.",
    },
    "consistency_near_duplicate_values": {
        "severity": Severity.WARNING,
        "category": IssueCategory.CONSISTENCY,
        "description": "Two distinct retailer values are probably the same retailer spelled differently.",
        "evidence": "Edit distance and length difference are both within the configured limits.",
        "advisory": True,
        "disable_hint": "Lower near_duplicate_max_distance or add consistency_near_duplicate_values to disabled_rules.",
    },
}


def is_advisory(code: str) -> bool:
    return bool(ISSUE_DEFINITIONS[code]["advisory"])


def build_issue(
    code: str,
    message: str,
    *,
    row: int | None = None,
    column: str | None = None,
    correction: Correction | None = None,
) -> ValidationIssue:
    definition = ISSUE_DEFINITIONS[code]
    return ValidationIssue(
        code=code,
        severity=definition["severity"],
        category=definition["category"],
        message=message,
        row=row,
        column=column,
        correction=correction,
    )


def explain(code: str) -> dict | None:
    definition = ISSUE_DEFINITIONS.get(code)
    if definition is None:
        return None
    return {
        "rule_id": code,
        "severity": definition["severity"].value,
        "category": definition["category"].value,
        "description": definition["description"],
        "evidence": definition["evidence"],
        "advisory": definition["advisory"],
        "disable_hint": definition["disable_hint"],
    }
