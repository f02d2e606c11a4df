from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

from sales_doctor.contracts import build_run_summary, document_header
from sales_doctor.models import (
    TIER_ORDER,
    Correction,
    CorrectionDecisions,
    CorrectionTier,
    IssueCategory,
    ValidationIssue,
    ValidationResult,
)
from sales_doctor.scoring import score_label

MINUTES_PER_FIX = {
    CorrectionTier.AUTO: 0.1,
    CorrectionTier.SUGGESTED: 0.5,
    CorrectionTier.MANUAL: 2.0,
    CorrectionTier.CRITICAL: 5.0,
}
MAX_EXAMPLES = 3


def all_corrections(result: ValidationResult) -> list[Correction]:
    """Standalone corrections plus the ones only carried on issues, in proposal order."""
    seen: dict[str, Correction] = {}
    for correction in result.corrections:
        seen.setdefault(correction.id, correction)
    for issue in result.issues():
        if issue.correction is not None:
            seen.setdefault(issue.correction.id, issue.correction)
    return sorted(seen.values(), key=lambda item: (item.sequence, item.id))


def summarize_corrections(result: ValidationResult) -> dict[str, Any]:
    corrections = all_corrections(result)
    by_tier = {tier.value: 0 for tier in TIER_ORDER}
    groups: dict[tuple[str, str], dict[str, Any]] = {}
    minutes = 0.0
    for correction in corrections:
        by_tier[correction.tier.value] += 1
        minutes += MINUTES_PER_FIX[correction.tier]
        key = (correction.tier.value, correction.description)
        group = groups.setdefault(
            key,
            {
                "tier": correction.tier.value,
                "description": correction.description,
                "count": 0,
                "examples": [],
            },
        )
        group["count"] += 1
        if len(group["examples"]) < MAX_EXAMPLES:
            group["examples"].append(
                {
                    "row": correction.row,
                    "column": correction.column,
                    "original": correction.original_value,
                    "suggested": correction.corrected_value,
                }
            )
    return {
        "total": len(corrections),
        "by_tier": by_tier,
        "groups": list(groups.values()),
        "estimated_minutes_to_fix": round(minutes, 1),
    }


def _numbered(issues: Iterable[ValidationIssue]) -> list[str]:
    return [f"{index}. [{issue.category.value}] {issue.message}" for index, issue in enumerate(issues, start=1)]


def recommendations(result: ValidationResult) -> list[str]:
    stats = result.stats
    items: list[str] = []
    if not result.errors and not result.warnings:
        return items
    if stats.invalid_rows:
        items.append(f"Fix the {stats.invalid_rows} invalid rows to improve data quality")
    if stats.empty_rows:
        items.append(f"Consider removing the {stats.empty_rows} empty rows")
    if any(issue.category is IssueCategory.COLUMNS for issue in result.errors):
        items.append("Ensure all required columns are present in your CSV file")
    if any(issue.code == "consistency_mixed_date_formats" for issue in result.warnings):
        items.append("Standardize date formats for better consistency")
    if any(issue.code in {"consistency_retailer_spelling", "consistency_near_duplicate_values"} for issue in result.warnings):
        items.append("Review retailer names that look like the same store spelled differently")
    if stats.auto_fixable_issues:
        items.append(f"{stats.auto_fixable_issues} issues can be fixed automatically with `sales-doctor fix`")
    return items


def render_text_report(result: ValidationResult, *, input_path: Path | None = None) -> str:
    stats = result.stats
    lines = ["sales-doctor validate"]
    if input_path is not None:
        lines.append(f"Input: {input_path}")
    lines.extend(
        [
            f"Type: {result.data_type.value}",
            f"Status: {'valid' if result.is_valid else 'invalid'}",
            f"Quality score: {result.data_quality_score:.0f} ({score_label(result.data_quality_score)})",
            f"Total rows: {stats.total_rows}",
            f"Valid rows: {stats.valid_rows}",
            f"Invalid rows: {stats.invalid_rows}",
            f"Empty rows: {stats.empty_rows}",
        ]
    )
    if result.errors:
        lines.append(f"Errors ({len(result.errors)}):")
        lines.extend(_numbered(result.errors))
    if result.warnings:
        lines.append(f"Warnings ({len(result.warnings)}):")
        lines.extend(_numbered(result.warnings))
    advice = recommendations(result)
    if advice:
        lines.append("Recommendations:")
        lines.extend(f"- {item}" for item in advice)
    return "\n".join(lines) + "\n"


def _metrics(result: ValidationResult) -> dict[str, Any]:
    return {
        **result.stats.to_dict(),
        "data_quality_score": result.data_quality_score,
    }


def build_validation_report(
    run,
    input_path: Path | None = None,
    *,
    decisions: CorrectionDecisions | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    result = run.result
    return {
        **document_header("sales_doctor.validation"),
        "run_summary": build_run_summary(
            command="validate",
            input_path=input_path,
            status="ok" if result.is_valid else "invalid",
            metrics=_metrics(result),
            warnings=warnings,
        ),
        "data_type": run.data_type.value,
        "score_label": score_label(result.data_quality_score),
        "mapping": run.mapping.to_dict(),
        "normalization": run.normalization.to_dict(),
        "result": result.to_dict(decisions),
        "correction_summary": summarize_corrections(result),
        "text_report": render_text_report(result, input_path=input_path),
    }


def build_fix_summary(
    run,
    outcome,
    *,
    tiers: Iterable[CorrectionTier],
    input_path: Path | None = None,
    output_path: Path | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    after = outcome.result
    return {
        **document_header("sales_doctor.fix_summary"),
        "run_summary": build_run_summary(
            command="fix",
            input_path=input_path,
            output_path=output_path,
            status="ok" if after.is_valid else "errors_remaining",
            metrics={
                "corrections_applied": outcome.applied,
                "empty_rows_dropped": outcome.dropped_rows,
                "errors_before": run.result.stats.errors_count,
                "errors_after": after.stats.errors_count,
                "warnings_before": run.result.stats.warnings_count,
                "warnings_after": after.stats.warnings_count,
            },
            warnings=warnings,
        ),
        "data_type": run.data_type.value,
        "accepted_tiers": [tier.value for tier in tiers],
        "corrections_applied": outcome.applied,
        "empty_rows_dropped": outcome.dropped_rows,
        "quality": outcome.delta.to_dict(),
        "before": run.result.stats.to_dict(),
        "after": after.stats.to_dict(),
        "remaining_errors": [issue.to_dict() for issue in after.errors],
    }
