from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sales_doctor.models import ValidationResult, ValidationStats

SCORE_LABELS = [
    (90, "Excellent - minor cleanup only"),
    (70, "Good - a few issues to address"),
    (50, "Fair - significant cleaning needed"),
    (30, "Poor - major surgery required"),
    (0, "Critical - severe data quality issues"),
]


def quality_score(stats: ValidationStats) -> float:
    """100 minus ten points per weighted issue per row; errors weigh double."""
    if stats.total_rows == 0:
        return 100.0
    severity = stats.errors_count * 2 + stats.warnings_count
    return round(max(0.0, 100 - (severity / stats.total_rows) * 10), 2)


def score_label(score: float) -> str:
    return next(text for threshold, text in SCORE_LABELS if score >= threshold)


def format_score(score: float) -> str:
    return f"{round(score):.0f}%"


@dataclass(frozen=True)
class QualityDelta:
    before: float
    after: float

    @property
    def change(self) -> float:
        return round(self.after - self.before, 2)

    def describe(self) -> str:
        return f"{format_score(self.before)} → {format_score(self.after)}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "before": self.before,
            "after": self.after,
            "change": self.change,
            "before_label": score_label(self.before),
            "after_label": score_label(self.after),
            "summary": self.describe(),
        }


def quality_delta(before: ValidationResult | float, after: ValidationResult | float) -> QualityDelta:
    def _score(value: ValidationResult | float) -> float:
        if isinstance(value, ValidationResult):
            return value.data_quality_score
        return float(value)

    return QualityDelta(before=_score(before), after=_score(after))
