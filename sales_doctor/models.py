"""Result records shared by every pipeline stage."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping


class DataType(str, Enum):
    SALES = "sales"
    OFFERS = "offers"
    DEMOGRAPHICS = "demographics"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class IssueCategory(str, Enum):
    STRUCTURE = "structure"
    COLUMNS = "columns"
    DATA = "data"
    CONSISTENCY = "consistency"


class CorrectionTier(str, Enum):
    AUTO = "auto"
    SUGGESTED = "suggested"
    MANUAL = "manual"
    CRITICAL = "critical"


TIER_ORDER = (
    CorrectionTier.AUTO,
    CorrectionTier.SUGGESTED,
    CorrectionTier.MANUAL,
    CorrectionTier.CRITICAL,
)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:
        return True
    return str(value).strip() == ""


def cell_text(value: Any) -> str:
    if is_blank(value) and not isinstance(value, str):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class Correction:
    id: str
    row: int | None
    column: str | None
    original_value: Any
    corrected_value: Any
    tier: CorrectionTier
    description: str
    confidence: float = 0.0
    sequence: int = field(default=0, compare=False, repr=False)

    def to_dict(self, applied: bool = False) -> dict[str, Any]:
        return {
            "id": self.id,
            "row": self.row,
            "column": self.column,
            "original_value": self.original_value,
            "corrected_value": self.corrected_value,
            "tier": self.tier.value,
            "description": self.description,
            "confidence": self.confidence,
            "applied": applied,
        }


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    severity: Severity
    category: IssueCategory
    message: str
    row: int | None = None
    column: str | None = None
    correction: Correction | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "row": self.row,
            "column": self.column,
            "correction": self.correction.to_dict() if self.correction else None,
        }


@dataclass
class ValidationStats:
    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    empty_rows: int = 0
    errors_count: int = 0
    warnings_count: int = 0
    correctable_issues: int = 0
    auto_fixable_issues: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "invalid_rows": self.invalid_rows,
            "empty_rows": self.empty_rows,
            "errors_count": self.errors_count,
            "warnings_count": self.warnings_count,
            "correctable_issues": self.correctable_issues,
            "auto_fixable_issues": self.auto_fixable_issues,
        }


@dataclass
class ValidationResult:
    """
    Outcome of one validation pass.

    Issues and corrections are appended while the pass runs; ``finalize``
    computes the quality score once the pass is over. A post-correction
    result is always a new instance built from the corrected rows.
    """

    data_type: DataType = DataType.UNKNOWN
    is_valid: bool = True
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    corrections: list[Correction] = field(default_factory=list)
    stats: ValidationStats = field(default_factory=ValidationStats)
    data_quality_score: float = 100.0
    _next_correction: int = field(default=1, repr=False, compare=False)

    def propose(
        self,
        *,
        row: int | None,
        column: str | None,
        original_value: Any,
        corrected_value: Any,
        tier: CorrectionTier,
        description: str,
        confidence: float = 0.0,
    ) -> Correction:
        correction = Correction(
            id=f"C{self._next_correction:04d}",
            row=row,
            column=column,
            original_value=original_value,
            corrected_value=corrected_value,
            tier=tier,
            description=description,
            confidence=confidence,
            sequence=self._next_correction,
        )
        self._next_correction += 1
        return correction

    def add_correction(self, correction: Correction) -> None:
        self.corrections.append(correction)

    def _count_correction(self, correction: Correction | None) -> None:
        if correction is None:
            return
        self.stats.correctable_issues += 1
        if correction.tier is CorrectionTier.AUTO:
            self.stats.auto_fixable_issues += 1

    def add_issue(self, issue: ValidationIssue) -> ValidationIssue:
        if issue.severity is Severity.ERROR:
            self.errors.append(issue)
            self.is_valid = False
            self.stats.errors_count += 1
        else:
            self.warnings.append(issue)
            self.stats.warnings_count += 1
        self._count_correction(issue.correction)
        return issue

    def finalize(self) -> "ValidationResult":
        from sales_doctor.scoring import quality_score

        self.data_quality_score = quality_score(self.stats)
        return self

    def issues(self) -> list[ValidationIssue]:
        return [*self.errors, *self.warnings]

    def correctable_issues(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues() if issue.correction is not None]

    def auto_fixable_issues(self) -> list[ValidationIssue]:
        return [
            issue
            for issue in self.correctable_issues()
            if issue.correction is not None and issue.correction.tier is CorrectionTier.AUTO
        ]

    def corrections_for(self, row: int, column: str) -> list[Correction]:
        return [c for c in self.corrections if c.row == row and c.column == column]

    def to_dict(self, decisions: "CorrectionDecisions | None" = None) -> dict[str, Any]:
        return {
            "data_type": self.data_type.value,
            "is_valid": self.is_valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
            "corrections": [
                correction.to_dict(
                    applied=decisions.is_accepted(correction) if decisions else False
                )
                for correction in self.corrections
            ],
            "stats": self.stats.to_dict(),
            "data_quality_score": self.data_quality_score,
        }


@dataclass
class CorrectionDecisions:
    """Caller-owned accept/reject state, keyed by correction id."""

    accepted: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, values: Mapping[str, bool]) -> "CorrectionDecisions":
        return cls(dict(values))

    def accept(self, correction: Correction | str) -> None:
        self.accepted[_correction_id(correction)] = True

    def reject(self, correction: Correction | str) -> None:
        self.accepted[_correction_id(correction)] = False

    def toggle(self, correction: Correction | str) -> bool:
        key = _correction_id(correction)
        self.accepted[key] = not self.accepted.get(key, False)
        return self.accepted[key]

    def accept_tier(self, corrections: Iterable[Correction], tier: CorrectionTier) -> int:
        count = 0
        for correction in corrections:
            if correction.tier is tier and correction.row is not None:
                self.accept(correction)
                count += 1
        return count

    def accept_all(self, corrections: Iterable[Correction]) -> int:
        count = 0
        for correction in corrections:
            if correction.row is not None:
                self.accept(correction)
                count += 1
        return count

    def is_accepted(self, correction: Correction | str) -> bool:
        return self.accepted.get(_correction_id(correction), False)

    def selected(self, corrections: Iterable[Correction]) -> list[Correction]:
        return [correction for correction in corrections if self.is_accepted(correction)]


def _correction_id(correction: Correction | str) -> str:
    return correction if isinstance(correction, str) else correction.id
