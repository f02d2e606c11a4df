"""
Linear composition of the ingestion stages.

detect → map columns → normalise values → validate with suggestions, and
later, once a caller has accepted some corrections, apply → re-validate.
This module is the only boundary that catches unexpected exceptions: they
become a single structural error on the returned result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from sales_doctor.applier import apply_corrections, drop_empty_rows
from sales_doctor.config import ValidationSettings
from sales_doctor.corrections import suggest_corrections
from sales_doctor.detection import infer_data_type
from sales_doctor.issue_taxonomy import build_issue
from sales_doctor.mapping import MappingReport, map_columns
from sales_doctor.models import CorrectionDecisions, DataType, ValidationResult
from sales_doctor.normalization import NormalizationReport, normalize_rows
from sales_doctor.schemas import coerce_data_type, get_schema
from sales_doctor.scoring import QualityDelta, quality_delta
from sales_doctor.validation import validate_rows

logger = logging.getLogger(__name__)


@dataclass
class PipelineRun:
    data_type: DataType
    rows: list[dict[str, Any]]
    result: ValidationResult
    mapping: MappingReport = field(default_factory=MappingReport)
    normalization: NormalizationReport = field(default_factory=NormalizationReport)
    settings: ValidationSettings = field(default_factory=ValidationSettings)


@dataclass
class CorrectionOutcome:
    rows: list[dict[str, Any]]
    result: ValidationResult
    delta: QualityDelta
    applied: int
    dropped_rows: int = 0


def failed_result(message: str, data_type: DataType = DataType.UNKNOWN, total_rows: int = 0) -> ValidationResult:
    result = ValidationResult(data_type=data_type)
    result.stats.total_rows = total_rows
    result.add_issue(build_issue("structure_internal_error", message))
    return result.finalize()


def _headers(rows: Sequence[Mapping[str, Any]]) -> list[Any]:
    return list(rows[0].keys()) if rows else []


def run_pipeline(
    rows: Sequence[Mapping[str, Any]] | None,
    data_type: DataType | str | None = None,
    *,
    settings: ValidationSettings | None = None,
    normalize: bool = True,
) -> PipelineRun:
    settings = settings or ValidationSettings()
    source = list(rows or [])
    try:
        resolved = coerce_data_type(data_type) if data_type else infer_data_type(_headers(source))
        schema = get_schema(resolved)
        mapped = map_columns(source, resolved)
        working = mapped.rows
        normalization = NormalizationReport(total_rows=len(working))
        if normalize:
            normalized = normalize_rows(working, resolved)
            working = normalized.rows
            normalization = normalized.report
        result = validate_rows(
            working,
            schema,
            data_type=resolved,
            settings=settings,
            suggester=suggest_corrections,
        )
    except Exception as exc:
        logger.exception("Validation pipeline failed")
        fallback = DataType.UNKNOWN
        if isinstance(data_type, DataType):
            fallback = data_type
        return PipelineRun(
            data_type=fallback,
            rows=[dict(row) for row in source],
            result=failed_result(f"Validation failed: {exc}", fallback, len(source)),
            settings=settings,
        )

    logger.debug(
        "Pipeline finished for %s: score %.2f", resolved.value, result.data_quality_score
    )
    return PipelineRun(
        data_type=resolved,
        rows=working,
        result=result,
        mapping=mapped.report,
        normalization=normalization,
        settings=settings,
    )


def revalidate(
    run: PipelineRun,
    decisions: CorrectionDecisions,
    *,
    drop_empty: bool = False,
) -> CorrectionOutcome:
    """
    Apply the accepted corrections of ``run`` and validate the corrected rows.

    With ``drop_empty`` the rows left blank are removed once the corrections
    are written. Correction row numbers always refer to ``run.rows``.
    """
    applied = len([c for c in decisions.selected(run.result.corrections) if c.row is not None])
    corrected = apply_corrections(run.rows, run.result.corrections, decisions)
    dropped = 0
    if drop_empty:
        kept = drop_empty_rows(corrected)
        dropped = len(corrected) - len(kept)
        corrected = kept
    try:
        result = validate_rows(
            corrected,
            get_schema(run.data_type),
            data_type=run.data_type,
            settings=run.settings,
            suggester=suggest_corrections,
        )
    except Exception as exc:
        logger.exception("Re-validation failed")
        result = failed_result(f"Validation failed: {exc}", run.data_type, len(corrected))
    return CorrectionOutcome(
        rows=corrected,
        result=result,
        delta=quality_delta(run.result, result),
        applied=applied,
        dropped_rows=dropped,
    )
