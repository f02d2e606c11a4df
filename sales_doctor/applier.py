from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

from sales_doctor.models import Correction, CorrectionDecisions, is_blank

logger = logging.getLogger(__name__)


def apply_corrections(
    rows: Sequence[Mapping[str, Any]],
    corrections: Iterable[Correction],
    decisions: CorrectionDecisions | None = None,
) -> list[dict[str, Any]]:
    """
    Return new rows with every accepted correction written in.

    Corrections are applied in list order, so the last accepted correction
    for a cell wins. Column-level proposals (no row) are never applied. The
    input rows are left untouched.
    """
    corrected = [dict(row) for row in rows]
    if decisions is None:
        return corrected

    applied = 0
    for correction in corrections:
        if correction.row is None or correction.column is None:
            continue
        if not decisions.is_accepted(correction):
            continue
        index = correction.row - 1
        if not 0 <= index < len(corrected):
            logger.warning("Correction %s points at row %d outside the data", correction.id, correction.row)
            continue
        corrected[index][correction.column] = correction.corrected_value
        applied += 1

    logger.debug("Applied %d corrections to %d rows", applied, len(corrected))
    return corrected


def drop_empty_rows(rows: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Copies of the rows that hold at least one non-blank value."""
    kept = [dict(row) for row in rows if not all(is_blank(value) for value in row.values())]
    logger.debug("Dropped %d empty rows", len(rows) - len(kept))
    return kept
