from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Sequence

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from sales_doctor.models import Correction, CorrectionDecisions, ValidationResult

CORRECTION_HEADERS = ["id", "row", "column", "original_value", "corrected_value", "tier", "confidence", "description", "applied"]
ISSUE_HEADERS = ["severity", "category", "code", "row", "column", "message"]

FILL_CORRECTED = PatternFill("solid", fgColor="FFF2CC")   # soft yellow
FILL_ERROR_ROW = PatternFill("solid", fgColor="FCE4D6")   # soft orange


def _header_font() -> Font:
    return Font(bold=True, color="FFFFFF")


def _header_fill(hex_color: str) -> PatternFill:
    return PatternFill("solid", fgColor=hex_color)


def _style_sheet(ws, col_widths: list[int], header_color: str) -> None:
    """Apply bold header, color, frozen row, and column widths."""
    fill = _header_fill(header_color)
    font = _header_font()
    for cell in ws[1]:
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=False)
    ws.freeze_panes = "A2"
    for index, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(index)].width = width


def _infer_col_widths(rows: list[list], min_width: int = 10, max_width: int = 60, sample: int = 300) -> list[int]:
    if not rows:
        return []
    widths = [max(min_width, min(max_width, len(str(value)) + 2)) for value in rows[0]]
    for row in rows[1 : sample + 1]:
        for index, value in enumerate(row[: len(widths)]):
            widths[index] = max(widths[index], min(max_width, len(str(value)) + 2))
    return widths


def _cell(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float)):
        return value
    return str(value)


def write_review_workbook(
    rows: Sequence[dict[str, Any]],
    headers: Sequence[str],
    result: ValidationResult,
    corrections: Iterable[Correction],
    decisions: CorrectionDecisions,
    output_path: Path,
) -> None:
    """
    Three sheets: the corrected data with applied cells highlighted, the
    issues still present after correction, and every proposed correction
    with its accept state.
    """
    corrections = list(corrections)
    applied_cells = {
        (correction.row, correction.column)
        for correction in corrections
        if correction.row is not None and decisions.is_accepted(correction)
    }
    error_rows = {issue.row for issue in result.errors if issue.row is not None}
    headers = list(headers)

    wb = openpyxl.Workbook()

    # ── Sheet 1: Corrected Data ─────────────────────────────────────────
    ws1 = wb.active
    ws1.title = "Corrected Data"
    ws1.append(headers)
    data_rows_for_width: list[list] = [headers]
    for row_number, row in enumerate(rows, start=1):
        row_out = [_cell(row.get(header)) for header in headers]
        ws1.append(row_out)
        data_rows_for_width.append(row_out)
        for column_index, header in enumerate(headers, start=1):
            cell = ws1.cell(row_number + 1, column_index)
            if (row_number, header) in applied_cells:
                cell.fill = FILL_CORRECTED
            elif row_number in error_rows:
                cell.fill = FILL_ERROR_ROW
    _style_sheet(ws1, _infer_col_widths(data_rows_for_width), "4CAF50")   # green

    # ── Sheet 2: Issues ─────────────────────────────────────────────────
    ws2 = wb.create_sheet("Issues")
    ws2.append(ISSUE_HEADERS)
    issue_rows_for_width: list[list] = [ISSUE_HEADERS]
    for issue in result.issues():
        row_out = [issue.severity.value, issue.category.value, issue.code, issue.row, issue.column, issue.message]
        ws2.append(row_out)
        issue_rows_for_width.append(row_out)
    _style_sheet(ws2, _infer_col_widths(issue_rows_for_width), "E53935")   # red
    for cell in ws2["F"][1:]:
        cell.alignment = Alignment(wrap_text=True, vertical="top")

    # ── Sheet 3: Corrections ────────────────────────────────────────────
    ws3 = wb.create_sheet("Corrections")
    ws3.append(CORRECTION_HEADERS)
    correction_rows_for_width: list[list] = [CORRECTION_HEADERS]
    for correction in corrections:
        row_out = [
            correction.id,
            correction.row,
            correction.column,
            _cell(correction.original_value),
            _cell(correction.corrected_value),
            correction.tier.value,
            correction.confidence,
            correction.description,
            decisions.is_accepted(correction),
        ]
        ws3.append(row_out)
        correction_rows_for_width.append(row_out)
    _style_sheet(ws3, _infer_col_widths(correction_rows_for_width), "1565C0")   # blue

    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
