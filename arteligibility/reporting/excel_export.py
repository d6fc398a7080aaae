#!/usr/bin/env python3
"""
ARTEligibility Excel results workbook.

Writes one workbook per cohort run with:
- Eligibility (one row per subject: reason, date, basis, rules checked)
- Diagnostics (one row per per-subject problem)

Rows are keyed by subject id: re-running against an existing workbook
updates matching rows and appends new subjects.
"""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from arteligibility.ingestion.batch_eval import CohortEvaluation


# openpyxl uses ARGB hex without #
_CRITERION_FILL = PatternFill(start_color="FFD1FAE5", end_color="FFD1FAE5", fill_type="solid")
_TREATMENT_FILL = PatternFill(start_color="FFFEF3C7", end_color="FFFEF3C7", fill_type="solid")
_NONE_FILL = PatternFill(start_color="FFF3F4F6", end_color="FFF3F4F6", fill_type="solid")

_HEADER_FONT = Font(name="Calibri", size=11, bold=True, color="FFFFFFFF")
_HEADER_FILL = PatternFill(start_color="FF1F4E79", end_color="FF1F4E79", fill_type="solid")
_BODY_FONT = Font(name="Calibri", size=10)
_THIN_BORDER = Border(
    left=Side(style="thin", color="FFD9D9D9"),
    right=Side(style="thin", color="FFD9D9D9"),
    top=Side(style="thin", color="FFD9D9D9"),
    bottom=Side(style="thin", color="FFD9D9D9"),
)

RESULTS_SHEET = "Eligibility"
DIAGNOSTICS_SHEET = "Diagnostics"

_RESULT_HEADERS = ["Subject ID", "Reason", "Eligible Date", "Basis", "Rules Checked", "Warnings", "Last Evaluated"]
_RESULT_WIDTHS = [14, 40, 14, 16, 60, 40, 20]
_DIAG_HEADERS = ["Subject ID", "Category", "Section", "Message"]
_DIAG_WIDTHS = [14, 20, 20, 80]


def _style_header_row(ws, num_cols: int) -> None:
    for col in range(1, num_cols + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = _THIN_BORDER


def _add_sheet(wb: Workbook, title: str, headers: List[str], widths: List[int], first: bool = False):
    if first:
        ws = wb.active
        ws.title = title
    else:
        ws = wb.create_sheet(title)
    for col, h in enumerate(headers, 1):
        ws.cell(row=1, column=col, value=h)
    _style_header_row(ws, len(headers))
    ws.freeze_panes = "B2"
    ws.auto_filter.ref = f"A1:{get_column_letter(len(headers))}1"
    for i, w in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(i)].width = w
    return ws


def _create_workbook() -> Workbook:
    wb = Workbook()
    _add_sheet(wb, RESULTS_SHEET, _RESULT_HEADERS, _RESULT_WIDTHS, first=True)
    _add_sheet(wb, DIAGNOSTICS_SHEET, _DIAG_HEADERS, _DIAG_WIDTHS)
    return wb


def _find_subject_row(ws, subject_id: str) -> Optional[int]:
    """Find existing row for a subject by ID (column A)."""
    for row in range(2, ws.max_row + 1):
        if str(ws.cell(row=row, column=1).value) == str(subject_id):
            return row
    return None


def write_results_workbook(run: CohortEvaluation, output_path: Path) -> Path:
    """
    Add or update one row per subject in the results workbook.

    Diagnostics are appended; they are a log, not keyed rows.
    """
    if output_path.exists():
        wb = load_workbook(output_path)
    else:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        wb = _create_workbook()

    ws = wb[RESULTS_SHEET]
    stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    for sid, ev in run.evaluations.items():
        result = ev.result
        if result is None:
            reason, date, basis, fill = "", "", "No determination", _NONE_FILL
        elif result.reason is None:
            reason, date, basis, fill = "", result.date.date().isoformat(), "On treatment", _TREATMENT_FILL
        else:
            reason, date, basis, fill = result.reason.value, result.date.date().isoformat(), "Criterion", _CRITERION_FILL

        rules = ", ".join(f"{c.rule_id}{'*' if c.matched else ''}" for c in ev.rule_trace)
        row = _find_subject_row(ws, sid) or ws.max_row + 1
        data = [sid, reason, date, basis, rules, "; ".join(w.message for w in ev.warnings), stamp]
        for col, val in enumerate(data, 1):
            cell = ws.cell(row=row, column=col, value=val)
            cell.font = _BODY_FONT
            cell.border = _THIN_BORDER
            cell.alignment = Alignment(vertical="center", wrap_text=(col in (5, 6)))
        ws.cell(row=row, column=4).fill = fill

    diag_ws = wb[DIAGNOSTICS_SHEET]
    for d in run.diagnostics:
        diag_ws.append([d.subject_id, d.category, d.section, d.message])

    wb.save(output_path)
    return output_path
