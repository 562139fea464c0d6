"""Blank roster (花名册) workbook handed out for users to fill in."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill

SHEET_TITLE = "花名册"
TEMPLATE_FILENAME = "花名册模板.xlsx"
# (header, column width)
COLUMNS = (
    ("姓名", 12),
    ("证件号码", 20),
    ("部门", 15),
    ("岗位", 12),
    ("备注", 15),
)
SAMPLE_ROWS = (
    ("张三", "110101199001011234", "销售部", "销售员", ""),
    ("李四", "110101199002022345", "技术部", "工程师", ""),
    ("王五", "110101199003033456", "财务部", "会计", ""),
)


def _write_header(ws) -> None:
    font = Font(bold=True)
    fill = PatternFill(fill_type="solid", start_color="E0E0E0", end_color="E0E0E0")
    alignment = Alignment(horizontal="center")
    for col, (label, width) in enumerate(COLUMNS, start=1):
        cell = ws.cell(row=1, column=col, value=label)
        cell.font = font
        cell.fill = fill
        cell.alignment = alignment
        ws.column_dimensions[cell.column_letter].width = width


def write_roster_template(path: Path, rows: Sequence[Sequence[str]] = SAMPLE_ROWS) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    _write_header(ws)
    for row in rows:
        # Identity numbers stay text so Excel does not turn them into floats.
        ws.append([str(value) for value in row])

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    return path
