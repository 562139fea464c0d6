from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Sequence

import pandas as pd

from insurance_ledger.core.errors import EmptyExportError
from insurance_ledger.core.schema import Part, PersonalCharge, Scheme, SchemeChargeDetail, UnitCharge

PERSONAL_HEADERS = {
    "base": "基数",
    "pension": "养老保险",
    "medical_maternity": "医疗+生育保险",
    "serious_illness": "大额医疗",
    "unemployment": "失业保险",
    "subtotal": "小计",
}
UNIT_HEADERS = {
    "base": "基数",
    "pension": "养老保险",
    "medical_maternity": "医疗+生育保险",
    "injury": "工伤保险",
    "unemployment": "失业保险",
    "subtotal": "小计",
}
SCHEME_HEADERS = {"base": "缴费基数", "amount": "应缴金额"}
PART_LABELS = {Part.PERSONAL: "个人", Part.UNIT: "单位"}
SCHEME_LABELS = {
    Scheme.PENSION: "养老保险",
    Scheme.MEDICAL: "医疗+生育保险",
    Scheme.SERIOUS_ILLNESS: "大额医疗",
    Scheme.UNEMPLOYMENT: "失业保险",
    Scheme.INJURY: "工伤保险",
}


def charges_filename(year_month: str, part: Part) -> str:
    return f"{year_month}-{PART_LABELS[part]}扣款明细.xlsx"


def scheme_charges_filename(year_month: str, scheme: Scheme, part: Part) -> str:
    return f"{year_month}-{PART_LABELS[part]}{SCHEME_LABELS[scheme]}明细.xlsx"


def _write(path: Path, rows: Sequence, amounts: dict[str, str]) -> Path:
    records = []
    totals = {column: Decimal("0") for column in amounts}
    for index, row in enumerate(rows, start=1):
        record = {"序号": index, "姓名": row.name, "证件号码": row.id_number, "部门": row.department}
        for column, label in amounts.items():
            value = getattr(row, column)
            totals[column] += value
            record[label] = float(value)
        records.append(record)

    total_row = {"序号": "合计", "姓名": "", "证件号码": "", "部门": ""}
    total_row.update({label: float(totals[column]) for column, label in amounts.items()})
    records.append(total_row)

    df = pd.DataFrame(records)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_excel(path, index=False, engine="openpyxl")
    return path


def export_charges(path: Path, part: Part, rows: Sequence[PersonalCharge] | Sequence[UnitCharge]) -> Path:
    """Write a deduction sheet for one payment part with a trailing 合计 row."""

    if not rows:
        raise EmptyExportError(f"no {part.value} charges available")
    headers = PERSONAL_HEADERS if part is Part.PERSONAL else UNIT_HEADERS
    return _write(path, rows, headers)


def export_scheme_charges(path: Path, rows: Sequence[SchemeChargeDetail]) -> Path:
    if not rows:
        raise EmptyExportError("no scheme charges available")
    return _write(path, rows, SCHEME_HEADERS)
