"""Tolerant conversions from raw spreadsheet cells.

Upstream exports are messy: sequence numbers arrive zero padded, amounts
carry thousands separators and rates a trailing percent sign.  None of the
helpers below raise; a cell that cannot be read degrades to zero or an
empty string so that a single bad cell never aborts the row.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP, localcontext
from typing import Any, Sequence

BOM = "\ufeff"
CENT = Decimal("0.01")
# Cells beyond these magnitudes are treated as garbage and read as zero.
MAX_INT = 2**31 - 1
MAX_AMOUNT_EXPONENT = 25


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def strip_bom(value: str) -> str:
    if value.startswith(BOM):
        return value[len(BOM):]
    return value


def to_int(value: Any) -> int:
    text = clean_text(value).lstrip("0")
    if not text:
        return 0
    try:
        result = int(text)
    except ValueError:
        try:
            number = Decimal(text)
        except InvalidOperation:
            return 0
        if not number.is_finite() or number.adjusted() > 9:
            return 0
        result = int(number.to_integral_value(rounding=ROUND_DOWN))
    return result if abs(result) <= MAX_INT else 0


def to_decimal(value: Any) -> Decimal:
    text = clean_text(value).replace(",", "")
    if text.endswith("%"):
        text = text[:-1]
    if not text:
        return Decimal("0")
    try:
        number = Decimal(text)
    except InvalidOperation:
        return Decimal("0")
    if not number.is_finite() or number.adjusted() > MAX_AMOUNT_EXPONENT:
        return Decimal("0")
    return number


def quantize(value: Decimal) -> Decimal:
    # Totals of many large amounts can exceed the default 28 digits.
    with localcontext() as ctx:
        ctx.prec = 60
        return value.quantize(CENT, rounding=ROUND_HALF_UP)


def get_cell(row: Sequence[Any], index: int | None) -> str:
    if index is None or index < 0 or index >= len(row):
        return ""
    return clean_text(row[index])


def normalise_rows(rows: Sequence[Sequence[Any]]) -> list[list[str]]:
    """Trim every cell and drop the BOM a CSV export leaves on the first one."""

    cleaned: list[list[str]] = []
    for row_index, row in enumerate(rows):
        values = []
        for col_index, cell in enumerate(row):
            text = clean_text(cell)
            if row_index == 0 and col_index == 0:
                text = strip_bom(text).strip()
            values.append(text)
        cleaned.append(values)
    return cleaned
