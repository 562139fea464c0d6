"""Parser for contribution exports (one scheme and payment part per file)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from insurance_ledger.core.coercion import get_cell, to_decimal, to_int
from insurance_ledger.core.errors import InsufficientRowsError, NoValidRowsError
from insurance_ledger.core.headers import contribution_columns
from insurance_ledger.core.schema import FileType, Part, RawRecord, Scheme

logger = logging.getLogger(__name__)


@dataclass
class ContributionParseResult:
    records: list[RawRecord]
    skipped: int = 0


def parse_rows(
    rows: Sequence[Sequence[str]],
    period_id: int,
    scheme: Scheme,
    part: Part,
    file_type: FileType = FileType.NORMAL,
) -> ContributionParseResult:
    """Turn a header row plus data rows into raw records.

    The header is validated before any data row is read.  Rows missing a
    sequence number, a name or an identity number are skipped.
    """

    if len(rows) < 2:
        raise InsufficientRowsError("Excel文件中没有数据行，请检查文件内容是否正确")

    columns = contribution_columns(rows[0])
    adjust_index = columns.get("amount_adjust")

    records: list[RawRecord] = []
    skipped = 0
    for line, row in enumerate(rows[1:], start=2):
        if not row:
            continue
        seq = get_cell(row, columns["seq"])
        name = get_cell(row, columns["name"])
        id_number = get_cell(row, columns["id_number"])
        if not seq or not name or not id_number:
            logger.debug("skip row %s: seq=%r name=%r id_number=%r", line, seq, name, id_number)
            skipped += 1
            continue

        amount_due = to_decimal(get_cell(row, columns["amount_due"]))
        amount_adjust = to_decimal(get_cell(row, adjust_index)) if adjust_index is not None else amount_due

        records.append(
            RawRecord(
                period_id=period_id,
                sequence=to_int(seq),
                name=name,
                id_type=get_cell(row, columns.get("id_type")),
                id_number=id_number,
                department=get_cell(row, columns.get("department")),
                pay_salary=to_decimal(get_cell(row, columns["salary"])),
                pay_base=to_decimal(get_cell(row, columns["base"])),
                rate_text=get_cell(row, columns["rate"]),
                amount_due=amount_due,
                deduction=to_decimal(get_cell(row, columns.get("deduction"))),
                amount_adjust=amount_adjust,
                person_code=get_cell(row, columns.get("person_code")),
                scheme=scheme,
                part=part,
                file_type=file_type,
            )
        )

    if not records:
        raise NoValidRowsError("Excel文件中没有找到有效的数据行，请检查文件格式和内容")
    if skipped:
        logger.warning("%s/%s %s file: skipped %d incomplete rows", part.value, scheme.value, file_type.value, skipped)
    return ContributionParseResult(records=records, skipped=skipped)
