"""Parser for the per-period employee roster (花名册)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from insurance_ledger.core.coercion import get_cell
from insurance_ledger.core.errors import InsufficientRowsError, NoValidRowsError
from insurance_ledger.core.headers import roster_columns
from insurance_ledger.core.schema import RosterEntry

logger = logging.getLogger(__name__)


@dataclass
class RosterSheetResult:
    entries: list[RosterEntry]


def parse_rows(rows: Sequence[Sequence[str]], period_id: int) -> RosterSheetResult:
    if len(rows) < 2:
        raise InsufficientRowsError("花名册Excel文件中没有数据行，请检查文件内容是否正确")

    columns = roster_columns(rows[0])
    logger.debug("roster columns resolved: %s", columns)

    entries: list[RosterEntry] = []
    for row in rows[1:]:
        if not row:
            continue
        id_number = get_cell(row, columns["id_number"])
        department = get_cell(row, columns["department"])
        if not id_number or not department:
            continue
        entries.append(
            RosterEntry(
                period_id=period_id,
                id_number=id_number,
                department=department,
                name=get_cell(row, columns.get("name")),
                title=get_cell(row, columns.get("title")),
                remarks=get_cell(row, columns.get("remarks")),
            )
        )

    if not entries:
        raise NoValidRowsError("花名册文件中没有找到有效的数据行，请检查文件格式和内容")
    return RosterSheetResult(entries=entries)
