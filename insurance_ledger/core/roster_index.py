from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from insurance_ledger.core.schema import RosterEntry


@dataclass(frozen=True, slots=True)
class RosterMatch:
    name: str
    department: str


def build_roster_index(entries: Iterable[RosterEntry]) -> dict[str, RosterMatch]:
    """Index roster entries by identity number; the last duplicate wins."""

    index: dict[str, RosterMatch] = {}
    for entry in entries:
        if not entry.id_number:
            continue
        index[entry.id_number] = RosterMatch(name=entry.name, department=entry.department)
    return index
