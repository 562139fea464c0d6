"""Domain entities for period bookkeeping."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from insurance_ledger.core.schema import (
    Period,
    PeriodSummary,
    PersonalCharge,
    RawRecord,
    RosterEntry,
    SourceFile,
    UnitCharge,
)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form both storage backends keep."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(slots=True)
class PeriodState:
    """Everything stored for a single period in memory."""

    period: Period
    source_files: list[SourceFile] = field(default_factory=list)
    raw_records: list[RawRecord] = field(default_factory=list)
    roster: list[RosterEntry] = field(default_factory=list)
    roster_uploaded_at: datetime | None = None
    summaries: list[PeriodSummary] = field(default_factory=list)
    personal: list[PersonalCharge] = field(default_factory=list)
    unit: list[UnitCharge] = field(default_factory=list)
