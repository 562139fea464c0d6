"""Persistence contract for periods and an in-memory implementation."""
from __future__ import annotations

import copy
from contextlib import contextmanager
from typing import Iterator, Protocol, Sequence

from insurance_ledger.core.errors import PeriodNotFoundError
from insurance_ledger.core.schema import (
    FileType,
    Part,
    Period,
    PeriodSummary,
    PersonalCharge,
    RawRecord,
    RosterEntry,
    Scheme,
    SourceFile,
    UnitCharge,
)
from insurance_ledger.domain import PeriodState, utcnow


def summary_order(row: PeriodSummary) -> tuple:
    return (row.part.value, row.scheme.value, row.is_adjustment)


def charge_order(row: PersonalCharge | UnitCharge) -> tuple:
    return (row.id_number, row.is_adjustment)


class PeriodRepository(Protocol):
    """Storage contract.  Every mutating call is all-or-nothing."""

    def create_period(self, year_month: str) -> Period: ...

    def get_period(self, period_id: int) -> Period | None: ...

    def list_periods(self) -> list[Period]: ...

    def delete_period(self, period_id: int) -> None: ...

    def replace_scheme(
        self, period_id: int, scheme: Scheme, part: Part, source: SourceFile, records: Sequence[RawRecord]
    ) -> SourceFile: ...

    def append_source(self, period_id: int, source: SourceFile, records: Sequence[RawRecord]) -> SourceFile: ...

    def list_source_files(self, period_id: int, file_type: FileType | None = None) -> list[SourceFile]: ...

    def load_raw_records(self, period_id: int, file_type: FileType) -> list[RawRecord]: ...

    def replace_roster(self, period_id: int, entries: Sequence[RosterEntry]) -> None: ...

    def load_roster(self, period_id: int) -> list[RosterEntry]: ...

    def latest_roster(self, exclude_period_id: int) -> list[RosterEntry]: ...

    def replace_aggregates(
        self,
        period_id: int,
        summaries: Sequence[PeriodSummary],
        personal: Sequence[PersonalCharge],
        unit: Sequence[UnitCharge],
    ) -> None: ...

    def replace_adjustment_aggregates(
        self,
        period_id: int,
        summaries: Sequence[PeriodSummary],
        personal: Sequence[PersonalCharge],
        unit: Sequence[UnitCharge],
    ) -> None: ...

    def list_summaries(self, period_id: int, is_adjustment: bool | None = None) -> list[PeriodSummary]: ...

    def list_personal_charges(self, period_id: int, is_adjustment: bool | None = None) -> list[PersonalCharge]: ...

    def list_unit_charges(self, period_id: int, is_adjustment: bool | None = None) -> list[UnitCharge]: ...

    def reset_period(self, period_id: int) -> None: ...

    def clear_file_type(self, period_id: int, file_type: FileType) -> None: ...

    def reset(self) -> None: ...


class InMemoryPeriodRepository:
    """Simple in-memory repository for fast iteration and tests."""

    def __init__(self) -> None:
        self._periods: dict[int, PeriodState] = {}
        self._period_counter = 0
        self._file_counter = 0

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _state(self, period_id: int) -> PeriodState:
        state = self._periods.get(period_id)
        if state is None:
            raise PeriodNotFoundError(period_id)
        return state

    @contextmanager
    def _transaction(self, period_id: int) -> Iterator[PeriodState]:
        # Work on a copy and publish it only if the block completes.
        working = copy.deepcopy(self._state(period_id))
        counter = self._file_counter
        try:
            yield working
        except BaseException:
            self._file_counter = counter
            raise
        self._periods[period_id] = working

    def _next_file_id(self) -> int:
        self._file_counter += 1
        return self._file_counter

    def _attach(self, state: PeriodState, source: SourceFile, records: Sequence[RawRecord]) -> SourceFile:
        saved = source.model_copy(update={"id": self._next_file_id(), "rows": len(records)})
        state.source_files.append(saved)
        state.raw_records.extend(record.model_copy(update={"source_file_id": saved.id}) for record in records)
        return saved

    # ------------------------------------------------------------------
    # periods
    # ------------------------------------------------------------------
    def create_period(self, year_month: str) -> Period:
        self._period_counter += 1
        now = utcnow()
        period = Period(id=self._period_counter, year_month=year_month, created_at=now, updated_at=now)
        self._periods[period.id] = PeriodState(period=period)
        return period.model_copy()

    def get_period(self, period_id: int) -> Period | None:
        state = self._periods.get(period_id)
        return state.period.model_copy() if state else None

    def list_periods(self) -> list[Period]:
        periods = [state.period.model_copy() for state in self._periods.values()]
        periods.sort(key=lambda item: (item.year_month, item.id), reverse=True)
        return periods

    def delete_period(self, period_id: int) -> None:
        self._state(period_id)
        del self._periods[period_id]

    # ------------------------------------------------------------------
    # raw records
    # ------------------------------------------------------------------
    def replace_scheme(
        self, period_id: int, scheme: Scheme, part: Part, source: SourceFile, records: Sequence[RawRecord]
    ) -> SourceFile:
        def owned(item: SourceFile | RawRecord) -> bool:
            return item.scheme is scheme and item.part is part and item.file_type is FileType.NORMAL

        with self._transaction(period_id) as state:
            state.raw_records = [record for record in state.raw_records if not owned(record)]
            state.source_files = [item for item in state.source_files if not owned(item)]
            return self._attach(state, source, records)

    def append_source(self, period_id: int, source: SourceFile, records: Sequence[RawRecord]) -> SourceFile:
        with self._transaction(period_id) as state:
            return self._attach(state, source, records)

    def list_source_files(self, period_id: int, file_type: FileType | None = None) -> list[SourceFile]:
        state = self._state(period_id)
        return [item for item in state.source_files if file_type is None or item.file_type is file_type]

    def load_raw_records(self, period_id: int, file_type: FileType) -> list[RawRecord]:
        state = self._state(period_id)
        return [record for record in state.raw_records if record.file_type is file_type]

    # ------------------------------------------------------------------
    # roster
    # ------------------------------------------------------------------
    def replace_roster(self, period_id: int, entries: Sequence[RosterEntry]) -> None:
        now = utcnow()
        with self._transaction(period_id) as state:
            state.roster = [entry.model_copy(update={"period_id": period_id, "created_at": now}) for entry in entries]
            state.roster_uploaded_at = now if entries else None

    def load_roster(self, period_id: int) -> list[RosterEntry]:
        return list(self._state(period_id).roster)

    def latest_roster(self, exclude_period_id: int) -> list[RosterEntry]:
        candidates = [
            state
            for period_id, state in self._periods.items()
            if period_id != exclude_period_id and state.roster and state.roster_uploaded_at is not None
        ]
        if not candidates:
            return []
        latest = max(candidates, key=lambda state: (state.roster_uploaded_at, state.period.id))
        return sorted(latest.roster, key=lambda entry: entry.id_number)

    # ------------------------------------------------------------------
    # aggregates
    # ------------------------------------------------------------------
    def replace_aggregates(
        self,
        period_id: int,
        summaries: Sequence[PeriodSummary],
        personal: Sequence[PersonalCharge],
        unit: Sequence[UnitCharge],
    ) -> None:
        with self._transaction(period_id) as state:
            state.summaries = list(summaries)
            state.personal = list(personal)
            state.unit = list(unit)
            state.period = state.period.model_copy(update={"status": "processed", "updated_at": utcnow()})

    def replace_adjustment_aggregates(
        self,
        period_id: int,
        summaries: Sequence[PeriodSummary],
        personal: Sequence[PersonalCharge],
        unit: Sequence[UnitCharge],
    ) -> None:
        with self._transaction(period_id) as state:
            state.summaries = [row for row in state.summaries if not row.is_adjustment] + list(summaries)
            state.personal = [row for row in state.personal if not row.is_adjustment] + list(personal)
            state.unit = [row for row in state.unit if not row.is_adjustment] + list(unit)

    def list_summaries(self, period_id: int, is_adjustment: bool | None = None) -> list[PeriodSummary]:
        rows = [row for row in self._state(period_id).summaries if is_adjustment in (None, row.is_adjustment)]
        return sorted(rows, key=summary_order)

    def list_personal_charges(self, period_id: int, is_adjustment: bool | None = None) -> list[PersonalCharge]:
        rows = [row for row in self._state(period_id).personal if is_adjustment in (None, row.is_adjustment)]
        return sorted(rows, key=charge_order)

    def list_unit_charges(self, period_id: int, is_adjustment: bool | None = None) -> list[UnitCharge]:
        rows = [row for row in self._state(period_id).unit if is_adjustment in (None, row.is_adjustment)]
        return sorted(rows, key=charge_order)

    # ------------------------------------------------------------------
    # clean up
    # ------------------------------------------------------------------
    def reset_period(self, period_id: int) -> None:
        with self._transaction(period_id) as state:
            state.roster = []
            state.roster_uploaded_at = None
            state.raw_records = []
            state.source_files = []
            state.summaries = []
            state.personal = []
            state.unit = []
            state.period = state.period.model_copy(update={"status": "draft", "updated_at": utcnow()})

    def clear_file_type(self, period_id: int, file_type: FileType) -> None:
        flag = file_type is FileType.ADJUSTMENT
        with self._transaction(period_id) as state:
            state.raw_records = [record for record in state.raw_records if record.file_type is not file_type]
            state.source_files = [item for item in state.source_files if item.file_type is not file_type]
            state.summaries = [row for row in state.summaries if row.is_adjustment is not flag]
            state.personal = [row for row in state.personal if row.is_adjustment is not flag]
            state.unit = [row for row in state.unit if row.is_adjustment is not flag]

    def reset(self) -> None:
        self._periods.clear()
        self._period_counter = 0
        self._file_counter = 0
