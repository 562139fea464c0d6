"""DuckDB-backed period repository.

Each mutating method runs inside one explicit transaction; any failing
statement rolls the whole call back and surfaces as ``PersistenceError``
naming the step that failed.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Sequence

import duckdb

from insurance_ledger.core.errors import PeriodNotFoundError, PersistenceError
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
from insurance_ledger.domain import utcnow

MONEY = "DECIMAL(38, 6)"

SCHEMA = [
    "CREATE SEQUENCE IF NOT EXISTS period_ids START 1",
    "CREATE SEQUENCE IF NOT EXISTS source_file_ids START 1",
    """CREATE TABLE IF NOT EXISTS periods (
        id BIGINT PRIMARY KEY DEFAULT nextval('period_ids'),
        year_month VARCHAR NOT NULL,
        status VARCHAR NOT NULL,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS source_files (
        id BIGINT PRIMARY KEY DEFAULT nextval('source_file_ids'),
        period_id BIGINT NOT NULL,
        file_name VARCHAR,
        stored_path VARCHAR,
        original_name VARCHAR,
        scheme VARCHAR,
        part VARCHAR,
        file_type VARCHAR,
        row_count INTEGER,
        status VARCHAR,
        uploaded_at TIMESTAMP
    )""",
    f"""CREATE TABLE IF NOT EXISTS raw_records (
        period_id BIGINT NOT NULL,
        source_file_id BIGINT,
        "sequence" INTEGER,
        name VARCHAR,
        id_type VARCHAR,
        id_number VARCHAR,
        department VARCHAR,
        pay_salary {MONEY},
        pay_base {MONEY},
        rate_text VARCHAR,
        amount_due {MONEY},
        deduction {MONEY},
        amount_adjust {MONEY},
        person_code VARCHAR,
        scheme VARCHAR,
        part VARCHAR,
        file_type VARCHAR
    )""",
    """CREATE TABLE IF NOT EXISTS roster_entries (
        period_id BIGINT NOT NULL,
        id_number VARCHAR,
        name VARCHAR,
        department VARCHAR,
        title VARCHAR,
        remarks VARCHAR,
        created_at TIMESTAMP
    )""",
    f"""CREATE TABLE IF NOT EXISTS period_summaries (
        period_id BIGINT NOT NULL,
        scheme VARCHAR,
        part VARCHAR,
        headcount INTEGER,
        base_total {MONEY},
        amount_total {MONEY},
        is_adjustment BOOLEAN
    )""",
    f"""CREATE TABLE IF NOT EXISTS personal_charges (
        period_id BIGINT NOT NULL,
        name VARCHAR,
        id_number VARCHAR,
        department VARCHAR,
        base {MONEY},
        pension {MONEY},
        medical_maternity {MONEY},
        serious_illness {MONEY},
        unemployment {MONEY},
        subtotal {MONEY},
        is_adjustment BOOLEAN
    )""",
    f"""CREATE TABLE IF NOT EXISTS unit_charges (
        period_id BIGINT NOT NULL,
        name VARCHAR,
        id_number VARCHAR,
        department VARCHAR,
        base {MONEY},
        pension {MONEY},
        medical_maternity {MONEY},
        serious_illness {MONEY},
        injury {MONEY},
        unemployment {MONEY},
        subtotal {MONEY},
        is_adjustment BOOLEAN
    )""",
]

RAW_COLUMNS = (
    "period_id", "source_file_id", "sequence", "name", "id_type", "id_number", "department",
    "pay_salary", "pay_base", "rate_text", "amount_due", "deduction", "amount_adjust",
    "person_code", "scheme", "part", "file_type",
)
ROSTER_COLUMNS = ("period_id", "id_number", "name", "department", "title", "remarks", "created_at")
SUMMARY_COLUMNS = ("period_id", "scheme", "part", "headcount", "base_total", "amount_total", "is_adjustment")
PERSONAL_COLUMNS = (
    "period_id", "name", "id_number", "department", "base", "pension", "medical_maternity",
    "serious_illness", "unemployment", "subtotal", "is_adjustment",
)
UNIT_COLUMNS = (
    "period_id", "name", "id_number", "department", "base", "pension", "medical_maternity",
    "serious_illness", "injury", "unemployment", "subtotal", "is_adjustment",
)
SOURCE_COLUMNS = (
    "id", "period_id", "file_name", "stored_path", "original_name", "scheme", "part",
    "file_type", "row_count", "status", "uploaded_at",
)
AGGREGATE_TABLES = (
    ("period_summaries", SUMMARY_COLUMNS),
    ("personal_charges", PERSONAL_COLUMNS),
    ("unit_charges", UNIT_COLUMNS),
)


def _columns(columns: Sequence[str], prefix: str = "") -> str:
    return ", ".join(f'{prefix}"{column}"' for column in columns)


def _plain(value: Any) -> Any:
    if isinstance(value, (Scheme, Part, FileType)):
        return value.value
    return value


def _params(model: Any, columns: Sequence[str]) -> list[Any]:
    data = model.model_dump()
    return [_plain(data[column]) for column in columns]


def _adjustment_filter(is_adjustment: bool | None) -> tuple[str, list[Any]]:
    if is_adjustment is None:
        return "", []
    return " AND is_adjustment = ?", [is_adjustment]


class DuckDBPeriodRepository:
    def __init__(self, database: str | None = None) -> None:
        self._database = database or ":memory:"
        self._con = duckdb.connect(self._database)
        for statement in SCHEMA:
            self._con.execute(statement)

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    @contextmanager
    def _transaction(self) -> Iterator[None]:
        self._con.begin()
        try:
            yield
        except BaseException:
            self._con.rollback()
            raise
        self._con.commit()

    def _run(self, step: str, sql: str, params: Sequence[Any] = ()) -> duckdb.DuckDBPyConnection:
        try:
            return self._con.execute(sql, list(params))
        except duckdb.Error as exc:
            raise PersistenceError(step, exc) from exc

    def _insert(self, step: str, table: str, columns: Sequence[str], rows: Sequence[Any]) -> None:
        if not rows:
            return
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {table} ({_columns(columns)}) VALUES ({placeholders})"
        try:
            self._con.executemany(sql, [_params(row, columns) for row in rows])
        except duckdb.Error as exc:
            raise PersistenceError(step, exc) from exc

    def _select(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        cursor = self._con.execute(sql, list(params))
        names = [column[0] for column in cursor.description]
        return [dict(zip(names, row)) for row in cursor.fetchall()]

    def _require(self, period_id: int) -> Period:
        period = self.get_period(period_id)
        if period is None:
            raise PeriodNotFoundError(period_id)
        return period

    def _save_source(self, source: SourceFile, count: int) -> SourceFile:
        now = source.uploaded_at or utcnow()
        row = self._run(
            "save source file",
            "INSERT INTO source_files (period_id, file_name, stored_path, original_name, scheme, part, "
            "file_type, row_count, status, uploaded_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) RETURNING id",
            [
                source.period_id,
                source.file_name,
                source.stored_path,
                source.original_name,
                source.scheme.value,
                source.part.value,
                source.file_type.value,
                count,
                source.status,
                now,
            ],
        ).fetchone()
        return source.model_copy(update={"id": int(row[0]), "rows": count, "uploaded_at": now})

    def _insert_records(self, saved: SourceFile, records: Sequence[RawRecord]) -> None:
        stamped = [record.model_copy(update={"source_file_id": saved.id}) for record in records]
        self._insert("insert raw records", "raw_records", RAW_COLUMNS, stamped)

    # ------------------------------------------------------------------
    # periods
    # ------------------------------------------------------------------
    def create_period(self, year_month: str) -> Period:
        now = utcnow()
        row = self._run(
            "create period",
            "INSERT INTO periods (year_month, status, created_at, updated_at) VALUES (?, 'draft', ?, ?) RETURNING id",
            [year_month, now, now],
        ).fetchone()
        return Period(id=int(row[0]), year_month=year_month, status="draft", created_at=now, updated_at=now)

    def get_period(self, period_id: int) -> Period | None:
        rows = self._select("SELECT * FROM periods WHERE id = ?", [period_id])
        return Period(**rows[0]) if rows else None

    def list_periods(self) -> list[Period]:
        rows = self._select("SELECT * FROM periods ORDER BY year_month DESC, id DESC")
        return [Period(**row) for row in rows]

    def delete_period(self, period_id: int) -> None:
        self._require(period_id)
        with self._transaction():
            self._purge(period_id)
            self._run("delete period", "DELETE FROM periods WHERE id = ?", [period_id])

    # ------------------------------------------------------------------
    # raw records
    # ------------------------------------------------------------------
    def replace_scheme(
        self, period_id: int, scheme: Scheme, part: Part, source: SourceFile, records: Sequence[RawRecord]
    ) -> SourceFile:
        self._require(period_id)
        scope = [period_id, scheme.value, part.value, FileType.NORMAL.value]
        where = "WHERE period_id = ? AND scheme = ? AND part = ? AND file_type = ?"
        with self._transaction():
            self._run("cleanup existing raw records", f"DELETE FROM raw_records {where}", scope)
            self._run("cleanup existing source files", f"DELETE FROM source_files {where}", scope)
            saved = self._save_source(source, len(records))
            self._insert_records(saved, records)
        return saved

    def append_source(self, period_id: int, source: SourceFile, records: Sequence[RawRecord]) -> SourceFile:
        self._require(period_id)
        with self._transaction():
            saved = self._save_source(source, len(records))
            self._insert_records(saved, records)
        return saved

    def list_source_files(self, period_id: int, file_type: FileType | None = None) -> list[SourceFile]:
        sql = f"SELECT {_columns(SOURCE_COLUMNS)} FROM source_files WHERE period_id = ?"
        params: list[Any] = [period_id]
        if file_type is not None:
            sql += " AND file_type = ?"
            params.append(file_type.value)
        rows = self._select(sql + " ORDER BY id", params)
        return [SourceFile(rows=row.pop("row_count"), **row) for row in rows]

    def load_raw_records(self, period_id: int, file_type: FileType) -> list[RawRecord]:
        rows = self._select(
            f"SELECT {_columns(RAW_COLUMNS)} FROM raw_records WHERE period_id = ? AND file_type = ? "
            "ORDER BY id_number, part, scheme, source_file_id, \"sequence\"",
            [period_id, file_type.value],
        )
        return [RawRecord(**row) for row in rows]

    # ------------------------------------------------------------------
    # roster
    # ------------------------------------------------------------------
    def replace_roster(self, period_id: int, entries: Sequence[RosterEntry]) -> None:
        self._require(period_id)
        now = utcnow()
        stamped = [entry.model_copy(update={"period_id": period_id, "created_at": now}) for entry in entries]
        with self._transaction():
            self._run("cleanup roster", "DELETE FROM roster_entries WHERE period_id = ?", [period_id])
            self._insert("insert roster", "roster_entries", ROSTER_COLUMNS, stamped)

    def load_roster(self, period_id: int) -> list[RosterEntry]:
        rows = self._select(
            f"SELECT {_columns(ROSTER_COLUMNS)} FROM roster_entries WHERE period_id = ?", [period_id]
        )
        return [RosterEntry(**row) for row in rows]

    def latest_roster(self, exclude_period_id: int) -> list[RosterEntry]:
        rows = self._select(
            f"""SELECT {_columns(ROSTER_COLUMNS, 're.')} FROM roster_entries re
            INNER JOIN (
                SELECT period_id, MAX(created_at) AS max_created
                FROM roster_entries
                WHERE period_id <> ?
                GROUP BY period_id
                ORDER BY max_created DESC, period_id DESC
                LIMIT 1
            ) latest ON re.period_id = latest.period_id
            ORDER BY re.id_number""",
            [exclude_period_id],
        )
        return [RosterEntry(**row) for row in rows]

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
        self._require(period_id)
        with self._transaction():
            self._run("cleanup summary", "DELETE FROM period_summaries WHERE period_id = ?", [period_id])
            self._run("cleanup personal charges", "DELETE FROM personal_charges WHERE period_id = ?", [period_id])
            self._run("cleanup unit charges", "DELETE FROM unit_charges WHERE period_id = ?", [period_id])
            self._insert("insert summaries", "period_summaries", SUMMARY_COLUMNS, summaries)
            self._insert("insert personal charges", "personal_charges", PERSONAL_COLUMNS, personal)
            self._insert("insert unit charges", "unit_charges", UNIT_COLUMNS, unit)
            self._run(
                "update period status",
                "UPDATE periods SET status = 'processed', updated_at = ? WHERE id = ?",
                [utcnow(), period_id],
            )

    def replace_adjustment_aggregates(
        self,
        period_id: int,
        summaries: Sequence[PeriodSummary],
        personal: Sequence[PersonalCharge],
        unit: Sequence[UnitCharge],
    ) -> None:
        self._require(period_id)
        scope = "WHERE period_id = ? AND is_adjustment = TRUE"
        with self._transaction():
            self._run("cleanup adjustment summary", f"DELETE FROM period_summaries {scope}", [period_id])
            self._run("cleanup adjustment personal charges", f"DELETE FROM personal_charges {scope}", [period_id])
            self._run("cleanup adjustment unit charges", f"DELETE FROM unit_charges {scope}", [period_id])
            self._insert("insert adjustment summaries", "period_summaries", SUMMARY_COLUMNS, summaries)
            self._insert("insert adjustment personal charges", "personal_charges", PERSONAL_COLUMNS, personal)
            self._insert("insert adjustment unit charges", "unit_charges", UNIT_COLUMNS, unit)

    def list_summaries(self, period_id: int, is_adjustment: bool | None = None) -> list[PeriodSummary]:
        clause, params = _adjustment_filter(is_adjustment)
        rows = self._select(
            f"SELECT {_columns(SUMMARY_COLUMNS)} FROM period_summaries WHERE period_id = ?{clause} "
            "ORDER BY part, scheme, is_adjustment",
            [period_id, *params],
        )
        return [PeriodSummary(**row) for row in rows]

    def list_personal_charges(self, period_id: int, is_adjustment: bool | None = None) -> list[PersonalCharge]:
        clause, params = _adjustment_filter(is_adjustment)
        rows = self._select(
            f"SELECT {_columns(PERSONAL_COLUMNS)} FROM personal_charges WHERE period_id = ?{clause} "
            "ORDER BY id_number, is_adjustment",
            [period_id, *params],
        )
        return [PersonalCharge(**row) for row in rows]

    def list_unit_charges(self, period_id: int, is_adjustment: bool | None = None) -> list[UnitCharge]:
        clause, params = _adjustment_filter(is_adjustment)
        rows = self._select(
            f"SELECT {_columns(UNIT_COLUMNS)} FROM unit_charges WHERE period_id = ?{clause} "
            "ORDER BY id_number, is_adjustment",
            [period_id, *params],
        )
        return [UnitCharge(**row) for row in rows]

    # ------------------------------------------------------------------
    # clean up
    # ------------------------------------------------------------------
    def _purge(self, period_id: int) -> None:
        self._run("delete roster entries", "DELETE FROM roster_entries WHERE period_id = ?", [period_id])
        self._run("delete raw records", "DELETE FROM raw_records WHERE period_id = ?", [period_id])
        self._run("delete period summaries", "DELETE FROM period_summaries WHERE period_id = ?", [period_id])
        self._run("delete personal charges", "DELETE FROM personal_charges WHERE period_id = ?", [period_id])
        self._run("delete unit charges", "DELETE FROM unit_charges WHERE period_id = ?", [period_id])
        self._run("delete source files", "DELETE FROM source_files WHERE period_id = ?", [period_id])

    def reset_period(self, period_id: int) -> None:
        self._require(period_id)
        with self._transaction():
            self._purge(period_id)
            self._run(
                "reset period status",
                "UPDATE periods SET status = 'draft', updated_at = ? WHERE id = ?",
                [utcnow(), period_id],
            )

    def clear_file_type(self, period_id: int, file_type: FileType) -> None:
        self._require(period_id)
        label = file_type.value
        flag = file_type is FileType.ADJUSTMENT
        with self._transaction():
            self._run(f"delete {label} raw records", "DELETE FROM raw_records WHERE period_id = ? AND file_type = ?", [period_id, label])
            for table, _ in AGGREGATE_TABLES:
                self._run(
                    f"delete {label} {table.replace('_', ' ')}",
                    f"DELETE FROM {table} WHERE period_id = ? AND is_adjustment = ?",
                    [period_id, flag],
                )
            self._run(f"delete {label} source files", "DELETE FROM source_files WHERE period_id = ? AND file_type = ?", [period_id, label])

    def reset(self) -> None:
        with self._transaction():
            for table in ("raw_records", "source_files", "roster_entries", "period_summaries", "personal_charges", "unit_charges", "periods"):
                self._run(f"truncate {table}", f"DELETE FROM {table}")

    def close(self) -> None:
        self._con.close()
