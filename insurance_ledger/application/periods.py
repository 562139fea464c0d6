"""Application service layer for period ingestion and aggregation."""
from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path
from typing import Callable, Sequence, TypeVar

from insurance_ledger.config import adjustment_upload_dir, get_settings, period_upload_dir
from insurance_ledger.core.aggregation import aggregate_adjustments, aggregate_period
from insurance_ledger.core.errors import (
    LedgerError,
    NoRecordsError,
    PeriodNotFoundError,
    PersistenceError,
    RosterNotFoundError,
)
from insurance_ledger.core.filenames import classify_adjustment_filename
from insurance_ledger.core.roster_index import build_roster_index
from insurance_ledger.core.schema import (
    BatchUploadItem,
    FileType,
    ParseResult,
    Part,
    Period,
    PeriodSummary,
    PersonalCharge,
    ProcessOutput,
    RosterEntry,
    RosterParseResult,
    Scheme,
    SchemeChargeDetail,
    SourceFile,
    UnitCharge,
)
from insurance_ledger.domain import utcnow
from insurance_ledger.exporters import charges_xlsx, roster_template
from insurance_ledger.extractors import contribution_sheet, roster_sheet
from insurance_ledger.extractors.workbook import load_rows
from insurance_ledger.infrastructure import DuckDBPeriodRepository, InMemoryPeriodRepository, PeriodRepository

logger = logging.getLogger(__name__)

PERSONAL_COLUMN = {
    Scheme.PENSION: "pension",
    Scheme.MEDICAL: "medical_maternity",
    Scheme.SERIOUS_ILLNESS: "serious_illness",
    Scheme.UNEMPLOYMENT: "unemployment",
}
UNIT_COLUMN = {**PERSONAL_COLUMN, Scheme.INJURY: "injury"}

T = TypeVar("T")


def _store_upload(path: Path, target_dir: Path) -> Path:
    """Copy an upload into the period directory under a fresh name."""

    stored = target_dir / f"{uuid.uuid4().hex}{path.suffix or '.xlsx'}"
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(path, stored)
    except OSError as exc:
        raise PersistenceError("save upload file", exc) from exc
    return stored


def _unique_uploads(entries: Sequence[T], key: Callable[[T], Path]) -> list[T]:
    # Same name and size counts as the same file.
    seen: set[tuple[str, int]] = set()
    unique: list[T] = []
    for entry in entries:
        path = Path(key(entry))
        try:
            size = path.stat().st_size
        except OSError:
            size = -1
        if (path.name, size) in seen:
            logger.info("skip duplicate upload %s", path.name)
            continue
        seen.add((path.name, size))
        unique.append(entry)
    return unique


class PeriodService:
    """Coordinates uploads, aggregation runs and period clean up.

    Runs for the same period must be serialised by the caller; the service
    keeps no per-period lock of its own.
    """

    def __init__(self, repository: PeriodRepository) -> None:
        self._repository = repository

    # ------------------------------------------------------------------
    # period lifecycle
    # ------------------------------------------------------------------
    def create_period(self, year_month: str) -> Period:
        return self._repository.create_period(year_month)

    def get_period(self, period_id: int) -> Period:
        period = self._repository.get_period(period_id)
        if period is None:
            raise PeriodNotFoundError(period_id)
        return period

    def list_periods(self) -> list[Period]:
        return self._repository.list_periods()

    def reset_period(self, period_id: int) -> None:
        period = self.get_period(period_id)
        self._repository.reset_period(period_id)
        self._remove_dir(period_upload_dir(period_id))
        logger.info("period %s (%s) reset", period_id, period.year_month)

    def delete_period(self, period_id: int) -> None:
        self.get_period(period_id)
        self._repository.delete_period(period_id)
        self._remove_dir(period_upload_dir(period_id))

    def clear_files(self, period_id: int, file_type: FileType) -> None:
        self.get_period(period_id)
        self._repository.clear_file_type(period_id, file_type)
        if file_type is FileType.ADJUSTMENT:
            self._remove_dir(adjustment_upload_dir(period_id))
        logger.info("period %s: cleared %s files", period_id, file_type.value)

    @staticmethod
    def _remove_dir(path: Path) -> None:
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except OSError as exc:
            logger.warning("failed to remove upload directory %s: %s", path, exc)

    # ------------------------------------------------------------------
    # ingestion
    # ------------------------------------------------------------------
    def ingest_contribution_file(
        self, period_id: int, path: Path, original_name: str, scheme: Scheme, part: Part
    ) -> ParseResult:
        return self._ingest(period_id, Path(path), original_name, scheme, part, FileType.NORMAL)

    def ingest_adjustment_file(
        self, period_id: int, path: Path, original_name: str, scheme: Scheme, part: Part
    ) -> ParseResult:
        return self._ingest(period_id, Path(path), original_name, scheme, part, FileType.ADJUSTMENT)

    def ingest_contribution_files(
        self, period_id: int, files: Sequence[tuple[Path, Scheme | str, Part | str]]
    ) -> list[BatchUploadItem]:
        """Import several normal files; each item reports its own outcome.

        Files with the same name and size as an earlier one in the batch
        are skipped.
        """

        self.get_period(period_id)
        items: list[BatchUploadItem] = []
        for path, scheme, part in _unique_uploads(files, key=lambda entry: entry[0]):
            path = Path(path)
            item = BatchUploadItem(original_name=path.name)
            try:
                item.scheme, item.part = Scheme(scheme), Part(part)
            except ValueError:
                item.error = "invalid scheme or part"
                items.append(item)
                continue
            items.append(self._batch_ingest(period_id, path, item, FileType.NORMAL))
        return items

    def ingest_adjustment_files(self, period_id: int, paths: Sequence[Path]) -> list[BatchUploadItem]:
        """Import adjustment exports, reading scheme and part from each file name."""

        self.get_period(period_id)
        items: list[BatchUploadItem] = []
        for path in _unique_uploads(paths, key=lambda entry: entry):
            path = Path(path)
            item = BatchUploadItem(original_name=path.name)
            try:
                item.scheme, item.part = classify_adjustment_filename(path.name)
            except LedgerError as exc:
                item.error = str(exc)
                items.append(item)
                continue
            items.append(self._batch_ingest(period_id, path, item, FileType.ADJUSTMENT))
        return items

    def _batch_ingest(self, period_id: int, path: Path, item: BatchUploadItem, file_type: FileType) -> BatchUploadItem:
        try:
            result = self._ingest(period_id, path, item.original_name, item.scheme, item.part, file_type)
        except LedgerError as exc:
            logger.warning("period %s: %s upload %s failed: %s", period_id, file_type.value, item.original_name, exc)
            item.error = str(exc)
            return item
        item.file_name = result.file.file_name
        item.imported = result.imported
        return item

    def _ingest(
        self,
        period_id: int,
        path: Path,
        original_name: str,
        scheme: Scheme,
        part: Part,
        file_type: FileType,
    ) -> ParseResult:
        self.get_period(period_id)
        if file_type is FileType.NORMAL:
            target_dir = period_upload_dir(period_id)
        else:
            target_dir = adjustment_upload_dir(period_id)
        stored = _store_upload(path, target_dir)

        try:
            rows = load_rows(stored)
            result = contribution_sheet.parse_rows(rows, period_id, scheme, part, file_type)
            source = SourceFile(
                period_id=period_id,
                file_name=stored.name,
                stored_path=str(stored),
                original_name=original_name,
                scheme=scheme,
                part=part,
                file_type=file_type,
                rows=len(result.records),
                uploaded_at=utcnow(),
            )
            if file_type is FileType.NORMAL:
                saved = self._repository.replace_scheme(period_id, scheme, part, source, result.records)
            else:
                saved = self._repository.append_source(period_id, source, result.records)
        except LedgerError:
            stored.unlink(missing_ok=True)
            raise

        logger.info(
            "period %s: imported %d %s rows for %s/%s from %s",
            period_id,
            len(result.records),
            file_type.value,
            part.value,
            scheme.value,
            original_name,
        )
        return ParseResult(file=saved, imported=len(result.records))

    def ingest_roster_file(self, period_id: int, path: Path, original_name: str) -> RosterParseResult:
        self.get_period(period_id)
        rows = load_rows(Path(path), label="花名册")
        result = roster_sheet.parse_rows(rows, period_id)
        self._repository.replace_roster(period_id, result.entries)
        logger.info("period %s: imported %d roster entries from %s", period_id, len(result.entries), original_name)
        return RosterParseResult(imported=len(result.entries))

    def import_latest_roster(self, period_id: int) -> RosterParseResult:
        """Copy the most recently uploaded roster of another period."""

        self.get_period(period_id)
        latest = self._repository.latest_roster(exclude_period_id=period_id)
        if not latest:
            raise RosterNotFoundError("no existing roster data found")
        entries = [
            RosterEntry(
                period_id=period_id,
                id_number=entry.id_number,
                name=entry.name,
                department=entry.department,
                title=entry.title,
                remarks=entry.remarks,
            )
            for entry in latest
        ]
        self._repository.replace_roster(period_id, entries)
        return RosterParseResult(imported=len(entries))

    def list_roster(self, period_id: int) -> list[RosterEntry]:
        self.get_period(period_id)
        return sorted(self._repository.load_roster(period_id), key=lambda entry: entry.id_number)

    def list_source_files(self, period_id: int, file_type: FileType | None = None) -> list[SourceFile]:
        self.get_period(period_id)
        return self._repository.list_source_files(period_id, file_type)

    # ------------------------------------------------------------------
    # aggregation
    # ------------------------------------------------------------------
    def process_period(self, period_id: int) -> ProcessOutput:
        self.get_period(period_id)
        records = self._repository.load_raw_records(period_id, FileType.NORMAL)
        if not records:
            raise NoRecordsError("no raw records found for period")

        roster = build_roster_index(self._repository.load_roster(period_id))
        result = aggregate_period(records, roster, period_id)
        self._repository.replace_aggregates(period_id, result.summaries, result.personal, result.unit)

        logger.info(
            "period %s processed: %d summaries, %d people",
            period_id,
            len(result.summaries),
            len(result.personal),
        )
        return ProcessOutput(
            period_id=period_id,
            summaries=result.summaries,
            personal=result.personal,
            unit=result.unit,
        )

    def process_adjustments(self, period_id: int) -> ProcessOutput:
        """Aggregate adjustment records and return every row of the period."""

        self.get_period(period_id)
        records = self._repository.load_raw_records(period_id, FileType.ADJUSTMENT)
        if not records:
            raise NoRecordsError("no adjustment records found for period")

        roster = build_roster_index(self._repository.load_roster(period_id))
        result = aggregate_adjustments(records, roster, period_id)
        self._repository.replace_adjustment_aggregates(period_id, result.summaries, result.personal, result.unit)
        logger.info("period %s: adjustments processed for %d people", period_id, len(result.personal))

        return ProcessOutput(
            period_id=period_id,
            summaries=self._repository.list_summaries(period_id),
            personal=self._repository.list_personal_charges(period_id),
            unit=self._repository.list_unit_charges(period_id),
        )

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    def list_summaries(self, period_id: int, is_adjustment: bool | None = None) -> list[PeriodSummary]:
        self.get_period(period_id)
        return self._repository.list_summaries(period_id, is_adjustment)

    def list_personal_charges(self, period_id: int, is_adjustment: bool | None = None) -> list[PersonalCharge]:
        self.get_period(period_id)
        return self._repository.list_personal_charges(period_id, is_adjustment)

    def list_unit_charges(self, period_id: int, is_adjustment: bool | None = None) -> list[UnitCharge]:
        self.get_period(period_id)
        return self._repository.list_unit_charges(period_id, is_adjustment)

    def scheme_charges(
        self, period_id: int, scheme: Scheme, part: Part, is_adjustment: bool | None = None
    ) -> list[SchemeChargeDetail]:
        """Per-person amounts of one scheme column, read from stored charges."""

        if part is Part.PERSONAL:
            column = PERSONAL_COLUMN.get(scheme)
            charges: list[PersonalCharge] | list[UnitCharge] = self.list_personal_charges(period_id, is_adjustment)
        else:
            column = UNIT_COLUMN.get(scheme)
            charges = self.list_unit_charges(period_id, is_adjustment)
        if column is None:
            return []
        return [
            SchemeChargeDetail(
                name=charge.name,
                id_number=charge.id_number,
                department=charge.department,
                base=charge.base,
                amount=getattr(charge, column),
            )
            for charge in charges
        ]

    # ------------------------------------------------------------------
    # exports
    # ------------------------------------------------------------------
    def export_charges(
        self, period_id: int, part: Part, directory: Path, is_adjustment: bool | None = None
    ) -> Path:
        period = self.get_period(period_id)
        if part is Part.PERSONAL:
            rows: list[PersonalCharge] | list[UnitCharge] = self.list_personal_charges(period_id, is_adjustment)
        else:
            rows = self.list_unit_charges(period_id, is_adjustment)
        path = Path(directory) / charges_xlsx.charges_filename(period.year_month, part)
        charges_xlsx.export_charges(path, part, rows)
        logger.info("period %s: exported %d %s charges to %s", period_id, len(rows), part.value, path)
        return path

    def export_scheme_charges(
        self, period_id: int, scheme: Scheme, part: Part, directory: Path, is_adjustment: bool | None = None
    ) -> Path:
        period = self.get_period(period_id)
        rows = self.scheme_charges(period_id, scheme, part, is_adjustment)
        path = Path(directory) / charges_xlsx.scheme_charges_filename(period.year_month, scheme, part)
        return charges_xlsx.export_scheme_charges(path, rows)

    def export_roster_template(self, directory: Path) -> Path:
        return roster_template.write_roster_template(Path(directory) / roster_template.TEMPLATE_FILENAME)

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self._repository.reset()


def _build_repository() -> PeriodRepository:
    database = get_settings().database_path
    if database:
        return DuckDBPeriodRepository(database)
    return InMemoryPeriodRepository()


_service: PeriodService | None = None


def get_period_service() -> PeriodService:
    """Return the singleton period service for the process."""

    global _service
    if _service is None:
        _service = PeriodService(_build_repository())
    return _service


def reset_period_state() -> None:
    """Reset the stored periods (used in tests)."""

    if _service is not None:
        _service.reset()
