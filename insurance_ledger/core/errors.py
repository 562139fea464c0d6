"""Exception hierarchy for ingestion, aggregation and persistence."""

from __future__ import annotations


class LedgerError(Exception):
    """Base exception for all ledger errors."""


class StructuralError(LedgerError):
    """The uploaded sheet does not have the expected shape."""


class MissingWorksheetError(StructuralError):
    """The workbook has no worksheet to read."""


class InsufficientRowsError(StructuralError):
    """The sheet has a header but no data rows."""


class UnrecognisedFilenameError(StructuralError):
    """Scheme or payment part cannot be read from an upload's file name."""


class MissingColumnError(StructuralError):
    def __init__(self, key: str, message: str | None = None) -> None:
        self.key = key
        super().__init__(message or f"missing required column: {key}")


class ContentError(LedgerError):
    """The sheet was readable but carries nothing usable."""


class NoValidRowsError(ContentError):
    """Every data row was filtered out."""


class NoRecordsError(ContentError):
    """The period has no raw records of the requested classification."""


class EmptyExportError(ContentError):
    """There are no rows to export."""


class CompletenessError(LedgerError):
    """Required uploads are missing for the period."""


class MissingSchemeError(CompletenessError):
    def __init__(self, part: str, scheme: str) -> None:
        self.part = part
        self.scheme = scheme
        super().__init__(f"missing required data for part={part} scheme={scheme}")


class PersistenceError(LedgerError):
    def __init__(self, step: str, cause: Exception) -> None:
        self.step = step
        super().__init__(f"{step}: {cause}")


class PeriodNotFoundError(LedgerError):
    def __init__(self, period_id: int) -> None:
        self.period_id = period_id
        super().__init__(f"period {period_id} not found")


class RosterNotFoundError(LedgerError):
    """No roster data exists to import from."""
