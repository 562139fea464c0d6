"""Infrastructure layer exports."""

from .duckdb_store import DuckDBPeriodRepository
from .periods import InMemoryPeriodRepository, PeriodRepository

__all__ = [
    "DuckDBPeriodRepository",
    "InMemoryPeriodRepository",
    "PeriodRepository",
]
