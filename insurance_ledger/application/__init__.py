"""Application services."""

from .periods import PeriodService, get_period_service, reset_period_state

__all__ = [
    "PeriodService",
    "get_period_service",
    "reset_period_state",
]
