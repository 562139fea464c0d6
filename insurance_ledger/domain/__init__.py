"""Domain layer definitions."""

from .periods import PeriodState, utcnow

__all__ = [
    "PeriodState",
    "utcnow",
]
