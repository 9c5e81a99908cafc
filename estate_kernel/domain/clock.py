"""
Clock -- injectable time source.

Responsibility:
    Services and engines never call ``datetime.now()`` or ``date.today()``;
    they ask the Clock carried on the EstateContext.  Business dates
    (installment due dates, overdue checks, sequence months) come from
    ``today()``; audit timestamps from ``now()``.

Architecture position:
    Kernel > Domain.  SystemClock is the only I/O boundary for time.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Abstract clock. ``now()`` is always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """Business date of the current instant."""
        return self.now().date()


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same instant until ``advance()``, ``advance_days()``
    or ``set_time()`` moves it.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._time = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def set_time(self, time: datetime) -> None:
        self._time = time

    def set_date(self, day: date) -> None:
        """Move to noon UTC of ``day``."""
        self._time = datetime(day.year, day.month, day.day, 12, 0, 0, tzinfo=timezone.utc)

    def advance(self, seconds: int = 1) -> None:
        self._time = self._time + timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._time = self._time + timedelta(days=days)
