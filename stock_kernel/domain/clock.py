"""
Injectable time source.

Services take a ``Clock`` in their constructor instead of calling
``datetime.now()``: NCR and document numbering use the clock's year,
resolved_at / closed_at / dispatched_at stamps come from it, and a manual
NCR is placed in a period by its clock-stamped created_at.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

DEFAULT_TEST_TIME = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """``now()`` is always timezone-aware."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        """Calendar date of ``now()`` in UTC."""
        return self.now().astimezone(timezone.utc).date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests; defaults to 2025-01-15 12:00 UTC.

    Time only moves through ``advance()`` and ``set_time()``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)
