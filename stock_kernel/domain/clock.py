"""
Time source for the stock ledger.

Batch ``created_at`` decides which lot FIFO and LIFO consume first, and
"today" decides which lots FEFO treats as expired.  Both are read from a
Clock handed to the service, never from ``datetime.now()``, so a test can
lay down batches one second apart and know their consumption order.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current instant, timezone-aware UTC."""

    def today(self) -> date:
        """UTC calendar date used as the expiry cut-off."""
        return self.now().astimezone(timezone.utc).date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Stands still until told to move."""

    def __init__(self, start: datetime | None = None):
        self._current = start or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)
