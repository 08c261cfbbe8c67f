"""
Clock -- Injectable time source.

Responsibility:
    Lets the workflow service stamp ``created_at``/``updated_at``, compute SLA
    deadlines and classify SLA status without calling ``datetime.now()``
    directly.  Engines never read a clock at all; they receive ``now`` as a
    parameter.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the one sanctioned I/O boundary for
    time.

Failure modes:
    - ``DeterministicClock.set_time`` raises ValueError for naive datetimes.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Services receive a Clock through their constructor.  ``now()`` always
        returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current UTC time."""
        ...


class SystemClock(Clock):
    """Production clock returning the real system time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``
    or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        # Monday, so business-day arithmetic in tests starts on a weekday.
        self._current = fixed_time or datetime(
            2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc
        )
        if self._current.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware datetime")

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        if time.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware datetime")
        self._current = time

    def advance(self, seconds: float = 0, *, hours: float = 0, days: float = 0) -> datetime:
        """Advance the clock and return the new time."""
        self._current = self._current + timedelta(seconds=seconds, hours=hours, days=days)
        return self._current

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        return self.advance(1)
