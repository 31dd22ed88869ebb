"""
Injectable time source.

Workflow services never call ``datetime.now()``; they take a ``Clock``.  The
clock decides the month used for requisition and delivery-ticket numbers,
every history timestamp and every decision / assignment / cancellation time.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError("Clock times must be timezone-aware")
    return value.astimezone(timezone.utc)


class Clock(ABC):
    """``now()`` returns a timezone-aware UTC ``datetime``."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Controlled clock for tests and replays.

    ``now()`` is stable until ``advance``, ``tick`` or ``set_time``.  Safe to
    share between worker threads.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._lock = threading.Lock()
        self._current = _require_aware(fixed_time or _DEFAULT_START)

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def set_time(self, time: datetime) -> None:
        with self._lock:
            self._current = _require_aware(time)

    def advance(self, seconds: float | timedelta = 1) -> datetime:
        step = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        with self._lock:
            self._current += step
            return self._current

    def tick(self) -> datetime:
        """Advance one second and return the new time."""
        return self.advance(1)
