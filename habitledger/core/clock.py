"""
Injected "today" for the obligation core.

All dates are calendar dates in one reference timezone chosen by the caller;
nothing in the core reads the wall clock directly.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def today(self) -> date: ...

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock evaluated in a single reference timezone."""

    def __init__(self, tz_name: str = "UTC"):
        self._tz = ZoneInfo(tz_name)

    def today(self) -> date:
        return datetime.now(self._tz).date()

    def now(self) -> datetime:
        return datetime.now(self._tz)


class FixedClock:
    """Settable clock for tests and replays."""

    def __init__(self, today: date, now: Optional[datetime] = None):
        self._today = today
        self._now = now

    def today(self) -> date:
        return self._today

    def now(self) -> datetime:
        if self._now is not None:
            return self._now
        return datetime(self._today.year, self._today.month, self._today.day, 12, 0, tzinfo=timezone.utc)

    def set(self, today: date) -> None:
        self._today = today
        self._now = None

    def advance(self, days: int = 1) -> date:
        self.set(self._today + timedelta(days=days))
        return self._today
