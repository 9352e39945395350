"""
Period arithmetic shared by every obligation view.

A period key is the first date of its bucket: the date itself (daily), the
Monday of its ISO week (weekly), or the first of its month (monthly). Keys are
the only thing completions are matched on; expand_period() exists for
calendar rendering.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import List, Optional, Union

from habitledger.core.errors import ValidationError
from habitledger.models.obligation import Obligation, Period


def parse_period(value: Union[str, Period, None]) -> Period:
    if isinstance(value, Period):
        return value
    if not value:
        raise ValidationError("period is required (daily, weekly or monthly)")
    try:
        return Period(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown period: {value!r} (expected daily, weekly or monthly)") from None


def _last_day(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _add_months(day: date, months: int) -> date:
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, _last_day(year, month)))


def period_key(day: date, period: Period) -> date:
    if period == Period.WEEKLY:
        return day - timedelta(days=day.weekday())
    if period == Period.MONTHLY:
        return day.replace(day=1)
    return day


def shift_period(key: date, period: Period, count: int) -> date:
    """Move a key by whole periods (negative goes back)."""
    if period == Period.WEEKLY:
        return key + timedelta(weeks=count)
    if period == Period.MONTHLY:
        return _add_months(key, count)
    return key + timedelta(days=count)


def expand_period(key: date, period: Period) -> List[date]:
    start = period_key(key, period)
    if period == Period.WEEKLY:
        return [start + timedelta(days=i) for i in range(7)]
    if period == Period.MONTHLY:
        return [start.replace(day=d) for d in range(1, _last_day(start.year, start.month) + 1)]
    return [start]


def next_due_date(from_date: date, period: Period) -> date:
    """+1 day, +7 days, or +1 calendar month (clamped to the month's last day)."""
    if period == Period.MONTHLY:
        return _add_months(from_date, 1)
    if period == Period.WEEKLY:
        return from_date + timedelta(days=7)
    return from_date + timedelta(days=1)


def in_window(obligation: Obligation, day: date) -> bool:
    if day < obligation.start_date:
        return False
    if obligation.end_date is not None and day > obligation.end_date:
        return False
    return True


def is_due_on(obligation: Obligation, day: date) -> bool:
    if not in_window(obligation, day):
        return False
    anchor = obligation.anchor_date
    if obligation.period == Period.WEEKLY:
        return day.weekday() == anchor.weekday()
    if obligation.period == Period.MONTHLY:
        # Anchor days past the end of a short month fall back to its last day.
        return day.day == min(anchor.day, _last_day(day.year, day.month))
    return True


def upcoming_due_date(obligation: Obligation, today: date) -> Optional[date]:
    """First day on or after today the obligation falls due; None past its window."""
    day = max(today, obligation.start_date)
    horizon = next_due_date(day, obligation.period)
    while day <= horizon:
        if is_due_on(obligation, day):
            return day
        day += timedelta(days=1)
    return None


def period_keys_between(start: date, end: date, period: Period) -> List[date]:
    """Keys of every period touching [start, end], oldest first."""
    if end < start:
        return []
    keys = []
    key = period_key(start, period)
    last = period_key(end, period)
    while key <= last:
        keys.append(key)
        key = shift_period(key, period, 1)
    return keys


def expected_period_count(start: date, as_of: date, period: Period) -> int:
    """
    Periods expected between start and as_of inclusive.

    Weekly and monthly use floor(days / 7) and floor(days / 30); the monthly
    figure is an approximation, not calendar-month exact.
    """
    if as_of < start:
        return 0
    days = (as_of - start).days + 1
    if period == Period.WEEKLY:
        return days // 7
    if period == Period.MONTHLY:
        return days // 30
    return days


def elapsed_keys(obligation: Obligation, today: date, floor: Optional[date] = None) -> List[date]:
    """
    Keys of periods inside the obligation window that ended before today's period.
    """
    first = max(obligation.start_date, floor) if floor else obligation.start_date
    current = period_key(today, obligation.period)
    last_day = current - timedelta(days=1)
    if obligation.end_date is not None:
        last_day = min(last_day, obligation.end_date)
    return period_keys_between(first, last_day, obligation.period)
