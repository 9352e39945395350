from datetime import date, datetime, timedelta, timezone

import pytest

from habitledger.core.errors import ValidationError
from habitledger.features.calendar.service import (
    elapsed_keys,
    expand_period,
    expected_period_count,
    is_due_on,
    next_due_date,
    parse_period,
    period_key,
    period_keys_between,
    shift_period,
    upcoming_due_date,
)
from habitledger.models.obligation import ObligationStatus, Period, Task


def _task(period, start, end=None):
    return Task(
        obligation_id="t1",
        owner_id="alice",
        title="t",
        period=period,
        start_date=start,
        end_date=end,
        created_at=datetime(start.year, start.month, start.day, tzinfo=timezone.utc),
        status=ObligationStatus.ACTIVE,
    )


class TestPeriodKey:
    def test_daily_key_is_the_date(self):
        assert period_key(date(2024, 3, 5), Period.DAILY) == date(2024, 3, 5)

    def test_weekly_key_is_monday(self):
        # 2024-01-10 is a Wednesday
        assert period_key(date(2024, 1, 10), Period.WEEKLY) == date(2024, 1, 8)
        assert period_key(date(2024, 1, 8), Period.WEEKLY) == date(2024, 1, 8)
        assert period_key(date(2024, 1, 14), Period.WEEKLY) == date(2024, 1, 8)

    def test_monthly_key_is_first_of_month(self):
        assert period_key(date(2024, 2, 29), Period.MONTHLY) == date(2024, 2, 1)

    def test_every_day_of_a_week_shares_one_key(self):
        monday = date(2024, 4, 1)
        days = [monday + timedelta(days=i) for i in range(7)]
        for earlier in days:
            for later in days:
                if earlier < later:
                    assert period_key(earlier, Period.WEEKLY) == period_key(later, Period.WEEKLY)

    def test_key_is_stable_under_recomputation(self):
        for period in Period:
            key = period_key(date(2024, 5, 17), period)
            assert period_key(key, period) == key


def test_parse_period_is_case_insensitive():
    assert parse_period(" Weekly ") == Period.WEEKLY
    assert parse_period(Period.MONTHLY) == Period.MONTHLY


@pytest.mark.parametrize("value", ["", None, "yearly", "fortnightly"])
def test_parse_period_rejects_unknown(value):
    with pytest.raises(ValidationError):
        parse_period(value)


def test_expand_period_shapes():
    assert expand_period(date(2024, 1, 3), Period.DAILY) == [date(2024, 1, 3)]

    week = expand_period(date(2024, 1, 8), Period.WEEKLY)
    assert week[0] == date(2024, 1, 8) and week[-1] == date(2024, 1, 14)
    assert len(week) == 7

    february = expand_period(date(2024, 2, 1), Period.MONTHLY)
    assert len(february) == 29
    assert february[-1] == date(2024, 2, 29)


def test_next_due_date_clamps_month_end():
    assert next_due_date(date(2024, 1, 31), Period.DAILY) == date(2024, 2, 1)
    assert next_due_date(date(2024, 1, 31), Period.WEEKLY) == date(2024, 2, 7)
    assert next_due_date(date(2024, 1, 31), Period.MONTHLY) == date(2024, 2, 29)
    assert next_due_date(date(2023, 1, 31), Period.MONTHLY) == date(2023, 2, 28)
    assert next_due_date(date(2024, 3, 15), Period.MONTHLY) == date(2024, 4, 15)


def test_shift_period_moves_whole_periods():
    assert shift_period(date(2024, 1, 8), Period.WEEKLY, -1) == date(2024, 1, 1)
    assert shift_period(date(2024, 1, 1), Period.MONTHLY, 13) == date(2025, 2, 1)
    assert shift_period(date(2024, 3, 1), Period.DAILY, -1) == date(2024, 2, 29)


class TestIsDueOn:
    def test_outside_window_is_never_due(self):
        task = _task(Period.DAILY, date(2024, 1, 5), end=date(2024, 1, 10))
        assert not is_due_on(task, date(2024, 1, 4))
        assert not is_due_on(task, date(2024, 1, 11))
        assert is_due_on(task, date(2024, 1, 10))

    def test_weekly_matches_anchor_weekday(self):
        task = _task(Period.WEEKLY, date(2024, 1, 3))  # Wednesday
        assert is_due_on(task, date(2024, 1, 10))
        assert not is_due_on(task, date(2024, 1, 11))

    def test_monthly_anchor_31_falls_back_in_february(self):
        task = _task(Period.MONTHLY, date(2024, 1, 31))
        assert is_due_on(task, date(2024, 2, 29))
        assert not is_due_on(task, date(2024, 2, 28))

        non_leap = _task(Period.MONTHLY, date(2023, 1, 31))
        assert is_due_on(non_leap, date(2023, 2, 28))

    def test_monthly_anchor_31_on_thirty_day_month(self):
        task = _task(Period.MONTHLY, date(2024, 1, 31))
        assert is_due_on(task, date(2024, 4, 30))
        assert is_due_on(task, date(2024, 5, 31))
        assert not is_due_on(task, date(2024, 5, 30))


class TestUpcomingDueDate:
    def test_daily_is_today_once_started(self):
        task = _task(Period.DAILY, date(2024, 1, 5))
        assert upcoming_due_date(task, date(2024, 1, 10)) == date(2024, 1, 10)
        assert upcoming_due_date(task, date(2024, 1, 1)) == date(2024, 1, 5)

    def test_weekly_follows_start_weekday(self):
        # Started on a Wednesday
        task = _task(Period.WEEKLY, date(2024, 1, 3))
        assert upcoming_due_date(task, date(2024, 1, 4)) == date(2024, 1, 10)
        assert upcoming_due_date(task, date(2024, 1, 10)) == date(2024, 1, 10)

    def test_monthly_clamps_to_short_month(self):
        task = _task(Period.MONTHLY, date(2024, 1, 31))
        assert upcoming_due_date(task, date(2024, 2, 1)) == date(2024, 2, 29)
        assert upcoming_due_date(task, date(2024, 3, 1)) == date(2024, 3, 31)

    def test_none_after_window_closes(self):
        task = _task(Period.WEEKLY, date(2024, 1, 1), end=date(2024, 1, 10))
        assert upcoming_due_date(task, date(2024, 1, 9)) is None
        assert upcoming_due_date(task, date(2024, 1, 8)) == date(2024, 1, 8)


def test_period_keys_between_covers_partial_buckets():
    keys = period_keys_between(date(2024, 1, 10), date(2024, 1, 22), Period.WEEKLY)
    assert keys == [date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)]
    assert period_keys_between(date(2024, 1, 10), date(2024, 1, 9), Period.DAILY) == []


def test_expected_period_count_uses_day_approximations():
    start = date(2024, 1, 1)
    assert expected_period_count(start, date(2024, 1, 1), Period.DAILY) == 1
    assert expected_period_count(start, date(2024, 1, 6), Period.WEEKLY) == 0
    assert expected_period_count(start, date(2024, 1, 7), Period.WEEKLY) == 1
    assert expected_period_count(start, date(2024, 1, 29), Period.MONTHLY) == 0
    assert expected_period_count(start, date(2024, 1, 30), Period.MONTHLY) == 1
    assert expected_period_count(start, date(2023, 12, 31), Period.DAILY) == 0


def test_elapsed_keys_stop_before_todays_period():
    task = _task(Period.DAILY, date(2024, 1, 1))
    assert elapsed_keys(task, date(2024, 1, 4)) == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]

    weekly = _task(Period.WEEKLY, date(2024, 1, 1))
    assert elapsed_keys(weekly, date(2024, 1, 10)) == [date(2024, 1, 1)]

    bounded = _task(Period.DAILY, date(2024, 1, 1), end=date(2024, 1, 2))
    assert elapsed_keys(bounded, date(2024, 1, 10)) == [date(2024, 1, 1), date(2024, 1, 2)]
