from datetime import date

import pytest

from habitledger.core.errors import CatchUpRequiredError, FutureDateError, OutOfRangeError


def _accepted_challenge(services, make_challenge, **overrides):
    challenge = make_challenge(**overrides)
    services.challenges.respond(challenge.obligation_id, "bob", True)
    return challenge


def test_scenario_daily_streaks_after_a_gap(services, make_task):
    task = make_task(start_date=date(2024, 1, 1))
    for day in (date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 4)):
        services.registry.mark_complete(task.obligation_id, "alice", day)

    assert services.ledger.current_streak(task, "alice", date(2024, 1, 4)) == 1
    assert services.ledger.longest_streak(task, "alice") == 2


def test_completion_is_idempotent(services, make_task):
    task = make_task()
    first = services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 3))
    again = services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 3))

    assert first.changed is True
    assert again.changed is False
    assert again.completed_keys == [date(2024, 1, 3)]


def test_future_date_rejected(services, make_task):
    task = make_task()
    with pytest.raises(FutureDateError):
        services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 11))


def test_dates_outside_window_rejected(services, make_task):
    task = make_task(start_date=date(2024, 1, 5), end_date=date(2024, 1, 8))
    with pytest.raises(OutOfRangeError):
        services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 4))
    with pytest.raises(OutOfRangeError):
        services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 9))


def test_uncomplete_absent_key_is_noop(services, make_task):
    task = make_task()
    snapshot = services.registry.mark_incomplete(task.obligation_id, "alice", date(2024, 1, 2))
    assert snapshot.changed is False
    assert snapshot.completed_keys == []


def test_complete_then_uncomplete_round_trip(services, make_task):
    task = make_task()
    services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 1))
    before = set(task.owner.completed_keys)

    services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 5))
    services.registry.mark_incomplete(task.obligation_id, "alice", date(2024, 1, 5))

    assert task.owner.completed_keys == before


def test_weekly_completions_collapse_to_one_key(services, make_task):
    task = make_task(period="weekly", start_date=date(2024, 1, 1))
    services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 3))
    snapshot = services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 5))

    assert snapshot.changed is False
    assert snapshot.completed_keys == [date(2024, 1, 1)]

    services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 9))
    assert services.ledger.current_streak(task, "alice", date(2024, 1, 10)) == 2
    assert services.ledger.longest_streak(task, "alice") == 2


def test_current_streak_drops_going_back_past_gap(services, make_task):
    task = make_task()
    for d in (1, 2, 3, 5, 6, 7):
        services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, d))

    streaks = [services.ledger.current_streak(task, "alice", date(2024, 1, d)) for d in (7, 6, 5, 4)]
    assert streaks == [3, 2, 1, 0]
    assert all(a >= b for a, b in zip(streaks, streaks[1:]))
    assert services.ledger.longest_streak(task, "alice") == 3


class TestCompletionRate:
    def test_daily_rate(self, services, make_task):
        task = make_task(start_date=date(2024, 1, 1))
        for d in range(1, 6):
            services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, d))
        assert services.ledger.completion_rate(task, "alice", date(2024, 1, 10)) == 50.0

    def test_zero_expected_periods_gives_zero(self, services, make_task):
        task = make_task(period="weekly", start_date=date(2024, 1, 1))
        services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 2))
        assert services.ledger.completion_rate(task, "alice", date(2024, 1, 6)) == 0.0

    def test_rate_is_capped_at_100(self, services, make_task):
        task = make_task(period="weekly", start_date=date(2024, 1, 1))
        services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 1))
        services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 8))
        assert services.ledger.completion_rate(task, "alice", date(2024, 1, 10)) == 100.0


class TestCatchUp:
    def test_scenario_oldest_owed_period_first(self, services, clock, make_challenge):
        clock.set(date(2024, 1, 6))
        challenge = _accepted_challenge(services, make_challenge, start_date=date(2024, 1, 1))
        cid = challenge.obligation_id

        services.registry.mark_complete(cid, "bob", date(2024, 1, 1))
        services.registry.mark_complete(cid, "bob", date(2024, 1, 2))
        assert challenge.participant("bob").last_uncompleted_date == date(2024, 1, 3)

        with pytest.raises(CatchUpRequiredError) as exc:
            services.registry.mark_complete(cid, "bob", date(2024, 1, 5))
        assert exc.value.last_uncompleted_date == date(2024, 1, 3)

        snapshot = services.registry.mark_complete(cid, "bob", date(2024, 1, 3))
        assert snapshot.last_uncompleted_date == date(2024, 1, 4)

    def test_backlog_clears_to_none(self, services, clock, make_challenge):
        clock.set(date(2024, 1, 4))
        challenge = _accepted_challenge(services, make_challenge, start_date=date(2024, 1, 1))
        cid = challenge.obligation_id

        for d in (1, 2, 3):
            snapshot = services.registry.mark_complete(cid, "bob", date(2024, 1, d))
        assert snapshot.last_uncompleted_date is None

        # Nothing owed: today's period is open.
        services.registry.mark_complete(cid, "bob", date(2024, 1, 4))

    def test_uncomplete_reintroduces_owed_period(self, services, clock, make_challenge):
        clock.set(date(2024, 1, 3))
        challenge = _accepted_challenge(services, make_challenge, start_date=date(2024, 1, 1))
        cid = challenge.obligation_id
        services.registry.mark_complete(cid, "bob", date(2024, 1, 1))
        services.registry.mark_complete(cid, "bob", date(2024, 1, 2))
        keys_before = set(challenge.participant("bob").completed_keys)

        services.registry.mark_complete(cid, "bob", date(2024, 1, 3))
        snapshot = services.registry.mark_incomplete(cid, "bob", date(2024, 1, 2))
        assert snapshot.last_uncompleted_date == date(2024, 1, 2)

        services.registry.mark_complete(cid, "bob", date(2024, 1, 2))
        services.registry.mark_incomplete(cid, "bob", date(2024, 1, 3))
        assert challenge.participant("bob").completed_keys == keys_before

    def test_progress_is_per_participant(self, services, clock, make_challenge):
        clock.set(date(2024, 1, 2))
        challenge = _accepted_challenge(services, make_challenge, start_date=date(2024, 1, 1))
        cid = challenge.obligation_id

        services.registry.mark_complete(cid, "alice", date(2024, 1, 1))

        assert challenge.participant("alice").completed_keys == {date(2024, 1, 1)}
        assert challenge.participant("bob").completed_keys == set()
        assert services.ledger.outstanding(challenge, "bob") == [date(2024, 1, 1)]

    def test_tasks_do_not_enforce_catch_up(self, services, make_task):
        task = make_task(start_date=date(2024, 1, 1))
        snapshot = services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 9))
        assert snapshot.last_uncompleted_date is None
