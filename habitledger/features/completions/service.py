"""
Completion accounting for one (obligation, participant) pair.

The completed-key set lives on the participant's CompletionRecord inside the
obligation aggregate, so the ledger reads it fresh on every call. Callers are
expected to hold the obligation's lock around complete()/uncomplete().

Invariants:
- no completed key lies in a period after today's
- for catch-up obligations, a key is only inserted when it is the oldest
  outstanding elapsed period, or when nothing is outstanding
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from habitledger.core.clock import Clock
from habitledger.core.errors import (
    CatchUpRequiredError,
    FutureDateError,
    NotAParticipantError,
    OutOfRangeError,
)
from habitledger.core.logging import log_event
from habitledger.features.calendar.service import (
    elapsed_keys,
    expected_period_count,
    in_window,
    period_key,
    shift_period,
)
from habitledger.models.obligation import (
    CompletionRecord,
    Obligation,
    ObligationStats,
    ProgressSnapshot,
)


class CompletionLedger:
    """Validates and applies completions; derives streaks and completion rate."""

    def __init__(self, clock: Clock):
        self._clock = clock

    def complete(self, obligation: Obligation, participant_id: str, day: date) -> ProgressSnapshot:
        today = self._clock.today()
        if day > today:
            raise FutureDateError(f"{day.isoformat()} is after today ({today.isoformat()})")
        if not in_window(obligation, day):
            raise OutOfRangeError(
                f"{day.isoformat()} is outside {obligation.start_date.isoformat()}"
                f"..{obligation.end_date.isoformat() if obligation.end_date else 'open'}"
            )

        record = self._record(obligation, participant_id)
        key = period_key(day, obligation.period)

        if key in record.completed_keys:
            self.refresh(obligation, record, today)
            return self._snapshot(obligation, participant_id, key, record, changed=False)

        if obligation.requires_catch_up:
            self.refresh(obligation, record, today)
            owed = record.last_uncompleted_date
            if owed is not None and key != owed:
                raise CatchUpRequiredError(owed)

        record.completed_keys.add(key)
        self.refresh(obligation, record, today)

        log_event(
            "info",
            "completion.marked",
            user_id=participant_id,
            obligation_id=obligation.obligation_id,
            event_type="completion.marked",
            extra={"period_key": key.isoformat(), "last_uncompleted": record.last_uncompleted_date},
        )
        return self._snapshot(obligation, participant_id, key, record, changed=True)

    def uncomplete(self, obligation: Obligation, participant_id: str, day: date) -> ProgressSnapshot:
        """Remove the key for `day`; absent keys are a no-op."""
        record = self._record(obligation, participant_id)
        key = period_key(day, obligation.period)

        changed = key in record.completed_keys
        if changed:
            record.completed_keys.discard(key)
            log_event(
                "info",
                "completion.cleared",
                user_id=participant_id,
                obligation_id=obligation.obligation_id,
                event_type="completion.cleared",
                extra={"period_key": key.isoformat()},
            )
        self.refresh(obligation, record, self._clock.today())
        return self._snapshot(obligation, participant_id, key, record, changed=changed)

    def refresh(self, obligation: Obligation, record: CompletionRecord, today: Optional[date] = None) -> Optional[date]:
        """Recompute last_uncompleted_date as the oldest elapsed, unmarked period."""
        if not obligation.requires_catch_up:
            record.last_uncompleted_date = None
            return None
        today = today or self._clock.today()
        owed = None
        for key in elapsed_keys(obligation, today):
            if key not in record.completed_keys:
                owed = key
                break
        record.last_uncompleted_date = owed
        return owed

    def outstanding(self, obligation: Obligation, participant_id: str, today: Optional[date] = None) -> List[date]:
        """Elapsed periods the participant has not completed, oldest first."""
        record = self._record(obligation, participant_id)
        today = today or self._clock.today()
        return [k for k in elapsed_keys(obligation, today) if k not in record.completed_keys]

    def current_streak(self, obligation: Obligation, participant_id: str, as_of: Optional[date] = None) -> int:
        keys = self._record(obligation, participant_id).completed_keys
        key = period_key(as_of or self._clock.today(), obligation.period)
        streak = 0
        while key in keys:
            streak += 1
            key = shift_period(key, obligation.period, -1)
        return streak

    def longest_streak(self, obligation: Obligation, participant_id: str) -> int:
        ordered = self._record(obligation, participant_id).sorted_keys()
        if not ordered:
            return 0
        longest = current = 1
        for prev, key in zip(ordered, ordered[1:]):
            if key == shift_period(prev, obligation.period, 1):
                current += 1
                longest = max(longest, current)
            else:
                current = 1
        return longest

    def completion_rate(self, obligation: Obligation, participant_id: str, as_of: Optional[date] = None) -> float:
        as_of = as_of or self._clock.today()
        expected = expected_period_count(obligation.start_date, as_of, obligation.period)
        if expected == 0:
            return 0.0
        first = period_key(obligation.start_date, obligation.period)
        last = period_key(as_of, obligation.period)
        completed = sum(
            1 for k in self._record(obligation, participant_id).completed_keys if first <= k <= last
        )
        return min(100.0, 100.0 * completed / expected)

    def stats(self, obligation: Obligation, participant_id: str, as_of: Optional[date] = None) -> ObligationStats:
        as_of = as_of or self._clock.today()
        record = self._record(obligation, participant_id)
        return ObligationStats(
            obligation_id=obligation.obligation_id,
            user_id=participant_id,
            total_completions=len(record.completed_keys),
            current_streak=self.current_streak(obligation, participant_id, as_of),
            longest_streak=self.longest_streak(obligation, participant_id),
            completion_rate=self.completion_rate(obligation, participant_id, as_of),
            penalty_amount=obligation.penalty_amount,
        )

    # Internal helpers -------------------------------------------------
    @staticmethod
    def _record(obligation: Obligation, participant_id: str) -> CompletionRecord:
        participant = obligation.participant(participant_id)
        if participant is None:
            raise NotAParticipantError(
                f"{participant_id} has no membership in {obligation.obligation_id}"
            )
        return participant.progress

    @staticmethod
    def _snapshot(
        obligation: Obligation,
        participant_id: str,
        key: date,
        record: CompletionRecord,
        *,
        changed: bool,
    ) -> ProgressSnapshot:
        return ProgressSnapshot(
            obligation_id=obligation.obligation_id,
            user_id=participant_id,
            period_key=key,
            completed_keys=record.sorted_keys(),
            last_uncompleted_date=record.last_uncompleted_date,
            changed=changed,
        )
