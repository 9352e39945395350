"""
Obligation registry: owns Task and Challenge aggregates and routes
completion requests to the CompletionLedger under the obligation's lock.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple
from uuid import uuid4

from habitledger.core.clock import Clock
from habitledger.core.errors import (
    ChallengeStateError,
    NotAParticipantError,
    NotFoundError,
    ValidationError,
)
from habitledger.core.locks import KeyedLocks
from habitledger.core.logging import log_event
from habitledger.features.calendar.service import expand_period, parse_period
from habitledger.features.completions.service import CompletionLedger
from habitledger.features.obligations.ports import FriendGraph, ObligationStore
from habitledger.models.obligation import (
    AnyObligation,
    Challenge,
    CreateChallengeRequest,
    CreateTaskRequest,
    ObligationStats,
    ObligationStatus,
    Participant,
    ParticipantStatus,
    Period,
    ProgressSnapshot,
    Task,
)

CENTS = Decimal("0.01")


def normalize_amount(value) -> Decimal:
    try:
        amount = Decimal(str(value)) if value is not None else Decimal("0")
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid penalty amount: {value!r}") from None
    if not amount.is_finite():
        raise ValidationError(f"Invalid penalty amount: {value!r}")
    if amount < 0:
        raise ValidationError("Penalty amount must be >= 0")
    return amount.quantize(CENTS)


class ObligationRegistry:
    def __init__(
        self,
        store: ObligationStore,
        ledger: CompletionLedger,
        clock: Clock,
        friends: FriendGraph,
        locks: Optional[KeyedLocks] = None,
    ):
        self._store = store
        self._ledger = ledger
        self._clock = clock
        self._friends = friends
        self.locks = locks or KeyedLocks()

    # Creation ---------------------------------------------------------
    def create_task(self, owner_id: str, request: CreateTaskRequest) -> Task:
        title, period, start, end, amount = self._validate_common(
            request.title, request.period, request.start_date, request.end_date, request.penalty_amount
        )

        recipients = _dedupe(request.penalty_recipient_ids)
        if recipients and amount <= 0:
            raise ValidationError("Penalty recipients require a penalty amount greater than 0")
        if owner_id in recipients:
            raise ValidationError("A task owner cannot be their own penalty recipient")
        self._require_friends(owner_id, recipients, "penalty recipient")

        task = Task(
            obligation_id=str(uuid4()),
            owner_id=owner_id,
            title=title,
            description=request.description or "",
            period=period,
            start_date=start,
            end_date=end,
            created_at=self._clock.now(),
            created_on=self._clock.today(),
            status=ObligationStatus.ACTIVE,
            penalty_amount=amount,
            penalty_recipient_ids=recipients,
        )
        self._store.save(task)
        log_event(
            "info",
            "task.created",
            user_id=owner_id,
            obligation_id=task.obligation_id,
            event_type="task.created",
            extra={"period": period.value, "penalty_amount": amount},
        )
        return task

    def create_challenge(self, creator_id: str, request: CreateChallengeRequest) -> Challenge:
        title, period, start, end, amount = self._validate_common(
            request.title, request.period, request.start_date, request.end_date, request.penalty_amount
        )

        invited = _dedupe(request.invited_user_ids)
        if not invited:
            raise ValidationError("A challenge needs at least one invited friend")
        if creator_id in invited:
            raise ValidationError("The creator cannot invite themselves")
        self._require_friends(creator_id, invited, "invitee")

        now = self._clock.now()
        challenge = Challenge(
            obligation_id=str(uuid4()),
            owner_id=creator_id,
            title=title,
            description=request.description or "",
            period=period,
            start_date=start,
            end_date=end,
            created_at=now,
            created_on=self._clock.today(),
            status=ObligationStatus.PENDING,
            penalty_amount=amount,
            invited_user_ids=invited,
            participants={
                creator_id: Participant(
                    user_id=creator_id, status=ParticipantStatus.ACCEPTED, responded_at=now
                )
            },
        )
        self._store.save(challenge)
        log_event(
            "info",
            "challenge.created",
            user_id=creator_id,
            obligation_id=challenge.obligation_id,
            event_type="challenge.created",
            extra={"period": period.value, "invited": len(invited)},
        )
        return challenge

    # Completion -------------------------------------------------------
    def mark_complete(self, obligation_id: str, user_id: str, day: date) -> ProgressSnapshot:
        with self.locks.hold(obligation_id):
            obligation = self.get(obligation_id)
            self._require_open(obligation)
            self.resolve_participant(obligation, user_id)
            snapshot = self._ledger.complete(obligation, user_id, day)
            if snapshot.changed:
                self._store.save(obligation)
            return snapshot

    def mark_incomplete(self, obligation_id: str, user_id: str, day: date) -> ProgressSnapshot:
        with self.locks.hold(obligation_id):
            obligation = self.get(obligation_id)
            self._require_open(obligation)
            self.resolve_participant(obligation, user_id)
            snapshot = self._ledger.uncomplete(obligation, user_id, day)
            self._store.save(obligation)
            return snapshot

    # Queries ----------------------------------------------------------
    def get(self, obligation_id: str) -> AnyObligation:
        obligation = self._store.load(obligation_id)
        if obligation is None:
            raise NotFoundError(f"Obligation not found: {obligation_id}")
        return obligation

    def get_challenge(self, challenge_id: str) -> Challenge:
        obligation = self.get(challenge_id)
        if not isinstance(obligation, Challenge):
            raise NotFoundError(f"Challenge not found: {challenge_id}")
        return obligation

    def list_for_user(self, user_id: str) -> List[AnyObligation]:
        items = self._store.query_for_member(user_id)
        return sorted(items, key=lambda o: (o.created_at, o.obligation_id))

    def stats(self, obligation_id: str, user_id: str, as_of: Optional[date] = None) -> ObligationStats:
        obligation = self.get(obligation_id)
        self.resolve_participant(obligation, user_id)
        return self._ledger.stats(obligation, user_id, as_of)

    def completed_days(self, obligation_id: str, user_id: str) -> List[date]:
        """Every calendar date covered by the participant's completed periods."""
        obligation = self.get(obligation_id)
        participant = self.resolve_participant(obligation, user_id)
        days: List[date] = []
        for key in participant.progress.sorted_keys():
            days.extend(expand_period(key, obligation.period))
        return days

    def resolve_participant(self, obligation: AnyObligation, user_id: str) -> Participant:
        participant = obligation.participant(user_id)
        if participant is None or participant.status != ParticipantStatus.ACCEPTED:
            raise NotAParticipantError(
                f"{user_id} is not an accepted participant of {obligation.obligation_id}"
            )
        return participant

    def save(self, obligation: AnyObligation) -> None:
        self._store.save(obligation)

    def all(self) -> List[AnyObligation]:
        return list(self._store.all())

    # Internal helpers -------------------------------------------------
    def _validate_common(
        self,
        title: Optional[str],
        period_value,
        start: Optional[date],
        end: Optional[date],
        amount_value,
    ) -> Tuple[str, Period, date, Optional[date], Decimal]:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title must not be empty")
        period = parse_period(period_value)
        start = start or self._clock.today()
        if end is not None and end <= start:
            raise ValidationError("end_date must be after start_date")
        amount = normalize_amount(amount_value)
        return title, period, start, end, amount

    def _require_friends(self, user_id: str, others: List[str], role: str) -> None:
        strangers = [o for o in others if not self._friends.are_friends(user_id, o)]
        if strangers:
            raise ValidationError(f"Every {role} must be a friend of {user_id}: {', '.join(strangers)}")

    @staticmethod
    def _require_open(obligation: AnyObligation) -> None:
        if obligation.is_closed:
            raise ChallengeStateError(
                f"{obligation.obligation_id} is {obligation.status.value} and accepts no completion changes"
            )


def _dedupe(values: Optional[List[str]]) -> List[str]:
    seen = []
    for value in values or []:
        if value and value not in seen:
            seen.append(value)
    return seen
