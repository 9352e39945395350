from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional

from habitledger.core.clock import Clock
from habitledger.core.errors import (
    AlreadyRespondedError,
    ChallengeStateError,
    NotAParticipantError,
    ValidationError,
)
from habitledger.core.logging import log_event
from habitledger.features.completions.service import CompletionLedger
from habitledger.features.obligations.ports import FriendGraph
from habitledger.features.obligations.service import ObligationRegistry
from habitledger.models.obligation import (
    Challenge,
    ObligationStatus,
    Participant,
    ParticipantStatus,
)

VISIBILITY_BUCKETS = ("invited", "waiting", "active", "rejected", "finished")


def visibility(challenge: Challenge, user_id: str) -> Optional[str]:
    """
    Which list a user sees the challenge under, or None for strangers.

    invited: pending and the user has not answered
    waiting: pending and the user accepted, others still silent
    active: the challenge is running
    """
    if not challenge.is_member(user_id):
        return None
    response = challenge.response_of(user_id)
    status = challenge.status
    if status == ObligationStatus.PENDING:
        if response == ParticipantStatus.PENDING:
            return "invited"
        if response == ParticipantStatus.ACCEPTED:
            return "waiting"
        return "rejected"
    if status == ObligationStatus.ACTIVE:
        return "active" if response == ParticipantStatus.ACCEPTED else "rejected"
    if status == ObligationStatus.REJECTED:
        return "rejected"
    return "finished"


class ChallengeLifecycle:
    """
    State machine for multi-party challenges.

    pending -> active once every invitee answered and someone accepted,
    pending -> rejected once every invitee declined,
    active -> completed | failed on terminate().
    """

    def __init__(
        self,
        registry: ObligationRegistry,
        ledger: CompletionLedger,
        clock: Clock,
        friends: FriendGraph,
    ):
        self._registry = registry
        self._ledger = ledger
        self._clock = clock
        self._friends = friends

    def invite(self, challenge_id: str, user_ids: Iterable[str]) -> Challenge:
        """Add invitees while the challenge is still being set up (nobody has answered yet)."""
        with self._registry.locks.hold(challenge_id):
            challenge = self._registry.get_challenge(challenge_id)
            if challenge.status != ObligationStatus.PENDING or self._responses_started(challenge):
                raise ChallengeStateError("Invitations are closed for this challenge")

            added = []
            for user_id in user_ids:
                if not user_id or user_id in challenge.invited_user_ids or user_id in added:
                    continue
                if user_id == challenge.creator_id:
                    raise ValidationError("The creator cannot invite themselves")
                if not self._friends.are_friends(challenge.creator_id, user_id):
                    raise ValidationError(f"Every invitee must be a friend of {challenge.creator_id}: {user_id}")
                added.append(user_id)

            if added:
                challenge.invited_user_ids.extend(added)
                self._registry.save(challenge)
                log_event(
                    "info",
                    "challenge.invited",
                    user_id=challenge.creator_id,
                    obligation_id=challenge_id,
                    event_type="challenge.invited",
                    extra={"invited": ",".join(added)},
                )
            return challenge

    def respond(self, challenge_id: str, user_id: str, accept: bool) -> Challenge:
        with self._registry.locks.hold(challenge_id):
            challenge = self._registry.get_challenge(challenge_id)
            if user_id not in challenge.invited_user_ids and user_id != challenge.creator_id:
                raise NotAParticipantError(f"{user_id} was not invited to {challenge_id}")
            if challenge.response_of(user_id) != ParticipantStatus.PENDING:
                raise AlreadyRespondedError(f"{user_id} already responded to {challenge_id}")
            if challenge.status != ObligationStatus.PENDING:
                raise ChallengeStateError(f"Challenge {challenge_id} is {challenge.status.value}")

            participant = challenge.participants.get(user_id)
            if participant is None:
                participant = Participant(user_id=user_id)
                challenge.participants[user_id] = participant
            participant.status = ParticipantStatus.ACCEPTED if accept else ParticipantStatus.REJECTED
            participant.responded_at = self._clock.now()

            log_event(
                "info",
                "challenge.responded",
                user_id=user_id,
                obligation_id=challenge_id,
                event_type="challenge.responded",
                extra={"accepted": accept},
            )

            self._reevaluate(challenge)
            self._registry.save(challenge)
            return challenge

    def roster(self, challenge_id: str) -> List[Participant]:
        """Creator first, then invitees in invite order; silent invitees appear as pending."""
        challenge = self._registry.get_challenge(challenge_id)
        roster = []
        for user_id in [challenge.creator_id] + challenge.invited_user_ids:
            participant = challenge.participants.get(user_id)
            roster.append(participant if participant is not None else Participant(user_id=user_id))
        return roster

    def visibility(self, challenge_id: str, user_id: str) -> Optional[str]:
        return visibility(self._registry.get_challenge(challenge_id), user_id)

    def list_by_visibility(self, user_id: str) -> Dict[str, List[Challenge]]:
        buckets: Dict[str, List[Challenge]] = {name: [] for name in VISIBILITY_BUCKETS}
        for obligation in self._registry.list_for_user(user_id):
            if not isinstance(obligation, Challenge):
                continue
            bucket = visibility(obligation, user_id)
            if bucket is not None:
                buckets[bucket].append(obligation)
        return buckets

    def terminate(self, challenge_id: str, as_of: date, threshold: float) -> Challenge:
        """
        Close an active challenge after its end date.

        completed when every accepted participant's completion rate over
        [start_date, end_date] is above `threshold`, failed otherwise.
        """
        if not 0 <= threshold <= 100:
            raise ValidationError("threshold must be between 0 and 100")

        with self._registry.locks.hold(challenge_id):
            challenge = self._registry.get_challenge(challenge_id)
            if challenge.status != ObligationStatus.ACTIVE:
                raise ChallengeStateError(f"Only active challenges can be terminated ({challenge.status.value})")
            if challenge.end_date is None:
                raise ChallengeStateError("Open-ended challenges cannot be terminated")
            if as_of <= challenge.end_date:
                raise ChallengeStateError(
                    f"Challenge runs until {challenge.end_date.isoformat()}; cannot terminate on {as_of.isoformat()}"
                )

            rates = {
                p.user_id: self._ledger.completion_rate(challenge, p.user_id, challenge.end_date)
                for p in challenge.accepted_participants()
            }
            passed = all(rate > threshold for rate in rates.values())
            self._set_status(
                challenge,
                ObligationStatus.COMPLETED if passed else ObligationStatus.FAILED,
                rates={k: round(v, 2) for k, v in rates.items()},
            )
            self._registry.save(challenge)
            return challenge

    # Internal helpers -------------------------------------------------
    @staticmethod
    def _responses_started(challenge: Challenge) -> bool:
        return any(
            challenge.response_of(user_id) != ParticipantStatus.PENDING
            for user_id in challenge.invited_user_ids
        )

    def _reevaluate(self, challenge: Challenge) -> None:
        responses = [challenge.response_of(u) for u in challenge.invited_user_ids]
        if any(r == ParticipantStatus.PENDING for r in responses):
            return
        if any(r == ParticipantStatus.ACCEPTED for r in responses):
            challenge.activated_on = self._clock.today()
            self._set_status(challenge, ObligationStatus.ACTIVE)
        else:
            self._set_status(challenge, ObligationStatus.REJECTED)

    @staticmethod
    def _set_status(challenge: Challenge, status: ObligationStatus, **extra) -> None:
        previous = challenge.status
        challenge.status = status
        log_event(
            "info",
            "challenge.status_changed",
            user_id=challenge.creator_id,
            obligation_id=challenge.obligation_id,
            event_type="challenge.status_changed",
            extra={"from": previous.value, "to": status.value, **extra},
        )
