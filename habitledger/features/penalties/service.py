"""
Penalty accrual, balances and pairwise settlement.

Records are append-only; settlement flips `settled` on the exact records that
were netted. Accruals hold the obligation lock (idempotency per missed period)
and the debtor/creditor pair locks (ordering against settle()).
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

from habitledger.core.clock import Clock
from habitledger.core.errors import (
    DuplicateAccrualError,
    NothingToSettleError,
    ValidationError,
)
from habitledger.core.locks import KeyedLocks, pair_key
from habitledger.core.logging import log_event
from habitledger.features.calendar.service import period_key as to_period_key
from habitledger.features.obligations.ports import PenaltyStore
from habitledger.features.obligations.service import CENTS, ObligationRegistry, normalize_amount
from habitledger.models.obligation import AnyObligation, Task
from habitledger.models.penalty import (
    BalanceSummary,
    PenaltyRecord,
    PenaltyType,
    SettlementRecord,
)

ZERO = Decimal("0.00")


def split_amount(amount: Decimal, count: int) -> List[Decimal]:
    """Even split in cents; the first share absorbs the remainder so the sum is exact."""
    if count <= 0:
        raise ValidationError("A penalty needs at least one recipient")
    base = (amount / count).quantize(CENTS, rounding=ROUND_DOWN)
    shares = [base] * count
    shares[0] = amount - base * (count - 1)
    return shares


class PenaltyLedger:
    def __init__(
        self,
        store: PenaltyStore,
        registry: ObligationRegistry,
        clock: Clock,
        pair_locks: Optional[KeyedLocks] = None,
    ):
        self._store = store
        self._registry = registry
        self._clock = clock
        self._pair_locks = pair_locks or KeyedLocks()

    def payees(self, obligation: AnyObligation, participant_id: str) -> List[str]:
        """Default creditors for a miss: task recipients, or every other accepted challenger."""
        if isinstance(obligation, Task):
            return list(obligation.penalty_recipient_ids)
        return [p.user_id for p in obligation.accepted_participants() if p.user_id != participant_id]

    def accrue_penalty(
        self,
        obligation_id: str,
        participant_id: str,
        period_key: date,
        amount: Optional[Decimal] = None,
        recipients: Optional[Sequence[str]] = None,
    ) -> List[PenaltyRecord]:
        """
        Charge `participant_id` once for the missed period containing `period_key`.

        `amount` defaults to the obligation's penalty and `recipients` to its
        payees. Raises DuplicateAccrualError when the period was already charged.
        """
        with self._registry.locks.hold(obligation_id):
            obligation = self._registry.get(obligation_id)
            self._registry.resolve_participant(obligation, participant_id)
            key = to_period_key(period_key, obligation.period)

            if self._store.has_accrual(obligation_id, participant_id, key):
                raise DuplicateAccrualError(
                    f"{participant_id} was already charged for {key.isoformat()} on {obligation_id}"
                )

            total = normalize_amount(obligation.penalty_amount if amount is None else amount)
            if total <= 0:
                raise ValidationError("Penalty amount must be greater than 0")

            payees = self._dedupe(recipients if recipients is not None else self.payees(obligation, participant_id))
            if participant_id in payees:
                raise ValidationError("A participant cannot owe a penalty to themselves")
            if not payees:
                raise ValidationError(f"{obligation_id} has no penalty recipients")

            now = self._clock.now()
            kind = PenaltyType.TASK if isinstance(obligation, Task) else PenaltyType.CHALLENGE
            reason = f"Missed {obligation.period.value} period {key.isoformat()}: {obligation.title}"
            records = [
                PenaltyRecord(
                    penalty_id=str(uuid4()),
                    type=kind,
                    obligation_id=obligation_id,
                    from_user_id=participant_id,
                    to_user_id=payee,
                    amount=share,
                    period_key=key,
                    reason=reason,
                    created_at=now,
                )
                for payee, share in zip(payees, split_amount(total, len(payees)))
            ]

            with self._pair_locks.hold_all(pair_key(participant_id, p) for p in payees):
                for record in records:
                    self._store.add(record)

        log_event(
            "info",
            "penalty.accrued",
            user_id=participant_id,
            obligation_id=obligation_id,
            event_type="penalty.accrued",
            extra={"period_key": key.isoformat(), "amount": total, "recipients": len(records)},
        )
        return records

    def apply_penalty(self, obligation_id: str, user_id: str, day: date) -> List[PenaltyRecord]:
        """Charge the obligation's configured penalty for the period containing `day`."""
        return self.accrue_penalty(obligation_id, user_id, day)

    def net_balances(self, user_id: str) -> BalanceSummary:
        owed = ZERO
        receivable = ZERO
        net: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for record in self._store.query_penalties(user_id):
            if record.settled or record.to_user_id is None:
                continue
            if record.from_user_id == user_id:
                owed += record.amount
                net[record.to_user_id] -= record.amount
            elif record.to_user_id == user_id:
                receivable += record.amount
                net[record.from_user_id] += record.amount
        return BalanceSummary(
            user_id=user_id,
            total_owed=owed,
            total_receivable=receivable,
            per_counterparty_net=dict(net),
        )

    def settle(self, debtor_id: str, creditor_id: str) -> Decimal:
        """
        Pay off everything between the pair, netting mutual debts.

        All-or-nothing: every unsettled record in the snapshot is marked settled
        and the net amount the debtor paid is returned.
        """
        if debtor_id == creditor_id:
            raise ValidationError("Cannot settle with yourself")

        with self._pair_locks.hold(pair_key(debtor_id, creditor_id)):
            snapshot = [r for r in self._store.query_between(debtor_id, creditor_id) if not r.settled]
            paid = sum((r.amount for r in snapshot if r.from_user_id == debtor_id), ZERO)
            returned = sum((r.amount for r in snapshot if r.from_user_id == creditor_id), ZERO)
            net = paid - returned
            if net <= 0:
                raise NothingToSettleError(f"{debtor_id} owes nothing to {creditor_id}")

            now = self._clock.now()
            penalty_ids = [r.penalty_id for r in snapshot]
            self._store.mark_settled(penalty_ids, now)
            self._store.add_settlement(
                SettlementRecord(
                    settlement_id=str(uuid4()),
                    debtor_id=debtor_id,
                    creditor_id=creditor_id,
                    amount=net,
                    penalty_ids=penalty_ids,
                    settled_at=now,
                )
            )

        log_event(
            "info",
            "penalty.settled",
            user_id=debtor_id,
            event_type="penalty.settled",
            extra={"creditor_id": creditor_id, "amount": net, "records": len(penalty_ids)},
        )
        return net

    def list_penalties(self, user_id: str, include_settled: bool = False) -> List[PenaltyRecord]:
        records = [r for r in self._store.query_penalties(user_id) if include_settled or not r.settled]
        return sorted(records, key=lambda r: (r.created_at, r.period_key, r.penalty_id))

    def settlements(self, user_id: str) -> List[SettlementRecord]:
        return sorted(self._store.settlements_for(user_id), key=lambda s: s.settled_at)

    def has_accrual(self, obligation_id: str, participant_id: str, period_key: date) -> bool:
        return self._store.has_accrual(obligation_id, participant_id, period_key)

    @staticmethod
    def _dedupe(values: Sequence[str]) -> List[str]:
        seen: List[str] = []
        for value in values:
            if value and value not in seen:
                seen.append(value)
        return seen
