"""
Scheduled penalty sweep.

Charges every accepted participant of an active, penalized obligation once per
elapsed period they left uncompleted, then closes expired obligations. Safe to
run repeatedly or concurrently: accruals are idempotent per missed period.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from habitledger.core.clock import Clock
from habitledger.core.errors import DuplicateAccrualError
from habitledger.core.logging import log_event
from habitledger.features.completions.service import CompletionLedger
from habitledger.features.obligations.service import ObligationRegistry
from habitledger.features.penalties.service import PenaltyLedger
from habitledger.models.obligation import AnyObligation, Challenge, ObligationStatus, Task
from habitledger.models.penalty import SweepReport


class PenaltySweep:
    def __init__(
        self,
        registry: ObligationRegistry,
        ledger: CompletionLedger,
        penalties: PenaltyLedger,
        clock: Clock,
    ):
        self._registry = registry
        self._ledger = ledger
        self._penalties = penalties
        self._clock = clock

    def run(self, as_of: Optional[date] = None) -> SweepReport:
        as_of = as_of or self._clock.today()
        report = SweepReport(as_of=as_of)

        for obligation in self._registry.all():
            with self._registry.locks.hold(obligation.obligation_id):
                current = self._registry.get(obligation.obligation_id)
                if current.status == ObligationStatus.ACTIVE and current.penalty_amount > 0:
                    self._accrue_missed(current, as_of, report)
                self._close_expired(current, as_of, report)

        log_event(
            "info",
            "sweep.finished",
            event_type="sweep.finished",
            extra={
                "as_of": as_of.isoformat(),
                "accrued": len(report.accrued),
                "duplicates": report.duplicates,
                "skipped": report.skipped_obligations,
                "status_changes": len(report.status_changes),
            },
        )
        return report

    def _accrue_missed(self, obligation: AnyObligation, as_of: date, report: SweepReport) -> None:
        floor = obligation.accrual_floor
        skipped = False
        for participant in obligation.accepted_participants():
            if not self._penalties.payees(obligation, participant.user_id):
                skipped = True
                continue
            for key in self._ledger.outstanding(obligation, participant.user_id, as_of):
                # Periods that began before the obligation existed are never charged.
                if key < floor:
                    continue
                if self._penalties.has_accrual(obligation.obligation_id, participant.user_id, key):
                    continue
                try:
                    report.accrued.extend(
                        self._penalties.accrue_penalty(obligation.obligation_id, participant.user_id, key)
                    )
                except DuplicateAccrualError:
                    report.duplicates += 1
        if skipped:
            report.skipped_obligations += 1

    def _close_expired(self, obligation: AnyObligation, as_of: date, report: SweepReport) -> None:
        if obligation.end_date is None or as_of <= obligation.end_date:
            return
        if isinstance(obligation, Task) and obligation.status == ObligationStatus.ACTIVE:
            new_status = ObligationStatus.COMPLETED
        elif isinstance(obligation, Challenge) and obligation.status == ObligationStatus.PENDING:
            new_status = ObligationStatus.FAILED
        else:
            return

        previous = obligation.status
        obligation.status = new_status
        self._registry.save(obligation)
        report.status_changes[obligation.obligation_id] = new_status.value
        log_event(
            "info",
            "obligation.expired",
            user_id=obligation.owner_id,
            obligation_id=obligation.obligation_id,
            event_type="obligation.expired",
            extra={"from": previous.value, "to": new_status.value},
        )
