"""JSON shapes for domain objects; dates as ISO strings, money as strings."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from habitledger.features.calendar.service import upcoming_due_date
from habitledger.models.obligation import (
    AnyObligation,
    Challenge,
    ObligationStats,
    Participant,
    ProgressSnapshot,
    Task,
)
from habitledger.models.penalty import BalanceSummary, PenaltyRecord, SettlementRecord


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def participant_out(participant: Participant) -> Dict[str, Any]:
    return {
        "user_id": participant.user_id,
        "status": participant.status.value,
        "responded_at": _iso(participant.responded_at),
        "completed_dates": [k.isoformat() for k in participant.progress.sorted_keys()],
        "last_uncompleted_date": _iso(participant.last_uncompleted_date),
    }


def obligation_out(obligation: AnyObligation, today: date, visibility: Optional[str] = None) -> Dict[str, Any]:
    next_due = None if obligation.is_closed else upcoming_due_date(obligation, today)
    payload: Dict[str, Any] = {
        "id": obligation.obligation_id,
        "kind": obligation.kind,
        "owner_id": obligation.owner_id,
        "title": obligation.title,
        "description": obligation.description,
        "period": obligation.period.value,
        "start_date": obligation.start_date.isoformat(),
        "end_date": _iso(obligation.end_date),
        "status": obligation.status.value,
        "penalty_amount": str(obligation.penalty_amount),
        "created_at": obligation.created_at.isoformat(),
        "next_due_date": _iso(next_due),
    }
    if isinstance(obligation, Task):
        payload["penalty_recipient_ids"] = list(obligation.penalty_recipient_ids)
        payload["completed_dates"] = [k.isoformat() for k in obligation.owner.progress.sorted_keys()]
    elif isinstance(obligation, Challenge):
        payload["invited_user_ids"] = list(obligation.invited_user_ids)
        payload["participants"] = [participant_out(p) for p in obligation.participants.values()]
        if visibility is not None:
            payload["visibility"] = visibility
    return payload


def snapshot_out(snapshot: ProgressSnapshot) -> Dict[str, Any]:
    return {
        "obligation_id": snapshot.obligation_id,
        "user_id": snapshot.user_id,
        "period_key": snapshot.period_key.isoformat(),
        "completed_dates": [k.isoformat() for k in snapshot.completed_keys],
        "last_uncompleted_date": _iso(snapshot.last_uncompleted_date),
        "changed": snapshot.changed,
    }


def stats_out(stats: ObligationStats) -> Dict[str, Any]:
    return {
        "obligation_id": stats.obligation_id,
        "user_id": stats.user_id,
        "total_completions": stats.total_completions,
        "current_streak": stats.current_streak,
        "longest_streak": stats.longest_streak,
        "completion_rate": round(stats.completion_rate, 2),
        "penalty_amount": str(stats.penalty_amount),
    }


def penalty_out(record: PenaltyRecord) -> Dict[str, Any]:
    return {
        "id": record.penalty_id,
        "type": record.type.value,
        "obligation_id": record.obligation_id,
        "from_user_id": record.from_user_id,
        "to_user_id": record.to_user_id,
        "amount": str(record.amount),
        "period_key": record.period_key.isoformat(),
        "reason": record.reason,
        "created_at": record.created_at.isoformat(),
        "settled": record.settled,
        "settled_at": _iso(record.settled_at),
    }


def settlement_out(settlement: SettlementRecord) -> Dict[str, Any]:
    return {
        "id": settlement.settlement_id,
        "debtor_id": settlement.debtor_id,
        "creditor_id": settlement.creditor_id,
        "amount": str(settlement.amount),
        "penalty_ids": list(settlement.penalty_ids),
        "settled_at": settlement.settled_at.isoformat(),
    }


def balances_out(summary: BalanceSummary) -> Dict[str, Any]:
    return {
        "user_id": summary.user_id,
        "total_owed": str(summary.total_owed),
        "total_receivable": str(summary.total_receivable),
        "per_counterparty_net": {k: str(v) for k, v in sorted(summary.per_counterparty_net.items())},
    }
