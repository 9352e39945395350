from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional


class PenaltyType(str, Enum):
    TASK = "task"
    CHALLENGE = "challenge"


@dataclass
class PenaltyRecord:
    """
    One liability from a debtor to a single creditor for one missed period.
    Never deleted; settlement flips `settled`.
    """

    penalty_id: str
    type: PenaltyType
    obligation_id: str
    from_user_id: str
    to_user_id: Optional[str]
    amount: Decimal
    period_key: date
    reason: str
    created_at: datetime
    settled: bool = False
    settled_at: Optional[datetime] = None


@dataclass
class SettlementRecord:
    settlement_id: str
    debtor_id: str
    creditor_id: str
    amount: Decimal
    penalty_ids: List[str]
    settled_at: datetime


@dataclass
class BalanceSummary:
    """Unsettled totals for one user; per-counterparty net is positive when the friend owes the user."""

    user_id: str
    total_owed: Decimal = Decimal("0.00")
    total_receivable: Decimal = Decimal("0.00")
    per_counterparty_net: Dict[str, Decimal] = field(default_factory=dict)


@dataclass
class SweepReport:
    as_of: date
    accrued: List[PenaltyRecord] = field(default_factory=list)
    duplicates: int = 0
    skipped_obligations: int = 0
    status_changes: Dict[str, str] = field(default_factory=dict)
