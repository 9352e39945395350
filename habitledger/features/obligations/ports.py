"""
Boundary protocols between the obligation core and its collaborators.

The core never talks to storage, identity or the social graph directly; the
shell hands it implementations of these contracts.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Protocol

from habitledger.models.obligation import AnyObligation
from habitledger.models.penalty import PenaltyRecord, SettlementRecord


class IdentityProvider(Protocol):
    def authenticate(self, token: Optional[str]) -> str: ...


class FriendGraph(Protocol):
    def are_friends(self, user_id: str, other_id: str) -> bool: ...

    def list_friends(self, user_id: str) -> List[str]: ...


class ObligationStore(Protocol):
    def load(self, obligation_id: str) -> Optional[AnyObligation]: ...

    def save(self, obligation: AnyObligation) -> None: ...

    def query_by_owner(self, user_id: str) -> List[AnyObligation]: ...

    def query_for_member(self, user_id: str) -> List[AnyObligation]: ...

    def all(self) -> Iterable[AnyObligation]: ...


class PenaltyStore(Protocol):
    def add(self, record: PenaltyRecord) -> None: ...

    def query_penalties(self, user_id: str) -> List[PenaltyRecord]: ...

    def query_between(self, user_a: str, user_b: str) -> List[PenaltyRecord]: ...

    def has_accrual(self, obligation_id: str, participant_id: str, period_key) -> bool: ...

    def mark_settled(self, penalty_ids: List[str], settled_at: datetime) -> None: ...

    def add_settlement(self, settlement: SettlementRecord) -> None: ...

    def settlements_for(self, user_id: str) -> List[SettlementRecord]: ...

    def all(self) -> List[PenaltyRecord]: ...
