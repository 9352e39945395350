"""
In-memory collaborator implementations.

Key-addressed dicts guarded by a lock; used by the app wiring and by tests.
"""

from __future__ import annotations

import threading
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from habitledger.core.errors import AuthError
from habitledger.models.obligation import AnyObligation, Challenge
from habitledger.models.penalty import PenaltyRecord, SettlementRecord


class InMemoryObligationStore:
    def __init__(self):
        self._items: Dict[str, AnyObligation] = {}
        self._lock = threading.Lock()

    def load(self, obligation_id: str) -> Optional[AnyObligation]:
        with self._lock:
            return self._items.get(obligation_id)

    def save(self, obligation: AnyObligation) -> None:
        with self._lock:
            self._items[obligation.obligation_id] = obligation

    def query_by_owner(self, user_id: str) -> List[AnyObligation]:
        with self._lock:
            return [o for o in self._items.values() if o.owner_id == user_id]

    def query_for_member(self, user_id: str) -> List[AnyObligation]:
        """Owned obligations plus challenges the user was invited to."""
        with self._lock:
            return [
                o
                for o in self._items.values()
                if o.owner_id == user_id
                or (isinstance(o, Challenge) and user_id in o.invited_user_ids)
            ]

    def all(self) -> Iterable[AnyObligation]:
        with self._lock:
            return list(self._items.values())


class InMemoryPenaltyStore:
    def __init__(self):
        self._records: List[PenaltyRecord] = []
        self._accruals: Set[Tuple[str, str, date]] = set()
        self._settlements: List[SettlementRecord] = []
        self._lock = threading.Lock()

    def add(self, record: PenaltyRecord) -> None:
        with self._lock:
            self._records.append(record)
            self._accruals.add((record.obligation_id, record.from_user_id, record.period_key))

    def query_penalties(self, user_id: str) -> List[PenaltyRecord]:
        with self._lock:
            return [r for r in self._records if user_id in (r.from_user_id, r.to_user_id)]

    def query_between(self, user_a: str, user_b: str) -> List[PenaltyRecord]:
        pair = {user_a, user_b}
        with self._lock:
            return [r for r in self._records if {r.from_user_id, r.to_user_id} == pair]

    def has_accrual(self, obligation_id: str, participant_id: str, period_key: date) -> bool:
        with self._lock:
            return (obligation_id, participant_id, period_key) in self._accruals

    def mark_settled(self, penalty_ids: List[str], settled_at: datetime) -> None:
        wanted = set(penalty_ids)
        with self._lock:
            for record in self._records:
                if record.penalty_id in wanted:
                    record.settled = True
                    record.settled_at = settled_at

    def add_settlement(self, settlement: SettlementRecord) -> None:
        with self._lock:
            self._settlements.append(settlement)

    def settlements_for(self, user_id: str) -> List[SettlementRecord]:
        with self._lock:
            return [s for s in self._settlements if user_id in (s.debtor_id, s.creditor_id)]

    def all(self) -> List[PenaltyRecord]:
        with self._lock:
            return list(self._records)


class InMemoryFriendGraph:
    """Symmetric friendship edges."""

    def __init__(self, edges: Iterable[Tuple[str, str]] = ()):
        self._friends: Dict[str, Set[str]] = {}
        for a, b in edges:
            self.befriend(a, b)

    @staticmethod
    def parse_edges(value: Optional[str]) -> List[Tuple[str, str]]:
        """Parse "alice:bob,alice:carol" into edge tuples."""
        edges = []
        for chunk in (value or "").split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            left, sep, right = chunk.partition(":")
            left, right = left.strip(), right.strip()
            if not sep or not left or not right or left == right:
                raise ValueError(f"Malformed friend edge: {chunk!r}")
            edges.append((left, right))
        return edges

    @classmethod
    def from_setting(cls, value: Optional[str]) -> "InMemoryFriendGraph":
        return cls(cls.parse_edges(value))

    def befriend(self, user_id: str, other_id: str) -> None:
        self._friends.setdefault(user_id, set()).add(other_id)
        self._friends.setdefault(other_id, set()).add(user_id)

    def are_friends(self, user_id: str, other_id: str) -> bool:
        return other_id in self._friends.get(user_id, set())

    def list_friends(self, user_id: str) -> List[str]:
        return sorted(self._friends.get(user_id, set()))


class HeaderIdentityProvider:
    """Treats the presented token as the user id (X-User-Id / bearer value)."""

    def authenticate(self, token: Optional[str]) -> str:
        if token is None or not token.strip():
            raise AuthError("Missing user identity")
        value = token.strip()
        if value.lower().startswith("bearer "):
            value = value[7:].strip()
        if not value:
            raise AuthError("Missing user identity")
        return value
