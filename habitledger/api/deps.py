"""
Service wiring and request dependencies for the HTTP layer.

Routers depend on get_services(); tests swap it through
app.dependency_overrides to inject a FixedClock and fresh stores.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from habitledger.core.clock import Clock, SystemClock
from habitledger.core.config import settings
from habitledger.core.locks import KeyedLocks
from habitledger.features.challenges.service import ChallengeLifecycle
from habitledger.features.completions.service import CompletionLedger
from habitledger.features.obligations.service import ObligationRegistry
from habitledger.features.obligations.store import (
    HeaderIdentityProvider,
    InMemoryFriendGraph,
    InMemoryObligationStore,
    InMemoryPenaltyStore,
)
from habitledger.features.penalties.service import PenaltyLedger
from habitledger.features.penalties.sweep import PenaltySweep


@dataclass
class Services:
    clock: Clock
    obligations: InMemoryObligationStore
    penalty_store: InMemoryPenaltyStore
    friends: InMemoryFriendGraph
    identity: HeaderIdentityProvider
    ledger: CompletionLedger
    registry: ObligationRegistry
    challenges: ChallengeLifecycle
    penalties: PenaltyLedger
    sweep: PenaltySweep


def build_services(
    clock: Optional[Clock] = None,
    friends: Optional[InMemoryFriendGraph] = None,
) -> Services:
    clock = clock or SystemClock(settings.REFERENCE_TIMEZONE)
    if friends is None:
        friends = InMemoryFriendGraph.from_setting(settings.FRIEND_EDGES)
    obligations = InMemoryObligationStore()
    penalty_store = InMemoryPenaltyStore()

    ledger = CompletionLedger(clock)
    registry = ObligationRegistry(obligations, ledger, clock, friends, KeyedLocks())
    challenges = ChallengeLifecycle(registry, ledger, clock, friends)
    penalties = PenaltyLedger(penalty_store, registry, clock, KeyedLocks())
    sweep = PenaltySweep(registry, ledger, penalties, clock)

    return Services(
        clock=clock,
        obligations=obligations,
        penalty_store=penalty_store,
        friends=friends,
        identity=HeaderIdentityProvider(),
        ledger=ledger,
        registry=registry,
        challenges=challenges,
        penalties=penalties,
        sweep=sweep,
    )


@lru_cache
def get_services() -> Services:
    return build_services()


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> str:
    """X-User-Id wins; otherwise the bearer value is taken as the user id."""
    return services.identity.authenticate(x_user_id or authorization)
