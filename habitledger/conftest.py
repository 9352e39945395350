# habitledger/conftest.py
from datetime import date

import pytest

from habitledger.api.deps import build_services, get_services
from habitledger.core.clock import FixedClock
from habitledger.features.obligations.store import InMemoryFriendGraph
from habitledger.models.obligation import CreateChallengeRequest, CreateTaskRequest


@pytest.fixture
def clock():
    """'Today' is pinned; tests move it with clock.set()/advance()."""
    return FixedClock(date(2024, 1, 10))


@pytest.fixture
def friends():
    return InMemoryFriendGraph(
        [
            ("alice", "bob"),
            ("alice", "carol"),
            ("alice", "dave"),
            ("bob", "carol"),
        ]
    )


@pytest.fixture
def services(clock, friends):
    return build_services(clock=clock, friends=friends)


@pytest.fixture
def client(services):
    from fastapi.testclient import TestClient

    from habitledger.main import app

    app.dependency_overrides[get_services] = lambda: services
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_task(services):
    def _make(owner="alice", **overrides):
        fields = dict(title="Read 20 pages", period="daily", start_date=date(2024, 1, 1))
        fields.update(overrides)
        return services.registry.create_task(owner, CreateTaskRequest(**fields))

    return _make


@pytest.fixture
def make_challenge(services):
    def _make(creator="alice", invited=("bob",), **overrides):
        fields = dict(
            title="Morning run",
            period="daily",
            start_date=date(2024, 1, 1),
            invited_user_ids=list(invited),
        )
        fields.update(overrides)
        return services.registry.create_challenge(creator, CreateChallengeRequest(**fields))

    return _make
