from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

from habitledger.core.errors import DuplicateAccrualError, NothingToSettleError
from habitledger.core.locks import KeyedLocks, pair_key


def test_pair_key_is_unordered():
    assert pair_key("bob", "alice") == pair_key("alice", "bob") == ("alice", "bob")


def test_keyed_locks_are_reentrant_and_lazy():
    locks = KeyedLocks()
    with locks.hold("ob-1"):
        with locks.hold("ob-1"):
            pass
    with locks.hold_all(["b", "a", "a"]):
        pass
    assert len(locks) == 3


def test_concurrent_accruals_charge_once(services, make_task):
    task = make_task(penalty_amount=Decimal("4"), penalty_recipient_ids=["bob", "carol"])

    def accrue(_):
        try:
            services.penalties.accrue_penalty(task.obligation_id, "alice", date(2024, 1, 3))
            return "ok"
        except DuplicateAccrualError:
            return "duplicate"

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(accrue, range(16)))

    assert outcomes.count("ok") == 1
    assert outcomes.count("duplicate") == 15
    assert services.penalties.net_balances("alice").total_owed == Decimal("4.00")


def test_concurrent_completions_insert_once(services, make_task):
    task = make_task()

    def complete(_):
        return services.registry.mark_complete(task.obligation_id, "alice", date(2024, 1, 5)).changed

    with ThreadPoolExecutor(max_workers=8) as pool:
        changed = list(pool.map(complete, range(16)))

    assert changed.count(True) == 1
    assert task.owner.completed_keys == {date(2024, 1, 5)}


def test_settle_and_accrue_interleave_without_loss(services, make_task):
    task = make_task(period="daily", penalty_amount=Decimal("1"), penalty_recipient_ids=["bob"])
    days = [date(2024, 1, d) for d in range(1, 10)]

    def accrue(day):
        services.penalties.accrue_penalty(task.obligation_id, "alice", day)

    def settle(_):
        try:
            return services.penalties.settle("alice", "bob")
        except NothingToSettleError:
            return Decimal("0")

    with ThreadPoolExecutor(max_workers=6) as pool:
        accrued = [pool.submit(accrue, d) for d in days]
        settled = [pool.submit(settle, i) for i in range(5)]
        for future in accrued:
            future.result()
        paid = sum((f.result() for f in settled), Decimal("0"))

    remaining = services.penalties.net_balances("alice").total_owed
    assert paid + remaining == Decimal("9.00")
