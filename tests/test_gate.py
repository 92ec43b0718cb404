import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from dinebell.gate import (
    GateState,
    SubscriptionGate,
    check_limit,
    evaluate,
    expiry_warning_due,
)
from dinebell.models import SubscriptionSnapshot, SubscriptionStatus

from fakes import active_snapshot

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def snapshot(**fields) -> SubscriptionSnapshot:
    return SubscriptionSnapshot.model_validate(fields)


def test_active_with_future_end_date() -> None:
    decision = evaluate(snapshot(status="active", end_date="2024-06-10T12:00:00+00:00"), NOW)

    assert decision.state == GateState.ACTIVE
    assert decision.days_left == 9


def test_no_subscription_is_blocked() -> None:
    decision = evaluate(None, NOW)

    assert decision.state == GateState.BLOCKED
    assert decision.status is None


@pytest.mark.parametrize("end_date", [None, "not-a-date", ""])
@pytest.mark.parametrize("status", ["active", "expired", "paused", "whatever"])
def test_unreadable_or_missing_end_date_fails_closed(status, end_date) -> None:
    decision = evaluate(snapshot(status=status, end_date=end_date), NOW)

    assert decision.state == GateState.BLOCKED


def test_absent_end_date_fails_closed() -> None:
    assert evaluate(snapshot(status="active"), NOW).state == GateState.BLOCKED


@pytest.mark.parametrize("status", ["expired", "paused", "ACTIVE-ish", None])
def test_non_active_status_is_blocked_even_with_future_date(status) -> None:
    decision = evaluate(snapshot(status=status, end_date="2030-01-01T00:00:00+00:00"), NOW)

    assert decision.state == GateState.BLOCKED


def test_status_is_case_insensitive() -> None:
    decision = evaluate(snapshot(status="Active", end_date="2030-01-01T00:00:00+00:00"), NOW)

    assert decision.active


def test_end_date_equal_to_now_is_expired() -> None:
    decision = evaluate(snapshot(status="active", end_date=NOW.isoformat()), NOW)

    assert decision.state == GateState.BLOCKED
    assert decision.reason == "expired"


def test_camel_case_end_date_and_epoch_seconds() -> None:
    end = {"_seconds": int((NOW + timedelta(days=2)).timestamp())}
    decision = evaluate(snapshot(status="active", endDate=end), NOW)

    assert decision.active
    assert decision.days_left == 2


def test_expiry_warning_window() -> None:
    soon = evaluate(snapshot(status="active", end_date=(NOW + timedelta(days=3)).isoformat()), NOW)
    later = evaluate(snapshot(status="active", end_date=(NOW + timedelta(days=30)).isoformat()), NOW)

    assert expiry_warning_due(soon, 7)
    assert not expiry_warning_due(later, 7)
    assert not expiry_warning_due(evaluate(None, NOW), 7)


def test_check_limit() -> None:
    snap = snapshot(
        status="active",
        end_date="2030-01-01T00:00:00+00:00",
        limits={"maxProducts": 10, "maxBranches": -1},
    )

    assert check_limit(snap, "maxProducts", 4, now=NOW).remaining == 6
    reached = check_limit(snap, "maxProducts", 10, now=NOW)
    assert not reached.allowed
    assert reached.reason == "Limit reached"
    unlimited = check_limit(snap, "maxBranches", 500, now=NOW)
    assert unlimited.allowed
    assert unlimited.remaining == -1
    assert check_limit(snap, "maxCategories", 0, now=NOW).reason == "Not included in plan"


def test_check_limit_inactive_never_allowed() -> None:
    snap = snapshot(status="paused", end_date="2030-01-01T00:00:00+00:00", limits={"maxProducts": -1})

    result = check_limit(snap, "maxProducts", 0, now=NOW)

    assert not result.allowed
    assert check_limit(None, "maxProducts", 0).reason == "No subscription found"


# -------------------------------------------------------------------
# polling gate
# -------------------------------------------------------------------


def test_gate_blocks_once_expiry_passes_without_new_data() -> None:
    end = datetime.now(timezone.utc) + timedelta(milliseconds=150)
    snap = snapshot(status="active", end_date=end.isoformat())
    transitions = []

    async def fetch(restaurant_id):
        return snap

    async def scenario():
        gate = SubscriptionGate(fetch, interval_s=0.1)
        gate.add_listener(lambda decision: transitions.append(decision.state))
        gate.start("r1")
        await asyncio.sleep(0.05)
        first = gate.state
        await asyncio.sleep(0.3)
        second = gate.state
        gate.stop()
        return first, second

    first, second = asyncio.run(scenario())

    assert first == GateState.ACTIVE
    assert second == GateState.BLOCKED
    assert transitions[:2] == [GateState.ACTIVE, GateState.BLOCKED]


def test_gate_unblocks_after_renewal() -> None:
    answers = {"snap": snapshot(status="expired", end_date="2020-01-01 00:00:00")}

    async def fetch(restaurant_id):
        return answers["snap"]

    async def scenario():
        gate = SubscriptionGate(fetch, interval_s=0.05)
        gate.start("r1")
        await asyncio.sleep(0.03)
        blocked = gate.state
        answers["snap"] = active_snapshot(days=30)
        await asyncio.sleep(0.12)
        active = gate.state
        gate.stop()
        return blocked, active

    blocked, active = asyncio.run(scenario())

    assert blocked == GateState.BLOCKED
    assert active == GateState.ACTIVE


def test_gate_reevaluates_last_snapshot_when_fetch_fails() -> None:
    clock = {"now": NOW}
    calls = {"n": 0}

    async def fetch(restaurant_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return snapshot(status="active", end_date=(NOW + timedelta(hours=1)).isoformat())
        raise ConnectionError("offline")

    async def scenario():
        gate = SubscriptionGate(fetch, interval_s=0.05, clock=lambda: clock["now"])
        gate.start("r1")
        await asyncio.sleep(0.02)
        before = gate.state
        clock["now"] = NOW + timedelta(hours=2)
        await asyncio.sleep(0.1)
        after = gate.state
        gate.stop()
        return before, after

    before, after = asyncio.run(scenario())

    assert before == GateState.ACTIVE
    assert after == GateState.BLOCKED


def test_gate_blocks_on_cadence_while_fetches_hang() -> None:
    end = datetime.now(timezone.utc) + timedelta(milliseconds=100)
    calls = {"n": 0}

    async def fetch(restaurant_id):
        calls["n"] += 1
        if calls["n"] > 1:
            await asyncio.sleep(1.0)
        return snapshot(status="active", end_date=end.isoformat())

    async def scenario():
        gate = SubscriptionGate(fetch, interval_s=0.1)
        gate.start("r1")
        await asyncio.sleep(0.05)
        first = gate.state
        await asyncio.sleep(0.4)
        second = gate.state
        gate.stop()
        return first, second

    first, second = asyncio.run(scenario())

    assert first == GateState.ACTIVE
    assert second == GateState.BLOCKED
    assert calls["n"] >= 3


def test_gate_is_pending_until_first_answer_and_after_stop() -> None:
    async def fetch(restaurant_id):
        await asyncio.sleep(10)

    async def scenario():
        gate = SubscriptionGate(fetch, interval_s=1)
        gate.start("r1")
        await asyncio.sleep(0.01)
        pending = gate.decision.pending
        gate.stop()
        return pending, gate.decision.pending, gate.running

    pending, pending_after_stop, running = asyncio.run(scenario())

    assert pending
    assert pending_after_stop
    assert not running


def test_missing_status_is_unknown() -> None:
    assert snapshot(end_date="2030-01-01").status == SubscriptionStatus.UNKNOWN
