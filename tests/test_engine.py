import asyncio

from dinebell.engine import LiveEngine
from dinebell.gate import GateState
from dinebell.models import PollContext, SubscriptionSnapshot

from fakes import FakeApi, FakeAudio, FakeNotifier, active_snapshot, record

CTX = PollContext("r1")


def make_engine(api, interval=0.2, ttl=0.5):
    notifier = FakeNotifier()
    audio = FakeAudio()
    engine = LiveEngine(
        api,
        notifier,
        audio,
        notification_interval_s=interval,
        order_interval_s=interval,
        subscription_interval_s=interval,
        toast_ttl_s=ttl,
    )
    return engine, notifier, audio


def test_new_order_then_status_change_end_to_end() -> None:
    api = FakeApi(
        notifications=[
            [],
            [{"id": "A", "status": "pending", "customerName": "Layla", "total": 120}],
            [{"id": "A", "status": "delivered", "customerName": "Layla", "total": 120}],
        ],
        subscription=active_snapshot(),
    )

    async def scenario():
        engine, notifier, audio = make_engine(api)
        engine.init(CTX)

        await asyncio.sleep(0.1)
        after_baseline = (engine.state().toast, audio.plays, list(notifier.shown))

        await asyncio.sleep(0.2)
        toast = engine.state().toast
        after_new = (audio.plays, [tag for _, _, tag in notifier.shown])

        await asyncio.sleep(0.2)
        after_change = (engine.state().toast, audio.plays, [tag for _, _, tag in notifier.shown])

        await asyncio.sleep(0.3)
        after_ttl = engine.state().toast

        engine.dispose()
        return after_baseline, toast, after_new, after_change, after_ttl

    after_baseline, toast, after_new, after_change, after_ttl = asyncio.run(scenario())

    assert after_baseline == (None, 0, [])

    assert toast.customer_name == "Layla"
    assert toast.total == 120
    assert after_new == (1, ["new-order-A"])

    still_toast, plays, tags = after_change
    assert still_toast.record_id == "A"
    assert plays == 1
    assert tags == ["new-order-A", "order-update-A"]

    assert after_ttl is None


def test_blocked_subscription_never_polls_protected_data() -> None:
    api = FakeApi(
        notifications=[[{"id": "A"}]],
        subscription=SubscriptionSnapshot.model_validate({"status": "paused", "end_date": "2099-01-01"}),
    )

    async def scenario():
        engine, notifier, audio = make_engine(api, interval=0.05)
        engine.init(CTX)
        await asyncio.sleep(0.15)
        state = engine.state()
        running = engine.protected_running
        engine.dispose()
        return state, running

    state, running = asyncio.run(scenario())

    assert state.decision.state == GateState.BLOCKED
    assert not running
    assert "notifications" not in api.calls
    assert state.notifications == []


def test_blocking_stops_pollers_and_reactivation_rebaselines() -> None:
    api = FakeApi(notifications=[[{"id": "A"}]], subscription=active_snapshot())

    async def scenario():
        engine, notifier, audio = make_engine(api, interval=0.05, ttl=5)
        engine.init(CTX)
        await asyncio.sleep(0.08)
        was_running = engine.protected_running
        engine.slot.publish(record("A"))

        api.subscription = None
        await asyncio.sleep(0.08)
        blocked = (engine.gate.state, engine.protected_running, engine.state().toast, list(engine.notifications))
        api.notification_answers = [[{"id": "A"}, {"id": "B"}]]

        api.subscription = active_snapshot()
        await asyncio.sleep(0.12)
        reactivated = (engine.gate.state, engine.protected_running, audio.plays, [r.id for r in engine.notifications])

        engine.dispose()
        return was_running, blocked, reactivated

    was_running, blocked, reactivated = asyncio.run(scenario())

    assert was_running
    assert blocked == (GateState.BLOCKED, False, None, [])
    state, running, plays, ids = reactivated
    assert state == GateState.ACTIVE
    assert running
    # B appeared while blocked: it is part of the new baseline, not a new order
    assert plays == 0
    assert ids == ["A", "B"]


def test_branch_filter_and_switch() -> None:
    api = FakeApi(
        notifications=[[{"id": "1", "branchId": "b1"}, {"id": "2", "branchId": "b2"}, {"id": "3"}]],
        subscription=active_snapshot(),
    )

    async def scenario():
        engine, notifier, audio = make_engine(api, interval=10)
        engine.init(PollContext("r1", "b1"))
        await asyncio.sleep(0.03)
        first = sorted(r.id for r in engine.notifications)
        engine.use_context(PollContext("r1", "b2"))
        await asyncio.sleep(0.03)
        second = sorted(r.id for r in engine.notifications)
        gate_fetches = [c for c in api.calls if isinstance(c, tuple) and c[0] == "subscription"]
        engine.dispose()
        return first, second, audio.plays, gate_fetches

    first, second, plays, gate_fetches = asyncio.run(scenario())

    assert first == ["1", "3"]
    assert second == ["2", "3"]
    assert plays == 0
    # a branch switch keeps the same gate loop
    assert len(gate_fetches) == 1


def test_mutations_are_optimistic() -> None:
    api = FakeApi(
        notifications=[[{"id": "1"}, {"id": "2"}]],
        subscription=active_snapshot(),
        orders=[{"id": "9", "status": "pending"}],
    )

    async def scenario():
        engine, notifier, audio = make_engine(api, interval=10)
        engine.init(CTX)
        await asyncio.sleep(0.03)
        before = engine.unread_count
        ok_one = await engine.mark_read("1")
        after_one = engine.unread_count

        api.fail_mutations = True
        ok_all = await engine.mark_all_read()
        after_all = engine.unread_count
        ok_status = await engine.update_order_status("9", "ready")
        status = engine.orders[0].status

        engine.dispose()
        return before, ok_one, after_one, ok_all, after_all, ok_status, status

    before, ok_one, after_one, ok_all, after_all, ok_status, status = asyncio.run(scenario())

    assert (before, after_one, after_all) == (2, 1, 0)
    assert ok_one is True
    assert ok_all is False
    assert ok_status is False
    assert status == "ready"
    assert ("mark_read", None) in api.calls


def test_mutations_refused_while_blocked() -> None:
    api = FakeApi(subscription=None)

    async def scenario():
        engine, notifier, audio = make_engine(api, interval=0.05)
        engine.init(CTX)
        await asyncio.sleep(0.02)
        ok = await engine.update_order_status("9", "ready")
        engine.dispose()
        return ok

    assert asyncio.run(scenario()) is False
    assert not [c for c in api.calls if isinstance(c, tuple) and c[0] == "update_status"]


def test_connection_status_tracks_notification_polls() -> None:
    api = FakeApi(notifications=[[], ConnectionError("offline")], subscription=active_snapshot())

    async def scenario():
        engine, notifier, audio = make_engine(api, interval=0.05)
        engine.init(CTX)
        await asyncio.sleep(0.03)
        online = engine.state().connection
        await asyncio.sleep(0.05)
        offline = engine.state().connection
        engine.dispose()
        return online, offline

    online, offline = asyncio.run(scenario())

    assert online.online is True
    assert offline.online is False
    assert offline.last_error == "offline"
    assert offline.last_ok == online.last_ok


def test_view_toast_requests_orders_page() -> None:
    api = FakeApi(subscription=active_snapshot())

    async def scenario():
        engine, notifier, audio = make_engine(api, interval=10)
        engine.init(CTX)
        await asyncio.sleep(0.02)
        engine.slot.publish(record("A"))
        engine.view_toast("A")
        return engine.take_requested_page(), engine.take_requested_page(), engine.state().toast

    first, second, toast = asyncio.run(scenario())

    assert first == "Orders"
    assert second is None
    assert toast is None


def test_aclose_disposes_and_closes_api() -> None:
    api = FakeApi(subscription=active_snapshot())

    async def scenario():
        engine, notifier, audio = make_engine(api, interval=0.05)
        engine.init(CTX)
        await asyncio.sleep(0.02)
        await engine.aclose()
        return engine

    engine = asyncio.run(scenario())

    assert api.closed
    assert engine.context is None
    assert not engine.gate.running
    assert not engine.protected_running
