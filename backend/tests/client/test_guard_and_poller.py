import asyncio

import pytest

from gittogether.client import ActionGuard, ActionInFlight, ApiUnavailable, AuthExpired, Poller


@pytest.mark.asyncio
async def test_guard_refuses_second_trigger_while_in_flight():
    guard = ActionGuard()
    release = asyncio.Event()
    calls = []

    async def action():
        calls.append("call")
        await release.wait()
        return "done"

    first = asyncio.create_task(guard.run("friend:send:bob", action))
    await asyncio.sleep(0)
    assert guard.is_busy("friend:send:bob")

    with pytest.raises(ActionInFlight):
        await guard.run("friend:send:bob", action)
    assert await guard.run("friend:send:carol", lambda: asyncio.sleep(0, result="other")) == "other"

    release.set()
    assert await first == "done"
    assert calls == ["call"]
    assert not guard.is_busy("friend:send:bob")


@pytest.mark.asyncio
async def test_guard_releases_key_after_failure():
    guard = ActionGuard()

    async def failing():
        raise ApiUnavailable("boom")

    with pytest.raises(ApiUnavailable):
        await guard.run("team:apply:1", failing)
    assert not guard.is_busy("team:apply:1")


def test_poller_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        Poller(lambda: None, lambda result: None, interval=0)


@pytest.mark.asyncio
async def test_stale_result_is_discarded_after_stop():
    applied = []
    gate = asyncio.Event()

    async def slow_fetch():
        await gate.wait()
        return ["old"]

    poller = Poller(slow_fetch, applied.append, interval=60)
    pending = asyncio.create_task(poller.refresh())
    await asyncio.sleep(0)
    await poller.stop()
    gate.set()

    assert await pending is False
    assert applied == []


@pytest.mark.asyncio
async def test_rebind_switches_view_and_stop_cancels():
    applied = []

    async def fetch_a():
        return "a"

    async def fetch_b():
        return "b"

    poller = Poller(fetch_a, lambda result: applied.append(("a", result)), interval=0.01)
    poller.start()
    await asyncio.sleep(0.03)
    await poller.rebind(fetch_b, lambda result: applied.append(("b", result)))
    await asyncio.sleep(0.03)
    await poller.stop()

    assert not poller.running
    assert ("a", "a") in applied
    assert ("b", "b") in applied
    first_b = applied.index(("b", "b"))
    assert all(view == "b" for view, _ in applied[first_b:])

    count = len(applied)
    await asyncio.sleep(0.03)
    assert len(applied) == count


@pytest.mark.asyncio
async def test_poller_survives_errors_and_stops_on_expired_session():
    errors = []
    outcomes = iter([ApiUnavailable("down"), AuthExpired("expired")])

    async def fetch():
        raise next(outcomes)

    poller = Poller(fetch, lambda result: None, interval=0.01, on_error=errors.append)
    poller.start()
    await asyncio.sleep(0.05)

    assert [type(e) for e in errors] == [ApiUnavailable]
    assert not poller.running


@pytest.mark.asyncio
async def test_stop_leaves_in_flight_fetch_running_and_ignores_its_reply():
    applied = []
    started = asyncio.Event()
    gate = asyncio.Event()
    finished = []

    async def slow_fetch():
        started.set()
        await gate.wait()
        finished.append(True)
        return ["late"]

    poller = Poller(slow_fetch, applied.append, interval=60)
    poller.start()
    await started.wait()
    await poller.stop()
    assert not poller.running

    gate.set()
    for _ in range(5):
        await asyncio.sleep(0)

    assert finished == [True]
    assert applied == []


@pytest.mark.asyncio
async def test_unexpected_errors_do_not_end_polling():
    applied = []
    outcomes = iter([ValueError("bad json")])

    async def fetch():
        error = next(outcomes, None)
        if error is not None:
            raise error
        return "ok"

    poller = Poller(fetch, applied.append, interval=0.01)
    poller.start()
    await asyncio.sleep(0.05)
    await poller.stop()

    assert "ok" in applied
