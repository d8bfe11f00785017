from __future__ import annotations

import asyncio
import random

import pytest
from statemachine.exceptions import TransitionNotAllowed

from bridge.api.models import ConnectionState
from bridge.core.events import BridgeEvent
from bridge.errors import InvalidFrame
from bridge.fsm import ConnectionFSM
from bridge.transport import ReconnectPolicy, TransportSession
from fakes import FAST_POLICY, FakeServer, next_event

URI = "ws://localhost:7000/api"


def _session(server: FakeServer, policy: ReconnectPolicy = FAST_POLICY) -> tuple[TransportSession, asyncio.Queue[BridgeEvent]]:
    events: asyncio.Queue[BridgeEvent] = asyncio.Queue()
    return TransportSession(uri=URI, events=events, connector=server, policy=policy), events


def test_fsm_follows_connection_lifecycle() -> None:
    fsm = ConnectionFSM()
    assert fsm.connection_state is ConnectionState.disconnected

    fsm.dial()
    assert fsm.connection_state is ConnectionState.connecting
    fsm.opened()
    assert fsm.connection_state is ConnectionState.connected
    fsm.dropped()
    assert fsm.connection_state is ConnectionState.disconnected

    # A failed dial goes straight back to disconnected.
    fsm.dial()
    fsm.dropped()
    assert fsm.connection_state is ConnectionState.disconnected


def test_fsm_rejects_open_without_dial() -> None:
    fsm = ConnectionFSM()
    with pytest.raises(TransitionNotAllowed):
        fsm.opened()


def test_backoff_grows_geometrically_and_is_capped() -> None:
    policy = ReconnectPolicy(initial_delay=1.0, max_delay=5.0, backoff_factor=2.0, jitter=0.0)

    assert [policy.delay_for(n) for n in range(5)] == [0.0, 1.0, 2.0, 4.0, 5.0]


def test_backoff_stays_at_cap_on_long_outages() -> None:
    assert ReconnectPolicy(jitter=0.0).delay_for(10_000) == 10.0
    assert ReconnectPolicy(max_delay=1e308, jitter=0.0).delay_for(10_000) == 1e308

    policy = ReconnectPolicy()
    rng = random.Random(3)
    for attempt in (2705, 2706, 3000, 50_000):
        assert 0.0 < policy.delay_for(attempt, rng=rng) <= 10.0


def test_backoff_jitter_stays_in_bounds() -> None:
    policy = ReconnectPolicy(initial_delay=1.0, max_delay=100.0, backoff_factor=1.3, jitter=4.0)
    rng = random.Random(7)

    for _ in range(50):
        assert 1.0 <= policy.delay_for(1, rng=rng) <= 5.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"initial_delay": -1.0},
        {"backoff_factor": 0.5},
        {"connect_timeout": 0.0},
        {"max_queued_messages": -1},
    ],
)
def test_invalid_policy_is_rejected(kwargs: dict[str, float]) -> None:
    with pytest.raises(ValueError):
        ReconnectPolicy(**kwargs)


@pytest.mark.asyncio
async def test_sends_while_disconnected_flush_in_order_on_open(fake_server: FakeServer) -> None:
    session, events = _session(fake_server)
    assert session.state is ConnectionState.disconnected

    for n in (1, 2, 3):
        assert await session.send({"n": n}) is True
    assert session.queued == ['{"n":1}', '{"n":2}', '{"n":3}']

    session.start()
    try:
        ev = await next_event(events)
        assert ev.type == "OPEN"
        # Flushed before OPEN is announced.
        assert fake_server.latest.sent == ['{"n":1}', '{"n":2}', '{"n":3}']
        assert session.queued == []
        assert session.state is ConnectionState.connected
    finally:
        await session.stop()


@pytest.mark.asyncio
async def test_send_while_connected_goes_straight_out(fake_server: FakeServer) -> None:
    session, events = _session(fake_server)
    session.start()
    try:
        assert (await next_event(events)).type == "OPEN"
        await session.send({"type": "move", "to": "e4"})
        assert fake_server.latest.sent == ['{"type":"move","to":"e4"}']
    finally:
        await session.stop()


@pytest.mark.asyncio
async def test_frames_are_emitted_in_arrival_order(fake_server: FakeServer) -> None:
    session, events = _session(fake_server)
    session.start()
    try:
        assert (await next_event(events)).type == "OPEN"
        conn = fake_server.latest
        for raw in ('{"a":1}', "garbage", '{"a":2}'):
            conn.feed(raw)

        frames = [await next_event(events) for _ in range(3)]
        assert [f.type for f in frames] == ["FRAME", "FRAME", "FRAME"]
        assert [f.payload for f in frames] == ['{"a":1}', "garbage", '{"a":2}']
        assert session.state is ConnectionState.connected
    finally:
        await session.stop()


@pytest.mark.asyncio
async def test_clean_close_emits_one_close_then_reconnects(fake_server: FakeServer) -> None:
    session, events = _session(fake_server)
    session.start()
    try:
        assert (await next_event(events)).type == "OPEN"
        fake_server.latest.close_cleanly()

        assert (await next_event(events)).type == "CLOSE"
        assert (await next_event(events)).type == "OPEN"
        assert len(fake_server.connections) == 2
        assert fake_server.uris == [URI, URI]
    finally:
        await session.stop()


@pytest.mark.asyncio
async def test_abnormal_drop_emits_one_error_then_reconnects(fake_server: FakeServer) -> None:
    session, events = _session(fake_server)
    session.start()
    try:
        assert (await next_event(events)).type == "OPEN"
        fake_server.latest.fail(ConnectionResetError("reset by peer"))

        ev = await next_event(events)
        assert ev.type == "ERROR"
        assert ev.payload["kind"] == "TransportError"
        assert "reset by peer" in ev.payload["message"]

        assert (await next_event(events)).type == "OPEN"
        assert fake_server.connections[0].closed is True
    finally:
        await session.stop()


@pytest.mark.asyncio
async def test_refused_dials_keep_retrying(fake_server: FakeServer) -> None:
    fake_server.refuse = 2
    session, events = _session(fake_server)
    session.start()
    try:
        kinds = [(await next_event(events)).type for _ in range(3)]
        assert kinds == ["ERROR", "ERROR", "OPEN"]
        assert len(fake_server.uris) == 3
    finally:
        await session.stop()


@pytest.mark.asyncio
async def test_thousands_of_refused_dials_do_not_stop_the_session(fake_server: FakeServer) -> None:
    fake_server.refuse = 3000
    policy = ReconnectPolicy(initial_delay=0.0, max_delay=0.0, backoff_factor=1.3, jitter=0.0, connect_timeout=1.0)
    session, events = _session(fake_server, policy)
    session.start()
    try:
        for _ in range(3000):
            assert (await next_event(events)).type == "ERROR"
        assert (await next_event(events)).type == "OPEN"
        assert len(fake_server.uris) == 3001
        assert session.state is ConnectionState.connected
    finally:
        await session.stop()


@pytest.mark.asyncio
async def test_stop_leaves_session_disconnected_and_restartable(fake_server: FakeServer) -> None:
    session, events = _session(fake_server)
    session.start()
    assert (await next_event(events)).type == "OPEN"

    await session.stop()
    assert session.state is ConnectionState.disconnected
    assert fake_server.latest.closed

    session.start()
    try:
        assert (await next_event(events)).type == "OPEN"
        assert session.state is ConnectionState.connected
        assert len(fake_server.connections) == 2
    finally:
        await session.stop()
    assert session.state is ConnectionState.disconnected


@pytest.mark.asyncio
async def test_dial_timeout_counts_as_error(fake_server: FakeServer) -> None:
    fake_server.stall = True
    policy = ReconnectPolicy(initial_delay=5.0, jitter=0.0, connect_timeout=0.05)
    session, events = _session(fake_server, policy)
    session.start()
    try:
        ev = await next_event(events)
        assert ev.type == "ERROR"
        assert session.state is ConnectionState.disconnected
    finally:
        await session.stop()


@pytest.mark.asyncio
async def test_sends_during_outage_flush_in_order_on_reconnect(fake_server: FakeServer) -> None:
    policy = ReconnectPolicy(initial_delay=0.05, max_delay=0.05, jitter=0.0, connect_timeout=1.0)
    session, events = _session(fake_server, policy)
    session.start()
    try:
        assert (await next_event(events)).type == "OPEN"
        first = fake_server.latest
        first.close_cleanly()
        assert (await next_event(events)).type == "CLOSE"

        for m in ("m1", "m2", "m3"):
            await session.send(m)
        assert first.sent == []

        assert (await next_event(events)).type == "OPEN"
        assert fake_server.latest is not first
        assert fake_server.latest.sent == ['"m1"', '"m2"', '"m3"']
    finally:
        await session.stop()


@pytest.mark.asyncio
async def test_failed_send_is_kept_for_next_connection(fake_server: FakeServer) -> None:
    session, events = _session(fake_server)
    session.start()
    try:
        assert (await next_event(events)).type == "OPEN"
        fake_server.latest.fail_sends = True

        assert await session.send({"keep": True}) is True
        assert session.queued == ['{"keep":true}']
    finally:
        await session.stop()


@pytest.mark.asyncio
async def test_bounded_queue_drops_newest(fake_server: FakeServer) -> None:
    policy = ReconnectPolicy(jitter=0.0, max_queued_messages=2)
    session, _events = _session(fake_server, policy)

    assert await session.send(1) is True
    assert await session.send(2) is True
    assert await session.send(3) is False
    assert session.queued == ["1", "2"]


@pytest.mark.asyncio
async def test_unserializable_payload_is_rejected(fake_server: FakeServer) -> None:
    session, _events = _session(fake_server)

    with pytest.raises(InvalidFrame):
        await session.send({"when": object()})
    assert session.queued == []
