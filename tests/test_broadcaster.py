from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest
from websockets.asyncio.client import connect
from websockets.protocol import State

from weighbridge.bridge import BindError, Broadcaster


class _StaleSession:
    """Subscriber whose transport is not OPEN."""

    def __init__(self, state: State):
        self.protocol = SimpleNamespace(state=state)
        self.remote_address = ("10.0.0.9", 50000)


async def _recv(client, timeout: float = 2.0):
    return await asyncio.wait_for(client.recv(), timeout=timeout)


@pytest.mark.asyncio
async def test_weight_subscribers_scenario(wait_until) -> None:
    broadcaster = Broadcaster("weight", "127.0.0.1", 0)
    await broadcaster.start()
    url = f"ws://127.0.0.1:{broadcaster.bound_port}"

    try:
        a = await connect(url)
        b = await connect(url)
        await wait_until(lambda: broadcaster.subscriber_count == 2)

        assert broadcaster.publish(b"12.5kg") == 2
        assert await _recv(a) == "12.5kg"
        assert await _recv(b) == "12.5kg"

        await a.close()
        await wait_until(lambda: broadcaster.subscriber_count == 1)

        assert broadcaster.publish(b"13.0kg") == 1
        assert await _recv(b) == "13.0kg"
        await b.close()
    finally:
        await broadcaster.stop()


@pytest.mark.asyncio
async def test_payloads_arrive_in_publish_order(wait_until) -> None:
    broadcaster = Broadcaster("rfid", "127.0.0.1", 0)
    await broadcaster.start()

    try:
        client = await connect(f"ws://127.0.0.1:{broadcaster.bound_port}")
        await wait_until(lambda: broadcaster.subscriber_count == 1)

        payloads = [f"TAG{i:03d}".encode() for i in range(20)]
        for payload in payloads:
            broadcaster.publish(payload)

        got = [await _recv(client) for _ in payloads]
        assert got == [p.decode() for p in payloads]
        assert broadcaster.messages_published == 20
        await client.close()
    finally:
        await broadcaster.stop()


@pytest.mark.asyncio
async def test_unsubscribed_session_receives_nothing(wait_until) -> None:
    broadcaster = Broadcaster("rfid", "127.0.0.1", 0)
    await broadcaster.start()

    try:
        client = await connect(f"ws://127.0.0.1:{broadcaster.bound_port}")
        await wait_until(lambda: broadcaster.subscriber_count == 1)
        (session,) = broadcaster.subscribers

        broadcaster.unsubscribe(session)
        broadcaster.unsubscribe(session)
        assert broadcaster.subscriber_count == 0

        assert broadcaster.publish(b"TAG001") == 0
        with pytest.raises(asyncio.TimeoutError):
            await _recv(client, timeout=0.2)
        await client.close()
    finally:
        await broadcaster.stop()


@pytest.mark.asyncio
async def test_invalid_utf8_is_replaced(wait_until) -> None:
    broadcaster = Broadcaster("weight", "127.0.0.1", 0)
    await broadcaster.start()

    try:
        client = await connect(f"ws://127.0.0.1:{broadcaster.bound_port}")
        await wait_until(lambda: broadcaster.subscriber_count == 1)
        broadcaster.publish(b"12.5\xffkg")
        assert await _recv(client) == "12.5\ufffdkg"
        await client.close()
    finally:
        await broadcaster.stop()


@pytest.mark.asyncio
async def test_client_messages_are_ignored(wait_until) -> None:
    broadcaster = Broadcaster("weight", "127.0.0.1", 0)
    await broadcaster.start()

    try:
        client = await connect(f"ws://127.0.0.1:{broadcaster.bound_port}")
        await wait_until(lambda: broadcaster.subscriber_count == 1)
        await client.send("hello")
        await asyncio.sleep(0.05)
        assert broadcaster.subscriber_count == 1
        assert broadcaster.publish(b"13.0kg") == 1
        assert await _recv(client) == "13.0kg"
        await client.close()
    finally:
        await broadcaster.stop()


def test_non_open_subscribers_are_skipped():
    broadcaster = Broadcaster("rfid")
    for state in (State.CONNECTING, State.CLOSING, State.CLOSED):
        broadcaster.subscribe(_StaleSession(state))

    assert broadcaster.publish(b"TAG001") == 0
    assert broadcaster.subscriber_count == 3
    assert broadcaster.messages_published == 1


@pytest.mark.asyncio
async def test_stop_disconnects_subscribers(wait_until) -> None:
    broadcaster = Broadcaster("rfid", "127.0.0.1", 0)
    await broadcaster.start()
    client = await connect(f"ws://127.0.0.1:{broadcaster.bound_port}")
    await wait_until(lambda: broadcaster.subscriber_count == 1)

    await broadcaster.stop()

    assert not broadcaster.is_running
    assert broadcaster.subscriber_count == 0
    await asyncio.wait_for(client.wait_closed(), timeout=2.0)
    await broadcaster.stop()


@pytest.mark.asyncio
async def test_bind_failure_raises_bind_error(occupied_port) -> None:
    broadcaster = Broadcaster("rfid", "127.0.0.1", occupied_port)
    with pytest.raises(BindError) as excinfo:
        await broadcaster.start()
    assert "rfid WebSocket server" in str(excinfo.value)
    assert not broadcaster.is_running
