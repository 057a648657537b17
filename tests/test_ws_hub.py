"""Tests for the WebSocket broadcast hub."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from conftest import async_wait_until

from appliance_monitor.ws_hub import WebSocketHub


def _make_ws() -> AsyncMock:
    """Create a mock WebSocket with ``send_text``."""
    ws = AsyncMock()
    ws.send_text = AsyncMock()
    return ws


@pytest.mark.asyncio
async def test_add_remove() -> None:
    hub = WebSocketHub()
    ws = _make_ws()
    conn = await hub.add(ws)
    conns = await hub._snapshot()
    assert len(conns) == 1
    assert conns[0].websocket is ws
    await hub.remove(ws)
    assert await hub._snapshot() == []
    assert conn.closed.is_set()


@pytest.mark.asyncio
async def test_remove_unknown_websocket_is_noop() -> None:
    hub = WebSocketHub()
    await hub.remove(_make_ws())
    assert len(hub) == 0


@pytest.mark.asyncio
async def test_broadcast_enqueues_for_every_subscriber() -> None:
    hub = WebSocketHub()
    a = await hub.add(_make_ws())
    b = await hub.add(_make_ws())
    delivered = await hub.broadcast({"state": "running"})
    assert delivered == 2
    assert json.loads(a.queue.get_nowait()) == {"state": "running"}
    assert json.loads(b.queue.get_nowait()) == {"state": "running"}


@pytest.mark.asyncio
async def test_broadcast_without_subscribers_is_noop() -> None:
    hub = WebSocketHub()
    assert await hub.broadcast("hello") == 0


@pytest.mark.asyncio
async def test_full_queue_drops_only_that_subscriber() -> None:
    hub = WebSocketHub(queue_size=2)
    slow_ws = _make_ws()
    slow = await hub.add(slow_ws)
    fast = await hub.add(_make_ws())
    await hub.broadcast("1")
    await hub.broadcast("2")
    fast.queue.get_nowait()
    fast.queue.get_nowait()

    delivered = await hub.broadcast("3")

    assert delivered == 1
    assert len(hub) == 1
    assert slow.closed.is_set()
    assert hub.dropped_total == 1
    assert fast.queue.get_nowait() == "3"
    conns = await hub._snapshot()
    assert conns[0].websocket is not slow_ws


@pytest.mark.asyncio
async def test_pump_sends_queued_messages_in_order() -> None:
    hub = WebSocketHub()
    ws = _make_ws()
    conn = await hub.add(ws)
    writer = asyncio.create_task(hub.pump(conn))
    await hub.broadcast("first")
    await hub.broadcast("second")
    assert await async_wait_until(lambda: ws.send_text.await_count == 2)
    assert [c.args[0] for c in ws.send_text.await_args_list] == ["first", "second"]
    await hub.remove(ws)
    await asyncio.wait_for(writer, timeout=1.0)


@pytest.mark.asyncio
async def test_pump_removes_connection_when_send_fails(caplog) -> None:
    hub = WebSocketHub()
    ws = _make_ws()
    ws.send_text.side_effect = RuntimeError("socket closed")
    conn = await hub.add(ws)
    writer = asyncio.create_task(hub.pump(conn))
    with caplog.at_level("WARNING", logger="appliance_monitor.ws_hub"):
        await hub.broadcast("x")
        await asyncio.wait_for(writer, timeout=1.0)
    assert len(hub) == 0
    assert "send failed" in caplog.text


@pytest.mark.asyncio
async def test_slow_send_does_not_block_broadcast() -> None:
    hub = WebSocketHub(send_timeout_s=5.0)
    blocked = asyncio.Event()

    async def _never_returns(_text: str) -> None:
        blocked.set()
        await asyncio.sleep(60)

    slow_ws = _make_ws()
    slow_ws.send_text = AsyncMock(side_effect=_never_returns)
    slow = await hub.add(slow_ws)
    writer = asyncio.create_task(hub.pump(slow))
    fast = await hub.add(_make_ws())

    await hub.broadcast("a")
    await asyncio.wait_for(blocked.wait(), timeout=1.0)
    assert await asyncio.wait_for(hub.broadcast("b"), timeout=0.5) == 2
    assert fast.queue.qsize() == 2

    writer.cancel()
    await asyncio.gather(writer, return_exceptions=True)


@pytest.mark.asyncio
async def test_dropped_subscriber_socket_is_closed() -> None:
    hub = WebSocketHub(queue_size=1, send_timeout_s=5.0)
    blocked = asyncio.Event()

    async def _never_returns(_text: str) -> None:
        blocked.set()
        await asyncio.sleep(60)

    slow_ws = _make_ws()
    slow_ws.send_text = AsyncMock(side_effect=_never_returns)
    slow = await hub.add(slow_ws)
    writer = asyncio.create_task(hub.pump(slow))
    fast_ws = _make_ws()
    fast = await hub.add(fast_ws)

    await hub.broadcast("a")
    await asyncio.wait_for(blocked.wait(), timeout=1.0)
    fast.queue.get_nowait()
    await hub.broadcast("b")
    fast.queue.get_nowait()
    await hub.broadcast("c")

    assert await async_wait_until(lambda: slow_ws.close.await_count >= 1)
    slow_ws.close.assert_awaited_once_with(code=1008)
    fast_ws.close.assert_not_awaited()
    assert len(hub) == 1
    assert fast.queue.get_nowait() == "c"

    writer.cancel()
    await asyncio.gather(writer, return_exceptions=True)


@pytest.mark.asyncio
async def test_send_timeout_closes_socket() -> None:
    hub = WebSocketHub(send_timeout_s=0.05)

    async def _never_returns(_text: str) -> None:
        await asyncio.sleep(60)

    ws = _make_ws()
    ws.send_text = AsyncMock(side_effect=_never_returns)
    conn = await hub.add(ws)
    writer = asyncio.create_task(hub.pump(conn))
    await hub.broadcast("x")
    await asyncio.wait_for(writer, timeout=1.0)

    assert await async_wait_until(lambda: ws.close.await_count == 1)
    ws.close.assert_awaited_once_with(code=1008)
    assert len(hub) == 0


@pytest.mark.asyncio
async def test_close_failure_is_logged_not_raised(caplog) -> None:
    hub = WebSocketHub(queue_size=1)
    ws = _make_ws()
    ws.close.side_effect = RuntimeError("already closed")
    await hub.add(ws)
    with caplog.at_level("WARNING", logger="appliance_monitor.ws_hub"):
        await hub.broadcast("1")
        assert await hub.broadcast("2") == 0
        assert await async_wait_until(lambda: ws.close.await_count == 1)
        await asyncio.sleep(0)
    assert "Closing dropped websocket failed" in caplog.text
    assert hub.dropped_total == 1


def test_rejects_zero_queue_size() -> None:
    with pytest.raises(ValueError):
        WebSocketHub(queue_size=0)
