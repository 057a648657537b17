from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from fastapi import WebSocket

LOGGER = logging.getLogger(__name__)

_SEND_TIMEOUT_S: float = 2.0
"""Per-message send timeout; connections exceeding this are dropped."""

_DEFAULT_QUEUE_SIZE: int = 256
"""Pending messages buffered per connection before it is considered stalled."""

_DROP_LOG_INTERVAL_S: float = 10.0
"""Minimum interval between logged slow-subscriber warnings to avoid log spam."""

_CLOSE_POLICY_VIOLATION: int = 1008
"""Close code sent to subscribers dropped for falling behind."""


@dataclass(slots=True)
class WSConnection:
    websocket: WebSocket
    queue: asyncio.Queue[str]
    closed: asyncio.Event = field(default_factory=asyncio.Event)
    dropped: bool = False


class WebSocketHub:
    """Registry of live websocket subscribers with non-blocking broadcast.

    Every connection owns a bounded queue drained by its own writer
    coroutine (:meth:`pump`).  ``broadcast`` only enqueues, so one slow
    client never delays the others; a client whose queue is full is
    dropped and its socket closed with code 1008.
    """

    def __init__(
        self,
        queue_size: int = _DEFAULT_QUEUE_SIZE,
        send_timeout_s: float = _SEND_TIMEOUT_S,
    ) -> None:
        if queue_size < 1:
            raise ValueError(f"queue_size must be >= 1, got {queue_size!r}")
        self._connections: dict[int, WSConnection] = {}
        self._lock = asyncio.Lock()
        self._queue_size = queue_size
        self._send_timeout_s = send_timeout_s
        self._last_drop_log_ts = 0.0
        self._closers: set[asyncio.Task] = set()
        self.dropped_total = 0

    def __len__(self) -> int:
        return len(self._connections)

    async def add(self, websocket: WebSocket) -> WSConnection:
        conn = WSConnection(websocket=websocket, queue=asyncio.Queue(maxsize=self._queue_size))
        async with self._lock:
            self._connections[id(websocket)] = conn
        return conn

    async def remove(self, websocket: WebSocket) -> None:
        async with self._lock:
            conn = self._connections.pop(id(websocket), None)
        if conn is not None:
            conn.closed.set()

    async def _snapshot(self) -> list[WSConnection]:
        async with self._lock:
            return list(self._connections.values())

    async def broadcast(self, message: str | dict[str, Any]) -> int:
        """Enqueue *message* for every subscriber; returns how many accepted it."""
        text = message if isinstance(message, str) else json.dumps(message, separators=(",", ":"))
        conns = await self._snapshot()
        delivered = 0
        stalled: list[WSConnection] = []
        for conn in conns:
            try:
                conn.queue.put_nowait(text)
                delivered += 1
            except asyncio.QueueFull:
                stalled.append(conn)
        for conn in stalled:
            self.dropped_total += 1
            await self.remove(conn.websocket)
            self._drop(conn)
        if stalled:
            now = asyncio.get_running_loop().time()
            if (now - self._last_drop_log_ts) >= _DROP_LOG_INTERVAL_S:
                self._last_drop_log_ts = now
                LOGGER.warning(
                    "Dropped %d slow websocket subscriber(s) with full send queues.",
                    len(stalled),
                )
        return delivered

    async def pump(self, conn: WSConnection) -> None:
        """Writer loop for *conn*: drain its queue until it is closed or a send fails."""
        try:
            while not conn.closed.is_set():
                get_task = asyncio.ensure_future(conn.queue.get())
                close_task = asyncio.ensure_future(conn.closed.wait())
                try:
                    done, _ = await asyncio.wait(
                        {get_task, close_task}, return_when=asyncio.FIRST_COMPLETED
                    )
                finally:
                    for task in (get_task, close_task):
                        if not task.done():
                            task.cancel()
                if get_task not in done:
                    break
                await asyncio.wait_for(
                    conn.websocket.send_text(get_task.result()),
                    timeout=self._send_timeout_s,
                )
        except asyncio.CancelledError:
            raise
        except TimeoutError:
            LOGGER.warning("WebSocket send timed out; closing connection.")
            self._drop(conn)
        except Exception:
            LOGGER.warning("WebSocket send failed; connection will be removed.", exc_info=True)
        finally:
            await self.remove(conn.websocket)

    def _drop(self, conn: WSConnection) -> None:
        # Close is detached; broadcast never waits on the dropped client.
        if conn.dropped:
            return
        conn.dropped = True
        task = asyncio.create_task(self._close_socket(conn.websocket), name="ws-close")
        self._closers.add(task)
        task.add_done_callback(self._closers.discard)

    async def _close_socket(self, websocket: WebSocket) -> None:
        try:
            await asyncio.wait_for(
                websocket.close(code=_CLOSE_POLICY_VIOLATION),
                timeout=self._send_timeout_s,
            )
        except Exception:
            LOGGER.warning("Closing dropped websocket failed", exc_info=True)
