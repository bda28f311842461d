"""Connection bookkeeping and fire-and-forget delivery to websocket handles."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.monitoring.metrics import realtime_connections, realtime_deliveries_total

logger = logging.getLogger(__name__)


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Safely send JSON data through websocket, handling disconnections gracefully.

    Returns True if message was sent successfully, False otherwise.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


def build_frame(event: str, data: Any) -> dict[str, Any]:
    return {"type": event, "data": data}


@dataclass(slots=True)
class _Outbox:
    websocket: WebSocket
    queue: asyncio.Queue[dict[str, Any]]
    task: asyncio.Task[None] | None = None


class ConnectionManager:
    """Track live websocket connections by handle.

    ``send`` and ``broadcast`` never await: frames are queued per connection and
    written by a dedicated task, so callers holding the routing lock are not
    blocked by slow sockets and each connection sees frames in queue order.
    """

    def __init__(self) -> None:
        self._outboxes: Dict[str, _Outbox] = {}

    def __contains__(self, handle: object) -> bool:
        return handle in self._outboxes

    def __len__(self) -> int:
        return len(self._outboxes)

    def handles(self) -> list[str]:
        return list(self._outboxes)

    async def connect(self, handle: str, websocket: WebSocket) -> None:
        if handle in self._outboxes:
            await self.disconnect(handle)
        outbox = _Outbox(websocket=websocket, queue=asyncio.Queue())
        outbox.task = asyncio.create_task(
            self._writer(handle, outbox), name=f"realtime-writer-{handle}"
        )
        self._outboxes[handle] = outbox
        realtime_connections.labels("chat").inc()

    async def disconnect(self, handle: str) -> None:
        outbox = self._outboxes.pop(handle, None)
        if outbox is None:
            return
        realtime_connections.labels("chat").dec()
        if outbox.task is not None and not outbox.task.done():
            outbox.task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await outbox.task

    def send(self, handle: str, event: str, data: Any) -> bool:
        outbox = self._outboxes.get(handle)
        if outbox is None:
            return False
        outbox.queue.put_nowait(build_frame(event, data))
        realtime_deliveries_total.labels(event).inc()
        return True

    def send_many(self, handles: Iterable[str], event: str, data: Any) -> int:
        delivered = 0
        for handle in dict.fromkeys(handles):
            if self.send(handle, event, data):
                delivered += 1
        return delivered

    def broadcast(self, event: str, data: Any) -> int:
        return self.send_many(self.handles(), event, data)

    async def close(self) -> None:
        for handle in self.handles():
            await self.disconnect(handle)

    async def _writer(self, handle: str, outbox: _Outbox) -> None:
        while True:
            frame = await outbox.queue.get()
            try:
                delivered = await safe_send_json(outbox.websocket, frame)
            except Exception:
                logger.exception(
                    "Unexpected error while sending %s frame", frame["type"],
                    extra={"handle": handle},
                )
                continue
            if not delivered:
                logger.debug(
                    "Dropped %s frame for unreachable connection", frame["type"],
                    extra={"handle": handle},
                )
