"""WebSocket endpoint carrying the realtime chat event contract."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from collections.abc import AsyncIterator, Callable
from typing import Any

from fastapi import APIRouter, WebSocket
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.config import get_settings
from parley.realtime.managers import get_connection_manager, get_router

router = APIRouter(tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

connections = get_connection_manager()
fanout = get_router()

CONNECTED = "connected"
PING = "ping"
PONG = "pong"


async def iter_text_frames(
    websocket: WebSocket,
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    on_idle: Callable[[], bool],
) -> AsyncIterator[str]:
    """Yield text frames until the client goes away.

    Binary frames are skipped. When the socket stays idle past the timeout,
    ``on_idle`` is called at most once per ping interval; returning ``False``
    ends the iteration.
    """

    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(websocket.receive(), timeout=timeout)
            else:
                message = await websocket.receive()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break
            now = time.monotonic()
            idle_long_enough = now - last_activity >= interval
            ping_due = last_ping_sent is None or now - last_ping_sent >= interval
            if interval <= 0 or (idle_long_enough and ping_due):
                if not on_idle():
                    break
                last_ping_sent = now
            continue
        except (RuntimeError, WebSocketDisconnect):
            break

        if message.get("type") == "websocket.disconnect":
            break
        last_activity = time.monotonic()
        last_ping_sent = None
        text = message.get("text")
        if text is None:
            logger.debug("Ignored non-text websocket frame")
            continue
        yield text


def _decode_frame(raw_message: str) -> tuple[str, Any] | None:
    try:
        frame = json.loads(raw_message)
    except json.JSONDecodeError:
        return None
    if not isinstance(frame, dict):
        return None
    event = frame.get("type")
    if not isinstance(event, str):
        return None
    return event, frame.get("data")


@router.websocket("/ws")
async def websocket_chat(websocket: WebSocket) -> None:
    """Bind a fresh connection handle and route its events until it goes away."""

    await websocket.accept()
    handle = uuid.uuid4().hex
    await connections.connect(handle, websocket)
    connections.send(handle, CONNECTED, {"id": handle})
    logger.debug("Connection opened", extra={"handle": handle})

    try:
        async for raw_message in iter_text_frames(
            websocket,
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
            on_idle=lambda: connections.send(handle, PING, None),
        ):
            decoded = _decode_frame(raw_message)
            if decoded is None:
                continue
            event, payload = decoded
            if event == PING:
                connections.send(handle, PONG, None)
                continue
            if event == PONG:
                continue
            await fanout.dispatch(handle, event, payload)
    finally:
        await connections.disconnect(handle)
        await fanout.disconnect(handle)
        logger.debug("Connection closed", extra={"handle": handle})
