"""WebSocket endpoint carrying the relay event protocol."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TypeVar

from fastapi import APIRouter, WebSocket
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from walkie.realtime import RelayService
from walkie.realtime.events import ERROR, INVALID_MESSAGE, KEEPALIVE
from walkie.realtime.lifecycle import SERVICE_RESTART
from walkie.realtime.state import now_ms

router = APIRouter(tags=["ws"])

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    on_idle: Callable[[], bool],
) -> AsyncIterator[T]:
    """Yield messages from *receiver*, calling *on_idle* when the socket goes quiet.

    Iteration stops when the peer disconnects or *on_idle* returns ``False``.
    """

    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            should_ping = interval <= 0 or (
                now - last_activity >= interval
                and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if should_ping:
                if not on_idle():
                    break
                last_ping_sent = now
            continue
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


async def _receive_frame(websocket: WebSocket) -> str | None:
    """Return the next text frame, or ``None`` for a binary one."""

    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000))
    return message.get("text")


def _reply_invalid(relay: RelayService, connection_id: str, detail: str) -> None:
    relay.hub.send(
        connection_id, ERROR, {"code": INVALID_MESSAGE, "event": None, "detail": detail}
    )


@router.websocket("/ws")
async def relay_socket(websocket: WebSocket) -> None:
    """Accept a client and feed its frames to the relay until it goes away."""

    relay: RelayService | None = getattr(websocket.app.state, "relay", None)
    if relay is None or not relay.accepting:
        await websocket.close(code=SERVICE_RESTART, reason="Server is shutting down")
        return

    settings = websocket.app.state.settings
    await websocket.accept()
    connection_id = await relay.connect(websocket)

    def send_keepalive() -> bool:
        return relay.hub.send(connection_id, KEEPALIVE, {"timestamp": now_ms()})

    try:
        async for raw_message in iter_keepalive_messages(
            websocket,
            lambda: _receive_frame(websocket),
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
            on_idle=send_keepalive,
        ):
            if raw_message is None:
                _reply_invalid(relay, connection_id, "Binary frames are not supported")
                continue
            try:
                message = json.loads(raw_message)
            except json.JSONDecodeError:
                _reply_invalid(relay, connection_id, "Invalid message format")
                continue
            relay.handle(connection_id, message)
    finally:
        await relay.disconnect(connection_id)
        logger.debug("Websocket %s finished", connection_id)
