"""WebSocket fan-out primitives used by the realtime core.

Each attached connection owns a bounded outbox drained by a dedicated writer
task. Enqueueing never awaits, so a handler can mutate state and schedule all of
its deliveries in one uninterrupted step, and frames reach a given socket in the
order they were queued.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Set

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.monitoring.metrics import relay_dropped_total, relay_events_total

logger = logging.getLogger(__name__)

CloseListener = Callable[[str], Awaitable[None]]

_OUTBOX_SIZE = 256


def build_envelope(event: str, data: Any) -> dict[str, Any]:
    return {"event": event, "data": data}


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Send JSON through *websocket*, returning ``False`` instead of raising."""

    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


@dataclass(slots=True)
class _Peer:
    connection_id: str
    websocket: WebSocket
    outbox: asyncio.Queue[Any] = field(default_factory=lambda: asyncio.Queue(maxsize=_OUTBOX_SIZE))
    rooms: Set[str] = field(default_factory=set)
    writer: asyncio.Task[None] | None = None


class ConnectionHub:
    """Deliver events to single connections or to every member of a room."""

    def __init__(self, *, outbox_size: int = _OUTBOX_SIZE) -> None:
        self._outbox_size = outbox_size
        self._peers: Dict[str, _Peer] = {}
        self._rooms: Dict[str, Dict[str, None]] = {}
        self._close_listeners: list[CloseListener] = []

    def __len__(self) -> int:
        return len(self._peers)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._peers

    def connection_ids(self) -> list[str]:
        return list(self._peers)

    def room_members(self, room: str) -> list[str]:
        return list(self._rooms.get(room, {}))

    def on_close(self, listener: CloseListener) -> None:
        """Register a coroutine called with the connection id after it detaches."""

        self._close_listeners.append(listener)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    def attach(self, connection_id: str, websocket: WebSocket) -> None:
        peer = _Peer(
            connection_id=connection_id,
            websocket=websocket,
            outbox=asyncio.Queue(maxsize=self._outbox_size),
        )
        peer.writer = asyncio.create_task(
            self._writer(peer), name=f"relay-writer-{connection_id}"
        )
        self._peers[connection_id] = peer

    async def detach(self, connection_id: str) -> None:
        """Forget a connection and notify close listeners once."""

        peer = self._peers.pop(connection_id, None)
        if peer is None:
            return
        for room in list(peer.rooms):
            self._drop_from_room(room, connection_id)
        await self._stop_writer(peer)
        for listener in list(self._close_listeners):
            try:
                await listener(connection_id)
            except Exception:
                logger.exception(
                    "Close listener failed", extra={"connection_id": connection_id}
                )

    def bind(self, connection_id: str, room: str) -> None:
        peer = self._peers.get(connection_id)
        if peer is None:
            return
        peer.rooms.add(room)
        self._rooms.setdefault(room, {})[connection_id] = None

    def unbind(self, connection_id: str, room: str) -> None:
        peer = self._peers.get(connection_id)
        if peer is not None:
            peer.rooms.discard(room)
        self._drop_from_room(room, connection_id)

    def _drop_from_room(self, room: str, connection_id: str) -> None:
        bucket = self._rooms.get(room)
        if bucket is None:
            return
        bucket.pop(connection_id, None)
        if not bucket:
            self._rooms.pop(room, None)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------
    def send(self, connection_id: str, event: str, data: Any) -> bool:
        """Queue *event* for one connection; unknown ids are dropped."""

        peer = self._peers.get(connection_id)
        if peer is None:
            relay_dropped_total.labels("unknown_connection").inc()
            return False
        return self._enqueue(peer, build_envelope(event, data), event)

    def broadcast(
        self,
        room: str,
        event: str,
        data: Any,
        *,
        exclude: Iterable[str] | None = None,
    ) -> int:
        """Queue *event* for every connection bound to *room* except *exclude*."""

        exclude_set = set(exclude or [])
        envelope = build_envelope(event, data)
        delivered = 0
        for connection_id in list(self._rooms.get(room, {})):
            if connection_id in exclude_set:
                continue
            peer = self._peers.get(connection_id)
            if peer is not None and self._enqueue(peer, envelope, event):
                delivered += 1
        return delivered

    def broadcast_all(self, event: str, data: Any) -> int:
        envelope = build_envelope(event, data)
        return sum(1 for peer in list(self._peers.values()) if self._enqueue(peer, envelope, event))

    def _enqueue(self, peer: _Peer, envelope: dict[str, Any], event: str) -> bool:
        try:
            peer.outbox.put_nowait(envelope)
        except asyncio.QueueFull:
            relay_dropped_total.labels("outbox_full").inc()
            logger.warning(
                "Outbox full; dropping %s", event, extra={"connection_id": peer.connection_id}
            )
            return False
        relay_events_total.labels(event, "out").inc()
        return True

    async def flush(self, connection_id: str | None = None) -> None:
        """Wait until queued frames have been handed to the socket."""

        if connection_id is None:
            peers = list(self._peers.values())
        else:
            peer = self._peers.get(connection_id)
            peers = [peer] if peer is not None else []
        for peer in peers:
            if peer.writer is not None and not peer.writer.done():
                await peer.outbox.join()

    async def close(self, connection_id: str, *, code: int = 1000, reason: str = "") -> None:
        """Flush pending frames, then close the underlying socket."""

        peer = self._peers.get(connection_id)
        if peer is None:
            return
        await self.flush(connection_id)
        if peer.websocket.application_state == WebSocketState.CONNECTED:
            with contextlib.suppress(RuntimeError, WebSocketDisconnect):
                await peer.websocket.close(code=code, reason=reason)

    async def close_all(self, *, code: int = 1001, reason: str = "") -> None:
        await asyncio.gather(
            *(self.close(connection_id, code=code, reason=reason) for connection_id in list(self._peers))
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _writer(self, peer: _Peer) -> None:
        while True:
            envelope = await peer.outbox.get()
            try:
                if not await safe_send_json(peer.websocket, envelope):
                    relay_dropped_total.labels("send_failed").inc()
            finally:
                peer.outbox.task_done()

    async def _stop_writer(self, peer: _Peer) -> None:
        writer = peer.writer
        if writer is not None and not writer.done():
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await writer
        # Frames left behind are never sent; release them so flush() returns.
        while True:
            try:
                peer.outbox.get_nowait()
            except asyncio.QueueEmpty:
                break
            peer.outbox.task_done()
            relay_dropped_total.labels("connection_closed").inc()


__all__ = ["ConnectionHub", "CloseListener", "build_envelope", "safe_send_json"]
