"""Composition root wiring the relay core to a websocket transport."""

from __future__ import annotations

import logging
import os
import time
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from fastapi import WebSocket

from app.monitoring.metrics import relay_active_connections

from .dispatcher import EventDispatcher
from .events import CONNECTED
from .janitor import Janitor
from .lifecycle import LifecycleController
from .presence import PresenceBroadcaster
from .relay import MediaRelay
from .router import SignalingRouter
from .state import RelayState, now_ms
from .transport import ConnectionHub

if TYPE_CHECKING:  # pragma: no cover
    from app.config import Settings

logger = logging.getLogger(__name__)


class RelayService:
    """Own one relay instance: its state, transport hub and background work."""

    def __init__(
        self,
        *,
        media_root: Path,
        media_retention_seconds: float = 3600,
        media_purge_on_shutdown: bool = True,
        channel_interval: float = 60,
        media_interval: float = 300,
        stats_interval: float = 300,
        shutdown_grace_seconds: float = 10,
        allow_cross_channel: bool = False,
        terminate: Callable[[int], Any] = os._exit,
    ) -> None:
        self.state = RelayState()
        self.hub = ConnectionHub()
        self.presence = PresenceBroadcaster(self.state, self.hub)
        self.router = SignalingRouter(self.state, self.hub, allow_cross_channel=allow_cross_channel)
        self.relay = MediaRelay(self.state, self.hub)
        self.dispatcher = EventDispatcher(
            self.state, self.hub, self.presence, self.router, self.relay
        )
        self.janitor = Janitor(
            self.state,
            media_root=media_root,
            media_retention_seconds=media_retention_seconds,
            channel_interval=channel_interval,
            media_interval=media_interval,
            stats_interval=stats_interval,
        )
        self.lifecycle = LifecycleController(
            self.hub,
            self.janitor,
            grace_seconds=shutdown_grace_seconds,
            purge_media_on_shutdown=media_purge_on_shutdown,
            terminate=terminate,
        )
        self.started_at = time.monotonic()
        self.hub.on_close(self._on_close)

    @classmethod
    def from_settings(cls, settings: "Settings", **overrides: Any) -> "RelayService":
        options: dict[str, Any] = {
            "media_root": settings.media_root,
            "media_retention_seconds": settings.media_retention_seconds,
            "media_purge_on_shutdown": settings.media_purge_on_shutdown,
            "channel_interval": settings.janitor_channel_interval_seconds,
            "media_interval": settings.janitor_media_interval_seconds,
            "stats_interval": settings.janitor_stats_interval_seconds,
            "shutdown_grace_seconds": settings.shutdown_grace_seconds,
            "allow_cross_channel": settings.signaling_allow_cross_channel,
        }
        options.update(overrides)
        return cls(**options)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def accepting(self) -> bool:
        return self.lifecycle.accepting

    async def startup(self) -> None:
        self.lifecycle.start()
        logger.info("Relay started")

    async def shutdown(self) -> int:
        return await self.lifecycle.shutdown()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------
    async def connect(self, websocket: WebSocket) -> str:
        """Register an accepted socket and greet it with its connection id."""

        connection_id = uuid.uuid4().hex
        self.state.connections.register(connection_id)
        self.hub.attach(connection_id, websocket)
        relay_active_connections.set(len(self.state.connections))
        logger.info("User connected: %s", connection_id)
        self.hub.send(connection_id, CONNECTED, {"connectionId": connection_id, "timestamp": now_ms()})
        return connection_id

    def handle(self, connection_id: str, message: Any) -> None:
        self.dispatcher.dispatch(connection_id, message)

    async def disconnect(self, connection_id: str) -> None:
        await self.hub.detach(connection_id)

    async def _on_close(self, connection_id: str) -> None:
        self.presence.disconnect(connection_id)
        relay_active_connections.set(len(self.state.connections))

    # ------------------------------------------------------------------
    # HTTP collaborators
    # ------------------------------------------------------------------
    def announce_audio(self, channel_id: str, user_id: str | None, audio_url: str) -> int:
        return self.relay.announce_audio(channel_id, user_id, audio_url)

    def channels_snapshot(self) -> list[dict[str, object]]:
        return self.state.channels.snapshot()

    def counts(self) -> dict[str, int]:
        return {
            "channels": len(self.state.channels),
            "users": len(self.state.connections),
        }

    def uptime(self) -> float:
        return time.monotonic() - self.started_at


__all__ = ["RelayService"]
