"""Route WebRTC negotiation messages to their destination."""

from __future__ import annotations

import logging

from app.monitoring.metrics import relay_dropped_total

from ..voice.signaling import (
    SIGNAL_FIELDS,
    Broadcast,
    Destination,
    Direct,
    build_signal_envelope,
    resolve_destination,
)
from .events import WEBRTC_CONNECTION_REQUEST, ConnectionRequest, SignalEvent
from .state import RelayState
from .transport import ConnectionHub

logger = logging.getLogger(__name__)


class SignalingRouter:
    """Relay offer/answer/candidate payloads without looking inside them."""

    def __init__(
        self,
        state: RelayState,
        hub: ConnectionHub,
        *,
        allow_cross_channel: bool = False,
    ) -> None:
        self._state = state
        self._hub = hub
        self._allow_cross_channel = allow_cross_channel

    def relay(
        self,
        connection_id: str,
        event: str,
        payload: SignalEvent,
        *,
        channel_id: str | None,
    ) -> int:
        """Deliver a signal and return the number of recipients it was queued for."""

        sender = self._state.connections.lookup(connection_id)
        if sender is None or sender.user_id is None:
            return 0
        kind = SIGNAL_FIELDS[event]
        destination = resolve_destination(
            kind,
            channel_id=channel_id,
            target_user_id=payload.target_user_id,
            to=payload.to,
            allow_cross_channel=self._allow_cross_channel,
        )
        logger.debug(
            "WebRTC %s from %s",
            kind,
            sender.user_id,
            extra={"channel_id": channel_id, "destination": repr(destination)},
        )
        body = build_signal_envelope(event, sender.user_id, getattr(payload, kind))
        return self._deliver(connection_id, event, body, destination)

    def request_connection(
        self,
        connection_id: str,
        payload: ConnectionRequest,
        *,
        channel_id: str | None,
    ) -> int:
        sender = self._state.connections.lookup(connection_id)
        if sender is None or sender.user_id is None:
            return 0
        logger.info("%s requesting WebRTC connection with %s", sender.user_id, payload.target_user_id)
        destination = resolve_destination(
            "request", channel_id=channel_id, target_user_id=payload.target_user_id
        )
        return self._deliver(
            connection_id, WEBRTC_CONNECTION_REQUEST, {"userId": sender.user_id}, destination
        )

    def resolve(self, destination: Direct) -> str | None:
        """Return the connection id a direct destination points at."""

        if destination.channel_scope is not None:
            return self._state.channels.find_member(destination.channel_scope, destination.user_id)
        connection = self._state.connections.lookup_by_user_id(destination.user_id)
        return connection.connection_id if connection is not None else None

    def _deliver(
        self,
        connection_id: str,
        event: str,
        body: dict,
        destination: Destination | None,
    ) -> int:
        if isinstance(destination, Broadcast):
            return self._hub.broadcast(
                destination.channel_id, event, body, exclude={connection_id}
            )
        if isinstance(destination, Direct):
            target = self.resolve(destination)
            if target is not None and target != connection_id:
                return 1 if self._hub.send(target, event, body) else 0
            logger.debug(
                "Dropping %s: %s is not reachable",
                event,
                destination.user_id,
                extra={"channel_scope": destination.channel_scope},
            )
        else:
            logger.debug("Dropping %s without a routable destination", event)
        relay_dropped_total.labels("unresolved_destination").inc()
        return 0


__all__ = ["SignalingRouter"]
