"""Decode inbound frames and route them to presence, signalling or relay."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Type, TypeVar

from pydantic import ValidationError

from app.monitoring.metrics import relay_dropped_total, relay_events_total

from . import events
from .events import InboundPayload
from .presence import PresenceBroadcaster
from .relay import MediaRelay
from .router import SignalingRouter
from .state import Connection, RelayState, now_ms
from .transport import ConnectionHub

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=InboundPayload)


class EventRejected(Exception):
    """Raised by a handler to answer the sender with a structured error."""

    def __init__(self, code: str, detail: str) -> None:
        super().__init__(detail)
        self.code = code
        self.detail = detail


def _describe_errors(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "data"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


class EventDispatcher:
    """Turn ``{"event": ..., "data": ...}`` frames into core operations.

    Every handler runs to completion without awaiting, so state changes and the
    deliveries they cause happen as one step relative to other connections.
    """

    def __init__(
        self,
        state: RelayState,
        hub: ConnectionHub,
        presence: PresenceBroadcaster,
        router: SignalingRouter,
        relay: MediaRelay,
    ) -> None:
        self._state = state
        self._hub = hub
        self._presence = presence
        self._router = router
        self._relay = relay
        self._handlers: Dict[str, Callable[[str, str, dict[str, Any]], None]] = {
            events.JOIN_CHANNEL: self._on_join,
            events.LEAVE_CHANNEL: self._on_leave,
            events.GET_CHANNEL_USERS: self._on_get_channel_users,
            events.PING: self._on_ping,
            events.TRANSMISSION_START: self._on_transmission,
            events.TRANSMISSION_END: self._on_transmission,
            events.AUDIO_DATA: self._on_audio_data,
            events.AUDIO_URL: self._on_audio_url,
            events.AUDIO_CHUNK: self._on_audio_chunk,
            events.WEBRTC_OFFER: self._on_signal,
            events.WEBRTC_ANSWER: self._on_signal,
            events.WEBRTC_ICE_CANDIDATE: self._on_signal,
            events.ICE_CANDIDATE: self._on_signal,
            events.REQUEST_WEBRTC_CONNECTION: self._on_connection_request,
        }

    def dispatch(self, connection_id: str, message: Any) -> None:
        """Handle one decoded frame; faults are answered or logged, never raised."""

        if not isinstance(message, dict):
            self._reject(connection_id, None, events.INVALID_MESSAGE, "Message must be a JSON object")
            return
        event = message.get("event")
        if not isinstance(event, str) or not event:
            self._reject(connection_id, None, events.INVALID_MESSAGE, "Message event must be provided")
            return
        handler = self._handlers.get(event)
        if handler is None:
            relay_events_total.labels("unknown", "in").inc()
            self._reject(connection_id, event, events.UNKNOWN_EVENT, f"Unsupported event '{event}'")
            return
        data = message.get("data")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            self._reject(connection_id, event, events.INVALID_PAYLOAD, "Event data must be a JSON object")
            return

        relay_events_total.labels(event, "in").inc()
        try:
            handler(connection_id, event, data)
        except EventRejected as exc:
            self._reject(connection_id, event, exc.code, exc.detail)
        except Exception:
            relay_dropped_total.labels("handler_error").inc()
            logger.exception(
                "Unhandled error while processing %s", event, extra={"connection_id": connection_id}
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _reject(self, connection_id: str, event: str | None, code: str, detail: str) -> None:
        logger.debug("Rejected %s from %s: %s", event, connection_id, detail)
        self._hub.send(connection_id, events.ERROR, {"code": code, "event": event, "detail": detail})

    @staticmethod
    def _parse(model: Type[P], data: dict[str, Any]) -> P:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise EventRejected(events.INVALID_PAYLOAD, _describe_errors(exc)) from exc

    def _identified(self, connection_id: str) -> Connection:
        connection = self._state.connections.lookup(connection_id)
        if connection is None or connection.user_id is None:
            raise EventRejected(events.IDENTITY_NOT_SET, "Join a channel before sending this event")
        return connection

    @staticmethod
    def _channel_for(connection: Connection, requested: str | None) -> str:
        current = connection.current_channel
        if current is None:
            raise EventRejected(events.NOT_IN_CHANNEL, "Not joined to any channel")
        if requested is not None and requested != current:
            raise EventRejected(events.NOT_IN_CHANNEL, f"Not joined to channel '{requested}'")
        return current

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------
    def _on_join(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        payload = self._parse(events.JoinChannel, data)
        logger.info("%s joining channel %s", payload.user_id, payload.channel_id)
        self._presence.join(connection_id, payload.channel_id, payload.user_id)

    def _on_leave(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        payload = self._parse(events.LeaveChannel, data)
        self._presence.leave(connection_id, payload.channel_id)

    def _on_get_channel_users(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        payload = self._parse(events.GetChannelUsers, data)
        self._hub.send(connection_id, events.CHANNEL_USERS, self._presence.channel_users(payload.channel_id))

    def _on_ping(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        self._hub.send(connection_id, events.PONG, {"timestamp": now_ms()})

    # ------------------------------------------------------------------
    # Media relay
    # ------------------------------------------------------------------
    def _on_transmission(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        payload = self._parse(events.Transmission, data)
        channel_id = self._channel_for(self._identified(connection_id), payload.channel_id)
        self._relay.transmission(connection_id, event, channel_id, payload)

    def _on_audio_data(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        payload = self._parse(events.AudioData, data)
        channel_id = self._channel_for(self._identified(connection_id), payload.channel_id)
        self._relay.audio_data(connection_id, channel_id, payload)

    def _on_audio_url(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        payload = self._parse(events.AudioUrl, data)
        channel_id = self._channel_for(self._identified(connection_id), payload.channel_id)
        self._relay.audio_url(connection_id, channel_id, payload)

    def _on_audio_chunk(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        payload = self._parse(events.AudioChunk, data)
        channel_id = self._channel_for(self._identified(connection_id), payload.channel_id)
        self._relay.audio_chunk(connection_id, channel_id, payload)

    # ------------------------------------------------------------------
    # Signalling
    # ------------------------------------------------------------------
    _SIGNAL_MODELS: Dict[str, Type[events.SignalEvent]] = {
        events.WEBRTC_OFFER: events.OfferSignal,
        events.WEBRTC_ANSWER: events.AnswerSignal,
        events.WEBRTC_ICE_CANDIDATE: events.CandidateSignal,
        events.ICE_CANDIDATE: events.CandidateSignal,
    }

    def _on_signal(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        payload = self._parse(self._SIGNAL_MODELS[event], data)
        connection = self._identified(connection_id)
        if payload.channel_id is not None:
            channel_id: str | None = self._channel_for(connection, payload.channel_id)
        else:
            channel_id = connection.current_channel
        self._router.relay(connection_id, event, payload, channel_id=channel_id)

    def _on_connection_request(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        payload = self._parse(events.ConnectionRequest, data)
        channel_id = self._channel_for(self._identified(connection_id), payload.channel_id)
        self._router.request_connection(connection_id, payload, channel_id=channel_id)


__all__ = ["EventDispatcher", "EventRejected"]
