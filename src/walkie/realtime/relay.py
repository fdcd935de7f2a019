"""Fan-out of transmission state and audio payloads to a channel."""

from __future__ import annotations

import logging
from typing import Any

from .events import (
    AUDIO_CHUNK,
    AUDIO_MESSAGE,
    AUDIO_RECEIVED,
    AudioChunk,
    AudioData,
    AudioUrl,
    Transmission,
)
from .state import RelayState, now_ms
from .transport import ConnectionHub

logger = logging.getLogger(__name__)


def _stamp(value: int | float | None) -> int | float:
    return now_ms() if value is None else value


def _payload_size(value: Any) -> int:
    if isinstance(value, (str, bytes, bytearray, list)):
        return len(value)
    return 0


class MediaRelay:
    """Broadcast media events to the other members of a channel.

    Nothing here is acknowledged, retried or reordered. Chunk sequence numbers
    travel verbatim.
    """

    def __init__(self, state: RelayState, hub: ConnectionHub) -> None:
        self._state = state
        self._hub = hub

    def _sender(self, connection_id: str) -> str | None:
        connection = self._state.connections.lookup(connection_id)
        return connection.user_id if connection is not None else None

    def _fan_out(self, connection_id: str | None, channel_id: str, event: str, body: dict[str, Any]) -> int:
        exclude = {connection_id} if connection_id is not None else None
        delivered = self._hub.broadcast(channel_id, event, body, exclude=exclude)
        self._state.channels.increment_message_count(channel_id)
        return delivered

    def transmission(
        self, connection_id: str, event: str, channel_id: str, payload: Transmission
    ) -> int:
        user_id = self._sender(connection_id)
        logger.info("%s %s in %s", user_id, event, channel_id)
        body = {"userId": user_id, "timestamp": _stamp(payload.timestamp)}
        return self._fan_out(connection_id, channel_id, event, body)

    def audio_data(self, connection_id: str, channel_id: str, payload: AudioData) -> int:
        user_id = self._sender(connection_id)
        logger.info(
            "%s sending audio to channel %s (%d bytes)",
            user_id,
            channel_id,
            _payload_size(payload.audio_data),
        )
        body = {
            "userId": user_id,
            "audioData": payload.audio_data,
            "timestamp": _stamp(payload.timestamp),
        }
        return self._fan_out(connection_id, channel_id, AUDIO_RECEIVED, body)

    def audio_url(self, connection_id: str, channel_id: str, payload: AudioUrl) -> int:
        user_id = self._sender(connection_id)
        logger.info("%s sharing audio URL to channel %s: %s", user_id, channel_id, payload.audio_url)
        body = {
            "userId": user_id,
            "audioUrl": payload.audio_url,
            "timestamp": _stamp(payload.timestamp),
        }
        return self._fan_out(connection_id, channel_id, AUDIO_MESSAGE, body)

    def audio_chunk(self, connection_id: str, channel_id: str, payload: AudioChunk) -> int:
        # Chunks are too frequent to log individually.
        body = {
            "userId": self._sender(connection_id),
            "chunk": payload.chunk,
            "sequence": payload.sequence,
            "timestamp": now_ms(),
        }
        return self._fan_out(connection_id, channel_id, AUDIO_CHUNK, body)

    def announce_audio(self, channel_id: str, user_id: str | None, audio_url: str) -> int:
        """Tell every member of *channel_id* about an uploaded clip."""

        logger.info("Audio uploaded by %s for channel %s", user_id, channel_id)
        body = {"userId": user_id, "audioUrl": audio_url, "timestamp": now_ms()}
        return self._fan_out(None, channel_id, AUDIO_MESSAGE, body)


__all__ = ["MediaRelay"]
