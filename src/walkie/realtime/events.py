"""Event names and inbound payload schemas for the relay protocol."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Inbound
JOIN_CHANNEL = "join-channel"
LEAVE_CHANNEL = "leave-channel"
GET_CHANNEL_USERS = "get-channel-users"
AUDIO_DATA = "audio-data"
AUDIO_URL = "audio-url"
AUDIO_CHUNK = "audio-chunk"
TRANSMISSION_START = "transmission-start"
TRANSMISSION_END = "transmission-end"
WEBRTC_OFFER = "webrtc-offer"
WEBRTC_ANSWER = "webrtc-answer"
WEBRTC_ICE_CANDIDATE = "webrtc-ice-candidate"
ICE_CANDIDATE = "ice-candidate"
REQUEST_WEBRTC_CONNECTION = "request-webrtc-connection"
PING = "ping"

# Outbound
CONNECTED = "connected"
CHANNEL_USERS = "channel-users"
USER_JOINED = "user-joined"
USER_LEFT = "user-left"
AUDIO_RECEIVED = "audio-received"
AUDIO_MESSAGE = "audio-message"
PONG = "pong"
KEEPALIVE = "keepalive"
WEBRTC_CONNECTION_REQUEST = "webrtc-connection-request"
SERVER_SHUTDOWN = "server-shutdown"
ERROR = "error"

# Error codes carried by ``error`` replies
INVALID_MESSAGE = "invalid-message"
INVALID_PAYLOAD = "invalid-payload"
UNKNOWN_EVENT = "unknown-event"
IDENTITY_NOT_SET = "identity-not-set"
NOT_IN_CHANNEL = "not-in-channel"


class InboundPayload(BaseModel):
    """Base class for client payloads; unknown keys are ignored."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class JoinChannel(InboundPayload):
    channel_id: str = Field(..., alias="channelId", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)


class LeaveChannel(InboundPayload):
    channel_id: str = Field(..., alias="channelId", min_length=1)
    user_id: str | None = Field(default=None, alias="userId")


class GetChannelUsers(InboundPayload):
    channel_id: str = Field(..., alias="channelId", min_length=1)


class ChannelEvent(InboundPayload):
    """Payload addressed to a channel; omitting ``channelId`` means the current one."""

    channel_id: str | None = Field(default=None, alias="channelId")


class Transmission(ChannelEvent):
    timestamp: int | float | None = None


class AudioData(ChannelEvent):
    audio_data: Any = Field(..., alias="audioData")
    timestamp: int | float | None = None


class AudioUrl(ChannelEvent):
    audio_url: str = Field(..., alias="audioUrl", min_length=1)
    timestamp: int | float | None = None


class AudioChunk(ChannelEvent):
    chunk: Any
    sequence: Any = None


class SignalEvent(ChannelEvent):
    """WebRTC negotiation payload; at most one of ``targetUserId``/``to`` addresses it."""

    target_user_id: str | None = Field(default=None, alias="targetUserId")
    to: str | None = None


class OfferSignal(SignalEvent):
    offer: Any


class AnswerSignal(SignalEvent):
    answer: Any


class CandidateSignal(SignalEvent):
    candidate: Any


class ConnectionRequest(ChannelEvent):
    target_user_id: str = Field(..., alias="targetUserId", min_length=1)

