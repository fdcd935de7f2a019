"""Helpers for the WebRTC signalling payloads.

Clients address negotiation messages in two ways: channel-scoped (broadcast to
the rest of the channel, or a ``targetUserId`` looked up among its members) and
globally (a ``to`` identity looked up across every connection). Both collapse
into a single :data:`Destination`. Nothing here touches connection state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Union

OFFER = "offer"
ANSWER = "answer"
CANDIDATE = "candidate"

# Outbound field carrying the opaque payload, keyed by the kind of signal.
SIGNAL_FIELDS = {
    "webrtc-offer": OFFER,
    "webrtc-answer": ANSWER,
    "webrtc-ice-candidate": CANDIDATE,
    "ice-candidate": CANDIDATE,
}

# Kinds that only make sense towards one peer; without a target they are dropped.
DIRECT_ONLY = {ANSWER}


@dataclass(frozen=True, slots=True)
class Broadcast:
    """Deliver to every other member of ``channel_id``."""

    channel_id: str


@dataclass(frozen=True, slots=True)
class Direct:
    """Deliver to the connection using ``user_id``.

    With a ``channel_scope`` only members of that channel are candidates; with
    ``None`` the whole registry is searched.
    """

    user_id: str
    channel_scope: str | None = None


Destination = Union[Broadcast, Direct]


def resolve_destination(
    kind: str,
    *,
    channel_id: str | None,
    target_user_id: str | None = None,
    to: str | None = None,
    allow_cross_channel: bool = False,
) -> Destination | None:
    """Return where a signal should go, or ``None`` when it cannot be routed.

    ``channel_id`` is the sender's channel. A ``to`` address is kept inside that
    channel unless *allow_cross_channel* is set.
    """

    if target_user_id:
        if channel_id is None:
            return None
        return Direct(target_user_id, channel_scope=channel_id)
    if to:
        if allow_cross_channel:
            return Direct(to)
        if channel_id is None:
            return None
        return Direct(to, channel_scope=channel_id)
    if kind in DIRECT_ONLY or channel_id is None:
        return None
    return Broadcast(channel_id)


def build_signal_envelope(event: str, sender_user_id: str, value: Any) -> Dict[str, Any]:
    """Wrap an opaque negotiation payload with the sender's identity."""

    return {"userId": sender_user_id, SIGNAL_FIELDS[event]: value}


__all__ = [
    "ANSWER",
    "Broadcast",
    "CANDIDATE",
    "DIRECT_ONLY",
    "Destination",
    "Direct",
    "OFFER",
    "SIGNAL_FIELDS",
    "build_signal_envelope",
    "resolve_destination",
]
