"""In-memory session registry and channel directory.

Both containers are mutated only from the event loop thread. Every inbound
event applies its state changes without awaiting in between, so the maps need
no locking.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Return the current wall clock as integer milliseconds since the epoch."""

    return int(time.time() * 1000)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DuplicateConnectionError(RuntimeError):
    """Raised when a connection id is registered twice."""


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Connection:
    """Session record for one live transport link."""

    connection_id: str
    user_id: str | None = None
    current_channel: str | None = None
    connected_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class Membership:
    user_id: str
    joined_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class Channel:
    """A named group of connections that receive each other's broadcasts."""

    channel_id: str
    members: Dict[str, Membership] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    message_count: int = 0

    def to_public(self) -> dict[str, object]:
        return {
            "id": self.channel_id,
            "userCount": len(self.members),
            "users": [
                {"userId": member.user_id, "joinedAt": member.joined_at.isoformat()}
                for member in self.members.values()
            ],
        }


# ---------------------------------------------------------------------------
# Connection registry
# ---------------------------------------------------------------------------


class ConnectionRegistry:
    """Own every :class:`Connection` and a user id index over them."""

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}
        # user id -> connection ids, insertion ordered
        self._by_user: Dict[str, Dict[str, None]] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def register(self, connection_id: str) -> Connection:
        if connection_id in self._connections:
            raise DuplicateConnectionError(f"Connection '{connection_id}' is already registered")
        connection = Connection(connection_id=connection_id)
        self._connections[connection_id] = connection
        return connection

    def lookup(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def lookup_by_user_id(self, user_id: str) -> Connection | None:
        """Return one connection registered under *user_id*.

        Several connections may share an identity (reconnect races, several
        devices); the first indexed one wins and callers must not rely on which.
        """

        bucket = self._by_user.get(user_id)
        if not bucket:
            return None
        for connection_id in bucket:
            connection = self._connections.get(connection_id)
            if connection is not None:
                return connection
        return None

    def set_identity(self, connection_id: str, user_id: str) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        if connection.user_id == user_id:
            return
        if connection.user_id is not None:
            self._unindex(connection.user_id, connection_id)
        connection.user_id = user_id
        self._by_user.setdefault(user_id, {})[connection_id] = None

    def set_channel(self, connection_id: str, channel_id: str | None) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.current_channel = channel_id

    def remove(self, connection_id: str) -> Connection | None:
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None
        if connection.current_channel is not None:
            logger.warning(
                "Removing connection that still references a channel",
                extra={"connection_id": connection_id, "channel_id": connection.current_channel},
            )
        if connection.user_id is not None:
            self._unindex(connection.user_id, connection_id)
        return connection

    def _unindex(self, user_id: str, connection_id: str) -> None:
        bucket = self._by_user.get(user_id)
        if bucket is None:
            return
        bucket.pop(connection_id, None)
        if not bucket:
            self._by_user.pop(user_id, None)


# ---------------------------------------------------------------------------
# Channel directory
# ---------------------------------------------------------------------------


class ChannelDirectory:
    """Own every :class:`Channel`; empty channels are dropped on removal."""

    def __init__(self) -> None:
        self._channels: Dict[str, Channel] = {}

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._channels

    def __iter__(self) -> Iterator[Channel]:
        return iter(list(self._channels.values()))

    def get(self, channel_id: str) -> Channel | None:
        return self._channels.get(channel_id)

    def get_or_create(self, channel_id: str) -> Channel:
        channel = self._channels.get(channel_id)
        if channel is None:
            channel = Channel(channel_id=channel_id)
            self._channels[channel_id] = channel
            logger.info("Channel %s created", channel_id)
        return channel

    def add_member(self, channel_id: str, connection_id: str, user_id: str) -> bool:
        """Add a member; returns ``False`` when it was already present."""

        channel = self.get_or_create(channel_id)
        if connection_id in channel.members:
            return False
        channel.members[connection_id] = Membership(user_id=user_id)
        return True

    def remove_member(self, channel_id: str, connection_id: str) -> int:
        """Remove a member and return how many remain.

        A channel left empty is deleted before returning.
        """

        channel = self._channels.get(channel_id)
        if channel is None:
            return 0
        channel.members.pop(connection_id, None)
        remaining = len(channel.members)
        if remaining == 0:
            self._channels.pop(channel_id, None)
            logger.info("Channel %s deleted (empty)", channel_id)
        return remaining

    def list_members(self, channel_id: str, *, exclude: str | None = None) -> list[str]:
        channel = self._channels.get(channel_id)
        if channel is None:
            return []
        return [
            member.user_id
            for connection_id, member in channel.members.items()
            if connection_id != exclude
        ]

    def find_member(self, channel_id: str, user_id: str) -> str | None:
        """Return the connection id of the first member using *user_id*."""

        channel = self._channels.get(channel_id)
        if channel is None:
            return None
        for connection_id, member in channel.members.items():
            if member.user_id == user_id:
                return connection_id
        return None

    def increment_message_count(self, channel_id: str) -> None:
        channel = self._channels.get(channel_id)
        if channel is not None:
            channel.message_count += 1

    def sweep_empty(self) -> int:
        empty = [channel_id for channel_id, channel in self._channels.items() if not channel.members]
        for channel_id in empty:
            self._channels.pop(channel_id, None)
        return len(empty)

    def total_messages(self) -> int:
        return sum(channel.message_count for channel in self._channels.values())

    def snapshot(self) -> list[dict[str, object]]:
        return [channel.to_public() for channel in self._channels.values()]


@dataclass(slots=True)
class RelayState:
    """Owned container for the registry and the directory."""

    connections: ConnectionRegistry = field(default_factory=ConnectionRegistry)
    channels: ChannelDirectory = field(default_factory=ChannelDirectory)


__all__ = [
    "Channel",
    "ChannelDirectory",
    "Connection",
    "ConnectionRegistry",
    "DuplicateConnectionError",
    "Membership",
    "RelayState",
    "now_ms",
]
