"""Channel join/leave protocol and the presence notifications it emits."""

from __future__ import annotations

import logging

from app.monitoring.metrics import relay_active_channels

from .events import CHANNEL_USERS, USER_JOINED, USER_LEFT
from .state import RelayState
from .transport import ConnectionHub

logger = logging.getLogger(__name__)


class PresenceBroadcaster:
    """Apply membership changes and fan out ``user-joined``/``user-left``."""

    def __init__(self, state: RelayState, hub: ConnectionHub) -> None:
        self._state = state
        self._hub = hub

    def join(self, connection_id: str, channel_id: str, user_id: str) -> list[str]:
        """Add the connection to *channel_id* and return the snapshot sent to it.

        A connection sits in at most one channel: joining another one (or the
        same one under a new identity) leaves the current channel first.
        """

        connections = self._state.connections
        channels = self._state.channels
        connection = connections.lookup(connection_id)
        if connection is None:
            logger.debug("Join from unknown connection %s ignored", connection_id)
            return []

        current = connection.current_channel
        if current is not None and (current != channel_id or connection.user_id != user_id):
            self.leave(connection_id, current)

        added = channels.add_member(channel_id, connection_id, user_id)
        connections.set_identity(connection_id, user_id)
        connections.set_channel(connection_id, channel_id)
        self._hub.bind(connection_id, channel_id)

        snapshot = channels.list_members(channel_id, exclude=connection_id)
        self._hub.send(connection_id, CHANNEL_USERS, snapshot)
        if added:
            self._hub.broadcast(channel_id, USER_JOINED, user_id, exclude={connection_id})
        relay_active_channels.set(len(channels))

        channel = channels.get(channel_id)
        logger.info(
            "%s joined channel %s. Total users: %d",
            user_id,
            channel_id,
            len(channel.members) if channel is not None else 0,
        )
        return snapshot

    def leave(self, connection_id: str, channel_id: str) -> bool:
        """Remove the connection from *channel_id*; a no-op when it is not a member."""

        channels = self._state.channels
        channel = channels.get(channel_id)
        if channel is None or connection_id not in channel.members:
            return False

        user_id = channel.members[connection_id].user_id
        remaining = channels.remove_member(channel_id, connection_id)
        self._hub.unbind(connection_id, channel_id)
        if remaining:
            self._hub.broadcast(channel_id, USER_LEFT, user_id, exclude={connection_id})
        self._state.connections.set_channel(connection_id, None)
        relay_active_channels.set(len(channels))

        logger.info("%s left channel %s (%d remaining)", user_id, channel_id, remaining)
        return True

    def disconnect(self, connection_id: str) -> bool:
        """Leave the current channel and forget the connection; repeat calls are no-ops."""

        connection = self._state.connections.lookup(connection_id)
        if connection is None:
            return False
        if connection.current_channel is not None:
            self.leave(connection_id, connection.current_channel)
        self._state.connections.remove(connection_id)
        logger.info("Connection %s disconnected", connection_id)
        return True

    def channel_users(self, channel_id: str) -> list[str]:
        return self._state.channels.list_members(channel_id)


__all__ = ["PresenceBroadcaster"]
