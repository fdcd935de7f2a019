"""Realtime relay core: channel presence, signalling and media fan-out."""

from .dispatcher import EventDispatcher, EventRejected  # noqa: F401
from .janitor import Janitor, PeriodicTask  # noqa: F401
from .lifecycle import LifecycleController, ServerState  # noqa: F401
from .presence import PresenceBroadcaster  # noqa: F401
from .relay import MediaRelay  # noqa: F401
from .router import SignalingRouter  # noqa: F401
from .service import RelayService  # noqa: F401
from .state import (  # noqa: F401
    Channel,
    ChannelDirectory,
    Connection,
    ConnectionRegistry,
    RelayState,
)
from .transport import ConnectionHub  # noqa: F401

__all__ = [
    "Channel",
    "ChannelDirectory",
    "Connection",
    "ConnectionHub",
    "ConnectionRegistry",
    "EventDispatcher",
    "EventRejected",
    "Janitor",
    "LifecycleController",
    "MediaRelay",
    "PeriodicTask",
    "PresenceBroadcaster",
    "RelayService",
    "RelayState",
    "ServerState",
    "SignalingRouter",
]
