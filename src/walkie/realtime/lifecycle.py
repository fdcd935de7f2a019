"""Server state machine: running, draining, stopped."""

from __future__ import annotations

import asyncio
import enum
import logging
import os
from typing import Any, Callable

from .events import SERVER_SHUTDOWN
from .janitor import Janitor
from .transport import ConnectionHub

logger = logging.getLogger(__name__)

GOING_AWAY = 1001
SERVICE_RESTART = 1012


class ServerState(str, enum.Enum):
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    logger.error(
        "Unhandled error in background task: %s",
        context.get("message", "unknown"),
        exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
    )


class LifecycleController:
    """Coordinate startup of background work and the shutdown drain.

    Shutdown notifies every connection, closes them and stops the janitor. If
    that has not finished within *grace_seconds* the process is terminated
    through *terminate* with exit code 1.
    """

    def __init__(
        self,
        hub: ConnectionHub,
        janitor: Janitor,
        *,
        grace_seconds: float,
        purge_media_on_shutdown: bool = False,
        terminate: Callable[[int], Any] = os._exit,
    ) -> None:
        self._hub = hub
        self._janitor = janitor
        self._grace_seconds = grace_seconds
        self._purge_media = purge_media_on_shutdown
        self._terminate = terminate
        self._state = ServerState.RUNNING
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_handler: Any = None

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def accepting(self) -> bool:
        return self._state is ServerState.RUNNING

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(_log_loop_exception)
        self._janitor.start()

    def _restore_exception_handler(self) -> None:
        if self._loop is not None:
            self._loop.set_exception_handler(self._previous_handler)
            self._loop = None

    async def shutdown(self) -> int:
        """Drain the server once and return the exit code it settled on."""

        if self._state is not ServerState.RUNNING:
            return 0
        self._state = ServerState.DRAINING
        logger.info("Shutting down gracefully...")
        notified = self._hub.broadcast_all(SERVER_SHUTDOWN, {"message": "Server is shutting down"})
        logger.info("Shutdown notice queued for %d connection(s)", notified)

        try:
            await asyncio.wait_for(self._drain(), timeout=self._grace_seconds)
        except asyncio.TimeoutError:
            self._state = ServerState.STOPPED
            self._restore_exception_handler()
            logger.error("Forced shutdown after timeout")
            self._terminate(1)
            return 1

        self._state = ServerState.STOPPED
        self._restore_exception_handler()
        logger.info("Server closed")
        return 0

    async def _drain(self) -> None:
        await self._janitor.stop()
        await self._hub.flush()
        await self._hub.close_all(code=GOING_AWAY, reason="Server is shutting down")
        if self._purge_media:
            removed = await self._janitor.purge_media()
            if removed:
                logger.info("Removed %d temporary audio file(s)", removed)


__all__ = ["GOING_AWAY", "LifecycleController", "SERVICE_RESTART", "ServerState"]
