"""Console entry point running the relay under uvicorn."""

from __future__ import annotations

import asyncio
import logging
from types import FrameType

import uvicorn

from walkie.realtime import RelayService

logger = logging.getLogger(__name__)


class DrainingServer(uvicorn.Server):
    """Drain the relay before uvicorn stops accepting and closes sockets.

    The first termination signal starts the drain; uvicorn is told to exit once
    it finishes. A second signal falls through to uvicorn's forced exit.
    """

    def __init__(self, config: uvicorn.Config, relay: RelayService) -> None:
        super().__init__(config)
        self._relay = relay
        self._loop: asyncio.AbstractEventLoop | None = None
        self._drain_task: asyncio.Task[None] | None = None

    async def serve(self, sockets=None) -> None:  # type: ignore[override]
        self._loop = asyncio.get_running_loop()
        await super().serve(sockets)

    def handle_exit(self, sig: int, frame: FrameType | None) -> None:
        if self._loop is not None and self._drain_task is None and self._relay.accepting:
            logger.info("Received signal %s", sig)
            self._loop.call_soon_threadsafe(self._start_drain)
            return
        super().handle_exit(sig, frame)

    def _start_drain(self) -> None:
        if self._drain_task is None:
            self._drain_task = asyncio.ensure_future(self._drain())

    async def _drain(self) -> None:
        try:
            await self._relay.shutdown()
        finally:
            self.should_exit = True


def main() -> int:
    from app.main import app

    settings = app.state.settings
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        ws_ping_interval=settings.websocket_ping_interval_seconds,
        ws_max_size=settings.websocket_max_message_size,
    )
    DrainingServer(config, app.state.relay).run()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
