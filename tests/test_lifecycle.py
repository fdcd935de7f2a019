from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest
from fastapi.websockets import WebSocketState

from walkie.realtime import RelayService, ServerState


class StuckWebSocket:
    """A socket whose sends never complete."""

    def __init__(self) -> None:
        self.application_state = WebSocketState.CONNECTED
        self._never = asyncio.Event()

    async def send_json(self, payload: dict[str, Any]) -> None:
        await self._never.wait()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.application_state = WebSocketState.DISCONNECTED


@pytest.mark.anyio("asyncio")
async def test_shutdown_notifies_each_connection_once_before_closing(service, connect, exit_codes) -> None:
    sockets = [(await connect())[1] for _ in range(3)]
    service.handle(service.hub.connection_ids()[0], {"event": "join-channel", "data": {"channelId": "r", "userId": "u"}})

    code = await service.shutdown()

    assert code == 0
    assert exit_codes == []
    for websocket in sockets:
        assert websocket.event_names().count("server-shutdown") == 1
        assert websocket.event_names()[-1] == "server-shutdown"
        assert websocket.events("server-shutdown")[0]["data"] == {"message": "Server is shutting down"}
        assert websocket.closed_with == (1001, "Server is shutting down")
    assert service.lifecycle.state is ServerState.STOPPED
    assert service.accepting is False


@pytest.mark.anyio("asyncio")
async def test_second_shutdown_is_a_no_op(service, connect) -> None:
    _, websocket = await connect()

    assert await service.shutdown() == 0
    assert await service.shutdown() == 0

    assert websocket.event_names().count("server-shutdown") == 1


@pytest.mark.anyio("asyncio")
async def test_shutdown_stops_janitor_and_purges_media(service, media_root) -> None:
    (media_root / "clip.m4a").write_bytes(b"x")
    await service.startup()
    assert all(task.running for task in service.janitor.tasks)

    await service.shutdown()

    assert not any(task.running for task in service.janitor.tasks)
    assert list(media_root.iterdir()) == []


@pytest.mark.anyio("asyncio")
async def test_shutdown_keeps_media_when_purge_disabled(media_root) -> None:
    service = RelayService(media_root=media_root, media_purge_on_shutdown=False)
    (media_root / "clip.m4a").write_bytes(b"x")

    await service.shutdown()

    assert (media_root / "clip.m4a").exists()


@pytest.mark.anyio("asyncio")
async def test_drain_past_deadline_forces_exit(media_root, caplog) -> None:
    exit_codes: list[int] = []
    service = RelayService(
        media_root=media_root,
        shutdown_grace_seconds=0.1,
        terminate=exit_codes.append,
    )
    await service.connect(StuckWebSocket())

    with caplog.at_level(logging.ERROR, logger="walkie.realtime.lifecycle"):
        code = await service.shutdown()

    assert code == 1
    assert exit_codes == [1]
    assert "Forced shutdown after timeout" in caplog.text
    assert service.lifecycle.state is ServerState.STOPPED


@pytest.mark.anyio("asyncio")
async def test_startup_installs_loop_exception_logger(service, caplog) -> None:
    loop = asyncio.get_running_loop()
    previous = loop.get_exception_handler()
    try:
        await service.startup()
        with caplog.at_level(logging.ERROR, logger="walkie.realtime.lifecycle"):
            loop.call_exception_handler({"message": "task exploded", "exception": ValueError("boom")})
    finally:
        await service.janitor.stop()
        loop.set_exception_handler(previous)

    assert "Unhandled error in background task: task exploded" in caplog.text


@pytest.mark.anyio("asyncio")
async def test_client_leaving_during_drain_still_shuts_down_gracefully(service, exit_codes) -> None:
    connection_id = await service.connect(StuckWebSocket())

    shutdown = asyncio.create_task(service.shutdown())
    await asyncio.sleep(0.05)
    await service.disconnect(connection_id)
    code = await asyncio.wait_for(shutdown, timeout=0.5)

    assert code == 0
    assert exit_codes == []
    assert service.lifecycle.state is ServerState.STOPPED
