"""Shared pytest fixtures for the relay tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from app.config import Settings
from app.main import create_app
from app.monitoring.registry import registry
from walkie.realtime import RelayService


class DummyWebSocket:
    """Stand-in for an accepted websocket that records what the server sends."""

    def __init__(self) -> None:
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict[str, Any]] = []
        self.closed_with: tuple[int, str] | None = None

    async def send_json(self, payload: dict[str, Any]) -> None:
        self.sent.append(payload)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED

    def events(self, name: str | None = None) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if name is None or frame["event"] == name]

    def event_names(self) -> list[str]:
        return [frame["event"] for frame in self.sent]


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    registry.reset()
    yield
    registry.reset()


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def media_root(tmp_path: Path) -> Path:
    root = tmp_path / "audio"
    root.mkdir()
    return root


@pytest.fixture()
def exit_codes() -> list[int]:
    return []


@pytest.fixture()
def service(media_root: Path, exit_codes: list[int]) -> RelayService:
    return RelayService(media_root=media_root, shutdown_grace_seconds=1, terminate=exit_codes.append)


@pytest.fixture()
def settings(media_root: Path) -> Settings:
    return Settings(
        media_root=media_root,
        max_upload_size=1024,
        shutdown_grace_seconds=1,
        media_purge_on_shutdown=False,
    )


@pytest.fixture()
def client(settings: Settings, exit_codes: list[int]) -> Iterator[TestClient]:
    """Yield a TestClient bound to a fresh application instance."""

    app = create_app(settings, terminate=exit_codes.append)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def socket_factory() -> type[DummyWebSocket]:
    return DummyWebSocket


@pytest.fixture()
def connect(service: RelayService):
    """Return a coroutine function registering a new dummy socket with *service*."""

    async def _connect() -> tuple[str, DummyWebSocket]:
        websocket = DummyWebSocket()
        connection_id = await service.connect(websocket)
        return connection_id, websocket

    return _connect
