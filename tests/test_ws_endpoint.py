from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient
from starlette.testclient import WebSocketTestSession
from starlette.websockets import WebSocketDisconnect

from app.config import Settings
from app.main import create_app
from walkie.realtime.lifecycle import ServerState


def _join(connection: WebSocketTestSession, channel_id: str, user_id: str) -> list[str]:
    connection.send_json({"event": "join-channel", "data": {"channelId": channel_id, "userId": user_id}})
    snapshot = connection.receive_json()
    assert snapshot["event"] == "channel-users"
    return snapshot["data"]


def test_two_clients_exchange_presence_and_audio(client: TestClient) -> None:
    with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
        assert alice.receive_json()["event"] == "connected"
        assert bob.receive_json()["event"] == "connected"

        assert _join(alice, "room1", "alice") == []
        assert _join(bob, "room1", "bob") == ["alice"]
        assert alice.receive_json() == {"event": "user-joined", "data": "bob"}

        bob.send_json({"event": "transmission-start", "data": {"channelId": "room1", "timestamp": 42}})
        assert alice.receive_json() == {
            "event": "transmission-start",
            "data": {"userId": "bob", "timestamp": 42},
        }

        bob.send_json({"event": "webrtc-offer", "data": {"offer": {"sdp": "v=0"}, "targetUserId": "alice"}})
        assert alice.receive_json() == {
            "event": "webrtc-offer",
            "data": {"userId": "bob", "offer": {"sdp": "v=0"}},
        }

        bob.close()
        assert alice.receive_json() == {"event": "user-left", "data": "bob"}


def test_invalid_json_gets_error_and_connection_stays_open(client: TestClient) -> None:
    with client.websocket_connect("/ws") as connection:
        connection.receive_json()

        connection.send_text("{not json")
        error = connection.receive_json()
        connection.send_bytes(b"\x00\x01")
        binary_error = connection.receive_json()
        connection.send_json({"event": "ping"})
        pong = connection.receive_json()

    assert error["event"] == "error"
    assert error["data"]["code"] == "invalid-message"
    assert binary_error["data"]["detail"] == "Binary frames are not supported"
    assert pong["event"] == "pong"


def test_new_connections_are_refused_while_draining(client: TestClient) -> None:
    client.app.state.relay.lifecycle._state = ServerState.DRAINING
    try:
        with pytest.raises(WebSocketDisconnect) as excinfo:
            with client.websocket_connect("/ws"):
                pass
    finally:
        client.app.state.relay.lifecycle._state = ServerState.RUNNING

    assert excinfo.value.code == 1012


def test_idle_connection_receives_keepalive(media_root) -> None:
    settings = Settings(
        media_root=media_root,
        websocket_keepalive_timeout_seconds=0.05,
        websocket_keepalive_ping_interval_seconds=0.05,
        media_purge_on_shutdown=False,
    )
    app = create_app(settings, terminate=lambda code: None)

    with TestClient(app) as client:
        with client.websocket_connect("/ws") as connection:
            connection.receive_json()
            time.sleep(0.2)
            keepalive = connection.receive_json()

            connection.send_json({"event": "ping"})
            frame = connection.receive_json()
            while frame["event"] == "keepalive":
                frame = connection.receive_json()

    assert keepalive["event"] == "keepalive"
    assert isinstance(keepalive["data"]["timestamp"], int)
    assert frame["event"] == "pong"
