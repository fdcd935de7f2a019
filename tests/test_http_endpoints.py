from __future__ import annotations

from fastapi.testclient import TestClient


def test_root_reports_counts(client: TestClient) -> None:
    response = client.get("/")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["version"] == "1.0.0"
    assert body["channels"] == 0
    assert body["users"] == 0
    assert "timestamp" in body


def test_health_reports_state(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["state"] == "running"
    assert body["uptime"] >= 0
    assert body["memory"]["maxRss"] > 0


def test_channels_lists_members(client: TestClient) -> None:
    with client.websocket_connect("/ws") as connection:
        connection.receive_json()
        connection.send_json({"event": "join-channel", "data": {"channelId": "room1", "userId": "alice"}})
        connection.receive_json()

        channels = client.get("/channels").json()
        counts = client.get("/").json()

    assert channels[0]["id"] == "room1"
    assert channels[0]["userCount"] == 1
    assert channels[0]["users"][0]["userId"] == "alice"
    assert counts["channels"] == 1
    assert counts["users"] == 1


def test_upload_audio_stores_file_and_announces(client: TestClient, media_root) -> None:
    with client.websocket_connect("/ws") as connection:
        connection.receive_json()
        connection.send_json({"event": "join-channel", "data": {"channelId": "room1", "userId": "alice"}})
        connection.receive_json()

        response = client.post(
            "/upload-audio",
            data={"channelId": "room1", "userId": "bob"},
            files={"audio": ("clip.m4a", b"\x00\x01audio", "audio/mp4")},
        )
        announcement = connection.receive_json()

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["filename"].endswith(".m4a")
    assert body["audioUrl"] == f"http://testserver/audio/{body['filename']}"
    assert (media_root / body["filename"]).read_bytes() == b"\x00\x01audio"

    assert announcement["event"] == "audio-message"
    assert announcement["data"]["audioUrl"] == body["audioUrl"]
    assert announcement["data"]["userId"] == "bob"

    served = client.get(f"/audio/{body['filename']}")
    assert served.status_code == 200
    assert served.content == b"\x00\x01audio"


def test_upload_audio_without_file_is_bad_request(client: TestClient) -> None:
    response = client.post("/upload-audio", data={"channelId": "room1", "userId": "bob"})

    assert response.status_code == 400
    assert response.json()["detail"] == "No audio file provided"


def test_upload_audio_without_channel_is_bad_request(client: TestClient) -> None:
    response = client.post("/upload-audio", files={"audio": ("clip.m4a", b"x", "audio/mp4")})

    assert response.status_code == 400


def test_upload_audio_over_limit_is_rejected(client: TestClient, media_root) -> None:
    response = client.post(
        "/upload-audio",
        data={"channelId": "room1"},
        files={"audio": ("clip.m4a", b"x" * 2048, "audio/mp4")},
    )

    assert response.status_code == 413
    assert list(media_root.iterdir()) == []


def test_upload_audio_storage_failure_is_server_error(client: TestClient, monkeypatch) -> None:
    def refuse(path):
        raise PermissionError("read-only file system")

    monkeypatch.setattr("app.core.storage._open_for_write", refuse)

    response = client.post(
        "/upload-audio",
        data={"channelId": "room1"},
        files={"audio": ("clip.m4a", b"x", "audio/mp4")},
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Upload failed"


def test_metrics_endpoint_exposes_relay_counters(client: TestClient) -> None:
    with client.websocket_connect("/ws") as connection:
        connection.receive_json()
        connection.send_json({"event": "ping"})
        connection.receive_json()

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert 'relay_events_total{event="ping",direction="in"} 1' in response.text
    assert "# TYPE relay_active_connections gauge" in response.text
