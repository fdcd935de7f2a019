from __future__ import annotations

import pytest


async def _joined(service, connect, channel_id: str, user_id: str):
    connection_id, websocket = await connect()
    service.handle(connection_id, {"event": "join-channel", "data": {"channelId": channel_id, "userId": user_id}})
    return connection_id, websocket


@pytest.mark.anyio("asyncio")
async def test_room_walkthrough(service, connect) -> None:
    a_id, a = await _joined(service, connect, "room1", "userA")
    b_id, b = await _joined(service, connect, "room1", "userB")

    service.handle(b_id, {"event": "transmission-start", "data": {"channelId": "room1"}})
    await service.hub.flush()

    assert b.events("channel-users")[0]["data"] == ["userA"]
    assert a.events("user-joined")[0]["data"] == "userB"
    (start,) = a.events("transmission-start")
    assert start["data"]["userId"] == "userB"
    assert isinstance(start["data"]["timestamp"], int)
    assert b.events("transmission-start") == []

    await service.disconnect(b_id)
    await service.hub.flush()

    assert a.events("user-left")[0]["data"] == "userB"
    assert len(service.state.channels.get("room1").members) == 1


@pytest.mark.anyio("asyncio")
async def test_client_timestamp_is_kept(service, connect) -> None:
    _, a = await _joined(service, connect, "room1", "userA")
    b_id, _ = await _joined(service, connect, "room1", "userB")

    service.handle(b_id, {"event": "transmission-end", "data": {"timestamp": 0}})
    service.handle(b_id, {"event": "transmission-end", "data": {"timestamp": 1700000000123}})
    await service.hub.flush()

    assert [frame["data"]["timestamp"] for frame in a.events("transmission-end")] == [0, 1700000000123]


@pytest.mark.anyio("asyncio")
async def test_audio_data_is_forwarded_as_audio_received(service, connect) -> None:
    _, a = await _joined(service, connect, "room1", "userA")
    b_id, b = await _joined(service, connect, "room1", "userB")

    service.handle(b_id, {"event": "audio-data", "data": {"audioData": "UklGRg==", "timestamp": 5, "userId": "spoof"}})
    await service.hub.flush()

    assert a.events("audio-received")[0]["data"] == {"userId": "userB", "audioData": "UklGRg==", "timestamp": 5}
    assert b.events("audio-received") == []
    assert service.state.channels.get("room1").message_count == 1


@pytest.mark.anyio("asyncio")
async def test_audio_chunks_keep_sequence_verbatim(service, connect) -> None:
    _, a = await _joined(service, connect, "room1", "userA")
    b_id, _ = await _joined(service, connect, "room1", "userB")

    for sequence in (3, 1, "x"):
        service.handle(b_id, {"event": "audio-chunk", "data": {"chunk": [1, 2, 3], "sequence": sequence}})
    await service.hub.flush()

    chunks = [frame["data"] for frame in a.events("audio-chunk")]
    assert [chunk["sequence"] for chunk in chunks] == [3, 1, "x"]
    assert all(chunk["userId"] == "userB" and chunk["chunk"] == [1, 2, 3] for chunk in chunks)
    assert service.state.channels.total_messages() == 3


@pytest.mark.anyio("asyncio")
async def test_audio_url_is_forwarded_as_audio_message(service, connect) -> None:
    _, a = await _joined(service, connect, "room1", "userA")
    b_id, _ = await _joined(service, connect, "room1", "userB")

    service.handle(b_id, {"event": "audio-url", "data": {"audioUrl": "http://relay/audio/1.m4a"}})
    await service.hub.flush()

    (message,) = a.events("audio-message")
    assert message["data"]["audioUrl"] == "http://relay/audio/1.m4a"
    assert message["data"]["userId"] == "userB"


@pytest.mark.anyio("asyncio")
async def test_announce_audio_reaches_every_member(service, connect) -> None:
    _, a = await _joined(service, connect, "room1", "userA")
    _, b = await _joined(service, connect, "room1", "userB")

    assert service.announce_audio("room1", "userB", "http://relay/audio/2.m4a") == 2
    assert service.announce_audio("empty", "userB", "http://relay/audio/3.m4a") == 0
    await service.hub.flush()

    assert a.events("audio-message")[0]["data"]["audioUrl"] == "http://relay/audio/2.m4a"
    assert b.events("audio-message")[0]["data"]["userId"] == "userB"
