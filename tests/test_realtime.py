import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect

from carsg.services.realtime import Connection, RateLimiter, manager


class RecordingSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, event):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(event)


def _register(connection_id, socket, room=None):
    connection = Connection(id=connection_id, websocket=socket, ip="10.0.0.1")
    manager.connections[connection_id] = connection
    if room:
        manager.join(connection, room)
    return connection


def test_rate_limiter_sliding_window():
    limiter = RateLimiter(max_requests=2, window_seconds=60)
    assert limiter.is_limited("ip", now=0) is False
    assert limiter.is_limited("ip", now=1) is False
    assert limiter.is_limited("ip", now=2) is True
    assert limiter.is_limited("ip", now=61) is False


def test_broadcast_drops_broken_connections():
    healthy, broken = RecordingSocket(), RecordingSocket(fail=True)
    _register("a", healthy, room="conversation_1")
    _register("b", broken, room="conversation_1")

    delivered = asyncio.run(manager.broadcast({"type": "REPORT_CREATED", "data": {"id": "r1"}}))

    assert delivered == 1
    assert healthy.sent == [{"type": "REPORT_CREATED", "data": {"id": "r1"}}]
    assert "b" not in manager.connections
    assert manager.rooms["conversation_1"] == {"a"}


def test_send_to_room_only_reaches_members():
    inside, outside = RecordingSocket(), RecordingSocket()
    _register("a", inside, room="conversation_1")
    _register("b", outside)

    asyncio.run(manager.send_to_room("conversation_1", {"type": "new_message"}))

    assert inside.sent == [{"type": "new_message"}]
    assert outside.sent == []


def _seed_conversation(fake_db):
    fake_db.rows("chat_conversations").append({"id": "conv-1", "participant1_id": "user-1", "participant2_id": "user-2"})


def test_websocket_chat_flow(client, fake_db, make_headers):
    _seed_conversation(fake_db)
    token = make_headers("user-1", username="alice")["Authorization"].split(" ", 1)[1]

    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json()["type"] == "connected"

        ws.send_json({"type": "join_conversation", "conversation_id": "conv-1"})
        assert ws.receive_json() == {"type": "error", "message": "Authentication required"}

        ws.send_json({"type": "auth", "accessToken": token})
        assert ws.receive_json()["type"] == "auth_success"

        ws.send_json({"type": "join_conversation", "conversation_id": "conv-1"})
        ws.send_json({"type": "send_message", "conversation_id": "conv-1", "content": "Hello there"})
        event = ws.receive_json()

    assert event["type"] == "new_message"
    assert event["data"]["content"] == "Hello there"
    assert event["data"]["sender"] == {"id": "user-1", "username": "alice"}
    assert fake_db.rows("notifications")[0]["user_id"] == "user-2"


def test_websocket_rejects_bad_token(client, fake_db):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "auth", "accessToken": "garbage"})
        assert ws.receive_json() == {"type": "error", "message": "Invalid access token"}


def test_websocket_join_requires_participation(client, fake_db, make_headers):
    _seed_conversation(fake_db)
    token = make_headers("user-9")["Authorization"].split(" ", 1)[1]

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "auth", "accessToken": token})
        ws.receive_json()
        ws.send_json({"type": "join_conversation", "conversation_id": "conv-1"})
        assert ws.receive_json()["type"] == "error"


def test_websocket_connection_rate_limit(client, fake_db):
    for _ in range(60):
        manager.connection_limiter.is_limited("testclient")

    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
    assert excinfo.value.code == 1008


def test_websocket_message_rate_limit(client, fake_db):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        for _ in range(120):
            manager.message_limiter.is_limited("testclient")
        ws.send_json({"type": "auth"})
        assert ws.receive_json() == {"type": "error", "message": "Rate limit exceeded"}


def test_rate_limiter_forgets_idle_clients():
    limiter = RateLimiter(max_requests=5, window_seconds=60)
    for i in range(1000):
        limiter.is_limited(f"10.0.{i // 256}.{i % 256}", now=0)
    assert limiter.tracked_keys() == 1000

    limiter.is_limited("192.168.1.1", now=10000)

    assert limiter.tracked_keys() == 1


def test_rate_limiter_sweep_keeps_active_clients():
    limiter = RateLimiter(max_requests=5, window_seconds=60)
    limiter.is_limited("old", now=0)
    limiter.is_limited("recent", now=50)

    assert limiter.sweep(now=70) == 1
    assert limiter.tracked_keys() == 1


def _token(make_headers, user_id="user-1"):
    return make_headers(user_id)["Authorization"].split(" ", 1)[1]


def test_websocket_rejects_non_string_message_content(client, fake_db, make_headers):
    _seed_conversation(fake_db)
    token = _token(make_headers)

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "auth", "accessToken": token})
        ws.receive_json()

        ws.send_json({"type": "send_message", "conversation_id": "conv-1", "content": 123})
        assert ws.receive_json()["type"] == "message_error"

        ws.send_json({"type": "send_message", "conversation_id": "conv-1", "content": "hi", "message_type": None})
        assert ws.receive_json()["type"] == "message_error"

    assert fake_db.rows("chat_messages") == []


def test_websocket_survives_handler_failure(client, fake_db, make_headers, monkeypatch):
    _seed_conversation(fake_db)
    token = _token(make_headers)

    def _explode(*_args):
        raise RuntimeError("database driver crashed")

    monkeypatch.setattr("carsg.services.chat.get_conversation", _explode)

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "auth", "accessToken": token})
        ws.receive_json()

        ws.send_json({"type": "join_conversation", "conversation_id": "conv-1"})
        assert ws.receive_json() == {"type": "error", "message": "Failed to process message"}

        ws.send_json({"type": "typing_start", "conversation_id": "conv-1"})
        ws.send_json({"type": "bogus"})
        assert ws.receive_json() == {"type": "error", "message": "Unknown message type: bogus"}
