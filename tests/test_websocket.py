# tests/test_websocket.py
from __future__ import annotations

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from chat_relay.api.websocket import websocket_endpoint
from chat_relay.core import state
from chat_relay.main import app
from chat_relay.services.chat_hub import ChatHub
from chat_relay.services.connection_manager import ConnectionManager
from chat_relay.services.dedup_window import DedupWindow
from chat_relay.services.message_router import MessageRouter
from chat_relay.services.room_manager import RoomManager
from chat_relay.services.session_table import SessionTable


@pytest.fixture
def client(monkeypatch):
    """App client wired to a fresh engine so tests never share rooms."""
    room_manager = RoomManager(history_cap=100)
    dedup_window = DedupWindow(window_seconds=60)
    message_router = MessageRouter(room_manager=room_manager, dedup=dedup_window)
    connection_manager = ConnectionManager(queue_size=64)
    chat_hub = ChatHub(
        transport=connection_manager,
        room_manager=room_manager,
        sessions=SessionTable(),
        router=message_router,
    )
    monkeypatch.setattr(state, "room_manager", room_manager)
    monkeypatch.setattr(state, "dedup_window", dedup_window)
    monkeypatch.setattr(state, "connection_manager", connection_manager)
    monkeypatch.setattr(state, "chat_hub", chat_hub)

    with TestClient(app) as test_client:
        yield test_client


def receive_until(ws, type_):
    """Read frames until one of ``type_`` arrives; return it."""
    for _ in range(20):
        frame = ws.receive_json()
        if frame["type"] == type_:
            return frame
    raise AssertionError(f"no {type_} frame received")


def authenticate(ws, username, room="lobby"):
    ws.send_json({"action": "authenticate", "data": {"username": username, "room": room}})
    return receive_until(ws, "ack")


def test_root_and_health(client):
    assert client.get("/").json()["message"] == "Chat server is running"

    body = client.get("/health").json()
    assert body["status"] == "OK"
    assert body["rooms"] == 0


def test_join_flow_over_socket(client):
    with client.websocket_connect("/ws") as alice:
        alice.send_json({"action": "authenticate", "request_id": "r1",
                         "data": {"username": "alice", "room": "lobby"}})

        assert alice.receive_json() == {"type": "messageHistory", "data": []}
        notice = alice.receive_json()
        assert notice["type"] == "message"
        assert notice["data"]["username"] == "System"
        assert notice["data"]["text"] == "alice has joined the chat"
        assert alice.receive_json() == {
            "type": "presenceUpdate",
            "data": [{"username": "alice", "isTyping": False}],
        }
        assert alice.receive_json() == {
            "type": "ack", "action": "authenticate", "status": "success", "request_id": "r1",
        }

        rooms = client.get("/rooms").json()
        assert rooms == [{"room": "lobby", "member_count": 1}]


def test_two_clients_chat_and_leave(client):
    with client.websocket_connect("/ws") as alice:
        assert authenticate(alice, "alice")["status"] == "success"

        with client.websocket_connect("/ws") as bob:
            assert authenticate(bob, "bob")["status"] == "success"
            joined = receive_until(alice, "message")
            assert joined["data"]["text"] == "bob has joined the chat"
            presence = receive_until(alice, "presenceUpdate")
            assert [p["username"] for p in presence["data"]] == ["alice", "bob"]

            alice.send_json({"action": "message", "data": {"room": "lobby", "text": "hi", "username": "alice"}})
            assert receive_until(alice, "message")["data"]["text"] == "hi"
            assert receive_until(alice, "ack")["status"] == "delivered"
            got = receive_until(bob, "message")
            assert (got["data"]["username"], got["data"]["text"]) == ("alice", "hi")

        left = receive_until(alice, "message")
        assert left["data"]["text"] == "bob has left the chat"
        assert receive_until(alice, "presenceUpdate")["data"] == [{"username": "alice", "isTyping": False}]

    assert client.get("/rooms").json() == []


def test_username_taken_over_socket(client):
    with client.websocket_connect("/ws") as first:
        authenticate(first, "alice")
        with client.websocket_connect("/ws") as second:
            ack = authenticate(second, "alice")
            assert ack["status"] == "error"
            assert ack["code"] == "username_taken"
            assert ack["message"] == "Username already taken in this room"


def test_duplicate_retransmission_over_socket(client):
    with client.websocket_connect("/ws") as alice:
        authenticate(alice, "alice")
        payload = {"room": "lobby", "text": "hi", "username": "alice", "idempotency_key": "k1"}

        alice.send_json({"action": "message", "data": payload})
        assert receive_until(alice, "ack")["status"] == "delivered"
        alice.send_json({"action": "message", "data": payload})
        assert receive_until(alice, "ack")["status"] == "duplicate"


def test_message_before_authenticate(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"action": "message", "data": {"room": "lobby", "text": "hi", "username": "alice"}})
        ack = ws.receive_json()
        assert ack["status"] == "error"
        assert ack["code"] == "not_authenticated"


def test_bad_frames_get_error_replies(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        assert ws.receive_json() == {"type": "error", "message": "Invalid JSON"}

        ws.send_json({"action": "dance"})
        assert ws.receive_json() == {"type": "error", "message": "Unknown action: dance"}

        ws.send_json({"action": "authenticate", "data": {"username": 42, "room": "lobby"}})
        ack = ws.receive_json()
        assert ack["code"] == "invalid_input"


def test_typing_updates_presence(client):
    with client.websocket_connect("/ws") as alice:
        authenticate(alice, "alice")
        alice.send_json({"action": "typing", "data": {"room": "lobby", "isTyping": True}})
        presence = receive_until(alice, "presenceUpdate")
        assert presence["data"] == [{"username": "alice", "isTyping": True}]


class ClosedSocket:
    """A socket whose peer hangs up on the first read."""

    async def accept(self):
        pass

    async def receive_text(self):
        raise WebSocketDisconnect(code=1000)

    async def send_json(self, payload):
        pass


class BrokenHub:
    async def open(self, connection_id):
        pass

    async def disconnect(self, connection_id):
        raise RuntimeError("hub teardown failed")


@pytest.mark.asyncio
async def test_socket_released_even_if_hub_teardown_raises(monkeypatch):
    connection_manager = ConnectionManager(queue_size=4)
    monkeypatch.setattr(state, "connection_manager", connection_manager)
    monkeypatch.setattr(state, "chat_hub", BrokenHub())

    with pytest.raises(RuntimeError):
        await websocket_endpoint(ClosedSocket())

    assert connection_manager.connections == {}
    assert connection_manager.writers == {}
