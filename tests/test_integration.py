"""
Integration tests for the chat WebSocket protocol.

End-to-end flows over real sockets: join, send, typing, presence and
multi-device delivery.
"""

import pytest
from fastapi.testclient import TestClient

from common.config import Config
from common.models import Role
from gateway.auth import JWTAuthenticator
from gateway.websocket import create_gateway_app

SECRET = "test-secret"


@pytest.fixture
def authenticator() -> JWTAuthenticator:
    return JWTAuthenticator(SECRET)


@pytest.fixture
def client(test_config: Config, authenticator: JWTAuthenticator):
    """Create a test client around a fresh gateway."""
    app = create_gateway_app(test_config, authenticator=authenticator)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def connect(client: TestClient, authenticator: JWTAuthenticator):
    """Open a socket for a user id (customers unless a role is given)."""

    def _connect(user_id: str, role: Role = Role.CUSTOMER):
        token = authenticator.create_access_token(user_id, f"{user_id}@example.com", role)
        return client.websocket_connect(f"/ws/chat?token={token}")

    return _connect


def join(ws, room_id: str) -> dict:
    ws.send_json({"event": "join_room", "data": room_id})
    return ws.receive_json()


def test_batch_chat_round_trip(connect) -> None:
    """U1 and U2 join batch:42; U1 says hello; both receive it."""
    with connect("u1") as ws1, connect("u2") as ws2:
        assert join(ws1, "batch:42")["data"]["success"] is True
        assert join(ws2, "batch:42")["data"]["success"] is True

        ws1.send_json(
            {"event": "send_message", "data": {"roomId": "batch:42", "content": "hello"}}
        )

        for ws in (ws1, ws2):
            frame = ws.receive_json()
            assert frame["event"] == "new_message"
            assert frame["data"]["senderId"] == "u1"
            assert frame["data"]["content"] == "hello"
            assert frame["data"]["roomId"] == "batch:42"


def test_outsider_cannot_join_or_send(connect) -> None:
    with connect("u3") as ws3:
        assert join(ws3, "batch:42") == {
            "event": "room_joined",
            "data": {"roomId": "batch:42", "success": False},
        }

        ws3.send_json({"event": "send_message", "data": {"roomId": "batch:42", "content": "hi"}})
        frame = ws3.receive_json()
        assert frame["event"] == "error"
        assert frame["data"]["code"] == "NOT_IN_ROOM"


def test_direct_messages(connect) -> None:
    """Only the two participants can use a dm room."""
    with connect("u1") as ws1, connect("u2") as ws2, connect("u3") as ws3:
        assert join(ws1, "dm:u1:u2")["data"]["success"] is True
        assert join(ws2, "dm:u1:u2")["data"]["success"] is True
        assert join(ws3, "dm:u1:u2")["data"]["success"] is False

        ws2.send_json({"event": "send_message", "data": {"roomId": "dm:u1:u2", "content": "psst"}})

        assert ws1.receive_json()["data"]["content"] == "psst"
        assert ws2.receive_json()["data"]["content"] == "psst"


def test_typing_indicator_flow(connect) -> None:
    with connect("u1") as ws1, connect("u2") as ws2:
        join(ws1, "batch:42")
        join(ws2, "batch:42")

        ws1.send_json({"event": "typing_start", "data": "batch:42"})
        assert ws2.receive_json() == {
            "event": "user_typing",
            "data": {"roomId": "batch:42", "userId": "u1", "email": "u1@example.com"},
        }

        ws1.send_json({"event": "send_message", "data": {"roomId": "batch:42", "content": "hi"}})
        assert ws2.receive_json() == {
            "event": "user_stopped_typing",
            "data": {"roomId": "batch:42", "userId": "u1"},
        }
        assert ws2.receive_json()["event"] == "new_message"
        assert ws1.receive_json()["event"] == "new_message"


def test_presence_offline_after_disconnect(connect) -> None:
    """A peer hears one offline update with lastSeen after the debounce."""
    with connect("u1") as ws1:
        join(ws1, "batch:42")

        with connect("u2") as ws2:
            join(ws2, "batch:42")

        frame = ws1.receive_json()
        assert frame["event"] == "presence_update"
        assert frame["data"]["userId"] == "u2"
        assert frame["data"]["status"] == "offline"
        assert "lastSeen" in frame["data"]


def test_multi_device_delivery(connect) -> None:
    """Both of U2's devices get the message; U2 stays online while one is open."""
    with connect("u1") as ws1, connect("u2") as phone, connect("u2") as laptop:
        join(ws1, "batch:42")
        join(phone, "batch:42")

        ws1.send_json({"event": "send_message", "data": {"roomId": "batch:42", "content": "yo"}})

        assert ws1.receive_json()["event"] == "new_message"
        assert phone.receive_json()["data"]["content"] == "yo"
        assert laptop.receive_json()["data"]["content"] == "yo"


def test_mark_read_and_leave(connect) -> None:
    with connect("u1") as ws1:
        join(ws1, "batch:42")

        ws1.send_json({"event": "mark_read", "data": "batch:42"})
        ack = ws1.receive_json()
        assert ack["event"] == "marked_read"
        assert ack["data"]["roomId"] == "batch:42"

        ws1.send_json({"event": "leave_room", "data": "batch:42"})
        assert ws1.receive_json() == {
            "event": "room_left",
            "data": {"roomId": "batch:42", "success": True},
        }

        ws1.send_json({"event": "leave_room", "data": "batch:42"})
        assert ws1.receive_json()["data"]["success"] is False


def test_admin_can_join_any_batch(connect) -> None:
    with connect("admin1", Role.ADMIN) as ws:
        assert join(ws, "batch:999")["data"]["success"] is True
