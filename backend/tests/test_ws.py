import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from live_classroom.config import Settings
from live_classroom.main import create_app
from live_classroom.services.auth_service import create_access_token
from live_classroom.services.coordinator import ClassroomCoordinator

from tests.conftest import FakeStore


@pytest.fixture
def ws_settings():
    return Settings(SECRET_KEY="ws-secret")


@pytest.fixture
def client(ws_settings):
    app = create_app(lambda: ClassroomCoordinator.build(FakeStore(), ws_settings))
    with TestClient(app) as test_client:
        yield test_client


def _url(config, user_id, name, role):
    return f"/ws/classroom?token={create_access_token(user_id, name, role, config=config)}"


def test_health(client):
    assert client.get("/").json()["status"] == "online"
    health = client.get("/api/v1/health").json()
    assert health["active_rooms"] == 0
    assert health["pending_writes"] == 0


def test_rejects_missing_and_bad_tokens(client):
    for url in ("/ws/classroom", "/ws/classroom?token=garbage"):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(url):
                pass
        assert exc.value.code == 4401


def test_join_chat_and_ping(client, ws_settings):
    with client.websocket_connect(_url(ws_settings, "t1", "Ms. Rivera", "teacher")) as teacher:
        assert teacher.receive_json() == {
            "type": "connected", "userId": "t1", "name": "Ms. Rivera", "role": "teacher"
        }
        teacher.send_json({"type": "join", "roomId": "C1"})
        assert teacher.receive_json()["type"] == "participantsList"

        with client.websocket_connect(_url(ws_settings, "s1", "Sam", "student")) as student:
            assert student.receive_json()["type"] == "connected"
            student.send_json({"type": "join", "roomId": "C1"})
            roster = student.receive_json()
            assert [p["userId"] for p in roster["participants"]] == ["t1", "s1"]
            assert teacher.receive_json() == {
                "type": "participantJoined", "userId": "s1", "name": "Sam", "role": "student"
            }
            assert client.get("/api/v1/health").json()["active_rooms"] == 1

            student.send_json({"type": "chat", "roomId": "C1", "text": "hello"})
            assert teacher.receive_json()["message"] == "hello"
            assert student.receive_json()["message"] == "hello"

            student.send_json({"type": "ping"})
            assert student.receive_json() == {"type": "pong"}

        assert teacher.receive_json() == {"type": "participantLeft", "userId": "s1", "name": "Sam"}


def test_invalid_json_keeps_socket_open(client, ws_settings):
    with client.websocket_connect(_url(ws_settings, "s1", "Sam", "student")) as student:
        student.receive_json()
        student.send_text("{not json")
        error = student.receive_json()
        assert error == {"type": "error", "code": "invalid_message", "detail": "Invalid JSON payload"}

        student.send_json({"type": "ping"})
        assert student.receive_json() == {"type": "pong"}
