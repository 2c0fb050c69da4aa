"""
Tests for the HTTP and WebSocket API.

Tests:
- Room endpoints and status-code mapping
- Breakout endpoints
- Admin endpoints and token checks
- WebSocket initial state, broadcast and ping
"""

import importlib

import pytest
from fastapi.testclient import TestClient

from ..api import app as app_module
from ..api.app import create_app
from ..api.service import RoomService
from ..auth import AdminAuthorizer, AdminIdentity
from ..config import Settings
from ..store import RoomStore, StorageError
from .conftest import make_room

ADMIN_HEADERS = {"Authorization": "Bearer secret-token"}


@pytest.fixture
def api_service():
    return RoomService.in_memory()


@pytest.fixture
def client(api_service):
    app = create_app(
        service=api_service,
        authorizer=AdminAuthorizer(tokens={"secret-token": AdminIdentity(uid="admin-1")}),
        settings=Settings(),
    )
    return TestClient(app)


def _create(client, name="Ada", player_id="p1", headers=None):
    response = client.post(
        "/api/v1/rooms",
        json={"player_name": name, "player_id": player_id},
        headers=headers or {},
    )
    assert response.status_code == 200
    return response.json()["room"]["code"]


class TestRoomEndpoints:
    """Tests for the main room endpoints."""

    def test_create_room(self, client):
        response = client.post("/api/v1/rooms", json={"player_name": "Ada", "player_id": "p1"})

        assert response.status_code == 200
        data = response.json()
        assert len(data["room"]["code"]) == 6
        assert data["room"]["creator_id"] == "p1"
        assert data["room"]["players"][0]["name"] == "Ada"
        assert data["summary"]["voter_count"] == 1
        assert data["api_version"] == "v1"

    def test_join_and_get(self, client):
        code = _create(client)

        response = client.post(
            f"/api/v1/rooms/{code.lower()}/join",
            json={"player_name": "Bob", "player_id": "p2"},
        )
        assert response.status_code == 200

        response = client.get(f"/api/v1/rooms/{code}")
        assert [p["id"] for p in response.json()["room"]["players"]] == ["p1", "p2"]

    def test_vote_reveal_reset(self, client):
        code = _create(client)
        client.post(f"/api/v1/rooms/{code}/join", json={"player_name": "Bob", "player_id": "p2"})
        client.post(f"/api/v1/rooms/{code}/vote", json={"player_id": "p1", "vote": "5"})
        client.post(f"/api/v1/rooms/{code}/vote", json={"player_id": "p2", "vote": "8"})

        revealed = client.post(f"/api/v1/rooms/{code}/reveal").json()
        assert revealed["room"]["revealed"] is True
        assert revealed["summary"]["all_voted"] is True
        assert revealed["summary"]["average"] == 6.5

        reset = client.post(f"/api/v1/rooms/{code}/reset").json()
        assert reset["room"]["revealed"] is False
        assert all(p["vote"] is None for p in reset["room"]["players"])

    def test_invalid_vote_is_400(self, client):
        code = _create(client)

        response = client.post(f"/api/v1/rooms/{code}/vote", json={"player_id": "p1", "vote": "7"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_INPUT"

    def test_unknown_room_is_404(self, client):
        response = client.get("/api/v1/rooms/NOPE00")

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_bad_code_is_400(self, client):
        assert client.get("/api/v1/rooms/short").status_code == 400

    def test_missing_body_field_is_400(self, client):
        response = client.post("/api/v1/rooms", json={"player_name": "Ada"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_INPUT"

    def test_full_room_is_409(self, client, api_service):
        api_service.rooms.save("ABC123", make_room(player_ids=[f"P{i}" for i in range(50)]))

        response = client.post(
            "/api/v1/rooms/ABC123/join", json={"player_name": "Late", "player_id": "late"}
        )

        assert response.status_code == 409
        assert response.json()["error"] == "Room is full"

    def test_leave(self, client):
        code = _create(client)
        client.post(f"/api/v1/rooms/{code}/join", json={"player_name": "Bob", "player_id": "p2"})

        first = client.post(f"/api/v1/rooms/{code}/leave", json={"player_id": "p2"}).json()
        assert first["success"] is True
        assert first["room_deleted"] is False
        assert [p["id"] for p in first["room"]["players"]] == ["p1"]

        last = client.post(f"/api/v1/rooms/{code}/leave", json={"player_id": "p1"}).json()
        assert last["room_deleted"] is True
        assert last["room"] is None
        assert client.get(f"/api/v1/rooms/{code}").status_code == 404

    def test_observer_toggle(self, client):
        code = _create(client)

        response = client.post(
            f"/api/v1/rooms/{code}/observer", json={"player_id": "p1", "is_observer": True}
        )

        assert response.json()["room"]["players"][0]["is_observer"] is True
        assert response.json()["summary"]["voter_count"] == 0

    def test_storage_failure_is_503(self, kv):
        class BrokenStore(RoomStore):
            def load(self, code):
                raise StorageError("down")

        app = create_app(service=RoomService(rooms=BrokenStore(kv)), settings=Settings())
        response = TestClient(app).get("/api/v1/rooms/ABC123")

        assert response.status_code == 503
        assert response.json()["error_code"] == "STORAGE_ERROR"


class TestBreakoutEndpoints:
    """Tests for the breakout endpoints."""

    @pytest.fixture
    def room_code(self, api_service):
        api_service.rooms.save("ABC123", make_room())
        return "ABC123"

    def test_create_and_vote(self, client, room_code):
        response = client.post(
            f"/api/v1/rooms/{room_code}/breakouts", json={"player_id": "P1", "num_breakouts": 2}
        )
        assert response.status_code == 200
        breakouts = response.json()["room"]["breakout_rooms"]
        assert [b["code"] for b in breakouts] == ["ABC123-1", "ABC123-2"]

        br1 = breakouts[0]["id"]
        response = client.post(
            f"/api/v1/rooms/{room_code}/breakouts/{br1}/vote", json={"player_id": "P3", "vote": "3"}
        )
        assert response.json()["room"]["breakout_rooms"][0]["summary"]["voted_count"] == 1

        response = client.post(f"/api/v1/rooms/{room_code}/breakouts/{br1}/reveal")
        assert response.json()["room"]["breakout_rooms"][0]["revealed"] is True

        response = client.post(f"/api/v1/rooms/{room_code}/breakouts/{br1}/reset")
        assert response.json()["room"]["breakout_rooms"][0]["revealed"] is False

    def test_non_creator_is_403(self, client, room_code):
        response = client.post(
            f"/api/v1/rooms/{room_code}/breakouts", json={"player_id": "P2", "num_breakouts": 2}
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"

    def test_round_in_progress_is_409(self, client, room_code):
        client.post(f"/api/v1/rooms/{room_code}/vote", json={"player_id": "P2", "vote": "5"})

        response = client.post(
            f"/api/v1/rooms/{room_code}/breakouts", json={"player_id": "P1", "num_breakouts": 2}
        )

        assert response.status_code == 409

    def test_join_leave_and_delete(self, client, room_code):
        room = client.post(
            f"/api/v1/rooms/{room_code}/breakouts", json={"player_id": "P1", "num_breakouts": 2}
        ).json()["room"]
        br2 = room["breakout_rooms"][1]["id"]

        response = client.post(
            f"/api/v1/rooms/{room_code}/breakouts/join",
            json={"player_id": "P3", "breakout_room_id": br2},
        )
        assert [p["id"] for p in response.json()["room"]["breakout_rooms"][1]["players"]] == ["P2", "P4", "P3"]

        response = client.post(f"/api/v1/rooms/{room_code}/breakouts/leave", json={"player_id": "P3"})
        assert response.status_code == 200

        assert client.delete(f"/api/v1/rooms/{room_code}/breakouts?player_id=P2").status_code == 403
        response = client.delete(f"/api/v1/rooms/{room_code}/breakouts?player_id=P1")
        assert response.json()["room"]["breakout_rooms"] == []


class TestAdminEndpoints:
    """Tests for admin token checks and session history."""

    def test_verify(self, client):
        response = client.post("/api/v1/admin/verify", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"is_admin": True, "uid": "admin-1"}

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "secret-token"}])
    def test_bad_token_is_401(self, client, headers):
        for method, path in (
            ("post", "/api/v1/admin/verify"),
            ("get", "/api/v1/admin/sessions"),
            ("get", "/api/v1/admin/analytics"),
        ):
            response = getattr(client, method)(path, headers=headers)
            assert response.status_code == 401
            assert response.json()["error_code"] == "UNAUTHORIZED"

    def test_admin_created_room_in_history(self, client):
        code = _create(client, headers=ADMIN_HEADERS)
        _create(client)

        data = client.get("/api/v1/admin/sessions", headers=ADMIN_HEADERS).json()

        assert data["count"] == 1
        assert data["sessions"][0]["room_code"] == code
        assert data["sessions"][0]["ended_at"] is None

    def test_analytics(self, client):
        code = _create(client, headers=ADMIN_HEADERS)
        client.post(f"/api/v1/rooms/{code}/join", json={"player_name": "Bob", "player_id": "p2"})

        data = client.get("/api/v1/admin/analytics", headers=ADMIN_HEADERS).json()

        assert data["total_sessions"] == 1
        assert data["total_players"] == 2

    def test_invalid_token_still_creates_room(self, client):
        response = client.post(
            "/api/v1/rooms",
            json={"player_name": "Ada", "player_id": "p1"},
            headers={"Authorization": "Bearer wrong"},
        )

        assert response.status_code == 200


class TestWebSocket:
    """Tests for the room update stream."""

    def test_initial_state_and_ping(self, client):
        code = _create(client)

        with client.websocket_connect(f"/api/v1/rooms/{code}/ws") as ws:
            first = ws.receive_json()
            assert first["type"] == "room_update"
            assert first["payload"]["room"]["code"] == code

            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_unknown_room_sends_error(self, client):
        with client.websocket_connect("/api/v1/rooms/NOPE00/ws") as ws:
            message = ws.receive_json()

        assert message["type"] == "error"
        assert message["payload"]["error_code"] == "NOT_FOUND"

    def test_update_is_broadcast(self, api_service):
        app = create_app(service=api_service, settings=Settings())

        with TestClient(app) as client:
            code = _create(client)
            with client.websocket_connect(f"/api/v1/rooms/{code}/ws") as ws:
                ws.receive_json()
                client.post(f"/api/v1/rooms/{code}/vote", json={"player_id": "p1", "vote": "3"})

                update = ws.receive_json()

        assert update["type"] == "room_update"
        assert update["payload"]["room"]["players"][0]["vote"] == "3"

    def test_disconnect_unsubscribes(self, api_service):
        app = create_app(service=api_service, settings=Settings())

        with TestClient(app) as client:
            code = _create(client)
            with client.websocket_connect(f"/api/v1/rooms/{code}/ws") as ws:
                ws.receive_json()
                assert app.state.hub.subscriber_count(code) == 1

            client.post(f"/api/v1/rooms/{code}/vote", json={"player_id": "p1", "vote": "5"})

        assert app.state.hub.subscriber_count(code) == 0


class TestSystemEndpoints:

    def test_health(self, client):
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["service"] == "planpoker"

    def test_root(self, client):
        assert client.get("/").json()["docs"] == "/api/docs"


class TestAppFactory:
    """The app is only built when asked for."""

    def test_import_does_not_build_app(self, monkeypatch):
        monkeypatch.setenv("PLANPOKER_ADMIN_TOKENS", "not-a-valid-entry")

        module = importlib.reload(app_module)

        assert not hasattr(module, "app")
        assert callable(module.create_app)

    def test_bad_admin_tokens_fail_at_build(self):
        with pytest.raises(ValueError):
            create_app(settings=Settings(admin_tokens="not-a-valid-entry"))
