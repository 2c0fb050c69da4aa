"""
Tests for the room service.

Tests:
- Code generation and collision retry
- Load / apply / save flow and code normalization
- Notifications and their failure isolation
- Storage failures
- Session history and stale-room purge
"""

import re

import pytest

from ..engine_core.action import ErrorCode
from ..auth import AdminIdentity
from ..store import MemoryKeyValueStore, RoomStore, StorageError
from ..session import SessionHistory
from ..api.service import RoomService, MAX_CODE_ATTEMPTS
from .conftest import make_room


ADMIN = AdminIdentity(uid="admin-1", email="admin@example.com")


class FailingWrites(MemoryKeyValueStore):
    """Store whose writes fail, as when the engine is unreachable."""

    def set(self, key, value):
        raise StorageError("connection refused", key=key)


class TestCreateRoom:
    """Tests for creating rooms through the service."""

    def test_create_persists_room(self, service):
        result = service.create_room("Ada", "p1")

        assert result.success
        assert re.match(r"^[A-Z0-9]{6}$", result.room.code)
        assert service.rooms.load(result.room.code) == result.room

    def test_collision_is_redrawn(self, service, monkeypatch):
        codes = iter(["ABC123", "ABC123", "NEW456"])
        monkeypatch.setattr("planpoker.api.service.generate_room_code", lambda rng: next(codes))
        service.rooms.save("ABC123", make_room())

        result = service.create_room("Ada", "p1")

        assert result.success
        assert result.room.code == "NEW456"
        assert len(service.rooms.load("ABC123").players) == 4

    def test_exhausted_codes_conflict(self, service, monkeypatch):
        draws = []

        def always_taken(rng):
            draws.append(1)
            return "ABC123"

        monkeypatch.setattr("planpoker.api.service.generate_room_code", always_taken)
        service.rooms.save("ABC123", make_room())

        result = service.create_room("Ada", "p1")

        assert not result.success
        assert result.error_code == ErrorCode.CONFLICT
        assert result.error == "Failed to generate unique room code"
        assert len(draws) == MAX_CODE_ATTEMPTS

    def test_invalid_name_not_retried(self, service):
        result = service.create_room("", "p1")

        assert result.error_code == ErrorCode.INVALID_INPUT
        assert service.list_rooms() == []


class TestRoomFlow:
    """Tests for the load / apply / save path."""

    def test_join_normalizes_code(self, service):
        code = service.create_room("Ada", "p1").room.code

        result = service.join_room(f"  {code.lower()} ", "Bob", "p2")

        assert result.success
        assert [p.id for p in service.rooms.load(code).players] == ["p1", "p2"]

    def test_join_unknown_code_creates(self, service):
        result = service.join_room("zzz999", "Ada", "p1")

        assert result.success
        assert service.rooms.exists("ZZZ999")

    def test_malformed_code_rejected(self, service):
        for code in ("ABC12", "ABC-123", None, 123456):
            result = service.join_room(code, "Ada", "p1")
            assert result.error_code == ErrorCode.INVALID_INPUT

    def test_full_round(self, service):
        code = service.create_room("Ada", "p1").room.code
        service.join_room(code, "Bob", "p2")
        service.submit_vote(code, "p1", "3")
        service.submit_vote(code, "p2", "8")

        revealed = service.reveal_votes(code).room
        assert revealed.revealed
        assert revealed.summary.average == 5.5

        reset = service.reset_round(code).room
        assert not reset.revealed
        assert all(p.vote is None for p in reset.players)

    def test_failed_command_does_not_write(self, service):
        code = service.create_room("Ada", "p1").room.code
        before = service.rooms.load(code)

        result = service.submit_vote(code, "p1", "7")

        assert result.error_code == ErrorCode.INVALID_INPUT
        assert service.rooms.load(code) == before

    def test_get_room(self, service):
        code = service.create_room("Ada", "p1").room.code

        assert service.get_room(code.lower()).room.code == code
        assert service.get_room("NOPE00").error_code == ErrorCode.NOT_FOUND
        assert service.get_room("bad").error_code == ErrorCode.INVALID_INPUT

    def test_last_leave_deletes_document(self, service):
        code = service.create_room("Ada", "p1").room.code

        result = service.leave_room(code, "p1")

        assert result.deleted
        assert not service.rooms.exists(code)
        assert service.reveal_votes(code).error_code == ErrorCode.NOT_FOUND

    def test_breakout_flow(self, service):
        service.rooms.save("ABC123", make_room())

        room = service.create_breakout_rooms("abc123", "P1", 2).room
        br1 = room.breakout_rooms[0].id
        service.submit_breakout_vote("ABC123", br1, "P3", "5")
        service.reveal_breakout_votes("ABC123", br1)

        stored = service.rooms.load("ABC123").get_breakout_room(br1)
        assert stored.revealed
        assert stored.get_player("P3").vote == "5"

        service.reset_breakout_round("ABC123", br1)
        service.join_breakout_room("ABC123", "P2", br1)
        service.leave_breakout_room("ABC123", "P3")
        stored = service.rooms.load("ABC123").get_breakout_room(br1)
        assert [p.id for p in stored.players] == ["P1", "P2"]

        assert service.delete_breakout_rooms("ABC123", "P2").error_code == ErrorCode.FORBIDDEN
        assert service.delete_breakout_rooms("ABC123", "P1").success
        assert service.rooms.load("ABC123").breakout_rooms == []

    def test_set_observer(self, service):
        code = service.create_room("Ada", "p1").room.code

        result = service.set_observer(code, "p1", True)

        assert service.rooms.load(code).get_player("p1").is_observer
        assert result.room.summary.voter_count == 0


class TestNotifications:
    """Tests for subscriber notifications."""

    def test_update_after_each_write(self, service):
        code = service.create_room("Ada", "p1").room.code
        service.submit_vote(code, "p1", "5")

        assert [c for c, _ in service.notifications] == [code, code]
        kind, payload = service.notifications[-1][1]["type"], service.notifications[-1][1]["payload"]
        assert kind == "room_update"
        assert payload["room"]["players"][0]["vote"] == "5"
        assert payload["summary"]["voted_count"] == 1

    def test_rejected_command_not_broadcast(self, service):
        code = service.create_room("Ada", "p1").room.code
        service.notifications.clear()

        service.submit_vote(code, "ghost", "5")

        assert service.notifications == []

    def test_deletion_broadcast(self, service):
        code = service.create_room("Ada", "p1").room.code

        service.leave_room(code, "p1")

        assert service.notifications[-1] == (code, {"type": "room_deleted", "payload": {"code": code}})

    def test_notifier_failure_does_not_fail_command(self, kv):
        def broken(code, message):
            raise RuntimeError("channel down")

        service = RoomService(rooms=RoomStore(kv), notifier=broken)

        result = service.create_room("Ada", "p1")

        assert result.success
        assert service.rooms.exists(result.room.code)


class TestStorageFailures:
    """Tests for an unavailable store."""

    def test_write_failure_is_storage_error(self):
        service = RoomService(rooms=RoomStore(FailingWrites()))

        result = service.join_room("ABC123", "Ada", "p1")

        assert not result.success
        assert result.error_code == ErrorCode.STORAGE_ERROR

    def test_corrupt_room_is_storage_error(self, service, kv):
        kv.set("room:ABC123", {"players": "oops"})

        assert service.submit_vote("ABC123", "P1", "5").error_code == ErrorCode.STORAGE_ERROR
        assert service.get_room("ABC123").error_code == ErrorCode.STORAGE_ERROR


class TestSessionHistory:
    """Tests for admin session bookkeeping."""

    def test_admin_room_is_tracked(self, service, clock):
        code = service.create_room("Ada", "p1", admin=ADMIN).room.code
        service.join_room(code, "Bob", "p2")
        service.join_room(code, "Cy", "p3")
        service.leave_room(code, "p3")
        service.reset_round(code)
        service.reset_round(code)

        record = service.history.get_active(code)
        assert record.admin_uid == "admin-1"
        assert record.player_count == 3
        assert record.rounds == 2

        clock.advance(60_000)
        service.leave_room(code, "p1")
        service.leave_room(code, "p2")

        assert service.history.get_active(code) is None
        [ended] = service.history.list_for_admin("admin-1")
        assert ended.duration == 60_000

    def test_anonymous_room_not_tracked(self, service):
        service.create_room("Ada", "p1")

        assert service.history.list_for_admin("admin-1") == []

    def test_analytics(self, service, clock):
        first = service.create_room("Ada", "p1", admin=ADMIN).room.code
        service.join_room(first, "Bob", "p2")
        clock.advance(1000)
        service.leave_room(first, "p1")
        service.leave_room(first, "p2")
        service.create_room("Ada", "p1", admin=ADMIN)

        summary = service.history.analytics("admin-1")

        assert summary.total_sessions == 2
        assert summary.total_rooms == 2
        assert summary.total_players == 3
        assert summary.average_session_duration == 1000
        assert summary.average_players_per_session == 1.5

    def test_list_newest_first_and_limited(self, kv, clock):
        history = SessionHistory(kv, clock=clock)
        for code in ("AAA111", "BBB222", "CCC333"):
            history.start(code, "admin-1")
            clock.advance(10)

        records = history.list_for_admin("admin-1", limit=2)

        assert [r.room_code for r in records] == ["CCC333", "BBB222"]

    def test_history_failure_does_not_fail_command(self, service, monkeypatch):
        def broken(*args, **kwargs):
            raise StorageError("history down")

        monkeypatch.setattr(service.history, "start", broken)

        assert service.create_room("Ada", "p1", admin=ADMIN).success


class TestPurge:
    """Tests for deleting abandoned rooms."""

    def test_purges_only_idle_rooms(self, service):
        stale = make_room(code="OLD111")
        fresh = make_room(code="NEW222")
        fresh.players[0].last_seen = 10_000
        service.rooms.save("OLD111", stale)
        service.rooms.save("NEW222", fresh)

        purged = service.purge_stale_rooms(max_idle_ms=5_000, now=12_000)

        assert purged == ["OLD111"]
        assert [r.code for r in service.list_rooms()] == ["NEW222"]
        assert ("OLD111", {"type": "room_deleted", "payload": {"code": "OLD111"}}) in service.notifications

    def test_nothing_to_purge(self, service):
        service.rooms.save("ABC123", make_room())

        assert service.purge_stale_rooms(max_idle_ms=5_000, now=2_000) == []


@pytest.mark.parametrize("vote", [None, "?"])
def test_in_memory_service(vote):
    service = RoomService.in_memory()
    code = service.create_room("Ada", "p1", admin=ADMIN).room.code

    assert service.submit_vote(code, "p1", vote).success
    assert service.history.get_active(code) is not None


def test_deleted_rooms_leave_no_locks(service):
    for _ in range(20):
        code = service.create_room("Ada", "p1").room.code
        service.leave_room(code, "p1")
    service.rooms.save("OLD111", make_room(code="OLD111"))
    service.purge_stale_rooms(max_idle_ms=5_000, now=12_000)

    assert service.list_rooms() == []
    assert len(service.locks) == 0
