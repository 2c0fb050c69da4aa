"""
API Service - Business logic layer between API and engine.

The service:
1. Normalizes room codes and builds engine commands
2. Loads the room, applies the command, persists the result
3. Notifies subscribers of the new room state (best effort)
4. Keeps admin session history in step with the room (best effort)

This layer is framework-agnostic (can be used with FastAPI, the CLI, tests).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable
import logging
import random
import time

from ..engine_core import (
    Room,
    Command,
    CommandType,
    CommandResult,
    ErrorCode,
    Reducer,
    generate_room_code,
    normalize_room_code,
)
from ..engine_core.validation import validate_room_code
from ..store import RoomStore, RoomLocks, StorageError, MemoryKeyValueStore
from ..session import SessionHistory
from ..auth import AdminIdentity
from .schemas import RoomResponse

logger = logging.getLogger(__name__)

# One initial draw plus ten retries
MAX_CODE_ATTEMPTS = 11

Notifier = Callable[[str, dict[str, Any]], None]


def room_update_message(room: Room) -> dict[str, Any]:
    return {"type": "room_update", "payload": RoomResponse.from_room(room).model_dump()}


def room_deleted_message(room_code: str) -> dict[str, Any]:
    return {"type": "room_deleted", "payload": {"code": room_code}}


@dataclass
class RoomService:
    """
    Main room service.

    Usage:
        service = RoomService.in_memory()

        result = service.create_room("Ada", "player-1")
        code = result.room.code

        service.join_room(code, "Grace", "player-2")
        service.submit_vote(code, "player-2", "8")
        service.reveal_votes(code)
    """
    rooms: RoomStore
    history: SessionHistory | None = None
    reducer: Reducer = field(default_factory=Reducer)
    locks: RoomLocks = field(default_factory=RoomLocks)
    notifier: Notifier | None = None
    rng: random.Random = field(default_factory=random.Random)

    @classmethod
    def in_memory(cls, **kwargs) -> RoomService:
        """Service over a fresh in-memory store, with session history."""
        kv = MemoryKeyValueStore()
        return cls(rooms=RoomStore(kv), history=SessionHistory(kv), **kwargs)

    # =========================================================================
    # Main room commands
    # =========================================================================

    def create_room(
        self,
        player_name: str,
        player_id: str,
        is_observer: bool = False,
        admin: AdminIdentity | None = None,
    ) -> CommandResult:
        """
        Create a room under a freshly drawn code.

        A drawn code that is already in use is redrawn; after
        MAX_CODE_ATTEMPTS collisions the command fails with CONFLICT.
        """
        for attempt in range(MAX_CODE_ATTEMPTS):
            code = generate_room_code(self.rng)
            result = self._execute(
                Command.create_room(code, player_name, player_id, is_observer)
            )
            if result.error_code != ErrorCode.CONFLICT:
                break
            logger.warning(f"Room code collision detected on attempt {attempt + 1}: {code}")
        else:
            return CommandResult.failure(
                "Failed to generate unique room code", ErrorCode.CONFLICT
            )

        if result.success and admin is not None:
            self._track(lambda h: h.start(result.room.code, admin.uid, len(result.room.players)))
        return result

    def join_room(
        self, room_code: str, player_name: str, player_id: str, is_observer: bool = False
    ) -> CommandResult:
        return self._execute(
            Command.join_room(
                normalize_room_code(room_code), player_name, player_id, is_observer
            )
        )

    def get_room(self, room_code: str) -> CommandResult:
        """Read-only lookup for polling clients."""
        code = normalize_room_code(room_code)
        error = validate_room_code(code)
        if error:
            return CommandResult.failure(error, ErrorCode.INVALID_INPUT)
        try:
            room = self.rooms.load(code)
        except StorageError as e:
            logger.error(f"Failed to load room {code}: {e}")
            return CommandResult.failure(f"Storage unavailable: {e}", ErrorCode.STORAGE_ERROR)
        if room is None:
            return CommandResult.failure(f"Room {code} not found", ErrorCode.NOT_FOUND)
        return CommandResult.success_with_room(room)

    def submit_vote(self, room_code: str, player_id: str, vote: str | None) -> CommandResult:
        return self._execute(
            Command.submit_vote(normalize_room_code(room_code), player_id, vote)
        )

    def reveal_votes(self, room_code: str) -> CommandResult:
        return self._execute(Command.reveal_votes(normalize_room_code(room_code)))

    def reset_round(self, room_code: str) -> CommandResult:
        return self._execute(Command.reset_round(normalize_room_code(room_code)))

    def leave_room(self, room_code: str, player_id: str) -> CommandResult:
        return self._execute(Command.leave_room(normalize_room_code(room_code), player_id))

    def set_observer(self, room_code: str, player_id: str, is_observer: bool) -> CommandResult:
        return self._execute(
            Command.set_observer(normalize_room_code(room_code), player_id, is_observer)
        )

    # =========================================================================
    # Breakout room commands
    # =========================================================================

    def create_breakout_rooms(
        self, room_code: str, player_id: str, num_breakouts: int
    ) -> CommandResult:
        return self._execute(
            Command.create_breakout_rooms(
                normalize_room_code(room_code), player_id, num_breakouts
            )
        )

    def join_breakout_room(
        self, room_code: str, player_id: str, breakout_room_id: str
    ) -> CommandResult:
        return self._execute(
            Command.join_breakout_room(
                normalize_room_code(room_code), player_id, breakout_room_id
            )
        )

    def leave_breakout_room(self, room_code: str, player_id: str) -> CommandResult:
        return self._execute(
            Command.leave_breakout_room(normalize_room_code(room_code), player_id)
        )

    def submit_breakout_vote(
        self, room_code: str, breakout_room_id: str, player_id: str, vote: str | None
    ) -> CommandResult:
        return self._execute(
            Command.submit_breakout_vote(
                normalize_room_code(room_code), breakout_room_id, player_id, vote
            )
        )

    def reveal_breakout_votes(self, room_code: str, breakout_room_id: str) -> CommandResult:
        return self._execute(
            Command.reveal_breakout_votes(normalize_room_code(room_code), breakout_room_id)
        )

    def reset_breakout_round(self, room_code: str, breakout_room_id: str) -> CommandResult:
        return self._execute(
            Command.reset_breakout_round(normalize_room_code(room_code), breakout_room_id)
        )

    def delete_breakout_rooms(self, room_code: str, player_id: str) -> CommandResult:
        return self._execute(
            Command.delete_breakout_rooms(normalize_room_code(room_code), player_id)
        )

    # =========================================================================
    # Operations
    # =========================================================================

    def list_rooms(self) -> list[Room]:
        return self.rooms.list_rooms()

    def purge_stale_rooms(self, max_idle_ms: int, now: int | None = None) -> list[str]:
        """
        Delete rooms nobody has touched for max_idle_ms.

        Activity is the most recent last_seen across the room's players.
        Returns the deleted codes.
        """
        now = now if now is not None else int(time.time() * 1000)
        cutoff = now - max_idle_ms
        purged = []

        for candidate in self.rooms.list_rooms():
            code = candidate.code
            with self.locks.room_lock(code):
                room = self.rooms.load(code)
                if room is None or room.last_activity >= cutoff:
                    continue
                self.rooms.delete(code)
            purged.append(code)
            logger.info(f"Purged stale room {code}")
            self._notify(code, room_deleted_message(code))
            self._track(lambda h: h.end(code))
        return purged

    # =========================================================================
    # Helper methods
    # =========================================================================

    def _execute(self, command: Command) -> CommandResult:
        """
        Load, apply, persist - under the room's lock.

        Notification and history bookkeeping run after the write and can
        never fail the command.
        """
        code = command.room_code
        error = validate_room_code(code)
        if error:
            return CommandResult.failure(error, ErrorCode.INVALID_INPUT)

        try:
            with self.locks.room_lock(code):
                room = self.rooms.load(code)
                result = self.reducer.apply(room, command)
                if not result.success:
                    return result
                if result.deleted:
                    self.rooms.delete(code)
                else:
                    self.rooms.save(code, result.room)
        except StorageError as e:
            logger.error(f"Storage failure on {command.command_type.value} for room {code}: {e}")
            return CommandResult.failure(f"Storage unavailable: {e}", ErrorCode.STORAGE_ERROR)

        for change in result.changes:
            logger.debug(f"[{code}] {change}")
        if result.deleted:
            logger.info(f"Room {code} deleted")
            self._notify(code, room_deleted_message(code))
        else:
            if room is None:
                logger.info(f"Created room {code}")
            self._notify(code, room_update_message(result.room))

        self._record_history(command, result)
        return result

    def _record_history(self, command: Command, result: CommandResult) -> None:
        code = command.room_code
        if result.deleted:
            self._track(lambda h: h.end(code))
        elif command.command_type == CommandType.JOIN_ROOM:
            self._track(lambda h: h.record_players(code, len(result.room.players)))
        elif command.command_type == CommandType.RESET_ROUND:
            self._track(lambda h: h.record_round(code))

    def _track(self, update: Callable[[SessionHistory], Any]) -> None:
        """Run a session-history update; failures are logged, never raised."""
        if self.history is None:
            return
        try:
            update(self.history)
        except Exception:
            logger.exception("Session history update failed")

    def _notify(self, room_code: str, message: dict[str, Any]) -> None:
        """Best-effort delivery to subscribers."""
        if self.notifier is None:
            return
        try:
            self.notifier(room_code, message)
        except Exception:
            logger.exception(f"Failed to notify subscribers of room {room_code}")
