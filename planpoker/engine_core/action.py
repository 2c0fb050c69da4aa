"""
Command System - Commands, payloads, and results.

Commands represent every mutation a participant can request:
1. Main room commands (join, vote, reveal, reset, leave)
2. Breakout room commands (create, join, vote, reveal, reset, delete)

All room state changes flow through commands.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CommandType(Enum):
    """Types of commands in the system."""
    # Main room
    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    SUBMIT_VOTE = "submit_vote"
    REVEAL_VOTES = "reveal_votes"
    RESET_ROUND = "reset_round"
    LEAVE_ROOM = "leave_room"
    SET_OBSERVER = "set_observer"

    # Breakout rooms
    CREATE_BREAKOUT_ROOMS = "create_breakout_rooms"
    JOIN_BREAKOUT_ROOM = "join_breakout_room"
    LEAVE_BREAKOUT_ROOM = "leave_breakout_room"
    SUBMIT_BREAKOUT_VOTE = "submit_breakout_vote"
    REVEAL_BREAKOUT_VOTES = "reveal_breakout_votes"
    RESET_BREAKOUT_ROUND = "reset_breakout_round"
    DELETE_BREAKOUT_ROOMS = "delete_breakout_rooms"


class ErrorCode(str, Enum):
    """Rejection categories. All are terminal for the engine."""
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass
class CommandPayload:
    """
    Payload for a command - contains the command parameters.

    Different command types use different fields.
    Shape validation happens in the reducer.
    """
    player_id: str | None = None
    player_name: str | None = None
    vote: str | None = None
    is_observer: bool = False

    # Breakout rooms
    breakout_room_id: str | None = None
    num_breakouts: int | None = None


@dataclass
class Command:
    """
    A complete command addressed to one room.

    Commands are validated, then applied atomically by the reducer.
    """
    command_type: CommandType
    room_code: str
    payload: CommandPayload = field(default_factory=CommandPayload)

    @classmethod
    def create_room(
        cls, room_code: str, player_name: str, player_id: str, is_observer: bool = False
    ) -> Command:
        """Factory for room creation with an already drawn code."""
        return cls(
            command_type=CommandType.CREATE_ROOM,
            room_code=room_code,
            payload=CommandPayload(
                player_id=player_id, player_name=player_name, is_observer=is_observer
            ),
        )

    @classmethod
    def join_room(
        cls, room_code: str, player_name: str, player_id: str, is_observer: bool = False
    ) -> Command:
        return cls(
            command_type=CommandType.JOIN_ROOM,
            room_code=room_code,
            payload=CommandPayload(
                player_id=player_id, player_name=player_name, is_observer=is_observer
            ),
        )

    @classmethod
    def submit_vote(cls, room_code: str, player_id: str, vote: str | None) -> Command:
        return cls(
            command_type=CommandType.SUBMIT_VOTE,
            room_code=room_code,
            payload=CommandPayload(player_id=player_id, vote=vote),
        )

    @classmethod
    def reveal_votes(cls, room_code: str) -> Command:
        return cls(command_type=CommandType.REVEAL_VOTES, room_code=room_code)

    @classmethod
    def reset_round(cls, room_code: str) -> Command:
        return cls(command_type=CommandType.RESET_ROUND, room_code=room_code)

    @classmethod
    def leave_room(cls, room_code: str, player_id: str) -> Command:
        return cls(
            command_type=CommandType.LEAVE_ROOM,
            room_code=room_code,
            payload=CommandPayload(player_id=player_id),
        )

    @classmethod
    def set_observer(cls, room_code: str, player_id: str, is_observer: bool) -> Command:
        return cls(
            command_type=CommandType.SET_OBSERVER,
            room_code=room_code,
            payload=CommandPayload(player_id=player_id, is_observer=is_observer),
        )

    @classmethod
    def create_breakout_rooms(
        cls, room_code: str, player_id: str, num_breakouts: int
    ) -> Command:
        return cls(
            command_type=CommandType.CREATE_BREAKOUT_ROOMS,
            room_code=room_code,
            payload=CommandPayload(player_id=player_id, num_breakouts=num_breakouts),
        )

    @classmethod
    def join_breakout_room(
        cls, room_code: str, player_id: str, breakout_room_id: str
    ) -> Command:
        return cls(
            command_type=CommandType.JOIN_BREAKOUT_ROOM,
            room_code=room_code,
            payload=CommandPayload(player_id=player_id, breakout_room_id=breakout_room_id),
        )

    @classmethod
    def leave_breakout_room(cls, room_code: str, player_id: str) -> Command:
        return cls(
            command_type=CommandType.LEAVE_BREAKOUT_ROOM,
            room_code=room_code,
            payload=CommandPayload(player_id=player_id),
        )

    @classmethod
    def submit_breakout_vote(
        cls, room_code: str, breakout_room_id: str, player_id: str, vote: str | None
    ) -> Command:
        return cls(
            command_type=CommandType.SUBMIT_BREAKOUT_VOTE,
            room_code=room_code,
            payload=CommandPayload(
                player_id=player_id, vote=vote, breakout_room_id=breakout_room_id
            ),
        )

    @classmethod
    def reveal_breakout_votes(cls, room_code: str, breakout_room_id: str) -> Command:
        return cls(
            command_type=CommandType.REVEAL_BREAKOUT_VOTES,
            room_code=room_code,
            payload=CommandPayload(breakout_room_id=breakout_room_id),
        )

    @classmethod
    def reset_breakout_round(cls, room_code: str, breakout_room_id: str) -> Command:
        return cls(
            command_type=CommandType.RESET_BREAKOUT_ROUND,
            room_code=room_code,
            payload=CommandPayload(breakout_room_id=breakout_room_id),
        )

    @classmethod
    def delete_breakout_rooms(cls, room_code: str, player_id: str) -> Command:
        return cls(
            command_type=CommandType.DELETE_BREAKOUT_ROOMS,
            room_code=room_code,
            payload=CommandPayload(player_id=player_id),
        )


@dataclass
class CommandResult:
    """
    Result of applying a command.

    Contains:
    - Whether the command succeeded
    - New room (if succeeded and the room still exists)
    - Whether the room was deleted
    - Error and error code (if rejected)
    """
    success: bool
    room: Any | None = None  # Room
    deleted: bool = False
    error: str | None = None
    error_code: ErrorCode | None = None

    # Human-readable changes, for logs
    changes: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, error: str, error_code: ErrorCode) -> CommandResult:
        """Create a failure result."""
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def success_with_room(
        cls, room: Any, changes: list[str] | None = None
    ) -> CommandResult:
        """Create a success result with the new room."""
        return cls(success=True, room=room, changes=changes or [])

    @classmethod
    def room_deleted(cls, changes: list[str] | None = None) -> CommandResult:
        """Create a success result for a room that no longer exists."""
        return cls(success=True, room=None, deleted=True, changes=changes or [])
