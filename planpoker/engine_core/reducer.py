"""
Reducer - Applies commands to room state.

The reducer is the single point of room mutation.
All room changes must go through apply_command().

Design principles:
- Pure function: (room | None, command) -> CommandResult
- Validates input shape before looking at the room
- Never mutates the room it is given; handlers work on a clone
- Rejections are returned as typed results, never raised
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Callable
import time
import uuid

from .state import Room, Player
from .action import Command, CommandType, CommandResult, ErrorCode
from .breakout import effective_breakout_count, assign_round_robin, remove_from_breakouts
from .validation import (
    validate_room_code,
    validate_player_name,
    validate_player_id,
    validate_vote,
    validate_breakout_count,
    validate_breakout_room_id,
    MIN_BREAKOUT_ROOMS,
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_breakout_id() -> str:
    return uuid.uuid4().hex[:12]


# Which payload fields each command must carry
_NEEDS_PLAYER_ID = {
    CommandType.CREATE_ROOM,
    CommandType.JOIN_ROOM,
    CommandType.SUBMIT_VOTE,
    CommandType.LEAVE_ROOM,
    CommandType.SET_OBSERVER,
    CommandType.CREATE_BREAKOUT_ROOMS,
    CommandType.JOIN_BREAKOUT_ROOM,
    CommandType.LEAVE_BREAKOUT_ROOM,
    CommandType.SUBMIT_BREAKOUT_VOTE,
    CommandType.DELETE_BREAKOUT_ROOMS,
}
_NEEDS_PLAYER_NAME = {CommandType.CREATE_ROOM, CommandType.JOIN_ROOM}
_NEEDS_VOTE = {CommandType.SUBMIT_VOTE, CommandType.SUBMIT_BREAKOUT_VOTE}
_NEEDS_BREAKOUT_ID = {
    CommandType.JOIN_BREAKOUT_ROOM,
    CommandType.SUBMIT_BREAKOUT_VOTE,
    CommandType.REVEAL_BREAKOUT_VOTES,
    CommandType.RESET_BREAKOUT_ROUND,
}
_MAY_CREATE = {CommandType.CREATE_ROOM, CommandType.JOIN_ROOM}


@dataclass
class Reducer:
    """
    Reducer applies commands to rooms.

    Stateless - all state is in Room. The clock and breakout id factory
    are injectable so tests can pin them.
    """
    clock: Callable[[], int] = field(default=_now_ms)
    id_factory: Callable[[], str] = field(default=_new_breakout_id)

    def apply(self, room: Room | None, command: Command) -> CommandResult:
        """
        Apply a command to the room (None when the room does not exist).

        Returns CommandResult with the new room or a typed rejection.
        """
        command = self._normalize_command(command)
        validation_error = self._validate_command(command)
        if validation_error:
            return CommandResult.failure(validation_error, ErrorCode.INVALID_INPUT)

        if room is None and command.command_type not in _MAY_CREATE:
            return CommandResult.failure(
                f"Room {command.room_code} not found", ErrorCode.NOT_FOUND
            )

        handler = self._get_handler(command.command_type)
        if not handler:
            return CommandResult.failure(
                f"No handler for command type: {command.command_type}",
                ErrorCode.INTERNAL_ERROR,
            )

        try:
            return handler(room.clone() if room is not None else None, command)
        except Exception as e:
            return CommandResult.failure(str(e), ErrorCode.INTERNAL_ERROR)

    def _normalize_command(self, command: Command) -> Command:
        """Trim the player id once so every handler looks up the stored id."""
        player_id = command.payload.player_id
        if not isinstance(player_id, str) or player_id == player_id.strip():
            return command
        return replace(command, payload=replace(command.payload, player_id=player_id.strip()))

    def _validate_command(self, command: Command) -> str | None:
        """
        Validate the command's shape.

        Returns error message if invalid, None if valid.
        """
        error = validate_room_code(command.room_code)
        if error:
            return error

        payload = command.payload
        kind = command.command_type
        if kind in _NEEDS_PLAYER_ID:
            error = validate_player_id(payload.player_id)
            if error:
                return error
        if kind in _NEEDS_PLAYER_NAME:
            error = validate_player_name(payload.player_name)
            if error:
                return error
        if kind in _NEEDS_VOTE:
            error = validate_vote(payload.vote)
            if error:
                return error
        if kind in _NEEDS_BREAKOUT_ID:
            error = validate_breakout_room_id(payload.breakout_room_id)
            if error:
                return error
        if kind == CommandType.CREATE_BREAKOUT_ROOMS:
            error = validate_breakout_count(payload.num_breakouts)
            if error:
                return error
        return None

    def _get_handler(self, command_type: CommandType):
        """Get the handler function for a command type."""
        handlers = {
            CommandType.CREATE_ROOM: self._handle_create_room,
            CommandType.JOIN_ROOM: self._handle_join_room,
            CommandType.SUBMIT_VOTE: self._handle_submit_vote,
            CommandType.REVEAL_VOTES: self._handle_reveal_votes,
            CommandType.RESET_ROUND: self._handle_reset_round,
            CommandType.LEAVE_ROOM: self._handle_leave_room,
            CommandType.SET_OBSERVER: self._handle_set_observer,
            CommandType.CREATE_BREAKOUT_ROOMS: self._handle_create_breakout_rooms,
            CommandType.JOIN_BREAKOUT_ROOM: self._handle_join_breakout_room,
            CommandType.LEAVE_BREAKOUT_ROOM: self._handle_leave_breakout_room,
            CommandType.SUBMIT_BREAKOUT_VOTE: self._handle_submit_breakout_vote,
            CommandType.REVEAL_BREAKOUT_VOTES: self._handle_reveal_breakout_votes,
            CommandType.RESET_BREAKOUT_ROUND: self._handle_reset_breakout_round,
            CommandType.DELETE_BREAKOUT_ROOMS: self._handle_delete_breakout_rooms,
        }
        return handlers.get(command_type)

    # =========================================================================
    # Main room
    # =========================================================================

    def _new_room(self, command: Command) -> Room:
        now = self.clock()
        player = Player(
            id=command.payload.player_id.strip(),
            name=command.payload.player_name.strip(),
            is_observer=command.payload.is_observer,
            last_seen=now,
        )
        return Room(
            code=command.room_code,
            players=[player],
            revealed=False,
            created_at=now,
            creator_id=player.id,
        )

    def _handle_create_room(self, room: Room | None, command: Command) -> CommandResult:
        """Handle room creation against an unused code."""
        if room is not None:
            return CommandResult.failure(
                f"Room code {command.room_code} is already in use", ErrorCode.CONFLICT
            )
        new_room = self._new_room(command)
        return CommandResult.success_with_room(
            new_room,
            changes=[f"{new_room.players[0].name} created room {new_room.code}"],
        )

    def _handle_join_room(self, room: Room | None, command: Command) -> CommandResult:
        """
        Handle join.

        Joining an unused code creates the room. Joining with a known
        player id is a reconnect: name and last_seen are refreshed in place.
        """
        if room is None:
            return self._handle_create_room(None, command)

        player_id = command.payload.player_id.strip()
        name = command.payload.player_name.strip()

        existing = room.get_player(player_id)
        if existing:
            existing.name = name
            existing.last_seen = self.clock()
            return CommandResult.success_with_room(
                room, changes=[f"{name} reconnected to {room.code}"]
            )

        if room.is_full:
            return CommandResult.failure("Room is full", ErrorCode.CONFLICT)

        room.players.append(
            Player(
                id=player_id,
                name=name,
                is_observer=command.payload.is_observer,
                last_seen=self.clock(),
            )
        )
        return CommandResult.success_with_room(
            room, changes=[f"{name} joined {room.code}"]
        )

    def _handle_submit_vote(self, room: Room, command: Command) -> CommandResult:
        """
        Handle a vote or a vote clear (vote=None).

        Votes after reveal are accepted and leave `revealed` untouched.
        """
        player = room.get_player(command.payload.player_id)
        if not player:
            return CommandResult.failure(
                f"Player {command.payload.player_id} not found in room",
                ErrorCode.NOT_FOUND,
            )

        player.vote = command.payload.vote
        player.last_seen = self.clock()
        change = "cleared their vote" if player.vote is None else "voted"
        return CommandResult.success_with_room(room, changes=[f"{player.name} {change}"])

    def _handle_reveal_votes(self, room: Room, command: Command) -> CommandResult:
        """Handle reveal. Revealing twice is a no-op."""
        room.revealed = True
        return CommandResult.success_with_room(room, changes=["Votes revealed"])

    def _handle_reset_round(self, room: Room, command: Command) -> CommandResult:
        """Clear every main-room vote and hide votes. Breakout votes are kept."""
        for player in room.players:
            player.vote = None
        room.revealed = False
        return CommandResult.success_with_room(room, changes=["Round reset"])

    def _handle_leave_room(self, room: Room, command: Command) -> CommandResult:
        """
        Handle leave.

        The player is removed from the room and from every breakout room.
        Removing the last player deletes the room.
        """
        player_id = command.payload.player_id
        player = room.get_player(player_id)
        if not player:
            return CommandResult.success_with_room(
                room, changes=[f"Player {player_id} was not in {room.code}"]
            )

        room.players = [p for p in room.players if p.id != player_id]
        remove_from_breakouts(room, player_id)

        if room.is_empty:
            return CommandResult.room_deleted(
                changes=[f"{player.name} left", f"Room {room.code} deleted"]
            )
        return CommandResult.success_with_room(room, changes=[f"{player.name} left"])

    def _handle_set_observer(self, room: Room, command: Command) -> CommandResult:
        """
        Toggle observer mode.

        Observers hold no vote and belong to no breakout room.
        """
        player = room.get_player(command.payload.player_id)
        if not player:
            return CommandResult.failure(
                f"Player {command.payload.player_id} not found in room",
                ErrorCode.NOT_FOUND,
            )

        player.is_observer = command.payload.is_observer
        player.last_seen = self.clock()
        if player.is_observer:
            player.vote = None
            remove_from_breakouts(room, player.id)

        mode = "observer" if player.is_observer else "voter"
        return CommandResult.success_with_room(
            room, changes=[f"{player.name} is now a {mode}"]
        )

    # =========================================================================
    # Breakout rooms
    # =========================================================================

    def _handle_create_breakout_rooms(self, room: Room, command: Command) -> CommandResult:
        """
        Split the room's voters into breakout rooms (creator only).

        Replaces any existing breakout rooms wholesale.
        """
        player_id = command.payload.player_id
        if not room.is_creator(player_id):
            return CommandResult.failure(
                "Only the room creator can create breakout rooms", ErrorCode.FORBIDDEN
            )

        voters = room.voters
        if len(voters) < MIN_BREAKOUT_ROOMS:
            return CommandResult.failure(
                "At least 2 voting players are needed for breakout rooms",
                ErrorCode.CONFLICT,
            )

        if room.round_in_progress:
            return CommandResult.failure(
                "Cannot create breakout rooms while a voting round is in progress",
                ErrorCode.CONFLICT,
            )

        count = effective_breakout_count(command.payload.num_breakouts, len(voters))
        if count < MIN_BREAKOUT_ROOMS:
            return CommandResult.failure(
                f"Not enough voting players for {MIN_BREAKOUT_ROOMS} breakout rooms "
                f"({len(voters)} available)",
                ErrorCode.CONFLICT,
            )

        room.breakout_rooms = assign_round_robin(room, count, self.id_factory, self.clock())
        return CommandResult.success_with_room(
            room, changes=[f"Created {count} breakout rooms"]
        )

    def _handle_join_breakout_room(self, room: Room, command: Command) -> CommandResult:
        """Move a player into one breakout room, out of any other."""
        player = room.get_player(command.payload.player_id)
        if not player:
            return CommandResult.failure(
                f"Player {command.payload.player_id} not found in room",
                ErrorCode.NOT_FOUND,
            )
        if player.is_observer:
            return CommandResult.failure(
                "Observers cannot join breakout rooms", ErrorCode.INVALID_INPUT
            )

        target_id = command.payload.breakout_room_id
        if room.get_breakout_room(target_id) is None:
            return CommandResult.failure(
                f"Breakout room {target_id} not found", ErrorCode.NOT_FOUND
            )

        # Drop from the others first; a breakout vote does not follow the player
        already_there = room.get_breakout_room(target_id).has_player(player.id)
        if not already_there:
            remove_from_breakouts(room, player.id, keep=target_id)
            target = room.get_breakout_room(target_id)
            target.players.append(
                Player(
                    id=player.id,
                    name=player.name,
                    is_observer=False,
                    last_seen=player.last_seen,
                )
            )

        player.last_seen = self.clock()
        target = room.get_breakout_room(target_id)
        return CommandResult.success_with_room(
            room, changes=[f"{player.name} joined {target.name}"]
        )

    def _handle_leave_breakout_room(self, room: Room, command: Command) -> CommandResult:
        """Return a player to the main room view."""
        player_id = command.payload.player_id
        remove_from_breakouts(room, player_id)
        player = room.get_player(player_id)
        if player:
            player.last_seen = self.clock()
        return CommandResult.success_with_room(
            room, changes=[f"Player {player_id} left breakout rooms"]
        )

    def _handle_submit_breakout_vote(self, room: Room, command: Command) -> CommandResult:
        breakout = room.get_breakout_room(command.payload.breakout_room_id)
        if breakout is None:
            return CommandResult.failure(
                f"Breakout room {command.payload.breakout_room_id} not found",
                ErrorCode.NOT_FOUND,
            )

        member = breakout.get_player(command.payload.player_id)
        if member is None:
            return CommandResult.failure(
                f"Player {command.payload.player_id} not found in {breakout.name}",
                ErrorCode.NOT_FOUND,
            )

        now = self.clock()
        member.vote = command.payload.vote
        member.last_seen = now
        parent_player = room.get_player(member.id)
        if parent_player:
            parent_player.last_seen = now
        return CommandResult.success_with_room(
            room, changes=[f"{member.name} voted in {breakout.name}"]
        )

    def _handle_reveal_breakout_votes(self, room: Room, command: Command) -> CommandResult:
        breakout = room.get_breakout_room(command.payload.breakout_room_id)
        if breakout is None:
            return CommandResult.failure(
                f"Breakout room {command.payload.breakout_room_id} not found",
                ErrorCode.NOT_FOUND,
            )
        breakout.revealed = True
        return CommandResult.success_with_room(
            room, changes=[f"Votes revealed in {breakout.name}"]
        )

    def _handle_reset_breakout_round(self, room: Room, command: Command) -> CommandResult:
        breakout = room.get_breakout_room(command.payload.breakout_room_id)
        if breakout is None:
            return CommandResult.failure(
                f"Breakout room {command.payload.breakout_room_id} not found",
                ErrorCode.NOT_FOUND,
            )
        for member in breakout.players:
            member.vote = None
        breakout.revealed = False
        return CommandResult.success_with_room(
            room, changes=[f"Round reset in {breakout.name}"]
        )

    def _handle_delete_breakout_rooms(self, room: Room, command: Command) -> CommandResult:
        """Remove all breakout rooms (creator only)."""
        if not room.is_creator(command.payload.player_id):
            return CommandResult.failure(
                "Only the room creator can delete breakout rooms", ErrorCode.FORBIDDEN
            )
        room.breakout_rooms = []
        return CommandResult.success_with_room(room, changes=["Breakout rooms deleted"])


def apply_command(room: Room | None, command: Command) -> CommandResult:
    """
    Convenience function to apply a command.

    Creates a Reducer with the wall clock and applies the command.
    """
    reducer = Reducer()
    return reducer.apply(room, command)
