"""
Engine Core - Room state machine and its mutation protocol.

The engine is the runtime that:
1. Receives a loaded Room (or None when the code is unused)
2. Validates a Command
3. Computes the new Room via the reducer
4. Returns a CommandResult with the new state or a typed rejection
"""

from .state import Room, Player, BreakoutRoom, VoteSummary, MAX_PLAYERS
from .action import Command, CommandType, CommandPayload, CommandResult, ErrorCode
from .reducer import Reducer, apply_command
from .validation import VOTE_VALUES, generate_room_code, normalize_room_code

__all__ = [
    "Room",
    "Player",
    "BreakoutRoom",
    "VoteSummary",
    "MAX_PLAYERS",
    "Command",
    "CommandType",
    "CommandPayload",
    "CommandResult",
    "ErrorCode",
    "Reducer",
    "apply_command",
    "VOTE_VALUES",
    "generate_room_code",
    "normalize_room_code",
]
