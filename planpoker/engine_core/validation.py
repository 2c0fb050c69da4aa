"""
Input Validation - Shape checks for everything a client can send.

Validators return an error message, or None when the value is valid.
The reducer turns messages into INVALID_INPUT results.
"""

from __future__ import annotations
import random
import re


ROOM_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
ROOM_CODE_LENGTH = 6
ROOM_CODE_PATTERN = re.compile(r"^[A-Z0-9]{6}$")

# The closed card set. None (no vote) is also accepted and clears a vote.
VOTE_VALUES = ("0", "1", "2", "3", "5", "8", "13", "21", "?", "☕")

MAX_NAME_LENGTH = 50
MAX_PLAYER_ID_LENGTH = 100

MIN_BREAKOUT_ROOMS = 2
MAX_BREAKOUT_ROOMS = 10


def generate_room_code(rng: random.Random | None = None) -> str:
    """Draw a code uniformly from the uppercase alphanumeric alphabet."""
    rng = rng or random
    return "".join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def normalize_room_code(code) -> str | None:
    """Trim and upper-case a caller-supplied code. Non-strings give None."""
    if not isinstance(code, str):
        return None
    return code.strip().upper()


def validate_room_code(code) -> str | None:
    if not isinstance(code, str) or not ROOM_CODE_PATTERN.match(code):
        return "Room code must be 6 characters of A-Z and 0-9"
    return None


def validate_player_name(name) -> str | None:
    if not isinstance(name, str):
        return "Player name is required"
    trimmed = name.strip()
    if not trimmed:
        return "Player name is required"
    if len(trimmed) > MAX_NAME_LENGTH:
        return f"Player name must be at most {MAX_NAME_LENGTH} characters"
    return None


def validate_player_id(player_id) -> str | None:
    if not isinstance(player_id, str) or not player_id.strip():
        return "Player ID is required"
    if len(player_id.strip()) > MAX_PLAYER_ID_LENGTH:
        return f"Player ID must be at most {MAX_PLAYER_ID_LENGTH} characters"
    return None


def validate_vote(vote) -> str | None:
    if vote is None or vote in VOTE_VALUES:
        return None
    return f"Invalid vote value: {vote!r}"


def validate_breakout_count(num_breakouts) -> str | None:
    # bool is an int subclass; True is not a count
    if isinstance(num_breakouts, bool) or not isinstance(num_breakouts, int):
        return "Number of breakout rooms must be an integer"
    if not MIN_BREAKOUT_ROOMS <= num_breakouts <= MAX_BREAKOUT_ROOMS:
        return (
            f"Number of breakout rooms must be between "
            f"{MIN_BREAKOUT_ROOMS} and {MAX_BREAKOUT_ROOMS}"
        )
    return None


def validate_breakout_room_id(breakout_room_id) -> str | None:
    if not isinstance(breakout_room_id, str) or not breakout_room_id.strip():
        return "Breakout room ID is required"
    return None
