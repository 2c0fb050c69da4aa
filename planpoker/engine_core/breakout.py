"""
Breakout Rooms - Assignment and membership helpers.

These helpers mutate the room they are given; the reducer only ever
passes them a clone.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Callable

from .state import Room, BreakoutRoom


def effective_breakout_count(requested: int, voter_count: int) -> int:
    """Each breakout room needs at least two voters."""
    return min(requested, voter_count // 2)


def assign_round_robin(
    room: Room,
    count: int,
    id_factory: Callable[[], str],
    now: int,
) -> list[BreakoutRoom]:
    """
    Split the room's voters into `count` breakout rooms.

    Voter i (in join order) goes to breakout room i mod count, so the
    split is reproducible for a given ordering. Breakout players start
    without a vote.
    """
    breakouts = [
        BreakoutRoom(
            id=id_factory(),
            name=f"Breakout Room {i + 1}",
            code=f"{room.code}-{i + 1}",
            created_at=now,
        )
        for i in range(count)
    ]
    for i, player in enumerate(room.voters):
        breakouts[i % count].players.append(replace(player, vote=None))
    return breakouts


def remove_from_breakouts(room: Room, player_id: str, keep: str | None = None) -> None:
    """
    Remove a player from every breakout room and prune the emptied ones.

    The breakout room with id `keep` is never pruned.
    """
    remaining = []
    for breakout in room.breakout_rooms:
        if breakout.has_player(player_id):
            breakout.players = [p for p in breakout.players if p.id != player_id]
            if not breakout.players and breakout.id != keep:
                continue
        remaining.append(breakout)
    room.breakout_rooms = remaining
