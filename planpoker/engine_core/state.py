"""
Room State - Players, breakout rooms and the room aggregate.

Design principles:
- Plain dataclasses: the reducer clones, mutates the clone, returns it
- Serializable: rooms round-trip through the stored JSON document
- Normalized on read: legacy documents are backfilled in from_dict()
  so the engine can assume the full schema always holds
"""

from __future__ import annotations
from dataclasses import dataclass, field
from copy import deepcopy
from typing import Any


MAX_PLAYERS = 50


@dataclass
class Player:
    """
    A participant in a room or breakout room.

    The id is client-asserted and only unique within one room.
    """
    id: str
    name: str
    vote: str | None = None
    is_observer: bool = False
    last_seen: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "vote": self.vote,
            "isObserver": self.is_observer,
            "lastSeen": self.last_seen,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Player:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            vote=data.get("vote"),
            is_observer=bool(data.get("isObserver", False)),
            last_seen=int(data.get("lastSeen") or 0),
        )


@dataclass
class VoteSummary:
    """Derived voting progress for a room or breakout room."""
    voted_count: int
    voter_count: int
    average: float | None = None

    @property
    def all_voted(self) -> bool:
        return self.voter_count > 0 and self.voted_count == self.voter_count

    @classmethod
    def from_players(cls, players: list[Player]) -> VoteSummary:
        """
        Summarize votes of non-observers.

        Only numeric cards count towards the average; "?" and the
        coffee card are ignored.
        """
        voters = [p for p in players if not p.is_observer]
        numeric = []
        for p in voters:
            if p.vote is None:
                continue
            try:
                numeric.append(float(p.vote))
            except ValueError:
                continue

        average = round(sum(numeric) / len(numeric), 1) if numeric else None
        return cls(
            voted_count=sum(1 for p in voters if p.vote is not None),
            voter_count=len(voters),
            average=average,
        )


@dataclass
class BreakoutRoom:
    """
    A smaller voting group split off from the parent room.

    Its players are copies of parent-room players carrying their own
    breakout votes; the reveal flag is independent of the parent's.
    """
    id: str
    name: str
    code: str
    players: list[Player] = field(default_factory=list)
    revealed: bool = False
    created_at: int = 0

    def get_player(self, player_id: str) -> Player | None:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def has_player(self, player_id: str) -> bool:
        return self.get_player(player_id) is not None

    @property
    def summary(self) -> VoteSummary:
        return VoteSummary.from_players(self.players)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "players": [p.to_dict() for p in self.players],
            "revealed": self.revealed,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BreakoutRoom:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            code=data.get("code", ""),
            players=[Player.from_dict(p) for p in data.get("players") or []],
            revealed=bool(data.get("revealed", False)),
            created_at=int(data.get("createdAt") or 0),
        )


@dataclass
class Room:
    """
    The shared estimation session, addressed by a 6-character code.

    Players keep join order. The creator is the only participant allowed
    to manage breakout rooms.
    """
    code: str
    players: list[Player] = field(default_factory=list)
    revealed: bool = False
    created_at: int = 0
    creator_id: str | None = None
    breakout_rooms: list[BreakoutRoom] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return len(self.players) == 0

    @property
    def is_full(self) -> bool:
        return len(self.players) >= MAX_PLAYERS

    @property
    def voters(self) -> list[Player]:
        """Non-observer players in join order."""
        return [p for p in self.players if not p.is_observer]

    @property
    def summary(self) -> VoteSummary:
        return VoteSummary.from_players(self.players)

    @property
    def round_in_progress(self) -> bool:
        """A round is open when votes are hidden and someone has voted."""
        return not self.revealed and any(p.vote is not None for p in self.voters)

    @property
    def last_activity(self) -> int:
        return max((p.last_seen for p in self.players), default=self.created_at)

    def get_player(self, player_id: str) -> Player | None:
        """Get player by ID."""
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def get_breakout_room(self, breakout_room_id: str) -> BreakoutRoom | None:
        for b in self.breakout_rooms:
            if b.id == breakout_room_id:
                return b
        return None

    def is_creator(self, player_id: str) -> bool:
        """
        Check the breakout-management privilege.

        Rooms stored before creator tracking fall back to the first player.
        """
        if self.creator_id:
            return self.creator_id == player_id
        return bool(self.players) and self.players[0].id == player_id

    def clone(self) -> Room:
        """Deep copy the room."""
        return deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "players": [p.to_dict() for p in self.players],
            "revealed": self.revealed,
            "createdAt": self.created_at,
            "creatorId": self.creator_id,
            "breakoutRooms": [b.to_dict() for b in self.breakout_rooms],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Room:
        """
        Build a room from its stored document.

        Documents written before creator tracking and breakout rooms
        existed are backfilled: the first player becomes creator and the
        breakout collection starts empty.
        """
        players = [Player.from_dict(p) for p in data.get("players") or []]
        creator_id = data.get("creatorId")
        if not creator_id and players:
            creator_id = players[0].id

        return cls(
            code=data["code"],
            players=players,
            revealed=bool(data.get("revealed", False)),
            created_at=int(data.get("createdAt") or 0),
            creator_id=creator_id,
            breakout_rooms=[
                BreakoutRoom.from_dict(b) for b in data.get("breakoutRooms") or []
            ],
        )
