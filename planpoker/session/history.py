"""
Session History - Bookkeeping of rooms created by admins.

LIFECYCLE:
1. An admin creates a room -> a session record starts (player_count=1)
2. Players join -> player_count tracks the largest room size seen
3. Each round reset -> rounds += 1
4. The room is deleted -> ended_at is set

Records live in the same key-value store as rooms, one document per
session under "session:<CODE>:<CREATED_AT>". A room code may be reused
after deletion, so lookups only consider the record with no ended_at.
"""

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any
import logging
import time

from ..store.base import KeyValueStore

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session:"
DEFAULT_SESSION_LIMIT = 50


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SessionRecord:
    """One admin-created room, from creation to deletion."""
    room_code: str
    admin_uid: str
    created_at: int
    ended_at: int | None = None
    player_count: int = 0
    rounds: int = 0

    @property
    def key(self) -> str:
        return f"{SESSION_KEY_PREFIX}{self.room_code}:{self.created_at}"

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    @property
    def duration(self) -> int | None:
        if self.ended_at is None:
            return None
        return self.ended_at - self.created_at

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        return cls(**data)


@dataclass
class AnalyticsSummary:
    """Aggregates over one admin's sessions."""
    total_sessions: int = 0
    total_rooms: int = 0
    total_players: int = 0
    average_session_duration: int = 0  # ms, ended sessions only
    average_players_per_session: float = 0.0


class SessionHistory:
    """
    Tracks admin sessions over a key-value store.

    Responsibilities:
    - Start a record when an admin creates a room
    - Update player count and rounds while the room lives
    - Close the record when the room is deleted
    - Answer history and analytics queries per admin
    """

    def __init__(self, kv: KeyValueStore, clock=_now_ms):
        self.kv = kv
        self.clock = clock

    def start(self, room_code: str, admin_uid: str, player_count: int = 1) -> SessionRecord:
        record = SessionRecord(
            room_code=room_code,
            admin_uid=admin_uid,
            created_at=self.clock(),
            player_count=player_count,
        )
        self.kv.set(record.key, record.to_dict())
        logger.info(f"Started session for room {room_code} (admin {admin_uid})")
        return record

    def get_active(self, room_code: str) -> SessionRecord | None:
        """The open record for a room code, if an admin created the room."""
        for data in self.kv.get_by_prefix(f"{SESSION_KEY_PREFIX}{room_code}:"):
            record = SessionRecord.from_dict(data)
            if record.is_active:
                return record
        return None

    def record_players(self, room_code: str, player_count: int) -> None:
        record = self.get_active(room_code)
        if record and player_count > record.player_count:
            record.player_count = player_count
            self.kv.set(record.key, record.to_dict())

    def record_round(self, room_code: str) -> None:
        record = self.get_active(room_code)
        if record:
            record.rounds += 1
            self.kv.set(record.key, record.to_dict())

    def end(self, room_code: str) -> None:
        record = self.get_active(room_code)
        if record:
            record.ended_at = self.clock()
            self.kv.set(record.key, record.to_dict())
            logger.info(f"Ended session for room {room_code}")

    def list_for_admin(self, admin_uid: str, limit: int = DEFAULT_SESSION_LIMIT) -> list[SessionRecord]:
        """Most recent sessions first."""
        records = self._records_for_admin(admin_uid)
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[:limit]

    def analytics(self, admin_uid: str) -> AnalyticsSummary:
        records = self._records_for_admin(admin_uid)
        if not records:
            return AnalyticsSummary()

        durations = [r.duration for r in records if r.duration is not None]
        total_players = sum(r.player_count for r in records)
        return AnalyticsSummary(
            total_sessions=len(records),
            total_rooms=len({r.room_code for r in records}),
            total_players=total_players,
            average_session_duration=int(sum(durations) / len(durations)) if durations else 0,
            average_players_per_session=total_players / len(records),
        )

    def _records_for_admin(self, admin_uid: str) -> list[SessionRecord]:
        return [
            record
            for record in (
                SessionRecord.from_dict(data)
                for data in self.kv.get_by_prefix(SESSION_KEY_PREFIX)
            )
            if record.admin_uid == admin_uid
        ]
