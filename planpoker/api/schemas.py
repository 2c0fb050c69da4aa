"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the exact contract between clients and the engine.
The stored room document uses camelCase; the HTTP API uses snake_case.

Error Codes:
- INVALID_INPUT: Malformed room code, name, player id, vote or count
- NOT_FOUND: Room, player or breakout room does not exist
- FORBIDDEN: Privileged command by someone other than the room creator
- CONFLICT: Room full, code exhaustion, not enough players, round in progress
- STORAGE_ERROR: Persistence unavailable; safe to retry
- UNAUTHORIZED: Missing or invalid admin token
"""

from __future__ import annotations
from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field

from ..engine_core.state import Room, BreakoutRoom, Player, VoteSummary


API_VERSION = "v1"


# =============================================================================
# Enums
# =============================================================================

class ErrorCode(str, Enum):
    """Structured error codes."""
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"


# =============================================================================
# Shared Models
# =============================================================================

class PlayerInfo(BaseModel):
    """A participant as seen by clients."""
    id: str
    name: str
    vote: Optional[str] = None
    is_observer: bool = False
    last_seen: int = 0

    @classmethod
    def from_player(cls, player: Player) -> PlayerInfo:
        return cls(
            id=player.id,
            name=player.name,
            vote=player.vote,
            is_observer=player.is_observer,
            last_seen=player.last_seen,
        )


class VoteSummaryInfo(BaseModel):
    """Voting progress of non-observers."""
    voted_count: int = 0
    voter_count: int = 0
    all_voted: bool = False
    average: Optional[float] = Field(None, description="Mean of numeric votes, 1 decimal")

    @classmethod
    def from_summary(cls, summary: VoteSummary) -> VoteSummaryInfo:
        return cls(
            voted_count=summary.voted_count,
            voter_count=summary.voter_count,
            all_voted=summary.all_voted,
            average=summary.average,
        )


class BreakoutRoomInfo(BaseModel):
    id: str
    name: str
    code: str
    players: list[PlayerInfo] = Field(default_factory=list)
    revealed: bool = False
    created_at: int = 0
    summary: VoteSummaryInfo = Field(default_factory=VoteSummaryInfo)

    @classmethod
    def from_breakout(cls, breakout: BreakoutRoom) -> BreakoutRoomInfo:
        return cls(
            id=breakout.id,
            name=breakout.name,
            code=breakout.code,
            players=[PlayerInfo.from_player(p) for p in breakout.players],
            revealed=breakout.revealed,
            created_at=breakout.created_at,
            summary=VoteSummaryInfo.from_summary(breakout.summary),
        )


class RoomInfo(BaseModel):
    code: str = Field(..., description="6 characters, A-Z and 0-9")
    players: list[PlayerInfo] = Field(default_factory=list)
    revealed: bool = False
    created_at: int = 0
    creator_id: Optional[str] = None
    breakout_rooms: list[BreakoutRoomInfo] = Field(default_factory=list)


# =============================================================================
# Request Models
# =============================================================================

class CreateRoomRequest(BaseModel):
    """Create a room with a fresh code. Send an admin token to track the session."""
    player_name: str = Field(..., description="Display name, 1-50 characters")
    player_id: str = Field(..., description="Client-generated player identifier")
    is_observer: bool = False


class JoinRoomRequest(BaseModel):
    """Join (or silently create) a room. Rejoining with the same id reconnects."""
    player_name: str
    player_id: str
    is_observer: bool = False


class VoteRequest(BaseModel):
    """Cast a vote; vote=null clears it."""
    player_id: str
    vote: Optional[str] = Field(None, description="0 1 2 3 5 8 13 21 ? ☕ or null")


class PlayerRequest(BaseModel):
    """Any command that only needs the acting player."""
    player_id: str


class ObserverRequest(BaseModel):
    player_id: str
    is_observer: bool


class CreateBreakoutsRequest(BaseModel):
    """Split voters into breakout rooms (room creator only)."""
    player_id: str
    num_breakouts: int = Field(..., description="Requested number of breakout rooms, 2-10")


class JoinBreakoutRequest(BaseModel):
    player_id: str
    breakout_room_id: str


# =============================================================================
# Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")
    api_version: str = Field(API_VERSION, description="API version")


class RoomResponse(BaseModel):
    """A room with its vote summary."""
    room: RoomInfo
    summary: VoteSummaryInfo
    api_version: str = API_VERSION

    @classmethod
    def from_room(cls, room: Room) -> RoomResponse:
        return cls(
            room=RoomInfo(
                code=room.code,
                players=[PlayerInfo.from_player(p) for p in room.players],
                revealed=room.revealed,
                created_at=room.created_at,
                creator_id=room.creator_id,
                breakout_rooms=[BreakoutRoomInfo.from_breakout(b) for b in room.breakout_rooms],
            ),
            summary=VoteSummaryInfo.from_summary(room.summary),
        )


class LeaveResponse(BaseModel):
    success: bool
    room_deleted: bool = False
    room: Optional[RoomInfo] = None
    api_version: str = API_VERSION


class AdminVerifyResponse(BaseModel):
    is_admin: bool
    uid: Optional[str] = None


class SessionInfo(BaseModel):
    room_code: str
    admin_uid: str
    created_at: int
    ended_at: Optional[int] = None
    player_count: int = 0
    rounds: int = 0

    model_config = {"from_attributes": True}


class SessionListResponse(BaseModel):
    sessions: list[SessionInfo]
    count: int


class AnalyticsResponse(BaseModel):
    total_sessions: int = 0
    total_rooms: int = 0
    total_players: int = 0
    average_session_duration: int = Field(0, description="Milliseconds, ended sessions only")
    average_players_per_session: float = 0.0

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
    timestamp: str
