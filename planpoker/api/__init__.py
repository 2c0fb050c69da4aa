"""
API Module - HTTP and WebSocket interface.

Exposes the room engine via REST for browser clients:
1. Create or join a room by code
2. Vote, reveal and reset rounds
3. Manage breakout rooms (room creator)
4. Receive updates over WebSocket, or poll the room

Players are not authenticated; only the admin endpoints take a token.
"""

from .schemas import (
    # Requests
    CreateRoomRequest,
    JoinRoomRequest,
    VoteRequest,
    PlayerRequest,
    ObserverRequest,
    CreateBreakoutsRequest,
    JoinBreakoutRequest,
    # Responses
    RoomResponse,
    LeaveResponse,
    ErrorResponse,
    # Shared
    PlayerInfo,
    BreakoutRoomInfo,
    VoteSummaryInfo,
    ErrorCode,
)
from .service import RoomService
from .app import create_app

__all__ = [
    # Requests
    "CreateRoomRequest",
    "JoinRoomRequest",
    "VoteRequest",
    "PlayerRequest",
    "ObserverRequest",
    "CreateBreakoutsRequest",
    "JoinBreakoutRequest",
    # Responses
    "RoomResponse",
    "LeaveResponse",
    "ErrorResponse",
    # Shared
    "PlayerInfo",
    "BreakoutRoomInfo",
    "VoteSummaryInfo",
    "ErrorCode",
    # Service
    "RoomService",
    "create_app",
]
