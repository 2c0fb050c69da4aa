"""
FastAPI Application - REST and WebSocket API.

Endpoints:
    POST   /api/v1/rooms                                   Create room
    POST   /api/v1/rooms/{code}/join                       Join (or create) room
    GET    /api/v1/rooms/{code}                            Get room (polling)
    POST   /api/v1/rooms/{code}/vote                       Cast or clear a vote
    POST   /api/v1/rooms/{code}/reveal                     Reveal votes
    POST   /api/v1/rooms/{code}/reset                      Reset the round
    POST   /api/v1/rooms/{code}/leave                      Leave the room
    POST   /api/v1/rooms/{code}/observer                   Toggle observer mode
    POST   /api/v1/rooms/{code}/breakouts                  Create breakout rooms
    DELETE /api/v1/rooms/{code}/breakouts                  Delete breakout rooms
    POST   /api/v1/rooms/{code}/breakouts/join             Join a breakout room
    POST   /api/v1/rooms/{code}/breakouts/leave            Back to the main room
    POST   /api/v1/rooms/{code}/breakouts/{id}/vote        Breakout vote
    POST   /api/v1/rooms/{code}/breakouts/{id}/reveal      Breakout reveal
    POST   /api/v1/rooms/{code}/breakouts/{id}/reset       Breakout reset
    WS     /api/v1/rooms/{code}/ws                         Room updates
    POST   /api/v1/admin/verify                            Check admin token
    GET    /api/v1/admin/sessions                          Admin session history
    GET    /api/v1/admin/analytics                         Admin analytics

Clients that cannot hold a WebSocket poll GET /rooms/{code}.
All responses are JSON with explicit Pydantic schemas.
"""

from typing import Annotated, Optional, Union
from datetime import datetime, timezone
import asyncio
import json
import logging

from fastapi import FastAPI, Header, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..auth import AdminAuthorizer, AdminIdentity
from ..config import Settings
from ..engine_core import CommandResult
from ..realtime import BroadcastHub
from ..session import SessionHistory
from ..store import RoomStore
from .schemas import (
    # Request models
    CreateRoomRequest,
    JoinRoomRequest,
    VoteRequest,
    PlayerRequest,
    ObserverRequest,
    CreateBreakoutsRequest,
    JoinBreakoutRequest,
    # Response models
    RoomResponse,
    LeaveResponse,
    ErrorResponse,
    AdminVerifyResponse,
    SessionInfo,
    SessionListResponse,
    AnalyticsResponse,
    HealthResponse,
    # Enums
    ErrorCode,
)
from .service import RoomService

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.STORAGE_ERROR: 503,
}

ROOM_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    404: {"model": ErrorResponse, "description": "Room, player or breakout room not found"},
    503: {"model": ErrorResponse, "description": "Storage unavailable"},
}


def make_error_response(
    error_code: ErrorCode,
    message: str,
    details: Optional[dict] = None,
) -> JSONResponse:
    """Create a standardized error response."""
    return JSONResponse(
        status_code=STATUS_CODES.get(error_code, 400),
        content=ErrorResponse(
            error=message,
            error_code=error_code,
            details=details,
        ).model_dump(mode="json"),
    )


def result_to_response(result: CommandResult) -> Union[RoomResponse, JSONResponse]:
    """Map an engine result to the room payload or a typed error."""
    if not result.success:
        return make_error_response(ErrorCode(result.error_code.value), result.error)
    return RoomResponse.from_room(result.room)


def create_app(
    service: Optional[RoomService] = None,
    authorizer: Optional[AdminAuthorizer] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Optional RoomService (built from settings if not provided)
        authorizer: Optional AdminAuthorizer (built from settings if not provided)
        settings: Optional Settings (read from the environment if not provided)

    Returns:
        FastAPI application instance
    """
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="Planning Poker API",
        description="""
Multiplayer planning poker rooms.

## Rooms

Join a room by its 6-character code; joining an unused code creates it.
Votes stay hidden until someone reveals them. The room is deleted when the
last player leaves.

## Error Codes

| Code | HTTP | Description |
|------|------|-------------|
| `INVALID_INPUT` | 400 | Malformed code, name, player id, vote or count |
| `UNAUTHORIZED` | 401 | Missing or invalid admin token |
| `FORBIDDEN` | 403 | Only the room creator can manage breakout rooms |
| `NOT_FOUND` | 404 | Room, player or breakout room not found |
| `CONFLICT` | 409 | Room full, round in progress, not enough players |
| `STORAGE_ERROR` | 503 | Storage unavailable, retry later |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    hub = BroadcastHub()
    if service is None:
        kv = settings.create_kv_store()
        service = RoomService(rooms=RoomStore(kv), history=SessionHistory(kv))
    if service.notifier is None:
        service.notifier = hub.notify
    api_service = service
    admin_authorizer = authorizer or AdminAuthorizer.from_token_list(settings.admin_tokens)

    app.state.service = api_service
    app.state.hub = hub

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return make_error_response(
            ErrorCode.INVALID_INPUT,
            "Invalid request body",
            details={"errors": json.loads(json.dumps(exc.errors(), default=str))},
        )

    def require_admin(authorization: Optional[str]) -> Union[AdminIdentity, JSONResponse]:
        identity = admin_authorizer.verify(authorization)
        if identity is None:
            return make_error_response(ErrorCode.UNAUTHORIZED, "Unauthorized")
        return identity

    # =========================================================================
    # Room Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/rooms",
        response_model=RoomResponse,
        responses={**ROOM_ERRORS, 409: {"model": ErrorResponse, "description": "No free room code"}},
        tags=["Rooms"],
        summary="Create a room with a fresh code",
    )
    async def create_room(
        body: CreateRoomRequest,
        authorization: Annotated[Optional[str], Header()] = None,
    ) -> Union[RoomResponse, JSONResponse]:
        """
        Create a room; the caller becomes its first player and creator.

        With a valid admin `Authorization: Bearer <token>` header the room
        is recorded in the admin's session history. An invalid token does
        not block room creation.
        """
        admin = admin_authorizer.verify(authorization)
        result = api_service.create_room(
            body.player_name, body.player_id, body.is_observer, admin=admin
        )
        return result_to_response(result)

    @app.post(
        "/api/v1/rooms/{room_code}/join",
        response_model=RoomResponse,
        responses={**ROOM_ERRORS, 409: {"model": ErrorResponse, "description": "Room is full"}},
        tags=["Rooms"],
        summary="Join a room, creating it if the code is unused",
    )
    async def join_room(room_code: str, body: JoinRoomRequest) -> Union[RoomResponse, JSONResponse]:
        result = api_service.join_room(
            room_code, body.player_name, body.player_id, body.is_observer
        )
        return result_to_response(result)

    @app.get(
        "/api/v1/rooms/{room_code}",
        response_model=RoomResponse,
        responses=ROOM_ERRORS,
        tags=["Rooms"],
        summary="Get the current room state",
    )
    async def get_room(room_code: str) -> Union[RoomResponse, JSONResponse]:
        return result_to_response(api_service.get_room(room_code))

    @app.post(
        "/api/v1/rooms/{room_code}/vote",
        response_model=RoomResponse,
        responses=ROOM_ERRORS,
        tags=["Rooms"],
        summary="Cast or clear a vote",
    )
    async def submit_vote(room_code: str, body: VoteRequest) -> Union[RoomResponse, JSONResponse]:
        result = api_service.submit_vote(room_code, body.player_id, body.vote)
        return result_to_response(result)

    @app.post(
        "/api/v1/rooms/{room_code}/reveal",
        response_model=RoomResponse,
        responses=ROOM_ERRORS,
        tags=["Rooms"],
        summary="Reveal all votes",
    )
    async def reveal_votes(room_code: str) -> Union[RoomResponse, JSONResponse]:
        return result_to_response(api_service.reveal_votes(room_code))

    @app.post(
        "/api/v1/rooms/{room_code}/reset",
        response_model=RoomResponse,
        responses=ROOM_ERRORS,
        tags=["Rooms"],
        summary="Clear votes and start a new round",
    )
    async def reset_round(room_code: str) -> Union[RoomResponse, JSONResponse]:
        return result_to_response(api_service.reset_round(room_code))

    @app.post(
        "/api/v1/rooms/{room_code}/leave",
        response_model=LeaveResponse,
        responses=ROOM_ERRORS,
        tags=["Rooms"],
        summary="Leave the room",
    )
    async def leave_room(room_code: str, body: PlayerRequest) -> Union[LeaveResponse, JSONResponse]:
        """Leave the room. The room is deleted when its last player leaves."""
        result = api_service.leave_room(room_code, body.player_id)
        if not result.success:
            return make_error_response(ErrorCode(result.error_code.value), result.error)
        return LeaveResponse(
            success=True,
            room_deleted=result.deleted,
            room=RoomResponse.from_room(result.room).room if result.room else None,
        )

    @app.post(
        "/api/v1/rooms/{room_code}/observer",
        response_model=RoomResponse,
        responses=ROOM_ERRORS,
        tags=["Rooms"],
        summary="Switch a player between voter and observer",
    )
    async def set_observer(room_code: str, body: ObserverRequest) -> Union[RoomResponse, JSONResponse]:
        result = api_service.set_observer(room_code, body.player_id, body.is_observer)
        return result_to_response(result)

    # =========================================================================
    # Breakout Room Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/rooms/{room_code}/breakouts",
        response_model=RoomResponse,
        responses={
            **ROOM_ERRORS,
            403: {"model": ErrorResponse, "description": "Not the room creator"},
            409: {"model": ErrorResponse, "description": "Round in progress or too few players"},
        },
        tags=["Breakout Rooms"],
        summary="Split voters into breakout rooms",
    )
    async def create_breakout_rooms(
        room_code: str, body: CreateBreakoutsRequest
    ) -> Union[RoomResponse, JSONResponse]:
        """
        Split the room's voters round-robin into breakout rooms.

        Only the room creator may do this, and not while a voting round
        is in progress. Existing breakout rooms are replaced.
        """
        result = api_service.create_breakout_rooms(room_code, body.player_id, body.num_breakouts)
        return result_to_response(result)

    @app.delete(
        "/api/v1/rooms/{room_code}/breakouts",
        response_model=RoomResponse,
        responses={**ROOM_ERRORS, 403: {"model": ErrorResponse, "description": "Not the room creator"}},
        tags=["Breakout Rooms"],
        summary="Delete all breakout rooms",
    )
    async def delete_breakout_rooms(
        room_code: str,
        player_id: str,
    ) -> Union[RoomResponse, JSONResponse]:
        result = api_service.delete_breakout_rooms(room_code, player_id)
        return result_to_response(result)

    @app.post(
        "/api/v1/rooms/{room_code}/breakouts/join",
        response_model=RoomResponse,
        responses=ROOM_ERRORS,
        tags=["Breakout Rooms"],
        summary="Move into a breakout room",
    )
    async def join_breakout_room(
        room_code: str, body: JoinBreakoutRequest
    ) -> Union[RoomResponse, JSONResponse]:
        result = api_service.join_breakout_room(room_code, body.player_id, body.breakout_room_id)
        return result_to_response(result)

    @app.post(
        "/api/v1/rooms/{room_code}/breakouts/leave",
        response_model=RoomResponse,
        responses=ROOM_ERRORS,
        tags=["Breakout Rooms"],
        summary="Return to the main room",
    )
    async def leave_breakout_room(
        room_code: str, body: PlayerRequest
    ) -> Union[RoomResponse, JSONResponse]:
        result = api_service.leave_breakout_room(room_code, body.player_id)
        return result_to_response(result)

    @app.post(
        "/api/v1/rooms/{room_code}/breakouts/{breakout_room_id}/vote",
        response_model=RoomResponse,
        responses=ROOM_ERRORS,
        tags=["Breakout Rooms"],
        summary="Cast or clear a vote in a breakout room",
    )
    async def submit_breakout_vote(
        room_code: str, breakout_room_id: str, body: VoteRequest
    ) -> Union[RoomResponse, JSONResponse]:
        result = api_service.submit_breakout_vote(
            room_code, breakout_room_id, body.player_id, body.vote
        )
        return result_to_response(result)

    @app.post(
        "/api/v1/rooms/{room_code}/breakouts/{breakout_room_id}/reveal",
        response_model=RoomResponse,
        responses=ROOM_ERRORS,
        tags=["Breakout Rooms"],
        summary="Reveal votes in a breakout room",
    )
    async def reveal_breakout_votes(
        room_code: str, breakout_room_id: str
    ) -> Union[RoomResponse, JSONResponse]:
        return result_to_response(api_service.reveal_breakout_votes(room_code, breakout_room_id))

    @app.post(
        "/api/v1/rooms/{room_code}/breakouts/{breakout_room_id}/reset",
        response_model=RoomResponse,
        responses=ROOM_ERRORS,
        tags=["Breakout Rooms"],
        summary="Reset the round in a breakout room",
    )
    async def reset_breakout_round(
        room_code: str, breakout_room_id: str
    ) -> Union[RoomResponse, JSONResponse]:
        return result_to_response(api_service.reset_breakout_round(room_code, breakout_room_id))

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket("/api/v1/rooms/{room_code}/ws")
    async def websocket_endpoint(websocket: WebSocket, room_code: str):
        """
        WebSocket for real-time room updates.

        Messages from server:
        - room_update: Room state changed (payload is a RoomResponse)
        - room_deleted: The last player left
        - error: Error occurred

        Messages from client:
        - ping: Keep-alive
        """
        await websocket.accept()
        code = room_code.strip().upper()
        queue = hub.subscribe(code)

        async def forward_updates():
            while True:
                message = await queue.get()
                await websocket.send_json(message)

        forwarder = asyncio.create_task(forward_updates())
        try:
            # Send initial state
            result = api_service.get_room(code)
            if result.success:
                await websocket.send_json({
                    "type": "room_update",
                    "payload": RoomResponse.from_room(result.room).model_dump(),
                })
            else:
                await websocket.send_json({
                    "type": "error",
                    "payload": {"message": result.error, "error_code": result.error_code.value},
                })

            # Listen for messages
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    await websocket.send_json({
                        "type": "error",
                        "payload": {"message": "Invalid JSON"},
                    })
                    continue
                if isinstance(message, dict) and message.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})

        except WebSocketDisconnect:
            logger.debug(f"WebSocket disconnected from room {code}")
        finally:
            hub.unsubscribe(code, queue)
            forwarder.cancel()
            try:
                await forwarder
            except asyncio.CancelledError:
                pass
            except Exception as e:
                # Send failed after the client went away
                logger.debug(f"Stopped forwarding updates for room {code}: {e}")

    # =========================================================================
    # Admin Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/admin/verify",
        response_model=AdminVerifyResponse,
        responses={401: {"model": ErrorResponse}},
        tags=["Admin"],
        summary="Check an admin token",
    )
    async def verify_admin(
        authorization: Annotated[Optional[str], Header()] = None,
    ) -> Union[AdminVerifyResponse, JSONResponse]:
        identity = require_admin(authorization)
        if isinstance(identity, JSONResponse):
            return identity
        return AdminVerifyResponse(is_admin=identity.is_admin, uid=identity.uid)

    @app.get(
        "/api/v1/admin/sessions",
        response_model=SessionListResponse,
        responses={401: {"model": ErrorResponse}},
        tags=["Admin"],
        summary="Rooms created by this admin, newest first",
    )
    async def list_admin_sessions(
        authorization: Annotated[Optional[str], Header()] = None,
    ) -> Union[SessionListResponse, JSONResponse]:
        identity = require_admin(authorization)
        if isinstance(identity, JSONResponse):
            return identity
        records = api_service.history.list_for_admin(identity.uid) if api_service.history else []
        sessions = [SessionInfo.model_validate(r) for r in records]
        return SessionListResponse(sessions=sessions, count=len(sessions))

    @app.get(
        "/api/v1/admin/analytics",
        response_model=AnalyticsResponse,
        responses={401: {"model": ErrorResponse}},
        tags=["Admin"],
        summary="Aggregates over this admin's sessions",
    )
    async def admin_analytics(
        authorization: Annotated[Optional[str], Header()] = None,
    ) -> Union[AnalyticsResponse, JSONResponse]:
        identity = require_admin(authorization)
        if isinstance(identity, JSONResponse):
            return identity
        if api_service.history is None:
            return AnalyticsResponse()
        return AnalyticsResponse.model_validate(api_service.history.analytics(identity.uid))

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="planpoker",
            version=__version__,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Planning Poker API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/health",
        }

    return app


# For running directly: uvicorn planpoker.api.app:create_app --factory
