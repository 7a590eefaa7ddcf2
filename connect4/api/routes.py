"""HTTP routes. Thin layer: resolve the user, build the request model, call the service."""

from datetime import datetime
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from connect4.api.auth import get_principal
from connect4.api.models import (
    ActiveGameResponse,
    CancelGameResponse,
    GameActionRequest,
    GameEnvelope,
    GameResponse,
    GetGameRequest,
    HistoryRequest,
    HistoryResponse,
    JoinGameRequest,
    MoveRequest,
    MoveResponse,
    QueueResponse,
    RematchResponse,
    UpdateUserRequest,
    UserResponse,
)
from connect4.core.models import UserModel
from connect4.db.database import get_db
from connect4.db.sql_repository import SQLGameRepository, SQLUserRepository
from connect4.db.schema import utc_now
from connect4.services.game_service import GameService
from connect4.services.matchmaking_service import MatchmakingService
from connect4.services.user_service import Principal, UserService


class MoveBody(BaseModel):
    # type checked by MoveRequest
    column: Any = None


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime


# --- DEPENDENCIES ---
DbSession = Annotated[Session, Depends(get_db)]
CurrentPrincipal = Annotated[Principal, Depends(get_principal)]


def get_user_service(db: DbSession) -> UserService:
    return UserService(SQLUserRepository(db), SQLGameRepository(db))


def get_game_service(request: Request, db: DbSession) -> GameService:
    settings = request.app.state.settings
    return GameService(SQLGameRepository(db), SQLUserRepository(db), abandon_threshold=settings.abandon_threshold)


def get_matchmaking_service(request: Request, db: DbSession) -> MatchmakingService:
    return MatchmakingService(request.app.state.matchmaking_queue, SQLGameRepository(db), SQLUserRepository(db))


Users = Annotated[UserService, Depends(get_user_service)]
Games = Annotated[GameService, Depends(get_game_service)]
Matchmaking = Annotated[MatchmakingService, Depends(get_matchmaking_service)]


def get_current_user(principal: CurrentPrincipal, users: Users) -> UserModel:
    return users.resolve(principal)


CurrentUser = Annotated[UserModel, Depends(get_current_user)]


health_router = APIRouter(prefix="/api", tags=["health"])
users_router = APIRouter(prefix="/api/users", tags=["users"])
games_router = APIRouter(prefix="/api/games", tags=["games"])
matchmaking_router = APIRouter(prefix="/api/matchmaking", tags=["matchmaking"])


@health_router.get("/health")
def health() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=utc_now())


# --- USERS ---
@users_router.get("/me")
def get_me(principal: CurrentPrincipal, users: Users) -> UserResponse:
    return users.get_or_create(principal)


@users_router.put("/me")
def update_me(body: UpdateUserRequest, principal: CurrentPrincipal, users: Users) -> UserResponse:
    return users.update_profile(principal, body)


@users_router.get("/me/active-game")
def get_my_active_game(user: CurrentUser, users: Users) -> ActiveGameResponse:
    return users.active_game(user.id)


@users_router.get("/me/games")
def get_my_games(user: CurrentUser, users: Users, limit: int = 10, offset: int = 0) -> HistoryResponse:
    return users.history(user.id, HistoryRequest(limit=limit, offset=offset))


# --- GAMES ---
@games_router.post("", status_code=status.HTTP_201_CREATED)
def create_game(user: CurrentUser, games: Games) -> GameResponse:
    return games.create_game(user.id)


@games_router.post("/join/{code}")
def join_game(code: str, user: CurrentUser, games: Games) -> GameResponse:
    return games.join_game(user.id, JoinGameRequest(code=code))


@games_router.get("/by-public/{public_id}")
def get_game_by_public_id(public_id: str, user: CurrentUser, games: Games) -> GameResponse:
    return games.get_game_by_public_id(user.id, GetGameRequest(public_id=public_id))


@games_router.get("/{game_id}")
def get_game(game_id: UUID, _user: CurrentUser, games: Games) -> GameResponse:
    return games.get_game(GameActionRequest(game_id=game_id))


@games_router.post("/{game_id}/move")
def make_move(game_id: UUID, body: MoveBody, user: CurrentUser, games: Games) -> MoveResponse:
    return games.make_move(user.id, MoveRequest(game_id=game_id, column=body.column))


@games_router.post("/{game_id}/cancel")
def cancel_game(game_id: UUID, user: CurrentUser, games: Games) -> CancelGameResponse:
    return games.cancel_game(user.id, GameActionRequest(game_id=game_id))


@games_router.post("/{game_id}/claim-abandoned")
def claim_abandoned(game_id: UUID, user: CurrentUser, games: Games) -> GameEnvelope:
    return games.claim_abandoned(user.id, GameActionRequest(game_id=game_id))


@games_router.post("/{game_id}/resign")
def resign(game_id: UUID, user: CurrentUser, games: Games) -> GameEnvelope:
    return games.resign(user.id, GameActionRequest(game_id=game_id))


@games_router.post("/{game_id}/rematch", response_model_exclude_none=True)
def rematch(game_id: UUID, user: CurrentUser, games: Games) -> RematchResponse:
    return games.request_rematch(user.id, GameActionRequest(game_id=game_id))


# --- MATCHMAKING ---
@matchmaking_router.post("/join", response_model_exclude_none=True)
def join_queue(user: CurrentUser, matchmaking: Matchmaking) -> QueueResponse:
    return matchmaking.join(user.id)


@matchmaking_router.get("/status", response_model_exclude_none=True)
def queue_status(user: CurrentUser, matchmaking: Matchmaking) -> QueueResponse:
    return matchmaking.status(user.id)


@matchmaking_router.delete("/leave", response_model_exclude_none=True)
def leave_queue(user: CurrentUser, matchmaking: Matchmaking) -> QueueResponse:
    return matchmaking.leave(user.id)
