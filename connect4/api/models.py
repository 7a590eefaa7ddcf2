"""Requests and Response models"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator

from connect4.core.exceptions import InvalidCodeFormatError, InvalidColumnError, InvalidUsernameError
from connect4.core.models import GameModel, MoveRecord, UserModel
from connect4.core.shared_types import EndReason, GameResult, GameStatus, MoveStatus, QueueStatus, RematchStatus
from connect4.game.identifiers import is_valid_code, normalize_code

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20


# --- REQUEST MODELS ---
class JoinGameRequest(BaseModel):
    code: str

    @field_validator("code")
    @classmethod
    def validate_code(cls, value: str) -> str:
        if not is_valid_code(value.strip()):
            raise InvalidCodeFormatError(f"Cannot interpret {value!r} as a game code.")
        return normalize_code(value)


class GetGameRequest(BaseModel):
    public_id: str


class GameActionRequest(BaseModel):
    """Claim-abandoned, resign, cancel and rematch only need to know which game."""

    game_id: UUID


class MoveRequest(BaseModel):
    game_id: UUID
    # NOTE range is checked by the game itself, after turn order (see Match.play)
    column: int

    @field_validator("column", mode="before")
    @classmethod
    def validate_column(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidColumnError(f"Cannot interpret {value!r} as a column.")
        return value


class UpdateUserRequest(BaseModel):
    username: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value

        trimmed = value.strip()
        if not USERNAME_MIN_LENGTH <= len(trimmed) <= USERNAME_MAX_LENGTH:
            raise InvalidUsernameError(
                f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters"
            )
        if not all(character.isascii() and (character.isalnum() or character == "_") for character in trimmed):
            raise InvalidUsernameError("Username can only contain letters, numbers, and underscores")
        return trimmed


class HistoryRequest(BaseModel):
    limit: int = 10
    offset: int = 0

    @field_validator("limit")
    @classmethod
    def clamp_limit(cls, value: int) -> int:
        return min(max(value, 1), 50)

    @field_validator("offset")
    @classmethod
    def clamp_offset(cls, value: int) -> int:
        return max(value, 0)


# --- RESPONSE MODELS ---
class PlayerInfo(BaseModel):
    id: UUID
    username: str
    rating: int

    @classmethod
    def from_model(cls, user: UserModel) -> "PlayerInfo":
        return cls(id=user.id, username=user.username, rating=user.rating)


class MoveOut(BaseModel):
    move_number: int
    column: int
    row: int
    player: int
    user_id: str
    ts: str

    @classmethod
    def from_record(cls, move: MoveRecord) -> "MoveOut":
        return cls(**move.to_dict())


class GameResponse(BaseModel):
    id: UUID
    public_id: str
    code: Optional[str]
    status: GameStatus
    board: str
    current_turn: int
    moves: list[MoveOut]
    player1: Optional[PlayerInfo]
    player2: Optional[PlayerInfo]
    result: Optional[GameResult]
    ended_reason: Optional[EndReason]
    winner_id: Optional[UUID]
    p1_rating_before: Optional[int]
    p2_rating_before: Optional[int]
    p1_rating_delta: Optional[int]
    p2_rating_delta: Optional[int]
    player1_last_seen: Optional[datetime]
    player2_last_seen: Optional[datetime]
    rematch_requested_by: Optional[int]
    rematch_game_id: Optional[UUID]
    rematch_public_id: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    completed_at: Optional[datetime]

    @classmethod
    def from_model(
        cls,
        game: GameModel,
        player1: Optional[UserModel],
        player2: Optional[UserModel],
        rematch_public_id: Optional[str] = None,
    ) -> "GameResponse":
        return cls(
            id=game.id,
            public_id=game.public_id,
            code=game.code,
            status=game.status,
            board=game.board,
            current_turn=game.current_turn,
            moves=[MoveOut.from_record(move) for move in game.moves],
            player1=PlayerInfo.from_model(player1) if player1 else None,
            player2=PlayerInfo.from_model(player2) if player2 else None,
            result=game.result,
            ended_reason=game.ended_reason,
            winner_id=game.winner_id,
            p1_rating_before=game.p1_rating_before,
            p2_rating_before=game.p2_rating_before,
            p1_rating_delta=game.p1_rating_delta,
            p2_rating_delta=game.p2_rating_delta,
            player1_last_seen=game.player1_last_seen,
            player2_last_seen=game.player2_last_seen,
            rematch_requested_by=game.rematch_requested_by,
            rematch_game_id=game.rematch_game_id,
            rematch_public_id=rematch_public_id,
            created_at=game.created_at,
            updated_at=game.updated_at,
            completed_at=game.completed_at,
        )


class MoveResponse(BaseModel):
    status: MoveStatus
    reason: Optional[EndReason] = None
    game: GameResponse
    move: MoveOut


class GameEnvelope(BaseModel):
    game: GameResponse


class CancelGameResponse(BaseModel):
    success: bool


class RematchResponse(BaseModel):
    status: RematchStatus
    new_game_id: Optional[UUID] = None
    new_public_id: Optional[str] = None
    game: Optional[GameResponse] = None


class QueueResponse(BaseModel):
    status: QueueStatus
    game_id: Optional[UUID] = None
    public_id: Optional[str] = None
    queued_at: Optional[datetime] = None


class UserResponse(BaseModel):
    id: UUID
    username: str
    email: Optional[str]
    is_guest: bool
    rating: int
    wins: int
    losses: int
    draws: int
    created_at: Optional[datetime]

    @classmethod
    def from_model(cls, user: UserModel) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            is_guest=user.is_guest,
            rating=user.rating,
            wins=user.wins,
            losses=user.losses,
            draws=user.draws,
            created_at=user.created_at,
        )


class ActiveGameSummary(BaseModel):
    id: UUID
    public_id: str
    status: GameStatus
    current_turn: int
    player1: Optional[PlayerInfo]
    player2: Optional[PlayerInfo]


class ActiveGameResponse(BaseModel):
    active_game: Optional[ActiveGameSummary]


class HistoryEntry(BaseModel):
    id: UUID
    public_id: str
    status: GameStatus
    result: Optional[GameResult]
    ended_reason: Optional[EndReason]
    player1: Optional[PlayerInfo]
    player2: Optional[PlayerInfo]
    winner_id: Optional[UUID]
    p1_rating_delta: Optional[int]
    p2_rating_delta: Optional[int]
    completed_at: Optional[datetime]


class HistoryResponse(BaseModel):
    games: list[HistoryEntry]
    total: int
    limit: int
    offset: int
