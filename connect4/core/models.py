"""
Boundary layer data model(s).

These objects are used to communicate with the Service.
Both the API layer (higher) and domain/db layers (lower) use the models defined here to send to/receive from the Service.
(Decouples the SQLAlchemy rows and the pydantic responses from the information needed to cross boundaries)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from connect4.core.shared_types import EndReason, GameResult, GameStatus

# Column name -> new value, restricted to GameModel field names
GameChanges = dict[str, Any]


@dataclass(frozen=True)
class MoveRecord:
    """One entry of the append-only move log."""

    move_number: int
    column: int
    row: int
    player: int
    user_id: str
    ts: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "move_number": self.move_number,
            "column": self.column,
            "row": self.row,
            "player": self.player,
            "user_id": self.user_id,
            "ts": self.ts,
        }


@dataclass
class UserModel:
    id: UUID
    external_id: str
    username: str
    email: Optional[str] = None
    is_guest: bool = False
    rating: int = 1200
    wins: int = 0
    losses: int = 0
    draws: int = 0
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class RatingIncrement:
    """Relative change applied to a user row once a game is finalized. Never an absolute value."""

    rating: int
    wins: int = 0
    losses: int = 0
    draws: int = 0


@dataclass
class NewGame:
    """Everything needed to insert a game. Identifiers (and the join code) are generated by the store."""

    player1_id: UUID
    player2_id: Optional[UUID] = None
    status: GameStatus = GameStatus.WAITING
    current_turn: int = 1
    with_code: bool = False
    p1_rating_before: Optional[int] = None
    p2_rating_before: Optional[int] = None
    player1_last_seen: Optional[datetime] = None
    player2_last_seen: Optional[datetime] = None


@dataclass
class GameModel:
    """Transport-safe representation of one match, used between Service, DB, and Game layers."""

    id: UUID
    public_id: str
    player1_id: UUID
    status: GameStatus
    board: str
    current_turn: int
    moves: list[MoveRecord] = field(default_factory=list)
    code: Optional[str] = None
    player2_id: Optional[UUID] = None
    result: Optional[GameResult] = None
    ended_reason: Optional[EndReason] = None
    winner_id: Optional[UUID] = None
    p1_rating_before: Optional[int] = None
    p2_rating_before: Optional[int] = None
    p1_rating_delta: Optional[int] = None
    p2_rating_delta: Optional[int] = None
    rating_applied_at: Optional[datetime] = None
    player1_last_seen: Optional[datetime] = None
    player2_last_seen: Optional[datetime] = None
    rematch_requested_by: Optional[int] = None
    rematch_game_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_finalized(self) -> bool:
        return self.rating_applied_at is not None


@dataclass(frozen=True)
class GameGuard:
    """
    Expected prior state of a game for a conditional write.

    Only the fields that are set take part in the predicate. The write lands only if the stored row still matches,
    which is how concurrent duplicate requests are serialized without a version column.
    """

    status: Optional[GameStatus] = None
    current_turn: Optional[int] = None
    unfinalized: bool = False
    player2_absent: bool = False
    rematch_unlinked: bool = False
    rematch_unrequested: bool = False
