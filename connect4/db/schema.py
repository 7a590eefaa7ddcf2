"""Database tables / schema"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from connect4.game.board import EMPTY_BOARD
from connect4.game.rating import DEFAULT_RATING


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    type_annotation_map = {datetime: DateTime(timezone=True)}


class DBUser(Base):
    __tablename__ = "users"
    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    external_id: Mapped[str] = mapped_column(String(128), unique=True)
    username: Mapped[str] = mapped_column(String(32), unique=True)
    email: Mapped[Optional[str]]
    is_guest: Mapped[bool] = mapped_column(default=False)
    rating: Mapped[int] = mapped_column(default=DEFAULT_RATING)
    wins: Mapped[int] = mapped_column(default=0)
    losses: Mapped[int] = mapped_column(default=0)
    draws: Mapped[int] = mapped_column(default=0)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)


class DBGame(Base):
    __tablename__ = "games"
    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    public_id: Mapped[str] = mapped_column(String(8), unique=True)
    code: Mapped[Optional[str]] = mapped_column(String(6), unique=True)
    status: Mapped[str] = mapped_column(String(16), index=True)
    board: Mapped[str] = mapped_column(String(42), default=EMPTY_BOARD)
    current_turn: Mapped[int] = mapped_column(default=1)
    moves: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)

    player1_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"), index=True)
    player2_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("users.id"), index=True)

    result: Mapped[Optional[str]] = mapped_column(String(16))
    ended_reason: Mapped[Optional[str]] = mapped_column(String(16))
    winner_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("users.id"))

    p1_rating_before: Mapped[Optional[int]]
    p2_rating_before: Mapped[Optional[int]]
    p1_rating_delta: Mapped[Optional[int]]
    p2_rating_delta: Mapped[Optional[int]]
    rating_applied_at: Mapped[Optional[datetime]]

    player1_last_seen: Mapped[Optional[datetime]]
    player2_last_seen: Mapped[Optional[datetime]]

    rematch_requested_by: Mapped[Optional[int]]
    rematch_game_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("games.id", ondelete="SET NULL")
    )

    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)
    completed_at: Mapped[Optional[datetime]]
