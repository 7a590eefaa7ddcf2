"""Implementation of the Game/User repositories using SQLAlchemy"""

import logging
import random
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional
from uuid import UUID

from sqlalchemy import ColumnElement, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from connect4.core.exceptions import RepositoryError
from connect4.core.models import GameChanges, GameGuard, GameModel, NewGame, RatingIncrement, UserModel
from connect4.core.shared_types import FINISHED_STATUSES, OPEN_STATUSES, EndReason, GameResult, GameStatus
from connect4.db.schema import DBGame, DBUser, utc_now
from connect4.game.identifiers import MAX_GENERATION_ATTEMPTS, generate_game_code, generate_public_id
from connect4.game.moves import dump_moves, parse_moves

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes even for timezone-aware columns."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class SQLGameRepository:
    """
    Games stored using SQL / methods implemented using SQLAlchemy.

    NOTE: methods only flush. Committing is done by `transaction()`, so a read, a guarded write and the dependent user
    updates of one service operation land together or not at all.
    """

    def __init__(self, db_session: Session, rng: random.Random | None = None) -> None:
        self.db = db_session
        self.rng = rng

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def get_game(self, game_id: UUID) -> GameModel | None:
        """Get game by ID, if record exists."""
        game_db = self._fetch_game(DBGame.id == game_id)
        return self._to_model(game_db) if game_db else None

    def get_game_by_public_id(self, public_id: str) -> GameModel | None:
        game_db = self._fetch_game(DBGame.public_id == public_id)
        return self._to_model(game_db) if game_db else None

    def get_game_by_code(self, code: str) -> GameModel | None:
        game_db = self._fetch_game(DBGame.code == code)
        return self._to_model(game_db) if game_db else None

    def get_active_game_for_user(self, user_id: UUID) -> GameModel | None:
        query = (
            select(DBGame)
            .where(
                or_(DBGame.player1_id == user_id, DBGame.player2_id == user_id),
                DBGame.status.in_(OPEN_STATUSES),
            )
            .order_by(DBGame.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        game_db = self.db.scalar(query)
        return self._to_model(game_db) if game_db else None

    def create_game(self, game: NewGame) -> GameModel:
        """Store new game. Generated identifiers are retried (inside a SAVEPOINT) when they collide."""
        for attempt in range(1, MAX_GENERATION_ATTEMPTS + 1):
            game_db = DBGame(
                public_id=generate_public_id(self.rng),
                code=generate_game_code(self.rng) if game.with_code else None,
                status=game.status,
                current_turn=game.current_turn,
                moves=[],
                player1_id=game.player1_id,
                player2_id=game.player2_id,
                p1_rating_before=game.p1_rating_before,
                p2_rating_before=game.p2_rating_before,
                player1_last_seen=game.player1_last_seen,
                player2_last_seen=game.player2_last_seen,
            )
            try:
                with self.db.begin_nested():
                    self.db.add(game_db)
            except IntegrityError:
                logger.debug("Generated identifier collided (attempt %d), retrying", attempt)
                continue
            return self._to_model(game_db)
        raise RepositoryError("Failed to generate a unique public id / game code.")

    def update_game_if(self, game_id: UUID, guard: GameGuard, changes: GameChanges) -> bool:
        """UPDATE ... WHERE <expected state>. Anything but exactly one affected row means somebody else won the race."""
        query = (
            update(DBGame)
            .where(DBGame.id == game_id, *self._guard_clauses(guard))
            .values(**self._to_columns(changes))
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(query)
        return result.rowcount == 1

    def touch_last_seen(self, game_id: UUID, player: int, seen_at: datetime) -> None:
        column = "player1_last_seen" if player == 1 else "player2_last_seen"
        query = (
            update(DBGame)
            .where(DBGame.id == game_id, DBGame.status.in_(OPEN_STATUSES))
            .values({column: seen_at})
            .execution_options(synchronize_session=False)
        )
        self.db.execute(query)

    def delete_game(self, game_id: UUID) -> GameModel | None:
        """Remove a game's record."""
        game_db = self._fetch_game(DBGame.id == game_id)
        if not game_db:
            return None
        game_model = self._to_model(game_db)
        self.db.delete(game_db)
        self.db.flush()
        return game_model

    def list_finished_games(self, user_id: UUID, limit: int, offset: int) -> tuple[list[GameModel], int]:
        criteria = (
            or_(DBGame.player1_id == user_id, DBGame.player2_id == user_id),
            DBGame.status.in_(FINISHED_STATUSES),
        )
        query = select(DBGame).where(*criteria).order_by(DBGame.completed_at.desc()).limit(limit).offset(offset)
        games = [self._to_model(game_db) for game_db in self.db.scalars(query)]
        total = self.db.scalar(select(func.count()).select_from(DBGame).where(*criteria)) or 0
        return games, total

    def delete_stale_waiting_games(self, seen_before: datetime) -> int:
        query = delete(DBGame).where(
            DBGame.status == GameStatus.WAITING,
            DBGame.player1_last_seen < seen_before,
        )
        return self.db.execute(query.execution_options(synchronize_session=False)).rowcount

    def delete_stale_active_games(self, updated_before: datetime) -> int:
        query = delete(DBGame).where(
            DBGame.status == GameStatus.ACTIVE,
            DBGame.updated_at < updated_before,
            DBGame.rating_applied_at.is_(None),
        )
        return self.db.execute(query.execution_options(synchronize_session=False)).rowcount

    # -- Internal helpers --
    def _fetch_game(self, criterion: ColumnElement[bool]) -> DBGame | None:
        # populate_existing: rows may have been changed by a guarded UPDATE issued in this same session
        query = select(DBGame).where(criterion).execution_options(populate_existing=True)
        return self.db.scalar(query)

    def _guard_clauses(self, guard: GameGuard) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        if guard.status is not None:
            clauses.append(DBGame.status == guard.status)
        if guard.current_turn is not None:
            clauses.append(DBGame.current_turn == guard.current_turn)
        if guard.unfinalized:
            clauses.append(DBGame.rating_applied_at.is_(None))
        if guard.player2_absent:
            clauses.append(DBGame.player2_id.is_(None))
        if guard.rematch_unlinked:
            clauses.append(DBGame.rematch_game_id.is_(None))
        if guard.rematch_unrequested:
            clauses.append(DBGame.rematch_requested_by.is_(None))
        return clauses

    def _to_columns(self, changes: GameChanges) -> dict[str, Any]:
        values = dict(changes)
        if "moves" in values:
            values["moves"] = dump_moves(values["moves"])
        values["updated_at"] = utc_now()
        return values

    def _to_model(self, game_db: DBGame) -> GameModel:
        """Convert SQLAlchemy model to data transfer model."""
        return GameModel(
            id=game_db.id,
            public_id=game_db.public_id,
            code=game_db.code,
            status=GameStatus(game_db.status),
            board=game_db.board,
            current_turn=game_db.current_turn,
            moves=parse_moves(game_db.moves),
            player1_id=game_db.player1_id,
            player2_id=game_db.player2_id,
            result=GameResult(game_db.result) if game_db.result else None,
            ended_reason=EndReason(game_db.ended_reason) if game_db.ended_reason else None,
            winner_id=game_db.winner_id,
            p1_rating_before=game_db.p1_rating_before,
            p2_rating_before=game_db.p2_rating_before,
            p1_rating_delta=game_db.p1_rating_delta,
            p2_rating_delta=game_db.p2_rating_delta,
            rating_applied_at=as_utc(game_db.rating_applied_at),
            player1_last_seen=as_utc(game_db.player1_last_seen),
            player2_last_seen=as_utc(game_db.player2_last_seen),
            rematch_requested_by=game_db.rematch_requested_by,
            rematch_game_id=game_db.rematch_game_id,
            created_at=as_utc(game_db.created_at),
            updated_at=as_utc(game_db.updated_at),
            completed_at=as_utc(game_db.completed_at),
        )


class SQLUserRepository:
    """Users stored using SQL. Shares the session (and so the transaction) of the game repository."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def get_user(self, user_id: UUID) -> UserModel | None:
        user_db = self._fetch_user(DBUser.id == user_id)
        return self._to_model(user_db) if user_db else None

    def get_user_by_external_id(self, external_id: str) -> UserModel | None:
        user_db = self._fetch_user(DBUser.external_id == external_id)
        return self._to_model(user_db) if user_db else None

    def get_user_by_username(self, username: str) -> UserModel | None:
        user_db = self._fetch_user(DBUser.username == username)
        return self._to_model(user_db) if user_db else None

    def create_user(self, external_id: str, username: str, email: Optional[str], is_guest: bool) -> UserModel:
        user_db = DBUser(external_id=external_id, username=username, email=email, is_guest=is_guest)
        self.db.add(user_db)
        self.db.flush()
        return self._to_model(user_db)

    def rename_user(self, user_id: UUID, username: str) -> UserModel | None:
        user_db = self._fetch_user(DBUser.id == user_id)
        if not user_db:
            return None
        user_db.username = username
        self.db.flush()
        return self._to_model(user_db)

    def apply_result(self, user_id: UUID, increment: RatingIncrement) -> None:
        """rating = rating + delta (etc.) in the database, so concurrent finalizations cannot lose an update."""
        query = (
            update(DBUser)
            .where(DBUser.id == user_id)
            .values(
                rating=DBUser.rating + increment.rating,
                wins=DBUser.wins + increment.wins,
                losses=DBUser.losses + increment.losses,
                draws=DBUser.draws + increment.draws,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.execute(query)

    def _fetch_user(self, criterion: ColumnElement[bool]) -> DBUser | None:
        query = select(DBUser).where(criterion).execution_options(populate_existing=True)
        return self.db.scalar(query)

    def _to_model(self, user_db: DBUser) -> UserModel:
        return UserModel(
            id=user_db.id,
            external_id=user_db.external_id,
            username=user_db.username,
            email=user_db.email,
            is_guest=user_db.is_guest,
            rating=user_db.rating,
            wins=user_db.wins,
            losses=user_db.losses,
            draws=user_db.draws,
            created_at=as_utc(user_db.created_at),
        )
