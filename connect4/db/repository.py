"""Protocol repositories (implemented with SQLAlchemy in sql_repository.py, and in memory for the service tests)"""

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Optional, Protocol
from uuid import UUID

from connect4.core.models import GameChanges, GameGuard, GameModel, NewGame, RatingIncrement, UserModel


class GameRepository(Protocol):
    """Persistence layer orchestration for game records"""

    def transaction(self) -> AbstractContextManager[None]:
        """Everything inside the block is committed together, or rolled back on any exception."""
        ...

    def get_game(self, game_id: UUID) -> GameModel | None:
        """Get game by ID, if record exists."""
        ...

    def get_game_by_public_id(self, public_id: str) -> GameModel | None:
        ...

    def get_game_by_code(self, code: str) -> GameModel | None:
        ...

    def get_active_game_for_user(self, user_id: UUID) -> GameModel | None:
        """The WAITING or ACTIVE game the user takes part in, if any."""
        ...

    def create_game(self, game: NewGame) -> GameModel:
        """Store new game with freshly generated public id (and join code, if requested)."""
        ...

    def update_game_if(self, game_id: UUID, guard: GameGuard, changes: GameChanges) -> bool:
        """Conditional write: apply `changes` only if the stored game still matches `guard`. True if it landed."""
        ...

    def touch_last_seen(self, game_id: UUID, player: int, seen_at: datetime) -> None:
        ...

    def delete_game(self, game_id: UUID) -> GameModel | None:
        """Remove a game's record."""
        ...

    def list_finished_games(self, user_id: UUID, limit: int, offset: int) -> tuple[list[GameModel], int]:
        """Page of COMPLETED/ABANDONED games of a user (newest first) + total count."""
        ...

    def delete_stale_waiting_games(self, seen_before: datetime) -> int:
        ...

    def delete_stale_active_games(self, updated_before: datetime) -> int:
        ...


class UserRepository(Protocol):
    """Persistence layer orchestration for users (owned by the identity side, only referenced by games)"""

    def get_user(self, user_id: UUID) -> UserModel | None:
        ...

    def get_user_by_external_id(self, external_id: str) -> UserModel | None:
        ...

    def get_user_by_username(self, username: str) -> UserModel | None:
        ...

    def create_user(self, external_id: str, username: str, email: Optional[str], is_guest: bool) -> UserModel:
        ...

    def rename_user(self, user_id: UUID, username: str) -> UserModel | None:
        ...

    def apply_result(self, user_id: UUID, increment: RatingIncrement) -> None:
        """Atomic in-place increments of rating and counters. Never writes absolute values."""
        ...
