"""Profiles of authenticated players: lookup/creation, renaming, current game and history."""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from connect4.api.models import (
    ActiveGameResponse,
    ActiveGameSummary,
    HistoryEntry,
    HistoryRequest,
    HistoryResponse,
    PlayerInfo,
    UpdateUserRequest,
    UserResponse,
)
from connect4.core.exceptions import UserNotFoundError, UsernameTakenError
from connect4.core.models import UserModel
from connect4.db.repository import GameRepository, UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Verified identity handed over by the identity provider. Opaque to the game logic."""

    uid: str
    email: Optional[str] = None
    is_guest: bool = False
    display_name: Optional[str] = None


def fallback_username(principal: Principal) -> str:
    return f"guest_{principal.uid[:8]}"


class UserService:
    def __init__(self, users: UserRepository, games: GameRepository) -> None:
        self.users = users
        self.games = games

    def resolve(self, principal: Principal) -> UserModel:
        """User behind an authenticated request. Every game operation needs it to exist."""
        user = self.users.get_user_by_external_id(principal.uid)
        if user is None:
            raise UserNotFoundError("Unknown user. Fetch your profile first.")
        return user

    def get_or_create(self, principal: Principal) -> UserResponse:
        """Current user profile. Created on first access."""
        with self.games.transaction():
            user = self.users.get_user_by_external_id(principal.uid)
            if user is None:
                username = principal.display_name or fallback_username(principal)
                if self.users.get_user_by_username(username) is not None:
                    username = fallback_username(principal)
                user = self.users.create_user(principal.uid, username, principal.email, principal.is_guest)
                logger.info("Created user %s (%s)", user.id, username)
        return UserResponse.from_model(user)

    def update_profile(self, principal: Principal, request: UpdateUserRequest) -> UserResponse:
        with self.games.transaction():
            user = self.resolve(principal)
            if request.username is not None and request.username != user.username:
                if self.users.get_user_by_username(request.username) is not None:
                    raise UsernameTakenError("Username is already taken")
                renamed = self.users.rename_user(user.id, request.username)
                if renamed is None:
                    raise UserNotFoundError(f"User with {user.id=} not found.")
                user = renamed
        return UserResponse.from_model(user)

    def active_game(self, user_id: UUID) -> ActiveGameResponse:
        game = self.games.get_active_game_for_user(user_id)
        if game is None:
            return ActiveGameResponse(active_game=None)
        return ActiveGameResponse(
            active_game=ActiveGameSummary(
                id=game.id,
                public_id=game.public_id,
                status=game.status,
                current_turn=game.current_turn,
                player1=self._player_info(game.player1_id),
                player2=self._player_info(game.player2_id),
            )
        )

    def history(self, user_id: UUID, request: HistoryRequest) -> HistoryResponse:
        """Finished games, newest first."""
        games, total = self.games.list_finished_games(user_id, request.limit, request.offset)
        entries = [
            HistoryEntry(
                id=game.id,
                public_id=game.public_id,
                status=game.status,
                result=game.result,
                ended_reason=game.ended_reason,
                player1=self._player_info(game.player1_id),
                player2=self._player_info(game.player2_id),
                winner_id=game.winner_id,
                p1_rating_delta=game.p1_rating_delta,
                p2_rating_delta=game.p2_rating_delta,
                completed_at=game.completed_at,
            )
            for game in games
        ]
        return HistoryResponse(games=entries, total=total, limit=request.limit, offset=request.offset)

    def _player_info(self, user_id: Optional[UUID]) -> Optional[PlayerInfo]:
        if user_id is None:
            return None
        user = self.users.get_user(user_id)
        return PlayerInfo.from_model(user) if user else None
