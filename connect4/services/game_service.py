"""
Orchestration of game state transitions: from API router to domain rules and persistence (and the reverse direction).

Every state-changing operation runs inside one repository transaction made of a read, a conditional write guarded on
the state that was read, and the dependent writes (user rating increments). When the guard does not match, another
request advanced the game first and this one must not land.
"""

import logging
import random
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from connect4.api.models import (
    CancelGameResponse,
    GameActionRequest,
    GameEnvelope,
    GameResponse,
    GetGameRequest,
    JoinGameRequest,
    MoveOut,
    MoveRequest,
    MoveResponse,
    RematchResponse,
)
from connect4.core.exceptions import (
    CannotJoinOwnGameError,
    GameAlreadyStartedError,
    GameNotFinishedError,
    GameNotStartedError,
    GameNotFoundError,
    HasActiveGameError,
    MoveConflictError,
    NotGameCreatorError,
    NotInGameError,
    OpponentAlreadyJoinedError,
    RatingSnapshotMissingError,
    UserNotFoundError,
)
from connect4.core.models import GameChanges, GameGuard, GameModel, NewGame, UserModel
from connect4.core.shared_types import FINISHED_STATUSES, GameStatus, MoveStatus, PlayerNumber, RematchStatus
from connect4.db.repository import GameRepository, UserRepository
from connect4.db.schema import utc_now
from connect4.game.abandonment import ABANDON_THRESHOLD
from connect4.game.match import Match, Settlement

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def last_seen_column(player: int) -> str:
    return "player1_last_seen" if player == PlayerNumber.ONE else "player2_last_seen"


def release_waiting_game(games: GameRepository, user_id: UUID) -> Optional[GameModel]:
    """
    Make room for a new game for this user.

    A WAITING game the user created, that nobody joined yet, is cancelled automatically.
    Any other WAITING/ACTIVE game is returned: it blocks the user from starting something new.
    """
    active = games.get_active_game_for_user(user_id)
    if active is None:
        return None

    if active.status == GameStatus.WAITING and active.player1_id == user_id and active.player2_id is None:
        cancelled = games.update_game_if(
            active.id,
            GameGuard(status=GameStatus.WAITING, player2_absent=True),
            {"status": GameStatus.ABANDONED},
        )
        if cancelled:
            logger.info("Auto-cancelled waiting game %s of user %s", active.public_id, user_id)
            return None
        # somebody joined in the meantime
        return games.get_game(active.id)
    return active


class GameService:
    """Orchestration of layers for one match: create, join, moves, terminal results and rematches."""

    def __init__(
        self,
        games: GameRepository,
        users: UserRepository,
        clock: Clock = utc_now,
        rng: random.Random | None = None,
        abandon_threshold: timedelta = ABANDON_THRESHOLD,
    ) -> None:
        self.games = games
        self.users = users
        self.clock = clock
        self.rng = rng or random.Random()
        self.abandon_threshold = abandon_threshold

    # -- API routes logic ---
    def create_game(self, user_id: UUID) -> GameResponse:
        """Create a private game, joinable with its code."""
        now = self.clock()
        with self.games.transaction():
            self._fetch_user(user_id)
            if release_waiting_game(self.games, user_id) is not None:
                raise HasActiveGameError("Finish or leave your current game first.")

            game = self.games.create_game(NewGame(player1_id=user_id, with_code=True, player1_last_seen=now))
            response = self._create_game_response(game)

        logger.info("Game %s created by %s (code %s)", game.public_id, user_id, game.code)
        return response

    def join_game(self, user_id: UUID, request: JoinGameRequest) -> GameResponse:
        """
        Second player joins with the code (WAITING -> ACTIVE).
        ----

        The flip to ACTIVE and the rating snapshots are written by one guarded update, so of two concurrent joins only
        one can land; the other observes the game as already started.
        """
        now = self.clock()
        with self.games.transaction():
            joiner = self._fetch_user(user_id)
            game = self.games.get_game_by_code(request.code)
            if game is None:
                raise GameNotFoundError(f"No game with code {request.code}.")
            if game.status != GameStatus.WAITING or game.player2_id is not None:
                raise GameAlreadyStartedError("This game has already started.")
            if game.player1_id == user_id:
                raise CannotJoinOwnGameError("You cannot join your own game.")

            if release_waiting_game(self.games, user_id) is not None:
                raise HasActiveGameError("Finish or leave your current game first.")

            creator = self._fetch_user(game.player1_id)
            first_turn = PlayerNumber.ONE if self.rng.random() < 0.5 else PlayerNumber.TWO
            joined = self.games.update_game_if(
                game.id,
                GameGuard(status=GameStatus.WAITING, player2_absent=True),
                {
                    "player2_id": user_id,
                    "status": GameStatus.ACTIVE,
                    "current_turn": first_turn,
                    "p1_rating_before": creator.rating,
                    "p2_rating_before": joiner.rating,
                    "player1_last_seen": now,
                    "player2_last_seen": now,
                },
            )
            if not joined:
                raise GameAlreadyStartedError("This game has already started.")

            started = self._fetch_game(game.id)
            if started.p1_rating_before is None or started.p2_rating_before is None:
                raise RatingSnapshotMissingError(f"FATAL: rating snapshots not set when starting game {game.id}")
            response = self._create_game_response(started)

        logger.info("User %s joined game %s, player %d starts", user_id, game.public_id, first_turn)
        return response

    def get_game_by_public_id(self, user_id: UUID, request: GetGameRequest) -> GameResponse:
        """
        Retrieve current game state.
        ----
        Used in the polling loop of the frontend, so reading also counts as a heartbeat of the requesting player.
        """
        now = self.clock()
        with self.games.transaction():
            game = self.games.get_game_by_public_id(request.public_id)
            if game is None:
                raise GameNotFoundError(f"Game {request.public_id} not found.")

            if game.status in (GameStatus.WAITING, GameStatus.ACTIVE):
                player = self._player_number_or_none(game, user_id)
                if player is not None:
                    self.games.touch_last_seen(game.id, player, now)
                    game = replace(game, **{last_seen_column(player): now})
            response = self._create_game_response(game)
        return response

    def get_game(self, request: GameActionRequest) -> GameResponse:
        """Retrieve a game by its internal ID (no heartbeat)."""
        return self._create_game_response(self._fetch_game(request.game_id))

    def make_move(self, user_id: UUID, request: MoveRequest) -> MoveResponse:
        """Drop a chip. Ends the game (and settles ratings) on a connect-four or a full board."""
        now = self.clock()
        with self.games.transaction():
            game = self._fetch_game(request.game_id)
            played = Match(game, self.abandon_threshold).play(user_id, request.column, now)

            # Lands only if nobody moved, claimed or resigned since we read the game
            guard = GameGuard(status=GameStatus.ACTIVE, current_turn=played.player, unfinalized=True)
            changes: GameChanges = {"board": played.board, "moves": played.moves}
            settlement = played.settlement
            if settlement is None:
                changes["current_turn"] = played.player.other
                changes[last_seen_column(played.player)] = now
            else:
                changes.update(settlement.changes(now))

            if not self.games.update_game_if(game.id, guard, changes):
                raise MoveConflictError("The game changed while your move was processed. Refresh and retry.")

            if settlement is not None:
                self._apply_settlement(game, settlement)

            response = MoveResponse(
                status=MoveStatus.MOVE_APPLIED if settlement is None else MoveStatus.GAME_ENDED,
                reason=settlement.reason if settlement else None,
                game=self._create_game_response(self._fetch_game(game.id)),
                move=MoveOut.from_record(played.move),
            )

        if settlement is not None:
            logger.info("Game %s ended: %s (%s)", game.public_id, settlement.result, settlement.reason)
        return response

    def claim_abandoned(self, user_id: UUID, request: GameActionRequest) -> GameEnvelope:
        """Claim the win because the opponent went silent. Claiming a game somebody already finalized is harmless."""
        now = self.clock()
        with self.games.transaction():
            game = self._fetch_game(request.game_id)
            settlement = Match(game, self.abandon_threshold).claim_abandoned(user_id, now)
            self._finalize(game, settlement, now)
            response = GameEnvelope(game=self._create_game_response(self._fetch_game(game.id)))
        return response

    def resign(self, user_id: UUID, request: GameActionRequest) -> GameEnvelope:
        """Forfeit the game. Resigning a game somebody already finalized returns it unchanged."""
        now = self.clock()
        with self.games.transaction():
            game = self._fetch_game(request.game_id)
            settlement = Match(game, self.abandon_threshold).resign(user_id)
            self._finalize(game, settlement, now)
            response = GameEnvelope(game=self._create_game_response(self._fetch_game(game.id)))
        return response

    def cancel_game(self, user_id: UUID, request: GameActionRequest) -> CancelGameResponse:
        """Creator withdraws a game nobody joined yet (WAITING -> ABANDONED)."""
        with self.games.transaction():
            game = self._fetch_game(request.game_id)
            if game.status != GameStatus.WAITING:
                raise GameAlreadyStartedError("Game has already started.")
            if game.player1_id != user_id:
                raise NotGameCreatorError("Only the creator can cancel a game.")
            if game.player2_id is not None:
                raise OpponentAlreadyJoinedError("An opponent already joined.")

            cancelled = self.games.update_game_if(
                game.id,
                GameGuard(status=GameStatus.WAITING, player2_absent=True),
                {"status": GameStatus.ABANDONED},
            )
            if not cancelled:
                raise OpponentAlreadyJoinedError("An opponent joined while cancelling.")

        logger.info("Game %s cancelled by its creator", game.public_id)
        return CancelGameResponse(success=True)

    def request_rematch(self, user_id: UUID, request: GameActionRequest) -> RematchResponse:
        """
        Request a rematch, or accept the one the opponent requested.
        ----

        1. already linked? return the linked game
        2. nobody asked yet? record the request
        3. asked by yourself? still pending
        4. asked by the opponent? create the new game (roles swapped, player 1 starts) and link it exactly once
        """
        now = self.clock()
        with self.games.transaction():
            game = self._fetch_game(request.game_id)
            if game.status not in FINISHED_STATUSES:
                raise GameNotFinishedError("Game is not finished yet.")
            if game.player2_id is None:
                raise NotInGameError("This game never had an opponent.")
            player = Match(game).player_number(user_id)

            if game.rematch_game_id is not None:
                return self._rematch_accepted(self._fetch_game(game.rematch_game_id))

            if game.rematch_requested_by is None:
                recorded = self.games.update_game_if(
                    game.id, GameGuard(rematch_unrequested=True), {"rematch_requested_by": player}
                )
                if recorded:
                    return RematchResponse(status=RematchStatus.REQUESTED)
                # the opponent asked at the same moment: re-read and treat ours as the answer
                game = self._fetch_game(game.id)
                if game.rematch_game_id is not None:
                    return self._rematch_accepted(self._fetch_game(game.rematch_game_id))

            if game.rematch_requested_by == player:
                return RematchResponse(status=RematchStatus.REQUESTED)

            return self._accept_rematch(game, now)

    # -- Internal helpers --
    def _accept_rematch(self, game: GameModel, now: datetime) -> RematchResponse:
        if game.player2_id is None:
            raise NotInGameError("This game never had an opponent.")
        for player_id in (game.player1_id, game.player2_id):
            if self.games.get_active_game_for_user(player_id) is not None:
                raise HasActiveGameError(f"User {player_id} is already in another game.")

        former_p1 = self._fetch_user(game.player1_id)
        former_p2 = self._fetch_user(game.player2_id)

        # Colors swap. The new player 1 always starts: no coin flip on a rematch.
        new_game = self.games.create_game(
            NewGame(
                player1_id=former_p2.id,
                player2_id=former_p1.id,
                status=GameStatus.ACTIVE,
                current_turn=PlayerNumber.ONE,
                p1_rating_before=former_p2.rating,
                p2_rating_before=former_p1.rating,
                player1_last_seen=now,
                player2_last_seen=now,
            )
        )

        linked = self.games.update_game_if(game.id, GameGuard(rematch_unlinked=True), {"rematch_game_id": new_game.id})
        if not linked:
            # A concurrent accept won: drop our orphan and hand out theirs
            self.games.delete_game(new_game.id)
            logger.warning("Concurrent rematch accept on game %s, removed orphan %s", game.public_id, new_game.public_id)
            winner_id = self._fetch_game(game.id).rematch_game_id
            if winner_id is None:
                raise MoveConflictError("Rematch could not be linked. Refresh and retry.")
            return self._rematch_accepted(self._fetch_game(winner_id))

        logger.info("Rematch of %s created: %s", game.public_id, new_game.public_id)
        return self._rematch_accepted(new_game)

    def _rematch_accepted(self, new_game: GameModel) -> RematchResponse:
        return RematchResponse(
            status=RematchStatus.ACCEPTED,
            new_game_id=new_game.id,
            new_public_id=new_game.public_id,
            game=self._create_game_response(new_game),
        )

    def _finalize(self, game: GameModel, settlement: Settlement, now: datetime) -> None:
        """
        Write the terminal state, then the rating increments.
        If the guard fails, the game was already finalized by a concurrent request: nothing to do.
        """
        guard = GameGuard(status=GameStatus.ACTIVE, unfinalized=True)
        if not self.games.update_game_if(game.id, guard, settlement.changes(now)):
            logger.info("Game %s already finalized, returning current state", game.public_id)
            return
        self._apply_settlement(game, settlement)
        logger.info("Game %s ended: %s (%s)", game.public_id, settlement.result, settlement.reason)

    def _apply_settlement(self, game: GameModel, settlement: Settlement) -> None:
        if game.player2_id is None:
            raise GameNotStartedError("Game has not started yet.")
        p1_increment, p2_increment = settlement.increments()
        self.users.apply_result(game.player1_id, p1_increment)
        self.users.apply_result(game.player2_id, p2_increment)

    def _player_number_or_none(self, game: GameModel, user_id: UUID) -> Optional[PlayerNumber]:
        if user_id == game.player1_id:
            return PlayerNumber.ONE
        if user_id == game.player2_id:
            return PlayerNumber.TWO
        return None

    def _create_game_response(self, game: GameModel) -> GameResponse:
        """Convert info in GameModel to a GameResponse (with player info of both players)."""
        player1 = self.users.get_user(game.player1_id)
        player2 = self.users.get_user(game.player2_id) if game.player2_id else None
        rematch = self.games.get_game(game.rematch_game_id) if game.rematch_game_id else None
        return GameResponse.from_model(game, player1, player2, rematch.public_id if rematch else None)

    def _fetch_game(self, game_id: UUID) -> GameModel:
        """Attempt to find the game in the repository and raise error if it fails."""
        game = self.games.get_game(game_id)
        if game is None:
            raise GameNotFoundError(f"Game with {game_id=} not found.")
        return game

    def _fetch_user(self, user_id: UUID) -> UserModel:
        user = self.users.get_user(user_id)
        if user is None:
            raise UserNotFoundError(f"User with {user_id=} not found.")
        return user
