"""
The Match is the entrypoint into the domain layer for the service layer.

It checks whether a player may act on a game and computes the outcome of the action (new board, move log entry,
result, rating settlement). It never writes anything: persisting the outcome under an optimistic guard is the job of
the service layer.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from connect4.core.exceptions import (
    ColumnFullError,
    GameNotActiveError,
    GameNotStartedError,
    InvalidColumnError,
    NotInGameError,
    NotYourTurnError,
    OpponentNotAbandonedError,
    RatingSnapshotMissingError,
    UseClaimAbandonedError,
)
from connect4.core.models import GameChanges, GameModel, MoveRecord, RatingIncrement
from connect4.core.shared_types import EndReason, GameResult, GameStatus, PlayerNumber
from connect4.game.abandonment import ABANDON_THRESHOLD, Abandonment, check_abandonment
from connect4.game.board import COLUMNS, apply_move, check_win, is_full
from connect4.game.rating import elo_change, elo_draw


@dataclass(frozen=True)
class Settlement:
    """Final result of a game together with the rating change of both players."""

    result: GameResult
    reason: EndReason
    winner_id: Optional[UUID]
    p1_delta: int
    p2_delta: int

    @property
    def final_status(self) -> GameStatus:
        return GameStatus.ABANDONED if self.reason == EndReason.ABANDONED else GameStatus.COMPLETED

    def changes(self, now: datetime) -> GameChanges:
        return {
            "status": self.final_status,
            "result": self.result,
            "ended_reason": self.reason,
            "winner_id": self.winner_id,
            "p1_rating_delta": self.p1_delta,
            "p2_rating_delta": self.p2_delta,
            "rating_applied_at": now,
            "completed_at": now,
        }

    def increments(self) -> tuple[RatingIncrement, RatingIncrement]:
        """(player 1, player 2) counter updates, one explicit branch per result."""
        if self.result == GameResult.P1_WIN:
            return (
                RatingIncrement(rating=self.p1_delta, wins=1),
                RatingIncrement(rating=self.p2_delta, losses=1),
            )
        if self.result == GameResult.P2_WIN:
            return (
                RatingIncrement(rating=self.p1_delta, losses=1),
                RatingIncrement(rating=self.p2_delta, wins=1),
            )
        return (
            RatingIncrement(rating=self.p1_delta, draws=1),
            RatingIncrement(rating=self.p2_delta, draws=1),
        )


@dataclass(frozen=True)
class PlayedMove:
    """Outcome of a legal move, before it is persisted."""

    player: PlayerNumber
    board: str
    move: MoveRecord
    moves: list[MoveRecord]
    settlement: Optional[Settlement] = None

    @property
    def is_terminal(self) -> bool:
        return self.settlement is not None


def settle(game: GameModel, result: GameResult, reason: EndReason) -> Settlement:
    """
    Compute the rating settlement of a finished game.

    Always based on the rating snapshots taken when the game became ACTIVE, never on live ratings.
    """
    p1_before, p2_before = game.p1_rating_before, game.p2_rating_before
    if p1_before is None or p2_before is None:
        raise RatingSnapshotMissingError(f"FATAL: rating snapshots missing for game {game.id}")

    if result == GameResult.DRAW:
        draw = elo_draw(p1_before, p2_before)
        return Settlement(result, reason, None, draw.delta1, draw.delta2)

    if result == GameResult.P1_WIN:
        decisive = elo_change(p1_before, p2_before)
        return Settlement(result, reason, game.player1_id, decisive.winner_delta, decisive.loser_delta)

    decisive = elo_change(p2_before, p1_before)
    return Settlement(result, reason, game.player2_id, decisive.loser_delta, decisive.winner_delta)


def win_for(player: PlayerNumber) -> GameResult:
    return GameResult.P1_WIN if player == PlayerNumber.ONE else GameResult.P2_WIN


@dataclass
class Match:
    game: GameModel
    abandon_threshold: timedelta = ABANDON_THRESHOLD

    # --- DOMAIN LAYER API CALLED BY SERVICE ---
    def player_number(self, user_id: UUID) -> PlayerNumber:
        if user_id == self.game.player1_id:
            return PlayerNumber.ONE
        if self.game.player2_id is not None and user_id == self.game.player2_id:
            return PlayerNumber.TWO
        raise NotInGameError(f"User {user_id} is not a player of game {self.game.id}.")

    def play(self, user_id: UUID, column: int, now: datetime) -> PlayedMove:
        """
        Attempt to drop a chip.
        ----

        Checks, in this order (each one its own error):
        1. game is ACTIVE and has a second player
        2. the user is one of the players
        3. the opponent has not gone silent (otherwise the win must be claimed instead)
        4. it is the user's turn
        5. the column exists and is not full
        """
        self._assert_in_progress()
        player = self.player_number(user_id)

        # NOTE abandonment precedes the turn check: a connected player must not be stuck waiting on a silent opponent
        if self.abandonment(user_id, now) == Abandonment.OPPONENT_ABANDONED:
            raise UseClaimAbandonedError("Opponent has abandoned the game. Claim the win instead.")

        if self.game.current_turn != player:
            raise NotYourTurnError(f"It is not your turn. Waiting for player {self.game.current_turn}.")

        if not 0 <= column < COLUMNS:
            raise InvalidColumnError(f"Column must be between 0 and {COLUMNS - 1}, got {column}.")

        applied = apply_move(self.game.board, column, player)
        if applied is None:
            raise ColumnFullError(f"Column {column} is full.")
        new_board, row = applied

        move = MoveRecord(
            move_number=len(self.game.moves) + 1,
            column=column,
            row=row,
            player=int(player),
            user_id=str(user_id),
            ts=now.isoformat(),
        )
        moves = [*self.game.moves, move]

        settlement = None
        if check_win(new_board, row, column, player.symbol):
            settlement = settle(self.game, win_for(player), EndReason.CONNECT4)
        elif is_full(new_board):
            settlement = settle(self.game, GameResult.DRAW, EndReason.BOARD_FULL)

        return PlayedMove(player=player, board=new_board, move=move, moves=moves, settlement=settlement)

    def claim_abandoned(self, user_id: UUID, now: datetime) -> Settlement:
        """The claimant wins because the opponent stopped sending heartbeats."""
        self._assert_in_progress()
        player = self.player_number(user_id)
        if self.abandonment(user_id, now) != Abandonment.OPPONENT_ABANDONED:
            raise OpponentNotAbandonedError("Opponent is still connected.")
        return settle(self.game, win_for(player), EndReason.ABANDONED)

    def resign(self, user_id: UUID) -> Settlement:
        """The resigning player always loses, whoever's turn it is."""
        self._assert_in_progress()
        player = self.player_number(user_id)
        return settle(self.game, win_for(player.other), EndReason.RESIGNED)

    def abandonment(self, user_id: UUID, now: datetime) -> Abandonment:
        return check_abandonment(self.game, user_id, now, self.abandon_threshold)

    # -- PRIVATE HELPERS ---
    def _assert_in_progress(self) -> None:
        if self.game.status != GameStatus.ACTIVE:
            raise GameNotActiveError(f"Game is not active. status: {self.game.status}")
        if self.game.player2_id is None:
            raise GameNotStartedError("Game has not started yet.")
