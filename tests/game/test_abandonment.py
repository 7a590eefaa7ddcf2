"""Unit tests for connect4/game/abandonment.py"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from connect4.core.models import GameModel
from connect4.core.shared_types import GameStatus
from connect4.game.abandonment import ABANDON_THRESHOLD, Abandonment, check_abandonment
from connect4.game.board import EMPTY_BOARD

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
P1 = uuid4()
P2 = uuid4()


@pytest.fixture
def active_game() -> GameModel:
    return GameModel(
        id=uuid4(),
        public_id="ABCDEFGH",
        player1_id=P1,
        player2_id=P2,
        status=GameStatus.ACTIVE,
        board=EMPTY_BOARD,
        current_turn=1,
        player1_last_seen=NOW,
        player2_last_seen=NOW,
    )


def test_fresh_opponent_is_not_abandoned(active_game: GameModel) -> None:
    assert check_abandonment(active_game, P1, NOW + timedelta(seconds=5)) == Abandonment.NONE


def test_silent_opponent_is_abandoned(active_game: GameModel) -> None:
    game = replace(active_game, player2_last_seen=NOW - timedelta(seconds=31))
    assert check_abandonment(game, P1, NOW) == Abandonment.OPPONENT_ABANDONED
    # ... but from the silent player's point of view, the opponent is fine
    assert check_abandonment(game, P2, NOW) == Abandonment.NONE


def test_exactly_on_threshold_is_not_abandoned(active_game: GameModel) -> None:
    game = replace(active_game, player1_last_seen=NOW - ABANDON_THRESHOLD)
    assert check_abandonment(game, P2, NOW) == Abandonment.NONE


def test_never_seen_opponent_is_not_abandoned(active_game: GameModel) -> None:
    game = replace(active_game, player2_last_seen=None)
    assert check_abandonment(game, P1, NOW + timedelta(hours=1)) == Abandonment.NONE


@pytest.mark.parametrize("status", [GameStatus.WAITING, GameStatus.COMPLETED, GameStatus.ABANDONED])
def test_only_active_games_can_be_abandoned(active_game: GameModel, status: GameStatus) -> None:
    game = replace(active_game, status=status)
    assert check_abandonment(game, P1, NOW + timedelta(hours=1)) == Abandonment.NONE


def test_game_without_opponent_cannot_be_abandoned(active_game: GameModel) -> None:
    game = replace(active_game, player2_id=None)
    assert check_abandonment(game, P1, NOW + timedelta(hours=1)) == Abandonment.NONE


def test_custom_threshold(active_game: GameModel) -> None:
    later = NOW + timedelta(seconds=10)
    assert check_abandonment(active_game, P1, later, threshold=timedelta(seconds=5)) == Abandonment.OPPONENT_ABANDONED
