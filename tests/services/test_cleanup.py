"""Unit tests for connect4/services/cleanup.py"""

import logging

import pytest

from connect4.api.models import GameActionRequest, JoinGameRequest
from connect4.core.config import Settings
from connect4.services.cleanup import cleanup_stale_active_games, cleanup_stale_waiting_games, run_cleanup
from connect4.services.game_service import GameService
from tests.fakes import FakeClock
from tests.services.mock_repository import MockRepository, UserFactory


def test_stale_waiting_games(
    repository: MockRepository, clock: FakeClock, make_user: UserFactory, caplog: pytest.LogCaptureFixture
) -> None:
    alice, bob = make_user(repository, "alice"), make_user(repository, "bob")
    service = GameService(repository, repository, clock=clock)
    old = service.create_game(alice.id)
    clock.advance(minutes=10)
    fresh = service.create_game(bob.id)
    clock.advance(minutes=6)

    with caplog.at_level(logging.INFO, logger="connect4.services.cleanup"):
        assert cleanup_stale_waiting_games(repository, clock=clock) == 1

    assert repository.get_game(old.id) is None
    assert repository.get_game(fresh.id) is not None
    assert "Cleaned up 1 stale WAITING games" in caplog.text


def test_stale_active_games(repository: MockRepository, clock: FakeClock, make_user: UserFactory) -> None:
    alice, bob, carol, dave = (make_user(repository, name) for name in ("alice", "bob", "carol", "dave"))
    service = GameService(repository, repository, clock=clock)

    created = service.create_game(alice.id)
    forgotten = service.join_game(bob.id, JoinGameRequest(code=created.code))
    created = service.create_game(carol.id)
    finished = service.join_game(dave.id, JoinGameRequest(code=created.code))
    clock.advance(hours=25)
    service.resign(dave.id, GameActionRequest(game_id=finished.id))

    assert cleanup_stale_active_games(repository, clock=clock) == 1
    assert repository.get_game(forgotten.id) is None
    assert repository.get_game(finished.id) is not None

    assert cleanup_stale_active_games(repository, clock=clock) == 0


def test_run_cleanup_uses_settings(repository: MockRepository, clock: FakeClock, make_user: UserFactory) -> None:
    alice = make_user(repository, "alice")
    GameService(repository, repository, clock=clock).create_game(alice.id)
    clock.advance(minutes=3)

    assert run_cleanup(repository, Settings(stale_waiting_game_min=5), clock) == (0, 0)
    assert run_cleanup(repository, Settings(stale_waiting_game_min=2), clock) == (1, 0)
