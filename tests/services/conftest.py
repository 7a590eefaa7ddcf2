"""Fixtures shared by the service tests."""

from dataclasses import replace
from typing import Iterator

import pytest

from connect4.core.models import UserModel
from tests.fakes import FakeClock
from tests.services.mock_repository import MockRepository, StaleRepository, UserFactory


@pytest.fixture
def repository(clock: FakeClock) -> Iterator[MockRepository]:
    """Ensures to clear the repository between tests"""
    repo = MockRepository(clock)
    try:
        yield repo
    finally:
        repo.clear()


@pytest.fixture
def stale_repository(clock: FakeClock) -> StaleRepository:
    return StaleRepository(clock)


@pytest.fixture
def make_user() -> UserFactory:
    def _make_user(repo: MockRepository, username: str, rating: int = 1200) -> UserModel:
        user = repo.create_user(f"ext-{username}", username, f"{username}@example.com", False)
        if rating != user.rating:
            repo.set_rating(user.id, rating)
            user = replace(user, rating=rating)
        return user

    return _make_user
