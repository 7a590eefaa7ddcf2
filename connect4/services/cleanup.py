"""Removal of games nobody is ever going to finish. Scheduling these calls is left to the deployment (cron etc.)."""

import logging
from datetime import timedelta

from connect4.core.config import Settings, get_settings
from connect4.db.repository import GameRepository
from connect4.db.schema import utc_now
from connect4.services.game_service import Clock

logger = logging.getLogger(__name__)

STALE_WAITING_GAME_AGE = timedelta(minutes=15)
STALE_ACTIVE_GAME_AGE = timedelta(hours=24)


def cleanup_stale_waiting_games(
    games: GameRepository, max_age: timedelta = STALE_WAITING_GAME_AGE, clock: Clock = utc_now
) -> int:
    """Delete WAITING games whose creator has not been seen for `max_age`."""
    with games.transaction():
        count = games.delete_stale_waiting_games(clock() - max_age)
    if count > 0:
        logger.info("Cleaned up %d stale WAITING games", count)
    return count


def cleanup_stale_active_games(
    games: GameRepository, max_age: timedelta = STALE_ACTIVE_GAME_AGE, clock: Clock = utc_now
) -> int:
    """Delete ACTIVE games that were never finalized and not updated for `max_age`."""
    with games.transaction():
        count = games.delete_stale_active_games(clock() - max_age)
    if count > 0:
        logger.info("Cleaned up %d stale ACTIVE games", count)
    return count


def run_cleanup(games: GameRepository, settings: Settings, clock: Clock = utc_now) -> tuple[int, int]:
    """Both cleanups with the configured ages: (waiting games deleted, active games deleted)."""
    waiting = cleanup_stale_waiting_games(games, settings.stale_waiting_game_age, clock)
    active = cleanup_stale_active_games(games, settings.stale_active_game_age, clock)
    return waiting, active


if __name__ == "__main__":
    # One-shot run, e.g. from cron: `python -m connect4.services.cleanup`
    from connect4.db.database import SessionLocal
    from connect4.db.sql_repository import SQLGameRepository

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    with SessionLocal() as session:
        run_cleanup(SQLGameRepository(session), get_settings())
