"""Runtime configuration, read from environment variables."""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, "1" if default else "0").lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = field(default_factory=lambda: os.environ.get("DATABASE_URL", "sqlite:///./connect4.db"))
    sql_echo: bool = field(default_factory=lambda: _env_bool("SQL_ECHO", False))
    cors_origins: list[str] = field(
        default_factory=lambda: os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(",")
    )

    # Liveness judgments. Equal today, but independent knobs.
    abandon_threshold_sec: int = field(default_factory=lambda: _env_int("ABANDON_THRESHOLD_SEC", 30))
    queue_stale_sec: int = field(default_factory=lambda: _env_int("QUEUE_STALE_SEC", 30))
    queue_sweep_interval_sec: int = field(default_factory=lambda: _env_int("QUEUE_SWEEP_INTERVAL_SEC", 10))

    # Cleanup of games nobody will ever finish
    stale_waiting_game_min: int = field(default_factory=lambda: _env_int("STALE_WAITING_GAME_MIN", 15))
    stale_active_game_hours: int = field(default_factory=lambda: _env_int("STALE_ACTIVE_GAME_HOURS", 24))

    @property
    def abandon_threshold(self) -> timedelta:
        return timedelta(seconds=self.abandon_threshold_sec)

    @property
    def queue_stale_threshold(self) -> timedelta:
        return timedelta(seconds=self.queue_stale_sec)

    @property
    def stale_waiting_game_age(self) -> timedelta:
        return timedelta(minutes=self.stale_waiting_game_min)

    @property
    def stale_active_game_age(self) -> timedelta:
        return timedelta(hours=self.stale_active_game_hours)


@lru_cache
def get_settings() -> Settings:
    return Settings()
