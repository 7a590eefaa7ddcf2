"""
Type definitions used across layers
"""

from enum import IntEnum, StrEnum


class GameStatus(StrEnum):
    WAITING = "WAITING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


# Statuses in which a player is still "busy" with a game
OPEN_STATUSES = (GameStatus.WAITING, GameStatus.ACTIVE)
FINISHED_STATUSES = (GameStatus.COMPLETED, GameStatus.ABANDONED)


class GameResult(StrEnum):
    P1_WIN = "P1_WIN"
    P2_WIN = "P2_WIN"
    DRAW = "DRAW"


class EndReason(StrEnum):
    CONNECT4 = "CONNECT4"
    BOARD_FULL = "BOARD_FULL"
    ABANDONED = "ABANDONED"
    RESIGNED = "RESIGNED"


class PlayerNumber(IntEnum):
    ONE = 1
    TWO = 2

    @property
    def other(self) -> "PlayerNumber":
        return PlayerNumber.TWO if self == PlayerNumber.ONE else PlayerNumber.ONE

    @property
    def symbol(self) -> str:
        """Marker used for this player in the board string."""
        return str(self.value)


class MoveStatus(StrEnum):
    MOVE_APPLIED = "move_applied"
    GAME_ENDED = "game_ended"


class RematchStatus(StrEnum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"


class QueueStatus(StrEnum):
    QUEUED = "queued"
    ALREADY_QUEUED = "already_queued"
    HAS_ACTIVE_GAME = "has_active_game"
    MATCHED = "matched"
    NOT_QUEUED = "not_queued"
    LEFT = "left"
