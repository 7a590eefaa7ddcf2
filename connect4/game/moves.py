"""Encoding/decoding of the persisted move log."""

import logging
from typing import Any

from connect4.core.models import MoveRecord

logger = logging.getLogger(__name__)

_MOVE_KEYS = ("move_number", "column", "row", "player", "user_id", "ts")


def parse_moves(raw: Any) -> list[MoveRecord]:
    """
    Decode the JSON move log of a game.

    A malformed log must not break reading the game: it is logged and treated as an empty list.
    """
    if not isinstance(raw, list):
        logger.warning("Invalid moves format %r, defaulting to empty list", type(raw).__name__)
        return []
    try:
        return [
            MoveRecord(
                move_number=int(item["move_number"]),
                column=int(item["column"]),
                row=int(item["row"]),
                player=int(item["player"]),
                user_id=str(item["user_id"]),
                ts=str(item["ts"]),
            )
            for item in raw
        ]
    except (KeyError, TypeError, ValueError):
        logger.warning("Malformed move entry (expected keys %s), defaulting to empty list", ",".join(_MOVE_KEYS))
        return []


def dump_moves(moves: list[MoveRecord]) -> list[dict[str, Any]]:
    return [move.to_dict() for move in moves]
