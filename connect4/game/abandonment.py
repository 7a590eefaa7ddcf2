"""Infers whether the opponent of a player went silent, from the last-seen heartbeat timestamps."""

from datetime import datetime, timedelta
from enum import StrEnum
from uuid import UUID

from connect4.core.models import GameModel
from connect4.core.shared_types import GameStatus

ABANDON_THRESHOLD = timedelta(seconds=30)


class Abandonment(StrEnum):
    NONE = "none"
    OPPONENT_ABANDONED = "opponent_abandoned"


def check_abandonment(
    game: GameModel,
    requesting_user_id: UUID,
    now: datetime,
    threshold: timedelta = ABANDON_THRESHOLD,
) -> Abandonment:
    """
    Pure query: has the opponent of `requesting_user_id` been silent longer than `threshold`?

    Only ACTIVE games with two players can be abandoned. An opponent that was never seen is not considered gone.
    """
    if game.status != GameStatus.ACTIVE or game.player2_id is None:
        return Abandonment.NONE

    is_player1 = requesting_user_id == game.player1_id
    opponent_last_seen = game.player2_last_seen if is_player1 else game.player1_last_seen
    if opponent_last_seen is None:
        return Abandonment.NONE

    if now - opponent_last_seen > threshold:
        return Abandonment.OPPONENT_ABANDONED
    return Abandonment.NONE
