"""Zero-sum Elo rating changes (K-factor 32)."""

import math
from dataclasses import dataclass

K_FACTOR = 32
DEFAULT_RATING = 1200


@dataclass(frozen=True)
class DecisiveDelta:
    winner_delta: int
    loser_delta: int


@dataclass(frozen=True)
class DrawDelta:
    delta1: int
    delta2: int


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def expected_score(rating: int, opponent_rating: int) -> float:
    return 1 / (1 + math.pow(10, (opponent_rating - rating) / 400))


def elo_change(winner_rating: int, loser_rating: int) -> DecisiveDelta:
    """Rating change after a decisive game. The loser gives up exactly what the winner gains."""
    winner_delta = _round_half_away(K_FACTOR * (1 - expected_score(winner_rating, loser_rating)))
    return DecisiveDelta(winner_delta=winner_delta, loser_delta=-winner_delta)


def elo_draw(rating1: int, rating2: int) -> DrawDelta:
    """Rating change after a draw. The lower rated player gains, the other loses the same amount."""
    delta1 = _round_half_away(K_FACTOR * (0.5 - expected_score(rating1, rating2)))
    return DrawDelta(delta1=delta1, delta2=-delta1)
