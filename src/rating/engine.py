"""
Elo-with-uncertainty rating updates.

A simplified Glicko-style model: the expected outcome is the classic Elo
logistic, the update magnitude is a fixed K-factor, and sigma tracks how
settled a rating is. Sigma shrinks on every match and only grows through
idle decay, so it is non-increasing across any run of comparisons.

All functions are pure. Non-finite inputs raise ComputationError so a
corrupted rating is caught before it is written back.
"""

import math
from dataclasses import dataclass
from enum import Enum

from src.errors import ComputationError
from src.rating.config import RatingConfig


class Outcome(str, Enum):
    """Result of a pairwise comparison from A's point of view."""

    A_WINS = "a_wins"
    B_WINS = "b_wins"


@dataclass(frozen=True)
class RatingUpdate:
    """New ratings for both sides of a comparison.

    Attributes:
        a_mean: Updated mean for item A.
        a_sigma: Updated sigma for item A.
        b_mean: Updated mean for item B.
        b_sigma: Updated sigma for item B.
        expected_a: Pre-match probability that A wins.
    """

    a_mean: float
    a_sigma: float
    b_mean: float
    b_sigma: float
    expected_a: float


def _check_finite(**values: float) -> None:
    for name, value in values.items():
        if not math.isfinite(value):
            raise ComputationError(f"Non-finite rating input {name}={value}")


def clamp_sigma(sigma: float, config: RatingConfig) -> float:
    """Clamp sigma into [sigma_floor, sigma_cap]."""
    return min(config.sigma_cap, max(config.sigma_floor, sigma))


def clamp_mean(mean: float, config: RatingConfig) -> float:
    """Clamp a rating mean into the configured safety range."""
    return min(config.mean_max, max(config.mean_min, mean))


def expected_score(
    mean_a: float,
    mean_b: float,
    scale: float = 400.0,
) -> float:
    """Probability that A beats B.

    expected_score(a, b) + expected_score(b, a) == 1 for all finite inputs.
    """
    _check_finite(mean_a=mean_a, mean_b=mean_b)
    return 1.0 / (1.0 + 10.0 ** ((mean_b - mean_a) / scale))


def update(
    a_mean: float,
    a_sigma: float,
    b_mean: float,
    b_sigma: float,
    outcome: Outcome,
    high_weight: bool = False,
    config: RatingConfig | None = None,
) -> RatingUpdate:
    """Apply one pairwise outcome to both ratings.

    Args:
        a_mean: Item A rating mean before the match.
        a_sigma: Item A sigma before the match.
        b_mean: Item B rating mean before the match.
        b_sigma: Item B sigma before the match.
        outcome: Which side won.
        high_weight: Use the doubled K-factor.
        config: Rating configuration (defaults from environment).

    Returns:
        RatingUpdate with new means and sigmas.

    Raises:
        ComputationError: If any input is NaN or infinite.
    """
    config = config or RatingConfig()
    _check_finite(a_mean=a_mean, a_sigma=a_sigma, b_mean=b_mean, b_sigma=b_sigma)

    a_sigma = clamp_sigma(a_sigma, config)
    b_sigma = clamp_sigma(b_sigma, config)

    expected_a = expected_score(a_mean, b_mean, config.logistic_scale)
    actual_a = 1.0 if outcome == Outcome.A_WINS else 0.0
    k = config.high_weight_k if high_weight else config.base_k

    delta = k * (actual_a - expected_a)

    return RatingUpdate(
        a_mean=clamp_mean(a_mean + delta, config),
        a_sigma=clamp_sigma(a_sigma * config.sigma_shrink, config),
        b_mean=clamp_mean(b_mean - delta, config),
        b_sigma=clamp_sigma(b_sigma * config.sigma_shrink, config),
        expected_a=expected_a,
    )


def apply_idle_decay(
    sigma: float,
    ticks: int = 1,
    config: RatingConfig | None = None,
) -> float:
    """Grow sigma for scheduler ticks that saw no comparisons, up to the cap."""
    config = config or RatingConfig()
    _check_finite(sigma=sigma)
    if ticks <= 0:
        return clamp_sigma(sigma, config)
    return clamp_sigma(sigma + ticks * config.sigma_decay, config)
