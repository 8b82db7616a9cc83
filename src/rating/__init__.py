"""Pairwise rating engine (Elo with uncertainty)."""

from src.rating.config import RatingConfig
from src.rating.engine import (
    Outcome,
    RatingUpdate,
    apply_idle_decay,
    clamp_mean,
    clamp_sigma,
    expected_score,
    update,
)

__all__ = [
    "Outcome",
    "RatingConfig",
    "RatingUpdate",
    "apply_idle_decay",
    "clamp_mean",
    "clamp_sigma",
    "expected_score",
    "update",
]
