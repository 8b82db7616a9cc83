"""Rater calibration: online normalization and reliability weighting."""

from src.calibration.config import CalibrationConfig
from src.calibration.engine import (
    apply_delta,
    comparison_alignment,
    ingest_raw_signal,
    merge_stats,
    normalize,
    signal_alignment,
    update_reliability,
    variance,
    welford_step,
)
from src.calibration.schemas import RaterDelta, RaterState

__all__ = [
    "CalibrationConfig",
    "RaterDelta",
    "RaterState",
    "apply_delta",
    "comparison_alignment",
    "ingest_raw_signal",
    "merge_stats",
    "normalize",
    "signal_alignment",
    "update_reliability",
    "variance",
    "welford_step",
]
