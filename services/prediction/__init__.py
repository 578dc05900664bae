"""Pluggable price-movement prediction."""

from .predictor import FallbackPredictor, GuardedPredictor, Predictor, neutral_prediction
from .types import Direction, Prediction

__all__ = [
    "Direction",
    "FallbackPredictor",
    "GuardedPredictor",
    "Prediction",
    "Predictor",
    "neutral_prediction",
]
