"""Prediction value types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Direction(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True, slots=True)
class Prediction:
    """Directional call for the next period, produced fresh per request."""

    symbol: str
    direction: Direction
    confidence: float  # 0.0 to 1.0
    target_price: float

    def to_dict(self) -> dict[str, object]:
        return {
            "symbol": self.symbol,
            "direction": self.direction.value,
            "confidence": self.confidence,
            "target_price": self.target_price,
        }
