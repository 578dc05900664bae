"""Price-movement predictors used by the hourly cycle."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from services.market.types import MarketSnapshot
from services.prediction.types import Direction, Prediction

log = logging.getLogger("pairtrader.prediction")

NEUTRAL_CONFIDENCE = 0.5
FALLBACK_CONFIDENCE = 0.55


class Predictor(Protocol):
    """Anything that can turn a bar history (oldest first) into a :class:`Prediction`."""

    def predict(self, symbol: str, history: Sequence[MarketSnapshot]) -> Prediction:
        ...


def neutral_prediction(symbol: str) -> Prediction:
    return Prediction(symbol=symbol, direction=Direction.NEUTRAL, confidence=NEUTRAL_CONFIDENCE, target_price=0.0)


class FallbackPredictor:
    """Close-over-close heuristic used when no trained model is wired in.

    It makes no predictive claim: UP when the latest close beats the previous
    one, DOWN otherwise, always at a confidence below the default trading
    threshold.
    """

    def predict(self, symbol: str, history: Sequence[MarketSnapshot]) -> Prediction:
        if not history:
            return neutral_prediction(symbol)
        last = history[-1]
        previous = history[-2] if len(history) > 1 else last
        direction = Direction.UP if last.close > previous.close else Direction.DOWN
        factor = 1.01 if direction is Direction.UP else 0.99
        return Prediction(
            symbol=symbol,
            direction=direction,
            confidence=FALLBACK_CONFIDENCE,
            target_price=last.close * factor,
        )


class GuardedPredictor:
    """Wraps a model so prediction problems never leave this boundary."""

    def __init__(
        self,
        model: Optional[Predictor] = None,
        *,
        enabled: bool = True,
        min_history: int = 1,
    ) -> None:
        self.model: Predictor = model or FallbackPredictor()
        self.enabled = enabled
        self.min_history = max(1, int(min_history))

    def predict(self, symbol: str, history: Sequence[MarketSnapshot]) -> Prediction:
        if not self.enabled:
            log.debug("prediction.disabled", extra={"symbol": symbol})
            return neutral_prediction(symbol)
        if not history or len(history) < self.min_history:
            log.warning(
                "prediction.insufficient_history",
                extra={"symbol": symbol, "bars": len(history or ()), "required": self.min_history},
            )
            return neutral_prediction(symbol)
        try:
            prediction = self.model.predict(symbol, history)
        except Exception as exc:  # noqa: BLE001 - any model failure degrades to neutral
            log.exception("prediction.error", extra={"symbol": symbol, "error": str(exc)})
            return neutral_prediction(symbol)
        if not isinstance(prediction, Prediction):
            log.error(
                "prediction.invalid_output",
                extra={"symbol": symbol, "type": type(prediction).__name__},
            )
            return neutral_prediction(symbol)
        if not 0.0 <= prediction.confidence <= 1.0:
            log.error(
                "prediction.confidence_out_of_range",
                extra={"symbol": symbol, "confidence": prediction.confidence},
            )
            return neutral_prediction(symbol)
        return prediction
