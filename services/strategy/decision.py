"""Turn a prediction plus the current bar into a BUY/SELL/HOLD decision."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from services.market.types import MarketSnapshot
from services.prediction.types import Direction, Prediction
from services.strategy.types import Action, Decision

log = logging.getLogger("pairtrader.strategy")

CONFIDENCE_THRESHOLD = 0.65
TRADE_SIZE_FRACTION = 0.02

STRONG_CONFIDENCE = 0.7
MODERATE_CONFIDENCE = 0.6
RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0
HOLD_CONFIDENCE = 0.5

REASON_LOW_CONFIDENCE = "Low confidence prediction"
REASON_FILTERS_NOT_MET = "Technical analysis filters not met"
REASON_ERROR = "Error in decision making"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class DecisionConfig:
    confidence_threshold: float = CONFIDENCE_THRESHOLD
    trade_size_fraction: float = TRADE_SIZE_FRACTION


class DecisionEngine:
    """Stateless rule set combining model confidence with RSI and Bollinger filters.

    The outcome depends only on the arguments; the clock is used for the
    decision timestamp alone.
    """

    def __init__(
        self,
        config: Optional[DecisionConfig] = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config or DecisionConfig()
        self._clock = clock

    def decide(self, prediction: Prediction, snapshot: MarketSnapshot, portfolio_value: float) -> Decision:
        symbol = prediction.symbol or snapshot.symbol
        try:
            if prediction.confidence < self.config.confidence_threshold:
                log.debug(
                    "decision.low_confidence",
                    extra={"symbol": symbol, "confidence": prediction.confidence},
                )
                return self._hold(symbol, REASON_LOW_CONFIDENCE)

            action = self._determine_action(prediction, snapshot)
            if action is Action.HOLD:
                return self._hold(symbol, REASON_FILTERS_NOT_MET)

            amount = float(portfolio_value) * self.config.trade_size_fraction
            return Decision(
                symbol=symbol,
                action=action,
                amount=amount,
                confidence=prediction.confidence,
                reason=(
                    f"AI prediction: {prediction.direction.value} with "
                    f"{prediction.confidence * 100:.2f}% confidence"
                ),
                timestamp=self._clock(),
            )
        except Exception as exc:  # noqa: BLE001 - a broken input must not cost the cycle
            log.exception("decision.error", extra={"symbol": symbol, "error": str(exc)})
            return self._hold(symbol, REASON_ERROR)

    @staticmethod
    def _determine_action(prediction: Prediction, snapshot: MarketSnapshot) -> Action:
        direction = prediction.direction
        confidence = prediction.confidence
        rsi = snapshot.rsi

        if direction is Direction.UP and confidence > STRONG_CONFIDENCE:
            if rsi is None or rsi < RSI_OVERBOUGHT:
                return Action.BUY

        if direction is Direction.DOWN and confidence > STRONG_CONFIDENCE:
            if rsi is None or rsi > RSI_OVERSOLD:
                return Action.SELL

        if direction is Direction.UP and confidence > MODERATE_CONFIDENCE:
            lower = snapshot.bollinger_lower
            if lower is None or snapshot.close > lower:
                return Action.BUY

        if direction is Direction.DOWN and confidence > MODERATE_CONFIDENCE:
            upper = snapshot.bollinger_upper
            if upper is None or snapshot.close < upper:
                return Action.SELL

        return Action.HOLD

    def _hold(self, symbol: str, reason: str) -> Decision:
        return Decision(
            symbol=symbol,
            action=Action.HOLD,
            amount=0.0,
            confidence=HOLD_CONFIDENCE,
            reason=reason,
            timestamp=self._clock(),
        )
