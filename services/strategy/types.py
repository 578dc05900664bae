"""Shared data structures for the strategy layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Action(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass(frozen=True, slots=True)
class Decision:
    """Trade decision emitted by :class:`~services.strategy.decision.DecisionEngine`."""

    symbol: str
    action: Action
    amount: float  # quote-currency notional, 0.0 for HOLD
    confidence: float
    reason: str
    timestamp: datetime

    @property
    def is_hold(self) -> bool:
        return self.action is Action.HOLD

    def to_dict(self) -> dict[str, object]:
        return {
            "symbol": self.symbol,
            "action": self.action.value,
            "amount": self.amount,
            "confidence": self.confidence,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }
