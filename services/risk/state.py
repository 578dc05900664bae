"""Daily risk ledger owned by the risk gate."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict


@dataclass
class RiskState:
    """Daily loss accumulator plus signed open-position counters per symbol.

    ``daily_loss`` grows when net P&L is negative and shrinks on profit.
    Counters are deliberately not floored at zero, so a SELL without a prior
    BUY drives a symbol negative.
    """

    last_reset_date: date
    daily_loss: float = 0.0
    positions: Dict[str, int] = field(default_factory=dict)

    def open_position_count(self) -> int:
        return sum(self.positions.values())

    def reset(self, today: date) -> None:
        self.daily_loss = 0.0
        self.positions.clear()
        self.last_reset_date = today

    def copy(self) -> "RiskState":
        return RiskState(
            last_reset_date=self.last_reset_date,
            daily_loss=self.daily_loss,
            positions=dict(self.positions),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "last_reset_date": self.last_reset_date.isoformat(),
            "daily_loss": self.daily_loss,
            "positions": dict(self.positions),
            "open_positions": self.open_position_count(),
        }
