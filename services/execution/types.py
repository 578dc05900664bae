"""Order records produced by the execution dispatcher."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from services.strategy.types import Action

SIMULATED_PREFIX = "SIM-"
FAILED_PREFIX = "FAILED-"
SKIPPED_PREFIX = "SKIPPED-"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True, slots=True)
class Order:
    """Immutable outcome of dispatching one decision."""

    order_id: str
    symbol: str
    action: Action
    amount: float
    status: OrderStatus
    created_at: datetime
    execution_price: float = 0.0
    executed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    client_order_id: Optional[str] = None

    @property
    def is_simulated(self) -> bool:
        return self.order_id.startswith(SIMULATED_PREFIX)

    @property
    def counts_as_trade(self) -> bool:
        return self.status in (OrderStatus.EXECUTED, OrderStatus.PENDING)

    def cancelled(self) -> "Order":
        """New record for the same order in CANCELLED state; the original is untouched."""

        return replace(self, status=OrderStatus.CANCELLED)

    def to_dict(self) -> dict[str, object]:
        return {
            "order_id": self.order_id,
            "symbol": self.symbol,
            "action": self.action.value,
            "amount": self.amount,
            "execution_price": self.execution_price,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "error_message": self.error_message,
            "client_order_id": self.client_order_id,
            "simulated": self.is_simulated,
        }
