"""Execution dispatcher routing approved decisions to a simulated or live venue."""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from services.execution.adapter_alpaca import ExecutionGateway
from services.execution.types import (
    FAILED_PREFIX,
    SIMULATED_PREFIX,
    SKIPPED_PREFIX,
    Order,
    OrderStatus,
)
from services.strategy.types import Action, Decision

DEFAULT_GATEWAY_TIMEOUT_SEC = 15.0
CLIENT_ORDER_PREFIX = "pt-"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionDispatcher:
    """Turns a decision into exactly one :class:`Order`; never raises to the caller.

    HOLD produces a PENDING ``SKIPPED-`` record, paper mode a ``SIM-`` fill,
    and live mode delegates to the gateway. Gateway errors and timeouts come
    back as FAILED orders carrying the error text.
    """

    def __init__(
        self,
        *,
        paper_trading: bool = True,
        gateway: Optional[ExecutionGateway] = None,
        timeout_sec: float = DEFAULT_GATEWAY_TIMEOUT_SEC,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.log = logging.getLogger("pairtrader.execution")
        self.paper_trading = paper_trading
        self.gateway = gateway
        self.timeout_sec = timeout_sec
        self._clock = clock
        self._seq = itertools.count(1)
        self._lock = threading.Lock()
        self._executed_count = 0

    def _order_id(self, prefix: str) -> str:
        return f"{prefix}{int(time.time() * 1000)}-{next(self._seq)}"

    def executed_order_count(self) -> int:
        with self._lock:
            return self._executed_count

    async def execute(self, decision: Decision, *, last_price: Optional[float] = None) -> Order:
        try:
            if decision.is_hold:
                self.log.debug("execution.skipped_hold", extra={"symbol": decision.symbol})
                return self._skipped(decision)
            if self.paper_trading:
                return self._simulate(decision, last_price)
            return await self._execute_live(decision, last_price)
        except Exception as exc:  # noqa: BLE001 - every failure becomes a FAILED order
            self.log.exception(
                "execution.failed",
                extra={"symbol": decision.symbol, "error": str(exc) or type(exc).__name__},
            )
            return self._failed(decision, str(exc) or type(exc).__name__)

    async def cancel(self, order_id: str) -> bool:
        if self.paper_trading:
            self.log.info("execution.cancel_simulated", extra={"order_id": order_id})
            return True
        try:
            if self.gateway is None:
                raise RuntimeError("no execution gateway configured")
            await asyncio.wait_for(self.gateway.cancel_order(order_id), timeout=self.timeout_sec)
        except asyncio.TimeoutError:
            self.log.error("execution.cancel_timeout", extra={"order_id": order_id})
            return False
        except Exception as exc:  # noqa: BLE001 - reported as a failed cancel
            self.log.error("execution.cancel_failed", extra={"order_id": order_id, "error": str(exc)})
            return False
        self.log.info("execution.cancelled", extra={"order_id": order_id})
        return True

    def _simulate(self, decision: Decision, last_price: Optional[float]) -> Order:
        now = self._clock()
        order = Order(
            order_id=self._order_id(SIMULATED_PREFIX),
            symbol=decision.symbol,
            action=decision.action,
            amount=decision.amount,
            status=OrderStatus.EXECUTED,
            created_at=now,
            execution_price=float(last_price) if last_price is not None else 0.0,
            executed_at=now,
        )
        self._count_executed()
        self.log.info(
            "execution.simulated",
            extra={"order_id": order.order_id, "symbol": order.symbol, "amount": order.amount},
        )
        return order

    async def _execute_live(self, decision: Decision, last_price: Optional[float]) -> Order:
        if self.gateway is None:
            raise RuntimeError("no execution gateway configured")
        side = "buy" if decision.action is Action.BUY else "sell"
        created = self._clock()
        # Matches a FAILED record to a late fill at the venue.
        client_order_id = f"{CLIENT_ORDER_PREFIX}{uuid4().hex}"
        try:
            broker_id = await asyncio.wait_for(
                self.gateway.place_order(
                    decision.symbol, side, decision.amount, client_order_id=client_order_id
                ),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError:
            message = f"gateway timeout after {self.timeout_sec:g}s (client_order_id={client_order_id})"
            self.log.error(
                "execution.timeout",
                extra={
                    "symbol": decision.symbol,
                    "timeout": self.timeout_sec,
                    "client_order_id": client_order_id,
                },
            )
            return self._failed(decision, message, client_order_id=client_order_id)
        except Exception as exc:  # noqa: BLE001 - venue errors become FAILED orders
            error = str(exc) or type(exc).__name__
            self.log.error(
                "execution.gateway_error",
                extra={"symbol": decision.symbol, "error": error, "client_order_id": client_order_id},
            )
            return self._failed(
                decision, f"{error} (client_order_id={client_order_id})", client_order_id=client_order_id
            )

        order = Order(
            order_id=str(broker_id),
            symbol=decision.symbol,
            action=decision.action,
            amount=decision.amount,
            status=OrderStatus.EXECUTED,
            created_at=created,
            execution_price=float(last_price) if last_price is not None else 0.0,
            executed_at=self._clock(),
            client_order_id=client_order_id,
        )
        self._count_executed()
        self.log.info(
            "execution.placed",
            extra={"order_id": order.order_id, "symbol": order.symbol, "amount": order.amount},
        )
        return order

    def _count_executed(self) -> None:
        with self._lock:
            self._executed_count += 1

    def _skipped(self, decision: Decision) -> Order:
        return Order(
            order_id=self._order_id(SKIPPED_PREFIX),
            symbol=decision.symbol,
            action=decision.action,
            amount=0.0,
            status=OrderStatus.PENDING,
            created_at=self._clock(),
        )

    def _failed(self, decision: Decision, message: str, *, client_order_id: Optional[str] = None) -> Order:
        return Order(
            order_id=self._order_id(FAILED_PREFIX),
            symbol=decision.symbol,
            action=decision.action,
            amount=decision.amount,
            status=OrderStatus.FAILED,
            created_at=self._clock(),
            error_message=message,
            client_order_id=client_order_id,
        )
