"""Stateful risk gate sitting between the decision engine and execution."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Callable, Iterator, Optional

from services.pnl import estimate_potential_loss
from services.risk.presets import PRESETS, RiskPreset
from services.risk.state import RiskState
from services.strategy.types import Action, Decision

log = logging.getLogger("pairtrader.risk")

REASON_OK = "ok"
REASON_DAILY_LOSS = "daily_loss_limit"
REASON_POSITION_SIZE = "position_size_limit"
REASON_MAX_POSITIONS = "max_open_positions"
REASON_VOLATILITY = "volatility"
REASON_ERROR = "risk_error"


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass(frozen=True, slots=True)
class RiskLimits:
    daily_loss_limit: float
    max_position_fraction: float
    max_open_positions: int

    @classmethod
    def from_preset(cls, preset: RiskPreset) -> "RiskLimits":
        return cls(
            daily_loss_limit=preset.daily_loss_limit,
            max_position_fraction=preset.max_position_fraction,
            max_open_positions=preset.max_open_positions,
        )


@dataclass(frozen=True, slots=True)
class RiskVerdict:
    """Whether a decision may proceed, and which check vetoed it otherwise."""

    allow: bool
    reason: str


class RiskGate:
    """Central risk engine enforcing the daily budget and exposure caps.

    All ledger mutation happens in :meth:`evaluate` (day rollover) and
    :meth:`record_result`, both under one re-entrant lock. Callers that run
    symbols concurrently hold :meth:`transaction` across check and record so
    two BUYs cannot both pass the open-position cap before either records.
    """

    def __init__(
        self,
        limits: Optional[RiskLimits] = None,
        *,
        today: Callable[[], date] = _utc_today,
        state: Optional[RiskState] = None,
    ) -> None:
        self.limits = limits or RiskLimits.from_preset(PRESETS["balanced"])
        self._today = today
        self._lock = threading.RLock()
        self._state = state or RiskState(last_reset_date=today())

    @contextmanager
    def transaction(self) -> Iterator["RiskGate"]:
        with self._lock:
            yield self

    def update_limits(self, limits: RiskLimits) -> RiskLimits:
        """Swap the limits in place; accumulated loss and positions are kept."""

        with self._lock:
            previous, self.limits = self.limits, limits
        log.info(
            "risk.limits_updated",
            extra={
                "previous": asdict(previous),
                "daily_loss_limit": limits.daily_loss_limit,
                "max_position_fraction": limits.max_position_fraction,
                "max_open_positions": limits.max_open_positions,
            },
        )
        return previous

    def can_execute(self, decision: Decision, portfolio_value: float) -> bool:
        return self.review(decision, portfolio_value).allow

    def review(self, decision: Decision, portfolio_value: float) -> RiskVerdict:
        """:meth:`evaluate` plus the approved/blocked log line."""

        verdict = self.evaluate(decision, portfolio_value)
        if verdict.allow:
            log.info(
                "risk.approved",
                extra={"symbol": decision.symbol, "action": decision.action.value},
            )
        else:
            log.warning(
                "risk.blocked",
                extra={"symbol": decision.symbol, "action": decision.action.value, "reason": verdict.reason},
            )
        return verdict

    def evaluate(self, decision: Decision, portfolio_value: float) -> RiskVerdict:
        try:
            with self._lock:
                self._rollover_if_new_day()
                if not self._check_daily_loss(decision):
                    return RiskVerdict(False, REASON_DAILY_LOSS)
                if not self._check_position_size(decision, portfolio_value):
                    return RiskVerdict(False, REASON_POSITION_SIZE)
                if not self._check_max_open_positions(decision):
                    return RiskVerdict(False, REASON_MAX_POSITIONS)
                if not self._check_volatility(decision):
                    return RiskVerdict(False, REASON_VOLATILITY)
                return RiskVerdict(True, REASON_OK)
        except Exception as exc:  # noqa: BLE001 - fail closed
            log.exception("risk.error", extra={"symbol": getattr(decision, "symbol", None), "error": str(exc)})
            return RiskVerdict(False, REASON_ERROR)

    def record_result(self, decision: Decision, profit_loss: float) -> None:
        with self._lock:
            # A profit shrinks the loss accumulator, a loss grows it.
            self._state.daily_loss -= profit_loss
            if decision.action is Action.BUY:
                self._adjust_position(decision.symbol, 1)
            elif decision.action is Action.SELL:
                self._adjust_position(decision.symbol, -1)
            daily_loss = self._state.daily_loss
        log.info(
            "risk.recorded",
            extra={"symbol": decision.symbol, "profit_loss": profit_loss, "daily_loss": daily_loss},
        )

    def current_daily_loss(self) -> float:
        with self._lock:
            return self._state.daily_loss

    def open_position_count(self) -> int:
        with self._lock:
            return self._state.open_position_count()

    def snapshot(self) -> RiskState:
        with self._lock:
            return self._state.copy()

    def _adjust_position(self, symbol: str, delta: int) -> None:
        positions = self._state.positions
        positions[symbol] = positions.get(symbol, 0) + delta
        if positions[symbol] < 0:
            log.warning(
                "risk.negative_position_counter",
                extra={"symbol": symbol, "counter": positions[symbol]},
            )

    def _rollover_if_new_day(self) -> None:
        today = self._today()
        if today != self._state.last_reset_date:
            previous = self._state.last_reset_date
            self._state.reset(today)
            log.info(
                "risk.daily_reset",
                extra={"previous_date": previous.isoformat(), "date": today.isoformat()},
            )

    def _check_daily_loss(self, decision: Decision) -> bool:
        if decision.action is Action.HOLD:
            return True
        potential = estimate_potential_loss(decision)
        allowed = (self._state.daily_loss + potential) <= self.limits.daily_loss_limit
        log.debug(
            "risk.check.daily_loss",
            extra={
                "current": self._state.daily_loss,
                "potential": potential,
                "limit": self.limits.daily_loss_limit,
                "allowed": allowed,
            },
        )
        return allowed

    def _check_position_size(self, decision: Decision, portfolio_value: float) -> bool:
        if decision.action is Action.HOLD:
            return True
        max_amount = portfolio_value * self.limits.max_position_fraction
        allowed = decision.amount <= max_amount
        log.debug(
            "risk.check.position_size",
            extra={"amount": decision.amount, "max": max_amount, "allowed": allowed},
        )
        return allowed

    def _check_max_open_positions(self, decision: Decision) -> bool:
        if decision.action in (Action.HOLD, Action.SELL):
            return True
        current = self._state.open_position_count()
        allowed = current < self.limits.max_open_positions
        log.debug(
            "risk.check.open_positions",
            extra={"current": current, "max": self.limits.max_open_positions, "allowed": allowed},
        )
        return allowed

    def _check_volatility(self, decision: Decision) -> bool:
        # Extension point: no volatility veto is applied yet.
        return True
