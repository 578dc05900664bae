"""Hourly trading cycle orchestrating market data, prediction, risk and execution."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Sequence

from app.trade.history import TradingHistory
from core.config import TradingSettings
from core.scheduler import PeriodicTrigger
from services.execution import AlpacaGateway, ExecutionDispatcher, ExecutionGateway, Order, OrderStatus
from services.execution.adapter_alpaca import to_venue_symbol
from services.market.feed import MarketDataSource, SyntheticMarketData
from services.market.types import MarketSnapshot
from services.pnl import estimate_profit_loss
from services.prediction import GuardedPredictor, Predictor, neutral_prediction
from services.prediction.types import Prediction
from services.risk import RiskGate, RiskLimits, RiskVerdict
from services.runtime.logging import with_trace
from services.runtime.metrics import Metrics
from services.strategy.decision import DecisionConfig, DecisionEngine
from services.strategy.types import Decision

log = logging.getLogger("pairtrader.orchestrator")

OUTCOME_SUCCESSFUL = "successful"
OUTCOME_BLOCKED = "blocked"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CycleSummary:
    trace_id: str
    started_at: datetime
    successful: int = 0
    blocked: int = 0
    failed: int = 0
    skipped: int = 0
    duration_sec: float = 0.0
    portfolio_value: float = 0.0
    daily_loss: float = 0.0
    open_positions: int = 0
    error: Optional[str] = None

    def tally(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "started_at": self.started_at.isoformat(),
            "successful": self.successful,
            "blocked": self.blocked,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration_sec": round(self.duration_sec, 6),
            "portfolio_value": self.portfolio_value,
            "daily_loss": self.daily_loss,
            "open_positions": self.open_positions,
            "error": self.error,
        }


class CycleOrchestrator:
    """Runs one decision pass per configured pair and owns the periodic triggers.

    Each symbol is isolated: a missing bar, a slow collaborator or a failed
    order only affects that symbol's outcome. Risk check, execution and
    result recording happen under one lock so concurrent symbols cannot both
    pass a limit before either records.
    """

    def __init__(
        self,
        settings: Optional[TradingSettings] = None,
        *,
        market_data: MarketDataSource,
        predictor: Optional[Predictor] = None,
        engine: Optional[DecisionEngine] = None,
        risk: Optional[RiskGate] = None,
        dispatcher: Optional[ExecutionDispatcher] = None,
        metrics: Optional[Metrics] = None,
        history: Optional[TradingHistory] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings or TradingSettings()
        cfg = self.settings
        self.market_data = market_data
        self.predictor: Predictor = predictor or GuardedPredictor(enabled=cfg.model_enabled)
        self.engine = engine or DecisionEngine(
            DecisionConfig(
                confidence_threshold=cfg.confidence_threshold,
                trade_size_fraction=cfg.trade_size_fraction,
            )
        )
        self.risk = risk or RiskGate(
            RiskLimits(
                daily_loss_limit=cfg.daily_loss_limit,
                max_position_fraction=cfg.max_position_fraction,
                max_open_positions=cfg.max_open_positions,
            )
        )
        self.dispatcher = dispatcher or ExecutionDispatcher(
            paper_trading=cfg.paper_trading,
            timeout_sec=cfg.gateway_timeout_sec,
        )
        self.metrics = metrics or Metrics()
        self.history = history or TradingHistory(cfg.history_limit)
        self._clock = clock
        self._portfolio_value: Optional[float] = None
        self._last_summary: Optional[CycleSummary] = None
        self._cycle_lock = asyncio.Lock()
        self._trade_lock = asyncio.Lock()
        self._state_lock = asyncio.Lock()
        self._cycle_trigger: Optional[PeriodicTrigger] = None
        self._status_trigger: Optional[PeriodicTrigger] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Start the cycle and status triggers; a second call is a no-op."""

        async with self._state_lock:
            if self.running:
                return
            self._cycle_trigger = PeriodicTrigger("trading-cycle", self.settings.cycle_interval_sec, self.run_cycle_once)
            self._status_trigger = PeriodicTrigger("status-report", self.settings.status_interval_sec, self.status_snapshot)
            self._cycle_trigger.start()
            self._status_trigger.start()
            log.info(
                "orchestrator.started",
                extra={
                    "pairs": list(self.settings.pairs),
                    "cycle_interval_sec": self.settings.cycle_interval_sec,
                    "status_interval_sec": self.settings.status_interval_sec,
                    "paper_trading": self.settings.paper_trading,
                },
            )

    async def stop(self) -> None:
        async with self._state_lock:
            triggers = [t for t in (self._cycle_trigger, self._status_trigger) if t is not None]
            self._cycle_trigger = None
            self._status_trigger = None
        for trigger in triggers:
            await trigger.stop()
        if triggers:
            log.info("orchestrator.stopped")

    @property
    def running(self) -> bool:
        return bool(self._cycle_trigger and self._cycle_trigger.running)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------
    async def run_cycle_once(self) -> CycleSummary:
        async with self._cycle_lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> CycleSummary:
        trace_id = with_trace()["trace_id"]
        started = time.perf_counter()
        summary = CycleSummary(trace_id=trace_id, started_at=self._clock())
        try:
            if self._portfolio_value is None:
                self._portfolio_value = float(self.settings.initial_portfolio_value)
                log.info(
                    "portfolio.initialised",
                    extra=with_trace({"portfolio_value": self._portfolio_value}, trace_id=trace_id),
                )
            if not self.settings.enabled:
                log.info("cycle.disabled", extra=with_trace(trace_id=trace_id))
                return summary

            pairs = list(self.settings.pairs)
            log.info("cycle.start", extra=with_trace({"pairs": pairs}, trace_id=trace_id))
            if self.settings.max_concurrency > 1:
                semaphore = asyncio.Semaphore(self.settings.max_concurrency)

                async def _bounded(symbol: str) -> str:
                    async with semaphore:
                        return await self._process_symbol(symbol, trace_id)

                outcomes = await asyncio.gather(*(_bounded(symbol) for symbol in pairs))
            else:
                outcomes = [await self._process_symbol(symbol, trace_id) for symbol in pairs]
            for outcome in outcomes:
                summary.tally(outcome)
        except Exception as exc:  # noqa: BLE001 - the cycle reports instead of crashing the trigger
            log.exception("cycle.error", extra=with_trace({"error": str(exc)}, trace_id=trace_id))
            summary.error = str(exc) or type(exc).__name__
        finally:
            self._finish(summary, started)

        log.info("cycle.complete", extra=with_trace(summary.to_dict(), trace_id=trace_id))
        return summary

    def _finish(self, summary: CycleSummary, started: float) -> None:
        summary.duration_sec = time.perf_counter() - started
        summary.portfolio_value = self.portfolio_value
        summary.daily_loss = self.risk.current_daily_loss()
        summary.open_positions = self.risk.open_position_count()
        self._last_summary = summary
        self.metrics.inc("cycles_total")
        self.metrics.inc("trades_successful", summary.successful)
        self.metrics.inc("trades_blocked", summary.blocked)
        self.metrics.inc("trades_failed", summary.failed)
        self.metrics.inc("symbols_skipped", summary.skipped)
        self.metrics.set("portfolio_value", summary.portfolio_value)
        self.metrics.set("daily_loss", summary.daily_loss)
        self.metrics.set("open_positions", float(summary.open_positions))

    async def _process_symbol(self, symbol: str, trace_id: str) -> str:
        extra = {"symbol": symbol}
        try:
            snapshot = await self._fetch_snapshot(symbol, trace_id)
            if snapshot is None:
                return OUTCOME_SKIPPED
            history = await self._fetch_history(symbol, trace_id)

            prediction = self._predict(symbol, history)
            decision = self.engine.decide(prediction, snapshot, self.portfolio_value)
            log.info(
                "decision.made",
                extra=with_trace(
                    {**extra, "action": decision.action.value, "amount": decision.amount, "reason": decision.reason},
                    trace_id=trace_id,
                ),
            )

            _, order = await self._execute_checked(decision, snapshot.close)
            if order is None:
                return OUTCOME_BLOCKED
            if not order.counts_as_trade:
                log.error(
                    "trade.failed",
                    extra=with_trace(
                        {**extra, "order_id": order.order_id, "error": order.error_message},
                        trace_id=trace_id,
                    ),
                )
                return OUTCOME_FAILED
            log.info(
                "trade.completed",
                extra=with_trace(
                    {
                        **extra,
                        "order_id": order.order_id,
                        "status": order.status.value,
                        "profit_loss": estimate_profit_loss(decision),
                    },
                    trace_id=trace_id,
                ),
            )
            return OUTCOME_SUCCESSFUL
        except Exception as exc:  # noqa: BLE001 - one symbol must not take down the cycle
            log.exception(
                "symbol.error",
                extra=with_trace({**extra, "error": str(exc) or type(exc).__name__}, trace_id=trace_id),
            )
            return OUTCOME_FAILED

    async def _fetch_snapshot(self, symbol: str, trace_id: str) -> Optional[MarketSnapshot]:
        extra = {"symbol": symbol}
        try:
            snapshot: Optional[MarketSnapshot] = await self._call(self.market_data.fetch_latest_snapshot, symbol)
        except Exception as exc:  # noqa: BLE001 - ingestion failure skips the symbol
            log.warning(
                "market.fetch_failed",
                extra=with_trace({**extra, "error": str(exc) or type(exc).__name__}, trace_id=trace_id),
            )
            return None
        if snapshot is None:
            log.warning("market.no_data", extra=with_trace(extra, trace_id=trace_id))
        return snapshot

    async def _fetch_history(self, symbol: str, trace_id: str) -> list[MarketSnapshot]:
        try:
            return list(await self._call(self.market_data.fetch_history, symbol, self.settings.history_window) or [])
        except Exception as exc:  # noqa: BLE001 - predictor degrades to neutral on empty history
            log.warning(
                "market.history_failed",
                extra=with_trace({"symbol": symbol, "error": str(exc) or type(exc).__name__}, trace_id=trace_id),
            )
            return []

    async def _execute_checked(
        self, decision: Decision, last_price: Optional[float]
    ) -> tuple[RiskVerdict, Optional[Order]]:
        """Check, dispatch and record as one step; no order comes back when the gate blocks."""

        async with self._trade_lock:
            verdict = self.risk.review(decision, self.portfolio_value)
            if not verdict.allow:
                return verdict, None
            order = await self.dispatcher.execute(decision, last_price=last_price)
            self.history.append(order)
            if order.counts_as_trade:
                profit_loss = estimate_profit_loss(decision)
                self.risk.record_result(decision, profit_loss)
                self._portfolio_value = self.portfolio_value + profit_loss
            return verdict, order

    def _predict(self, symbol: str, history: list[MarketSnapshot]) -> Prediction:
        try:
            return self.predictor.predict(symbol, history)
        except Exception as exc:  # noqa: BLE001 - unguarded predictors degrade to neutral
            log.exception("prediction.error", extra={"symbol": symbol, "error": str(exc)})
            return neutral_prediction(symbol)

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Invoke a sync or async collaborator, bounded by the collaborator timeout."""

        timeout = self.settings.collaborator_timeout_sec
        if inspect.iscoroutinefunction(fn):
            return await asyncio.wait_for(fn(*args), timeout=timeout)
        result = await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout)
        if inspect.isawaitable(result):
            return await asyncio.wait_for(result, timeout=timeout)
        return result

    # ------------------------------------------------------------------
    # On-demand operations
    # ------------------------------------------------------------------
    async def predict_symbol(self, symbol: str) -> Prediction:
        symbol = symbol.strip().upper()
        trace_id = with_trace()["trace_id"]
        history = await self._fetch_history(symbol, trace_id)
        return self._predict(symbol, history)

    async def decide_symbol(self, symbol: str) -> Optional[Decision]:
        """Predict and decide for one symbol without touching risk state; None without market data."""

        symbol = symbol.strip().upper()
        trace_id = with_trace()["trace_id"]
        snapshot = await self._fetch_snapshot(symbol, trace_id)
        if snapshot is None:
            return None
        history = await self._fetch_history(symbol, trace_id)
        decision = self.engine.decide(self._predict(symbol, history), snapshot, self.portfolio_value)
        log.info(
            "decision.preview",
            extra=with_trace(
                {"symbol": symbol, "action": decision.action.value, "amount": decision.amount},
                trace_id=trace_id,
            ),
        )
        return decision

    async def execute_manual(
        self, decision: Decision, *, last_price: Optional[float] = None
    ) -> tuple[RiskVerdict, Optional[Order]]:
        """Run an externally supplied decision through the same gate and bookkeeping as a cycle."""

        verdict, order = await self._execute_checked(decision, last_price)
        log.info(
            "trade.manual",
            extra={
                "symbol": decision.symbol,
                "action": decision.action.value,
                "allowed": verdict.allow,
                "reason": verdict.reason,
                "order_id": order.order_id if order else None,
            },
        )
        return verdict, order

    def update_risk_limits(
        self,
        *,
        daily_loss_limit: Optional[float] = None,
        max_position_fraction: Optional[float] = None,
        max_open_positions: Optional[int] = None,
    ) -> RiskLimits:
        """Replace the gate's limits; unspecified values keep their current setting.

        Values are validated like configuration, so a bad update raises
        ``pydantic.ValidationError`` and changes nothing.
        """

        current = self.risk.limits
        settings = self.settings.with_overrides(
            daily_loss_limit=current.daily_loss_limit if daily_loss_limit is None else daily_loss_limit,
            max_position_fraction=(
                current.max_position_fraction if max_position_fraction is None else max_position_fraction
            ),
            max_open_positions=current.max_open_positions if max_open_positions is None else max_open_positions,
        )
        limits = RiskLimits(
            daily_loss_limit=settings.daily_loss_limit,
            max_position_fraction=settings.max_position_fraction,
            max_open_positions=settings.max_open_positions,
        )
        self.risk.update_limits(limits)
        self.settings = settings
        return limits

    def update_pairs(self, pairs: Sequence[str]) -> list[str]:
        """Replace the traded pairs from the next cycle on."""

        settings = self.settings.with_overrides(pairs=list(pairs))
        if not settings.pairs:
            raise ValueError("at least one trading pair is required")
        for pair in settings.pairs:
            to_venue_symbol(pair)
        self.settings = settings
        log.info("config.pairs_updated", extra={"pairs": list(settings.pairs)})
        return list(settings.pairs)

    def trade_summary(self, since: datetime, *, period: str) -> dict[str, Any]:
        """Tally executed orders since ``since`` using the estimated per-trade P&L."""

        orders = [order for order in self.history.executed_since(since) if order.status is OrderStatus.EXECUTED]
        results = [estimate_profit_loss(order) for order in orders]
        winning = sum(1 for result in results if result > 0)
        losing = sum(1 for result in results if result < 0)
        total_profit = sum(result for result in results if result > 0)
        total_loss = -sum(result for result in results if result < 0)
        return {
            "period": period,
            "since": since.isoformat(),
            "total_trades": len(orders),
            "winning_trades": winning,
            "losing_trades": losing,
            "total_profit": total_profit,
            "total_loss": total_loss,
            "net_pnl": total_profit - total_loss,
            "win_rate": winning / len(orders) if orders else 0.0,
            "daily_loss": self.current_daily_loss(),
        }

    def daily_summary(self) -> dict[str, Any]:
        midnight = self._clock().replace(hour=0, minute=0, second=0, microsecond=0)
        summary = self.trade_summary(midnight, period="daily")
        summary["date"] = midnight.date().isoformat()
        return summary

    def weekly_summary(self) -> dict[str, Any]:
        return self.trade_summary(self._clock() - timedelta(days=7), period="last_7_days")

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------
    def status_snapshot(self) -> dict[str, Any]:
        """Log and return a read-only view of portfolio and risk state."""

        with self.risk.transaction() as gate:
            daily_loss = gate.current_daily_loss()
            open_positions = gate.open_position_count()
        snapshot = {
            "portfolio_value": self.portfolio_value,
            "daily_loss": daily_loss,
            "open_positions": open_positions,
            "executed_orders": self.executed_order_count(),
            "last_summary": self._last_summary.to_dict() if self._last_summary else None,
        }
        log.info("status.snapshot", extra=snapshot)
        return snapshot

    @property
    def portfolio_value(self) -> float:
        if self._portfolio_value is None:
            return float(self.settings.initial_portfolio_value)
        return self._portfolio_value

    @property
    def last_summary(self) -> Optional[CycleSummary]:
        return self._last_summary

    def current_daily_loss(self) -> float:
        return self.risk.current_daily_loss()

    def open_position_count(self) -> int:
        return self.risk.open_position_count()

    def executed_order_count(self) -> int:
        return self.dispatcher.executed_order_count()

    def trading_history(self, limit: int = 50, offset: int = 0) -> list[Order]:
        return self.history.page(limit, offset)

    def status(self) -> dict[str, Any]:
        counters, _ = self.metrics.snapshot()
        cycle_trigger = self._cycle_trigger
        return {
            "running": self.running,
            "enabled": self.settings.enabled,
            "paper_trading": self.settings.paper_trading,
            "pairs": list(self.settings.pairs),
            "portfolio_initialised": self._portfolio_value is not None,
            "portfolio_value": self.portfolio_value,
            "daily_loss": self.current_daily_loss(),
            "open_positions": self.open_position_count(),
            "executed_orders": self.executed_order_count(),
            "history_size": len(self.history),
            "cycles_run": int(counters.get("cycles_total", 0)),
            "skipped_ticks": cycle_trigger.skipped_ticks if cycle_trigger else 0,
            "last_summary": self._last_summary.to_dict() if self._last_summary else None,
        }

    async def cancel_order(self, order_id: str) -> bool:
        """Cancel a recorded order and append its CANCELLED record on success."""

        order = self.history.get(order_id)
        if order is None:
            log.warning("order.cancel_unknown", extra={"order_id": order_id})
            return False
        if order.status not in (OrderStatus.EXECUTED, OrderStatus.PENDING):
            log.warning("order.cancel_rejected", extra={"order_id": order_id, "status": order.status.value})
            return False
        if not await self.dispatcher.cancel(order_id):
            return False
        self.history.append(order.cancelled())
        log.info("order.cancelled", extra={"order_id": order_id, "symbol": order.symbol})
        return True


def build_orchestrator(
    settings: Optional[TradingSettings] = None,
    *,
    market_data: Optional[MarketDataSource] = None,
    gateway: Optional[ExecutionGateway] = None,
) -> CycleOrchestrator:
    """Wire the default collaborators: synthetic bars and, for live runs, Alpaca."""

    cfg = settings or TradingSettings()
    if gateway is None and not cfg.paper_trading:
        gateway = AlpacaGateway()
    dispatcher = ExecutionDispatcher(
        paper_trading=cfg.paper_trading,
        gateway=gateway,
        timeout_sec=cfg.gateway_timeout_sec,
    )
    return CycleOrchestrator(
        cfg,
        market_data=market_data or SyntheticMarketData(cfg.pairs),
        dispatcher=dispatcher,
    )


__all__ = ["CycleOrchestrator", "CycleSummary", "build_orchestrator"]
