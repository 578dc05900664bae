"""HTTP monitoring and control surface for the trading cycle."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from app.trade.orchestrator import CycleOrchestrator
from services.strategy.types import Action, Decision

log = logging.getLogger("pairtrader.api")


class ValidateRequest(BaseModel):
    symbol: str
    action: Action
    amount: float = Field(ge=0.0)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    portfolio_value: Optional[float] = Field(default=None, gt=0.0)


class ExecuteRequest(BaseModel):
    symbol: str
    action: Action
    amount: float = Field(ge=0.0)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reason: str = "manual order"
    last_price: Optional[float] = Field(default=None, gt=0.0)


class RiskLimitsUpdate(BaseModel):
    daily_loss_limit: Optional[float] = None
    max_position_fraction: Optional[float] = None
    max_open_positions: Optional[int] = None


class PairsUpdate(BaseModel):
    pairs: list[str]


def create_app(orchestrator: CycleOrchestrator, *, autostart: bool = False) -> FastAPI:
    """Build the API around one orchestrator; ``autostart`` ties its triggers to the app lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.orchestrator = orchestrator
        if autostart:
            await orchestrator.start()
        try:
            yield
        finally:
            if autostart:
                await orchestrator.stop()

    app = FastAPI(title="pairtrader", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "running": orchestrator.running,
            "paper_trading": orchestrator.settings.paper_trading,
            "ts": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/status")
    async def status() -> dict:
        return orchestrator.status()

    @app.get("/config")
    async def config() -> dict:
        return orchestrator.settings.to_dict()

    @app.put("/config/risk")
    async def update_risk(body: RiskLimitsUpdate) -> dict:
        try:
            limits = orchestrator.update_risk_limits(**body.model_dump())
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return {
            "daily_loss_limit": limits.daily_loss_limit,
            "max_position_fraction": limits.max_position_fraction,
            "max_open_positions": limits.max_open_positions,
        }

    @app.put("/config/pairs")
    async def update_pairs(body: PairsUpdate) -> dict:
        try:
            pairs = orchestrator.update_pairs(body.pairs)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return {"pairs": pairs}

    @app.get("/prediction/{symbol}")
    async def prediction(symbol: str) -> dict:
        return (await orchestrator.predict_symbol(symbol)).to_dict()

    @app.get("/decision/{symbol}")
    async def decision(symbol: str) -> dict:
        result = await orchestrator.decide_symbol(symbol)
        if result is None:
            raise HTTPException(status_code=404, detail=f"no market data for {symbol.strip().upper()}")
        return result.to_dict()

    @app.post("/execute")
    async def execute(body: ExecuteRequest) -> dict:
        decision = Decision(
            symbol=body.symbol.strip().upper(),
            action=body.action,
            amount=0.0 if body.action is Action.HOLD else body.amount,
            confidence=body.confidence,
            reason=body.reason,
            timestamp=datetime.now(timezone.utc),
        )
        verdict, order = await orchestrator.execute_manual(decision, last_price=body.last_price)
        if order is None:
            raise HTTPException(
                status_code=400,
                detail={"error": "trade rejected by risk management", "reason": verdict.reason},
            )
        return order.to_dict()

    @app.get("/risk/daily-loss")
    async def daily_loss() -> dict:
        return {
            "daily_loss": orchestrator.current_daily_loss(),
            "limit": orchestrator.risk.limits.daily_loss_limit,
        }

    @app.get("/risk/open-positions")
    async def open_positions() -> dict:
        return {
            "open_positions": orchestrator.open_position_count(),
            "max_open_positions": orchestrator.risk.limits.max_open_positions,
        }

    @app.post("/risk/validate")
    async def validate(body: ValidateRequest) -> dict:
        decision = Decision(
            symbol=body.symbol.strip().upper(),
            action=body.action,
            amount=0.0 if body.action is Action.HOLD else body.amount,
            confidence=body.confidence,
            reason="validation request",
            timestamp=datetime.now(timezone.utc),
        )
        portfolio_value = body.portfolio_value or orchestrator.portfolio_value
        verdict = orchestrator.risk.evaluate(decision, portfolio_value)
        return {
            "allowed": verdict.allow,
            "reason": verdict.reason,
            "portfolio_value": portfolio_value,
            "daily_loss": orchestrator.current_daily_loss(),
            "open_positions": orchestrator.open_position_count(),
        }

    @app.get("/trades")
    async def trades(
        limit: int = Query(default=50, ge=1, le=1000),
        offset: int = Query(default=0, ge=0),
    ) -> dict:
        orders = orchestrator.trading_history(limit, offset)
        return {
            "total": len(orchestrator.history),
            "limit": limit,
            "offset": offset,
            "orders": [order.to_dict() for order in orders],
        }

    @app.get("/summary/daily")
    async def summary_daily() -> dict:
        return orchestrator.daily_summary()

    @app.get("/summary/weekly")
    async def summary_weekly() -> dict:
        return orchestrator.weekly_summary()

    @app.post("/cycle/run")
    async def run_cycle() -> dict:
        summary = await orchestrator.run_cycle_once()
        return summary.to_dict()

    @app.post("/orders/{order_id}/cancel")
    async def cancel_order(order_id: str) -> dict[str, Any]:
        if orchestrator.history.get(order_id) is None:
            raise HTTPException(status_code=404, detail=f"unknown order: {order_id}")
        if not await orchestrator.cancel_order(order_id):
            raise HTTPException(status_code=409, detail=f"order could not be cancelled: {order_id}")
        return {"ok": True, "order_id": order_id}

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics() -> str:
        return orchestrator.metrics.render()

    return app


__all__ = ["create_app", "ExecuteRequest", "PairsUpdate", "RiskLimitsUpdate", "ValidateRequest"]
