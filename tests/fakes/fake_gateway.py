"""Test doubles for the execution gateway and market data source."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence

from services.market.types import MarketSnapshot


class FakeGateway:
    """Gateway double that records calls and hands out sequential broker ids."""

    def __init__(self, *, fail_with: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.placed: list[tuple[str, str, float]] = []
        self.cancels: list[str] = []
        self.client_order_ids: list[Optional[str]] = []
        self.fail_with = fail_with
        self.cancel_fails = False
        self.delay = delay
        self._counter = 0

    async def place_order(
        self, symbol: str, side: str, amount: float, *, client_order_id: Optional[str] = None
    ) -> str:
        self.placed.append((symbol, side, amount))
        self.client_order_ids.append(client_order_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        self._counter += 1
        return f"broker-{self._counter}"

    async def cancel_order(self, order_id: str) -> None:
        self.cancels.append(order_id)
        if self.cancel_fails:
            raise RuntimeError("venue refused cancel")


class StaticMarketData:
    """Serves fixed bars per symbol; symbols listed in ``failing`` raise on fetch."""

    def __init__(
        self,
        bars: Dict[str, Sequence[MarketSnapshot]],
        *,
        failing: Sequence[str] = (),
    ) -> None:
        self.bars = {symbol: list(series) for symbol, series in bars.items()}
        self.failing = set(failing)
        self.latest_calls: List[str] = []

    def fetch_latest_snapshot(self, symbol: str) -> Optional[MarketSnapshot]:
        self.latest_calls.append(symbol)
        if symbol in self.failing:
            raise ConnectionError(f"feed down for {symbol}")
        series = self.bars.get(symbol)
        return series[-1] if series else None

    def fetch_history(self, symbol: str, window: int) -> List[MarketSnapshot]:
        return list(self.bars.get(symbol, [])[-window:])


class SlowMarketData(StaticMarketData):
    """Async variant whose snapshot fetch sleeps past any sensible timeout."""

    def __init__(self, bars: Dict[str, Sequence[MarketSnapshot]], *, delay: float) -> None:
        super().__init__(bars)
        self.delay = delay

    async def fetch_latest_snapshot(self, symbol: str) -> Optional[MarketSnapshot]:  # type: ignore[override]
        await asyncio.sleep(self.delay)
        return super().fetch_latest_snapshot(symbol)
