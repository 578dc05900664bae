"""Market data collaborator contract and a synthetic feed for offline runs."""

from __future__ import annotations

import random
import threading
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Dict, List, Optional, Protocol, Sequence, Union

from core.indicators import bollinger_bands, macd, relative_strength_index
from services.market.types import MarketSnapshot

SnapshotResult = Union[Optional[MarketSnapshot], Awaitable[Optional[MarketSnapshot]]]
HistoryResult = Union[Sequence[MarketSnapshot], Awaitable[Sequence[MarketSnapshot]]]


class MarketDataSource(Protocol):
    """What the cycle needs from ingestion/storage; sync or async implementations both work."""

    def fetch_latest_snapshot(self, symbol: str) -> SnapshotResult:
        """Return the newest bar for ``symbol`` or ``None`` when nothing is stored."""

    def fetch_history(self, symbol: str, window: int) -> HistoryResult:
        """Return up to ``window`` bars for ``symbol``, oldest first."""


_BASE_PRICES = {"BTC": 60_000.0, "ETH": 3_000.0, "SOL": 150.0, "BNB": 550.0}


def _base_price(symbol: str, index: int) -> float:
    return _BASE_PRICES.get(symbol.split("_", 1)[0].upper(), 100.0 + index)


class SyntheticMarketData:
    """Seeded random-walk hourly bars with RSI, MACD and Bollinger bands attached.

    Every ``fetch_latest_snapshot`` call closes one new hourly bar, so repeated
    cycles see the market move. ``warmup`` bars are generated up front so the
    indicators are populated from the first cycle.
    """

    def __init__(
        self,
        symbols: Sequence[str],
        *,
        seed: int = 42,
        warmup: int = 40,
        volatility: float = 0.01,
        start: Optional[datetime] = None,
    ) -> None:
        self._rng = random.Random(seed)
        self._volatility = volatility
        self._lock = threading.Lock()
        self._bars: Dict[str, List[MarketSnapshot]] = {}
        self._seed_prices: Dict[str, float] = {}
        origin = start or datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)
        self._origin = origin - timedelta(hours=warmup)
        for idx, symbol in enumerate(symbols):
            key = symbol.upper()
            self._bars[key] = []
            price = _base_price(key, idx)
            self._seed_prices[key] = price
            for _ in range(warmup):
                price = self._append_bar(key, price)

    def _append_bar(self, symbol: str, open_price: float) -> float:
        series = self._bars[symbol]
        drift = self._rng.gauss(0.0, self._volatility)
        close = max(0.01, open_price * (1.0 + drift))
        high = max(open_price, close) * (1.0 + abs(self._rng.gauss(0.0, self._volatility / 4)))
        low = min(open_price, close) * (1.0 - abs(self._rng.gauss(0.0, self._volatility / 4)))
        closes = [bar.close for bar in series] + [close]
        snapshot = MarketSnapshot(
            symbol=symbol,
            timestamp=self._origin + timedelta(hours=len(series)),
            open=open_price,
            high=high,
            low=low,
            close=close,
            volume=float(self._rng.randint(100, 10_000)),
            rsi=relative_strength_index(closes) if len(closes) > 14 else None,
            macd=macd(closes) if len(closes) >= 26 else None,
            bollinger_upper=bollinger_bands(closes)[2] if len(closes) >= 20 else None,
            bollinger_lower=bollinger_bands(closes)[0] if len(closes) >= 20 else None,
        )
        series.append(snapshot)
        return close

    def fetch_latest_snapshot(self, symbol: str) -> Optional[MarketSnapshot]:
        key = symbol.upper()
        with self._lock:
            series = self._bars.get(key)
            if series is None:
                return None
            last_close = series[-1].close if series else self._seed_prices[key]
            self._append_bar(key, last_close)
            return series[-1]

    def fetch_history(self, symbol: str, window: int) -> List[MarketSnapshot]:
        with self._lock:
            series = self._bars.get(symbol.upper(), [])
            return list(series[-window:]) if window > 0 else []
