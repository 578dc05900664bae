"""Market observation value types shared by prediction and strategy."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True, slots=True)
class MarketSnapshot:
    """One OHLCV bar for a trading pair plus whatever indicators were available."""

    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    rsi: Optional[float] = None
    macd: Optional[float] = None
    bollinger_upper: Optional[float] = None
    bollinger_lower: Optional[float] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "rsi": self.rsi,
            "macd": self.macd,
            "bollinger_upper": self.bollinger_upper,
            "bollinger_lower": self.bollinger_lower,
        }
