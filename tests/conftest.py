from __future__ import annotations

import os
from datetime import date, datetime, timezone

import pytest

from services.market.types import MarketSnapshot
from services.prediction.types import Direction, Prediction

_TRADING_ENV_PREFIX = "TRADING_"


@pytest.fixture(autouse=True)
def clean_trading_env(monkeypatch):
    """Keep developer TRADING_* variables from leaking into settings under test."""

    for key in list(os.environ):
        if key.startswith(_TRADING_ENV_PREFIX):
            monkeypatch.delenv(key, raising=False)
    yield


class FakeToday:
    """Mutable calendar used to drive the risk gate across midnight."""

    def __init__(self, value: date = date(2024, 3, 1)) -> None:
        self.value = value

    def __call__(self) -> date:
        return self.value


@pytest.fixture
def fake_today() -> FakeToday:
    return FakeToday()


def make_snapshot(
    symbol: str = "BTC_USDT",
    *,
    close: float = 100.0,
    rsi: float | None = 45.0,
    bollinger_upper: float | None = None,
    bollinger_lower: float | None = None,
) -> MarketSnapshot:
    return MarketSnapshot(
        symbol=symbol,
        timestamp=datetime(2024, 3, 1, 12, tzinfo=timezone.utc),
        open=close,
        high=close * 1.01,
        low=close * 0.99,
        close=close,
        volume=1_000.0,
        rsi=rsi,
        macd=None,
        bollinger_upper=bollinger_upper,
        bollinger_lower=bollinger_lower,
    )


def make_prediction(
    symbol: str = "BTC_USDT",
    direction: Direction = Direction.UP,
    confidence: float = 0.75,
) -> Prediction:
    return Prediction(symbol=symbol, direction=direction, confidence=confidence, target_price=101.0)


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def prediction_factory():
    return make_prediction
