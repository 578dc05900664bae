"""Technical indicator utilities."""

from __future__ import annotations

import math
from statistics import mean
from typing import Sequence


def relative_strength_index(close: Sequence[float], period: int = 14) -> float:
    if len(close) <= period:
        raise ValueError("Insufficient data for RSI")
    deltas = [close[i] - close[i - 1] for i in range(1, len(close))]
    gains = [delta if delta > 0 else 0.0 for delta in deltas]
    losses = [-delta if delta < 0 else 0.0 for delta in deltas]
    avg_gain = sum(gains[-period:]) / period
    avg_loss = sum(losses[-period:]) / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def bollinger_bands(
    close: Sequence[float], window: int = 20, num_std: float = 2.0
) -> tuple[float, float, float]:
    """Return ``(lower, middle, upper)`` bands over the trailing ``window``."""

    if len(close) < window:
        raise ValueError("Insufficient data for Bollinger bands")
    window_data = list(close[-window:])
    mu = mean(window_data)
    variance = sum((value - mu) ** 2 for value in window_data) / window
    std = math.sqrt(variance)
    return (mu - num_std * std, mu, mu + num_std * std)


def _ema(series: Sequence[float], span: int) -> list[float]:
    alpha = 2.0 / (span + 1.0)
    out = [float(series[0])]
    for value in series[1:]:
        out.append(alpha * float(value) + (1.0 - alpha) * out[-1])
    return out


def macd(close: Sequence[float], fast: int = 12, slow: int = 26) -> float:
    """MACD line (fast EMA minus slow EMA) at the latest bar."""

    if len(close) < slow:
        raise ValueError("Insufficient data for MACD")
    return float(_ema(close, fast)[-1] - _ema(close, slow)[-1])
