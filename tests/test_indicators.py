import pytest

from core.indicators import bollinger_bands, macd, relative_strength_index


def test_rsi_bounds() -> None:
    closes = [100 + (i % 5) - 2 for i in range(40)]
    result = relative_strength_index(closes)
    assert 0 <= result <= 100


def test_rsi_all_gains_is_100() -> None:
    closes = [float(i) for i in range(1, 20)]
    assert relative_strength_index(closes) == 100.0


def test_rsi_needs_more_than_period() -> None:
    with pytest.raises(ValueError):
        relative_strength_index([1.0] * 14)


def test_bollinger_band_ordering() -> None:
    closes = [100.0 + (i % 3) for i in range(25)]
    lower, middle, upper = bollinger_bands(closes)
    assert lower < middle < upper


def test_bollinger_flat_series_collapses() -> None:
    lower, middle, upper = bollinger_bands([50.0] * 20)
    assert lower == middle == upper == 50.0


def test_macd_sign_follows_trend() -> None:
    rising = [float(i) for i in range(1, 40)]
    falling = list(reversed(rising))
    assert macd(rising) > 0
    assert macd(falling) < 0
