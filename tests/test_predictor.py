from __future__ import annotations

import pytest

from services.prediction import FallbackPredictor, GuardedPredictor, neutral_prediction
from services.prediction.types import Direction, Prediction


class ExplodingModel:
    def predict(self, symbol, history):
        raise RuntimeError("model crashed")


class FixedModel:
    def __init__(self, result) -> None:
        self.result = result
        self.calls = 0

    def predict(self, symbol, history):
        self.calls += 1
        return self.result


def test_neutral_prediction_shape() -> None:
    prediction = neutral_prediction("BTC_USDT")
    assert prediction == Prediction("BTC_USDT", Direction.NEUTRAL, 0.5, 0.0)


def test_fallback_up_when_close_rises(snapshot_factory) -> None:
    history = [snapshot_factory(close=100.0), snapshot_factory(close=110.0)]
    prediction = FallbackPredictor().predict("BTC_USDT", history)
    assert prediction.direction is Direction.UP
    assert prediction.confidence == 0.55
    assert prediction.target_price == pytest.approx(111.1)


def test_fallback_down_when_close_falls_or_flat(snapshot_factory) -> None:
    falling = [snapshot_factory(close=100.0), snapshot_factory(close=90.0)]
    flat = [snapshot_factory(close=100.0), snapshot_factory(close=100.0)]
    assert FallbackPredictor().predict("X_USDT", falling).direction is Direction.DOWN
    result = FallbackPredictor().predict("X_USDT", flat)
    assert result.direction is Direction.DOWN
    assert result.target_price == pytest.approx(99.0)


def test_fallback_single_bar_compares_with_itself(snapshot_factory) -> None:
    prediction = FallbackPredictor().predict("X_USDT", [snapshot_factory(close=50.0)])
    assert prediction.direction is Direction.DOWN


def test_fallback_never_clears_default_threshold(snapshot_factory) -> None:
    history = [snapshot_factory(close=1.0), snapshot_factory(close=2.0)]
    assert FallbackPredictor().predict("X_USDT", history).confidence < 0.65


def test_guarded_returns_neutral_on_empty_history() -> None:
    guarded = GuardedPredictor(FixedModel(None))
    assert guarded.predict("BTC_USDT", []) == neutral_prediction("BTC_USDT")
    assert guarded.model.calls == 0


def test_guarded_returns_neutral_on_short_history(snapshot_factory) -> None:
    model = FixedModel(Prediction("BTC_USDT", Direction.UP, 0.9, 1.0))
    guarded = GuardedPredictor(model, min_history=3)
    assert guarded.predict("BTC_USDT", [snapshot_factory()] * 2).direction is Direction.NEUTRAL
    assert guarded.predict("BTC_USDT", [snapshot_factory()] * 3).direction is Direction.UP


def test_guarded_swallows_model_errors(snapshot_factory) -> None:
    guarded = GuardedPredictor(ExplodingModel())
    assert guarded.predict("ETH_USDT", [snapshot_factory()]) == neutral_prediction("ETH_USDT")


def test_guarded_disabled_skips_model(snapshot_factory) -> None:
    model = FixedModel(Prediction("BTC_USDT", Direction.UP, 0.9, 1.0))
    guarded = GuardedPredictor(model, enabled=False)
    assert guarded.predict("BTC_USDT", [snapshot_factory()]).direction is Direction.NEUTRAL
    assert model.calls == 0


@pytest.mark.parametrize("bad", [None, {"direction": "UP"}, Prediction("BTC_USDT", Direction.UP, 1.5, 1.0)])
def test_guarded_rejects_invalid_output(bad, snapshot_factory) -> None:
    guarded = GuardedPredictor(FixedModel(bad))
    assert guarded.predict("BTC_USDT", [snapshot_factory()]).direction is Direction.NEUTRAL


def test_guarded_defaults_to_fallback(snapshot_factory) -> None:
    guarded = GuardedPredictor()
    assert isinstance(guarded.model, FallbackPredictor)
    history = [snapshot_factory(close=1.0), snapshot_factory(close=2.0)]
    assert guarded.predict("BTC_USDT", history).direction is Direction.UP
