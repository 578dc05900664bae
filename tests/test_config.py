from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from core.config import DEFAULT_PAIRS, TradingSettings, load_settings


def test_defaults_match_documented_values() -> None:
    settings = TradingSettings()
    assert settings.daily_loss_limit == 500.0
    assert settings.max_position_fraction == 0.05
    assert settings.max_open_positions == 5
    assert settings.confidence_threshold == 0.65
    assert settings.trade_size_fraction == 0.02
    assert settings.paper_trading is True
    assert settings.initial_portfolio_value == 10_000.0
    assert settings.pairs == DEFAULT_PAIRS
    assert settings.cycle_interval_sec == 3600.0
    assert settings.status_interval_sec == 1800.0


def test_env_overrides_and_comma_separated_pairs(monkeypatch) -> None:
    monkeypatch.setenv("TRADING_PAIRS", "sol_usdt, btc_usdt,SOL_USDT")
    monkeypatch.setenv("TRADING_DAILY_LOSS_LIMIT", "750")
    monkeypatch.setenv("TRADING_PAPER_TRADING", "false")
    settings = TradingSettings()
    assert settings.pairs == ["SOL_USDT", "BTC_USDT"]
    assert settings.daily_loss_limit == 750.0
    assert settings.paper_trading is False


def test_risk_profile_seeds_unset_limits() -> None:
    safe = TradingSettings(risk_profile="safe")
    assert (safe.daily_loss_limit, safe.max_position_fraction, safe.max_open_positions) == (250.0, 0.03, 3)
    mixed = TradingSettings(risk_profile="aggressive", max_open_positions=2)
    assert mixed.daily_loss_limit == 1000.0
    assert mixed.max_open_positions == 2


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_position_fraction": 1.5},
        {"trade_size_fraction": -0.1},
        {"confidence_threshold": 2.0},
        {"max_open_positions": 0},
        {"history_window": 0},
        {"initial_portfolio_value": 0},
        {"risk_profile": "reckless"},
    ],
)
def test_invalid_values_are_rejected(overrides) -> None:
    with pytest.raises(ValidationError):
        TradingSettings(**overrides)


def test_yaml_overlay_with_trading_section(tmp_path: Path) -> None:
    config = tmp_path / "trading.yaml"
    config.write_text(
        "trading:\n"
        "  pairs: [ada_usdt]\n"
        "  daily_loss_limit: 123.5\n"
        "  max_concurrency: 3\n",
        encoding="utf-8",
    )
    settings = load_settings(config)
    assert settings.pairs == ["ADA_USDT"]
    assert settings.daily_loss_limit == 123.5
    assert settings.max_concurrency == 3


def test_yaml_file_from_environment(tmp_path: Path, monkeypatch) -> None:
    config = tmp_path / "flat.yaml"
    config.write_text("paper_trading: false\nhistory_limit: 10\n", encoding="utf-8")
    monkeypatch.setenv("TRADING_CONFIG_FILE", str(config))
    settings = load_settings()
    assert settings.paper_trading is False
    assert settings.history_limit == 10


def test_yaml_must_be_a_mapping(tmp_path: Path) -> None:
    config = tmp_path / "list.yaml"
    config.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(config)


def test_missing_explicit_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(OSError):
        load_settings(tmp_path / "absent.yaml")


def test_with_overrides_revalidates() -> None:
    settings = TradingSettings()
    updated = settings.with_overrides(max_open_positions=7, pairs=None)
    assert updated.max_open_positions == 7
    assert updated.pairs == settings.pairs
    with pytest.raises(ValidationError):
        settings.with_overrides(max_position_fraction=3.0)


def test_to_dict_round_trips_through_constructor() -> None:
    settings = TradingSettings(pairs=["BTC_USDT"], risk_profile="safe")
    assert TradingSettings(**settings.to_dict()) == settings
