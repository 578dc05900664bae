"""Configuration management utilities."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Annotated, Any, Dict, Literal, Optional

try:
    from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
except ImportError as e:  # pragma: no cover - dependency guard
    raise RuntimeError(
        "Missing dependency 'pydantic-settings'. Install with: pip install 'pydantic-settings>=2.7,<3'"
    ) from e

import yaml
from pydantic import Field, field_validator, model_validator

from services.risk.presets import PRESETS

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("config/trading.yaml")
DEFAULT_PAIRS = ["BTC_USDT", "ETH_USDT"]

RiskProfile = Literal["safe", "balanced", "aggressive"]


class TradingSettings(BaseSettings):
    """Trading, risk and scheduling options for the hourly decision loop.

    Values come from ``TRADING_*`` environment variables (``.env`` honoured),
    and any keyword arguments passed in, which is how the YAML overlay in
    :func:`load_settings` is applied. Risk limits that are not set explicitly
    fall back to the selected ``risk_profile`` preset.
    """

    model_config = SettingsConfigDict(
        env_prefix="TRADING_",
        env_file=".env",
        extra="ignore",
    )

    risk_profile: RiskProfile = "balanced"
    daily_loss_limit: float = Field(default=500.0, ge=0.0)
    max_position_fraction: float = Field(default=0.05, ge=0.0, le=1.0)
    max_open_positions: int = Field(default=5, gt=0)

    confidence_threshold: float = Field(default=0.65, ge=0.0, le=1.0)
    trade_size_fraction: float = Field(default=0.02, ge=0.0, le=1.0)

    enabled: bool = True
    paper_trading: bool = True
    model_enabled: bool = True
    initial_portfolio_value: float = Field(default=10_000.0, gt=0.0)
    pairs: Annotated[list[str], NoDecode] = Field(default_factory=lambda: list(DEFAULT_PAIRS))

    history_window: int = Field(default=24, gt=0)
    history_limit: int = Field(default=1000, gt=0)
    cycle_interval_sec: float = Field(default=3600.0, gt=0.0)
    status_interval_sec: float = Field(default=1800.0, gt=0.0)
    collaborator_timeout_sec: float = Field(default=10.0, gt=0.0)
    gateway_timeout_sec: float = Field(default=15.0, gt=0.0)
    max_concurrency: int = Field(default=1, ge=1)

    @model_validator(mode="before")
    @classmethod
    def _apply_risk_preset(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        profile = str(data.get("risk_profile") or "balanced").strip().lower()
        preset = PRESETS.get(profile)
        if preset is None:
            return data
        merged = dict(data)
        merged.setdefault("daily_loss_limit", preset.daily_loss_limit)
        merged.setdefault("max_position_fraction", preset.max_position_fraction)
        merged.setdefault("max_open_positions", preset.max_open_positions)
        return merged

    @field_validator("pairs", mode="before")
    @classmethod
    def _split_pairs(cls, value: Any) -> Any:
        if value is None:
            return list(DEFAULT_PAIRS)
        if isinstance(value, str):
            value = value.split(",")
        pairs = [str(item).strip().upper() for item in value if str(item).strip()]
        seen: set[str] = set()
        unique: list[str] = []
        for pair in pairs:
            if pair not in seen:
                seen.add(pair)
                unique.append(pair)
        return unique

    def to_dict(self) -> Dict[str, Any]:
        payload = self.model_dump()
        payload["pairs"] = list(self.pairs)
        return payload

    def with_overrides(self, **overrides: Any) -> "TradingSettings":
        payload = self.to_dict()
        payload.update({k: v for k, v in overrides.items() if v is not None})
        return TradingSettings(**payload)


def load_yaml_safe(path: str | Path) -> dict[str, Any]:
    """Load YAML configuration as a dictionary using safe parsing."""

    target = Path(path)
    with target.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    if isinstance(payload, dict):
        return dict(payload)
    raise ValueError(f"Expected mapping data in {target}, received {type(payload).__name__}")


def _resolve_config_path(path: str | Path | None) -> Optional[Path]:
    if path is not None:
        return Path(path)
    env_path = os.getenv("TRADING_CONFIG_FILE")
    if env_path:
        return Path(env_path)
    if DEFAULT_CONFIG_FILE.exists():
        return DEFAULT_CONFIG_FILE
    return None


def load_settings(path: str | Path | None = None) -> TradingSettings:
    """Build :class:`TradingSettings`, overlaying the YAML file when one is present.

    An explicitly named file that does not exist is an error; the default
    ``config/trading.yaml`` is optional.
    """

    target = _resolve_config_path(path)
    payload: dict[str, Any] = {}
    if target is not None:
        payload = load_yaml_safe(target)
        trading = payload.get("trading")
        if isinstance(trading, dict):
            payload = dict(trading)
        LOGGER.info("config.loaded", extra={"path": str(target), "keys": sorted(payload)})
    return TradingSettings(**payload)


__all__ = ["TradingSettings", "load_settings", "load_yaml_safe", "DEFAULT_PAIRS"]
