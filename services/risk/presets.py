"""Risk configuration presets."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RiskPreset:
    daily_loss_limit: float
    max_position_fraction: float
    max_open_positions: int


PRESETS = {
    "safe": RiskPreset(250.0, 0.03, 3),
    "balanced": RiskPreset(500.0, 0.05, 5),
    "aggressive": RiskPreset(1_000.0, 0.10, 8),
}
