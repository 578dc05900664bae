"""Convenience exports for the risk gate."""

from .engine import RiskGate, RiskLimits, RiskVerdict
from .presets import PRESETS, RiskPreset
from .state import RiskState

__all__ = ["PRESETS", "RiskGate", "RiskLimits", "RiskPreset", "RiskState", "RiskVerdict"]
