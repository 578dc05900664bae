"""Estimated trade P&L used in place of real fill prices.

Both heuristics are simplifications for simulation: a flat 0.5% result per
executed trade and a flat 1% worst case per proposed trade. Swapping in
fill-price-derived numbers only touches this module.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Union

from services.strategy.types import Action, Decision

if TYPE_CHECKING:
    from services.execution.types import Order

ESTIMATED_RETURN_FRACTION = 0.005
ESTIMATED_LOSS_FRACTION = 0.01


def estimate_profit_loss(decision: Union[Decision, "Order"]) -> float:
    """Signed P&L booked for an executed decision or order: positive for BUY, negative for SELL."""

    if decision.action is Action.BUY:
        return decision.amount * ESTIMATED_RETURN_FRACTION
    if decision.action is Action.SELL:
        return -decision.amount * ESTIMATED_RETURN_FRACTION
    return 0.0


def estimate_potential_loss(decision: Decision) -> float:
    """Worst-case loss the risk gate reserves against the daily budget."""

    return decision.amount * ESTIMATED_LOSS_FRACTION
