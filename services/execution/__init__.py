"""Order dispatch to simulated and live venues."""

from .adapter_alpaca import AlpacaGateway, ExecutionGateway, GatewayError
from .engine import ExecutionDispatcher
from .types import Order, OrderStatus

__all__ = [
    "AlpacaGateway",
    "ExecutionDispatcher",
    "ExecutionGateway",
    "GatewayError",
    "Order",
    "OrderStatus",
]
