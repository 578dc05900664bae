"""Exchange gateway contract and its alpaca-py implementation."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Protocol

from core.runtime_flags import RuntimeFlags, get_runtime_flags


class GatewayError(RuntimeError):
    """Raised by gateways when the venue rejects or cannot take a request."""


class ExecutionGateway(Protocol):
    async def place_order(
        self, symbol: str, side: str, amount: float, *, client_order_id: Optional[str] = None
    ) -> str:
        """Place a market order worth ``amount`` quote currency; return the broker order id.

        ``client_order_id`` is forwarded to the venue so an order whose response
        never arrived can still be found there.
        """

    async def cancel_order(self, order_id: str) -> None:
        """Cancel ``order_id``; raise on failure."""


def to_venue_symbol(symbol: str) -> str:
    """``BTC_USDT`` -> ``BTC/USDT``."""

    parts = symbol.upper().split("_")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Invalid symbol format: {symbol}")
    return f"{parts[0]}/{parts[1]}"


class AlpacaGateway:
    """Thin async wrapper around the alpaca-py Trading API for crypto pairs."""

    def __init__(
        self,
        *,
        client: Optional[object] = None,
        flags: Optional[RuntimeFlags] = None,
    ) -> None:
        self._flags = flags
        self._client = client
        self._lock = asyncio.Lock()

    async def _ensure_client(self) -> Any:
        if self._client is not None:
            return self._client
        async with self._lock:
            if self._client is not None:
                return self._client
            flags = self._flags or get_runtime_flags()
            if not flags.alpaca_configured:
                raise GatewayError("alpaca credentials missing")
            # Deferred import so tests can stub without importing alpaca.
            from alpaca.trading.client import TradingClient

            self._client = TradingClient(
                flags.alpaca_key,
                flags.alpaca_secret,
                paper=flags.alpaca_paper,
                url_override=flags.alpaca_base_url,
            )
            return self._client

    @staticmethod
    async def _run_blocking(fn: Callable[[], Any]) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    async def place_order(
        self, symbol: str, side: str, amount: float, *, client_order_id: Optional[str] = None
    ) -> str:
        client = await self._ensure_client()
        from alpaca.trading.enums import OrderSide, TimeInForce
        from alpaca.trading.requests import MarketOrderRequest

        request = MarketOrderRequest(
            symbol=to_venue_symbol(symbol),
            notional=round(float(amount), 2),
            side=OrderSide.BUY if side.lower() == "buy" else OrderSide.SELL,
            time_in_force=TimeInForce.GTC,
            client_order_id=client_order_id,
        )
        resp = await self._run_blocking(lambda: client.submit_order(request))
        order_id = str(getattr(resp, "id", "") or "")
        if not order_id:
            raise GatewayError("broker returned no order id")
        return order_id

    async def cancel_order(self, order_id: str) -> None:
        client = await self._ensure_client()
        await self._run_blocking(lambda: client.cancel_order_by_id(order_id))
