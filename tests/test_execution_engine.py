from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from services.execution import ExecutionDispatcher, OrderStatus
from services.execution.adapter_alpaca import GatewayError, to_venue_symbol
from services.strategy.types import Action, Decision
from tests.fakes.fake_gateway import FakeGateway

NOW = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)


def _decision(action: Action = Action.BUY, amount: float = 200.0, symbol: str = "BTC_USDT") -> Decision:
    return Decision(symbol, action, 0.0 if action is Action.HOLD else amount, 0.75, "test", NOW)


def test_paper_mode_simulates_fill() -> None:
    dispatcher = ExecutionDispatcher(paper_trading=True, clock=lambda: NOW)
    order = asyncio.run(dispatcher.execute(_decision(), last_price=61_000.0))
    assert order.status is OrderStatus.EXECUTED
    assert order.order_id.startswith("SIM-")
    assert order.is_simulated
    assert order.amount == 200.0
    assert order.execution_price == 61_000.0
    assert order.created_at == order.executed_at == NOW
    assert dispatcher.executed_order_count() == 1


def test_paper_mode_without_price_records_zero() -> None:
    dispatcher = ExecutionDispatcher()
    order = asyncio.run(dispatcher.execute(_decision(Action.SELL)))
    assert order.execution_price == 0.0
    assert order.action is Action.SELL


def test_hold_is_skipped_without_gateway_call() -> None:
    gateway = FakeGateway()
    dispatcher = ExecutionDispatcher(paper_trading=False, gateway=gateway)
    order = asyncio.run(dispatcher.execute(_decision(Action.HOLD)))
    assert order.status is OrderStatus.PENDING
    assert order.order_id.startswith("SKIPPED-")
    assert order.amount == 0.0
    assert gateway.placed == []
    assert dispatcher.executed_order_count() == 0


def test_order_ids_are_unique_within_a_millisecond() -> None:
    dispatcher = ExecutionDispatcher()

    async def _burst():
        return [await dispatcher.execute(_decision(symbol=f"S{i}_USDT")) for i in range(20)]

    orders = asyncio.run(_burst())
    assert len({order.order_id for order in orders}) == 20
    assert dispatcher.executed_order_count() == 20


def test_live_mode_uses_gateway_id() -> None:
    gateway = FakeGateway()
    dispatcher = ExecutionDispatcher(paper_trading=False, gateway=gateway)
    order = asyncio.run(dispatcher.execute(_decision(Action.SELL, amount=150.0), last_price=10.0))
    assert gateway.placed == [("BTC_USDT", "sell", 150.0)]
    assert order.order_id == "broker-1"
    assert order.status is OrderStatus.EXECUTED
    assert not order.is_simulated
    assert order.client_order_id == gateway.client_order_ids[0]
    assert order.client_order_id.startswith("pt-")
    assert dispatcher.executed_order_count() == 1


def test_live_gateway_error_becomes_failed_order() -> None:
    gateway = FakeGateway(fail_with=GatewayError("insufficient balance"))
    dispatcher = ExecutionDispatcher(paper_trading=False, gateway=gateway)
    order = asyncio.run(dispatcher.execute(_decision()))
    assert order.status is OrderStatus.FAILED
    assert order.order_id.startswith("FAILED-")
    assert (order.error_message or "").startswith("insufficient balance")
    assert f"client_order_id={gateway.client_order_ids[0]}" in (order.error_message or "")
    assert not order.counts_as_trade
    assert dispatcher.executed_order_count() == 0


def test_live_gateway_timeout_becomes_failed_order() -> None:
    gateway = FakeGateway(delay=0.5)
    dispatcher = ExecutionDispatcher(paper_trading=False, gateway=gateway, timeout_sec=0.01)
    order = asyncio.run(dispatcher.execute(_decision()))
    assert order.status is OrderStatus.FAILED
    assert "timeout" in (order.error_message or "")


def test_timed_out_order_keeps_client_order_id_for_reconciliation() -> None:
    gateway = FakeGateway(delay=0.5)
    dispatcher = ExecutionDispatcher(paper_trading=False, gateway=gateway, timeout_sec=0.01)
    order = asyncio.run(dispatcher.execute(_decision()))
    sent = gateway.client_order_ids[0]
    assert sent is not None
    assert order.client_order_id == sent
    assert f"client_order_id={sent}" in (order.error_message or "")
    assert order.to_dict()["client_order_id"] == sent
    assert dispatcher.executed_order_count() == 0


def test_each_live_order_gets_its_own_client_order_id() -> None:
    gateway = FakeGateway()
    dispatcher = ExecutionDispatcher(paper_trading=False, gateway=gateway)

    async def _two():
        await dispatcher.execute(_decision())
        await dispatcher.execute(_decision(Action.SELL))

    asyncio.run(_two())
    assert len(set(gateway.client_order_ids)) == 2
    assert dispatcher.executed_order_count() == 2


def test_live_without_gateway_fails_cleanly() -> None:
    dispatcher = ExecutionDispatcher(paper_trading=False, gateway=None)
    order = asyncio.run(dispatcher.execute(_decision()))
    assert order.status is OrderStatus.FAILED
    assert "gateway" in (order.error_message or "")


@pytest.mark.asyncio
async def test_cancel_paths() -> None:
    paper = ExecutionDispatcher()
    assert await paper.cancel("SIM-1") is True

    gateway = FakeGateway()
    live = ExecutionDispatcher(paper_trading=False, gateway=gateway)
    assert await live.cancel("broker-7") is True
    assert gateway.cancels == ["broker-7"]

    gateway.cancel_fails = True
    assert await live.cancel("broker-8") is False


def test_cancelled_copy_keeps_original() -> None:
    order = asyncio.run(ExecutionDispatcher().execute(_decision()))
    cancelled = order.cancelled()
    assert cancelled.status is OrderStatus.CANCELLED
    assert cancelled.order_id == order.order_id
    assert order.status is OrderStatus.EXECUTED


def test_order_to_dict_is_json_friendly() -> None:
    order = asyncio.run(ExecutionDispatcher(clock=lambda: NOW).execute(_decision()))
    payload = order.to_dict()
    assert payload["action"] == "BUY"
    assert payload["status"] == "EXECUTED"
    assert payload["created_at"] == NOW.isoformat()
    assert payload["error_message"] is None
    assert payload["client_order_id"] is None
    assert payload["simulated"] is True


@pytest.mark.parametrize(
    "symbol, expected",
    [("BTC_USDT", "BTC/USDT"), ("eth_usdt", "ETH/USDT")],
)
def test_to_venue_symbol(symbol: str, expected: str) -> None:
    assert to_venue_symbol(symbol) == expected


@pytest.mark.parametrize("symbol", ["BTCUSDT", "BTC_", "A_B_C"])
def test_to_venue_symbol_rejects_bad_format(symbol: str) -> None:
    with pytest.raises(ValueError):
        to_venue_symbol(symbol)
