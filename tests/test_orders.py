"""Tests for tracked order placement and status transitions."""

import pytest

from autotrader.engine.errors import ExchangeError, InvalidStateError, NotFoundError
from autotrader.models.enums import OrderSide, OrderStatus
from autotrader.services.indodax_client import OrderResult
from tests.factories import placed_order


@pytest.mark.asyncio
async def test_submit_records_placed_order(orders, client):
    order = await orders.submit(
        client, user_id=1, pair="BTC_IDR", side=OrderSide.BUY, price=100.0, amount=3,
        stop_loss=95.0, take_profit=110.0,
    )

    assert order.status == OrderStatus.PLACED
    assert order.exchange_order_id == "1001"
    assert order.pair == "btc_idr"
    assert order.cost == pytest.approx(300.0)
    assert order.placed_at is not None
    call_kwargs = client.place_order.call_args.kwargs
    assert call_kwargs["client_order_id"] == order.client_order_id
    assert call_kwargs["amount"] == 3


@pytest.mark.asyncio
async def test_submit_rejected_keeps_failed_record(orders, client):
    client.place_order.side_effect = None
    client.place_order.return_value = OrderResult(success=False, error="Insufficient balance")

    with pytest.raises(ExchangeError, match="Insufficient balance"):
        await orders.submit(client, user_id=1, pair="btc_idr", side=OrderSide.BUY, price=100.0, amount=1)

    [order] = orders.list_orders(user_id=1)
    assert order.status == OrderStatus.FAILED
    assert order.error == "Insufficient balance"
    assert order.exchange_order_id is None


class TestTransition:
    def test_conditional_on_expected_status(self, orders):
        order = placed_order(orders)

        assert orders.transition(order.id, OrderStatus.PLACED, OrderStatus.PARTIAL, filled_amount=1.0)
        # A second caller still holding the PLACED view loses
        assert not orders.transition(order.id, OrderStatus.PLACED, OrderStatus.FILLED)
        assert orders.get(order.id).status == OrderStatus.PARTIAL

    def test_backwards_move_refused(self, orders):
        order = placed_order(orders)
        with pytest.raises(InvalidStateError):
            orders.transition(order.id, OrderStatus.PARTIAL, OrderStatus.PLACED)

    @pytest.mark.parametrize("terminal", [OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.FAILED])
    def test_terminal_status_never_revisited(self, orders, terminal):
        order = placed_order(orders)
        with pytest.raises(InvalidStateError):
            orders.transition(order.id, terminal, OrderStatus.PLACED)

    def test_working_orders_exclude_pending_and_terminal(self, orders):
        working = placed_order(orders, exchange_order_id="1")
        filled = placed_order(orders, exchange_order_id="2")
        orders.transition(filled.id, OrderStatus.PLACED, OrderStatus.FILLED)
        orders.create_pending(user_id=1, pair="btc_idr", side=OrderSide.BUY, price=1.0)

        assert [o.id for o in orders.list_working()] == [working.id]


@pytest.mark.asyncio
async def test_cancel_order(orders, client):
    order = placed_order(orders)

    cancelled = await orders.cancel(client, order.id, user_id=1)

    assert cancelled.status == OrderStatus.CANCELLED
    client.cancel_order.assert_awaited_once_with("btc_idr", "9001", OrderSide.BUY)


@pytest.mark.asyncio
async def test_cancel_refused_by_exchange(orders, client):
    order = placed_order(orders)
    client.cancel_order.return_value = False

    with pytest.raises(ExchangeError):
        await orders.cancel(client, order.id, user_id=1)
    assert orders.get(order.id).status == OrderStatus.PLACED


@pytest.mark.asyncio
async def test_cancel_other_users_order(orders, client):
    order = placed_order(orders, user_id=2)
    with pytest.raises(NotFoundError):
        await orders.cancel(client, order.id, user_id=1)
