"""Tests for signal approval, rejection and manual trading actions."""

from datetime import timedelta

import pytest
from sqlmodel import Session

from autotrader.engine.errors import ConfigurationError, ExchangeError, InvalidStateError, NotFoundError
from autotrader.engine.signal_executor import SignalExecutor
from autotrader.engine.user_settings import update_user_settings
from autotrader.models.enums import (
    CloseReason,
    OrderSide,
    OrderStatus,
    PositionStatus,
    SignalAction,
    SignalStatus,
)
from autotrader.models.signal import Signal
from autotrader.services.indodax_client import OrderResult
from autotrader.utils.timeutils import utcnow
from tests.factories import recommendation


@pytest.fixture
def executor(signals, positions, orders, client_factory, market, notifier):
    return SignalExecutor(signals, positions, orders, client_factory, market, notifier, min_order_idr=50_000)


def _expire(engine, signal_id):
    with Session(engine) as session:
        signal = session.get(Signal, signal_id)
        signal.valid_until = utcnow() - timedelta(minutes=1)
        session.add(signal)
        session.commit()


def _open(positions, amount=2.0, entry_price=100.0):
    return positions.open(user_id=1, pair="btc_idr", amount=amount, entry_price=entry_price,
                          cost=amount * entry_price)


# ---------------------------------------------------------------------------
# 1. BUY approval
# ---------------------------------------------------------------------------

class TestApproveBuy:
    @pytest.mark.asyncio
    async def test_places_tracked_order_sized_from_balance(self, executor, signals, client):
        # 10,000,000 IDR * 10% = 1,000,000 IDR -> 3 units at 300,000
        signal = signals.record(1, "btc_idr", recommendation(size_percent=15.0))

        result = await executor.approve(signal.id, 1)

        assert result.order.status == OrderStatus.PLACED
        assert result.order.amount == 3
        assert result.order.side == OrderSide.BUY
        assert result.order.stop_loss == 285_000.0
        assert result.order.take_profit == 330_000.0
        assert result.order.signal_id == signal.id
        # Executed only once order sync sees the fill
        assert result.signal.status == SignalStatus.APPROVED
        assert result.position is None
        client.close.assert_awaited()

    @pytest.mark.asyncio
    async def test_user_max_position_percent_caps_size(self, executor, engine, signals, client):
        update_user_settings(engine, 1, max_position_percent=5.0)
        signal = signals.record(1, "btc_idr", recommendation(size_percent=15.0))

        result = await executor.approve(signal.id, 1)

        assert result.order.amount == 1  # 500,000 IDR at 300,000

    @pytest.mark.asyncio
    async def test_budget_below_minimum_reverts_to_pending(self, executor, signals, client):
        client.get_balance.return_value = {"idr": 100_000.0}
        signal = signals.record(1, "btc_idr", recommendation())

        with pytest.raises(InvalidStateError, match="minimum"):
            await executor.approve(signal.id, 1)

        assert signals.get(signal.id).status == SignalStatus.PENDING
        client.place_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_less_than_one_unit_is_refused(self, executor, signals, client):
        signal = signals.record(1, "btc_idr", recommendation(entry_price=2_000_000_000.0))

        with pytest.raises(InvalidStateError, match="less than one unit"):
            await executor.approve(signal.id, 1)
        assert signals.get(signal.id).status == SignalStatus.PENDING

    @pytest.mark.asyncio
    async def test_exchange_rejection_reverts_to_pending(self, executor, signals, orders, client):
        client.place_order.side_effect = None
        client.place_order.return_value = OrderResult(success=False, error="Insufficient balance")
        signal = signals.record(1, "btc_idr", recommendation())

        with pytest.raises(ExchangeError):
            await executor.approve(signal.id, 1)

        assert signals.get(signal.id).status == SignalStatus.PENDING
        [order] = orders.list_orders(user_id=1)
        assert order.status == OrderStatus.FAILED


# ---------------------------------------------------------------------------
# 2. SELL approval
# ---------------------------------------------------------------------------

class TestApproveSell:
    @pytest.mark.asyncio
    async def test_sell_without_bot_holdings_is_refused(self, executor, signals, client):
        signal = signals.record(1, "btc_idr", recommendation(action=SignalAction.SELL))

        with pytest.raises(InvalidStateError, match="holds no"):
            await executor.approve(signal.id, 1)

        assert signals.get(signal.id).status == SignalStatus.PENDING
        client.place_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_sell_closes_oldest_position(self, executor, signals, positions, client):
        oldest = _open(positions, amount=2.6, entry_price=100.0)
        newer = _open(positions, amount=5.0, entry_price=100.0)
        signal = signals.record(1, "btc_idr", recommendation(action=SignalAction.SELL, entry_price=120.0))

        result = await executor.approve(signal.id, 1)

        assert result.position.id == oldest.id
        assert result.position.status == PositionStatus.CLOSED
        assert result.position.close_reason == CloseReason.SIGNAL
        assert result.position.exit_price == 120.0
        assert result.signal.status == SignalStatus.EXECUTED
        assert client.place_order.call_args.kwargs["amount"] == 2
        assert positions.get(newer.id).status == PositionStatus.OPEN

    @pytest.mark.asyncio
    async def test_position_closed_during_sell_keeps_signal_executed(
        self, executor, signals, positions, orders, client
    ):
        position = _open(positions)
        signal = signals.record(1, "btc_idr", recommendation(action=SignalAction.SELL, entry_price=120.0))

        async def place_while_monitor_closes(**kwargs):
            positions.close(position.id, exit_price=90.0, reason=CloseReason.STOP_LOSS)
            return OrderResult(success=True, order_id="5555")

        client.place_order.side_effect = place_while_monitor_closes

        with pytest.raises(InvalidStateError, match="was placed"):
            await executor.approve(signal.id, 1)

        assert signals.get(signal.id).status == SignalStatus.EXECUTED
        [sell] = orders.list_orders(user_id=1)
        assert (sell.status, sell.exchange_order_id) == (OrderStatus.PLACED, "5555")
        assert positions.get(position.id).close_reason == CloseReason.STOP_LOSS

        with pytest.raises(InvalidStateError):
            await executor.approve(signal.id, 1)
        assert client.place_order.call_count == 1


# ---------------------------------------------------------------------------
# 3. Approval guards
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_expired_signal_cannot_be_approved(executor, engine, signals, client):
    signal = signals.record(1, "btc_idr", recommendation())
    _expire(engine, signal.id)

    with pytest.raises(InvalidStateError, match="expired"):
        await executor.approve(signal.id, 1)

    assert signals.get(signal.id).status == SignalStatus.EXPIRED
    client.place_order.assert_not_called()


@pytest.mark.asyncio
async def test_signal_is_approved_at_most_once(executor, signals):
    signal = signals.record(1, "btc_idr", recommendation())
    await executor.approve(signal.id, 1)

    with pytest.raises(InvalidStateError):
        await executor.approve(signal.id, 1)


@pytest.mark.asyncio
async def test_other_users_signal_is_not_found(executor, signals):
    signal = signals.record(2, "btc_idr", recommendation())
    with pytest.raises(NotFoundError):
        await executor.approve(signal.id, 1)


@pytest.mark.asyncio
async def test_approve_without_credentials(signals, positions, orders, market, notifier):
    executor = SignalExecutor(signals, positions, orders, lambda user_id: None, market, notifier)
    signal = signals.record(1, "btc_idr", recommendation())

    with pytest.raises(ConfigurationError):
        await executor.approve(signal.id, 1)
    assert signals.get(signal.id).status == SignalStatus.PENDING


def test_reject(executor, signals):
    signal = signals.record(1, "btc_idr", recommendation())

    assert executor.reject(signal.id, 1).status == SignalStatus.REJECTED
    with pytest.raises(InvalidStateError):
        executor.reject(signal.id, 1)


def test_pending_list_expires_stale_signals(engine, signals):
    fresh = signals.record(1, "btc_idr", recommendation())
    stale = signals.record(1, "eth_idr", recommendation())
    _expire(engine, stale.id)

    assert [s.id for s in signals.list_pending(1)] == [fresh.id]
    assert signals.get(stale.id).status == SignalStatus.EXPIRED


def test_hold_cannot_be_recorded(signals):
    with pytest.raises(InvalidStateError):
        signals.record(1, "btc_idr", recommendation(action=SignalAction.HOLD))


# ---------------------------------------------------------------------------
# 4. Manual actions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_manual_close_sells_at_last_price(executor, positions, client, market):
    position = _open(positions, amount=2.0, entry_price=80.0)

    closed = await executor.close_position_manually(position.id, 1)

    assert closed.status == PositionStatus.CLOSED
    assert closed.close_reason == CloseReason.MANUAL
    assert closed.exit_price == 100.0  # ticker.last
    assert closed.pnl == pytest.approx(40.0)
    market.get_ticker.assert_awaited_once_with("btc_idr")


@pytest.mark.asyncio
async def test_manual_sell_capped_at_bot_holdings(executor, positions, client):
    _open(positions, amount=2.0)

    with pytest.raises(InvalidStateError):
        await executor.place_manual_order(1, "btc_idr", OrderSide.SELL, price=100.0, amount=3.0)
    client.place_order.assert_not_called()

    order = await executor.place_manual_order(1, "btc_idr", OrderSide.SELL, price=100.0, amount=2.0)
    assert order.status == OrderStatus.PLACED
