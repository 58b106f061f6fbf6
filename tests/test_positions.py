"""Tests for position open/close, P&L and bot holdings."""

import pytest
from sqlalchemy.exc import IntegrityError

from autotrader.engine.errors import InvalidStateError, NotFoundError
from autotrader.engine.positions import PositionManager
from autotrader.models.enums import CloseReason, PositionStatus
from tests.factories import placed_order


def _open(positions, user_id=1, pair="btc_idr", amount=2.0, entry_price=100.0, **kwargs):
    return positions.open(
        user_id=user_id, pair=pair, amount=amount, entry_price=entry_price,
        cost=amount * entry_price, **kwargs,
    )


# ---------------------------------------------------------------------------
# 1. Open
# ---------------------------------------------------------------------------

class TestOpen:
    def test_open_lowercases_pair(self, positions):
        position = _open(positions, pair="BTC_IDR")
        assert position.pair == "btc_idr"
        assert position.status == PositionStatus.OPEN

    @pytest.mark.parametrize("amount", [0, -1.5])
    def test_open_rejects_non_positive_amount(self, positions, amount):
        with pytest.raises(InvalidStateError):
            _open(positions, amount=amount)

    def test_entry_order_can_back_only_one_position(self, positions, orders):
        order = placed_order(orders)
        _open(positions, entry_order_id=order.id)
        with pytest.raises(IntegrityError):
            _open(positions, entry_order_id=order.id)


# ---------------------------------------------------------------------------
# 2. Close
# ---------------------------------------------------------------------------

class TestClose:
    def test_full_close_realizes_pnl(self, positions):
        position = _open(positions, amount=2.0, entry_price=100.0)

        closed = positions.close(position.id, exit_price=110.0, reason=CloseReason.TAKE_PROFIT)

        assert closed.status == PositionStatus.CLOSED
        assert closed.pnl == pytest.approx(20.0)
        assert closed.pnl_percent == pytest.approx(10.0)
        assert closed.exit_amount == 2.0
        assert closed.close_reason == CloseReason.TAKE_PROFIT
        assert closed.closed_at is not None

    def test_partial_close(self, positions):
        position = _open(positions, amount=2.0, entry_price=100.0)

        closed = positions.close(position.id, exit_price=90.0, exit_amount=1.0)

        assert closed.status == PositionStatus.PARTIALLY_CLOSED
        assert closed.pnl == pytest.approx(-10.0)
        assert closed.pnl_percent == pytest.approx(-10.0)
        assert positions.list_open() == []

    def test_second_close_is_refused_and_leaves_exit_fields_alone(self, positions):
        position = _open(positions)
        first = positions.close(position.id, exit_price=110.0, reason=CloseReason.STOP_LOSS)

        with pytest.raises(InvalidStateError):
            positions.close(position.id, exit_price=50.0, reason=CloseReason.MANUAL)

        after = positions.get(position.id)
        assert after.exit_price == first.exit_price == 110.0
        assert after.pnl == first.pnl
        assert after.close_reason == CloseReason.STOP_LOSS

    def test_overlapping_closes_from_stale_views_only_one_wins(self, positions, engine, monkeypatch):
        position = _open(positions)
        stale = positions.get(position.id)  # both callers saw OPEN
        PositionManager(engine).close(position.id, exit_price=110.0, reason=CloseReason.TAKE_PROFIT)

        monkeypatch.setattr(positions, "get", lambda position_id: stale)
        with pytest.raises(InvalidStateError, match="closed concurrently"):
            positions.close(position.id, exit_price=50.0, reason=CloseReason.STOP_LOSS)
        monkeypatch.undo()

        after = positions.get(position.id)
        assert after.status == PositionStatus.CLOSED
        assert after.exit_price == 110.0
        assert after.pnl == pytest.approx(20.0)
        assert after.close_reason == CloseReason.TAKE_PROFIT

    @pytest.mark.parametrize("exit_amount", [0, -1, 2.5])
    def test_exit_amount_out_of_range(self, positions, exit_amount):
        position = _open(positions, amount=2.0)
        with pytest.raises(InvalidStateError):
            positions.close(position.id, exit_price=110.0, exit_amount=exit_amount)
        assert positions.get(position.id).status == PositionStatus.OPEN

    def test_close_unknown_position(self, positions):
        with pytest.raises(NotFoundError):
            positions.close(999, exit_price=1.0)


# ---------------------------------------------------------------------------
# 3. Holdings and exit candidates
# ---------------------------------------------------------------------------

class TestHoldings:
    def test_holdings_count_only_open_positions_for_the_pair(self, positions):
        _open(positions, amount=2.0)
        _open(positions, amount=3.0)
        closed = _open(positions, amount=5.0)
        positions.close(closed.id, exit_price=100.0)
        _open(positions, pair="eth_idr", amount=7.0)
        _open(positions, user_id=2, amount=11.0)

        assert positions.get_bot_holdings(1, "btc_idr") == pytest.approx(5.0)
        assert positions.get_bot_holdings(1, "doge_idr") == 0

    def test_exit_candidate_is_oldest(self, positions):
        first = _open(positions, amount=1.0)
        _open(positions, amount=2.0)

        assert positions.pick_exit_candidate(1, "btc_idr").id == first.id
        assert positions.pick_exit_candidate(1, "eth_idr") is None

    def test_count_open(self, positions):
        _open(positions)
        _open(positions, pair="eth_idr")
        assert positions.count_open(1) == 2
        assert positions.count_open(2) == 0


def test_summary_win_rate(positions):
    win = _open(positions, entry_price=100.0)
    loss = _open(positions, entry_price=100.0)
    _open(positions, entry_price=100.0)
    positions.close(win.id, exit_price=120.0)
    positions.close(loss.id, exit_price=90.0)

    summary = positions.summary(1)

    assert len(summary["open_positions"]) == 1
    assert len(summary["closed_positions"]) == 2
    assert summary["total_pnl"] == pytest.approx(20.0)
    assert summary["win_count"] == 1
    assert summary["loss_count"] == 1
    assert summary["win_rate"] == 50.0
    assert summary["total_open_cost"] == pytest.approx(200.0)
