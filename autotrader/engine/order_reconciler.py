"""Order sync — advance local tracked orders to match Indodax.

Every PLACED/PARTIAL order is polled. When a BUY turns FILLED the position is
created here, and only here, so unfilled orders never show up as holdings.

Ordering matters for crash safety: the position is created before the order's
status is written. If the process dies in between, the order is still PLACED
locally, the next cycle sees FILLED again, and the existence check on
``entry_order_id`` turns the replay into a no-op.
"""

import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from autotrader.engine.errors import InvalidStateError
from autotrader.engine.orders import OrderBook
from autotrader.engine.positions import PositionManager
from autotrader.engine.results import CycleReport, ItemResult
from autotrader.models.enums import (
    ORDER_STATUS_RANK,
    NotificationKind,
    OrderSide,
    OrderStatus,
    SignalStatus,
)
from autotrader.models.order import TrackedOrder
from autotrader.models.signal import Signal
from autotrader.services.indodax_client import ExchangeOrderState
from autotrader.utils.constants import CYCLE_ORDER_SYNC
from autotrader.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

_STATUS_MAP = {
    "filled": OrderStatus.FILLED,
    "partial": OrderStatus.PARTIAL,
    "cancelled": OrderStatus.CANCELLED,
}


def map_exchange_status(exchange_status: str | None) -> OrderStatus:
    """Exchange vocabulary → local status; anything unrecognised is still PLACED."""
    return _STATUS_MAP.get((exchange_status or "").lower(), OrderStatus.PLACED)


def filled_base_amount(order: TrackedOrder, state: ExchangeOrderState) -> float:
    """Filled size in coin units.

    Orders sized in IDR (market BUYs by quote amount) are stored with ``amount``
    0 and report their fill as an IDR total, so both are converted at the order
    price.
    """
    if state.filled_amount > 0 and not state.in_quote:
        return state.filled_amount
    if state.status.lower() == "filled" and order.amount > 0:
        return order.amount
    idr = state.filled_amount
    if not idr and state.status.lower() == "filled":
        idr = order.cost
    return idr / order.price if order.price > 0 else 0.0


class OrderReconciler:
    def __init__(self, orders: OrderBook, positions: PositionManager, client_factory, notifier):
        self.orders = orders
        self.positions = positions
        self.client_factory = client_factory
        self.notifier = notifier

    async def run(self) -> CycleReport:
        report = CycleReport(CYCLE_ORDER_SYNC)
        working = self.orders.list_working()
        if not working:
            logger.debug("[OrderSync] No pending orders to sync")
            return report

        logger.info(f"[OrderSync] Found {len(working)} pending orders")
        for order in working:
            try:
                report.add(await self.reconcile(order))
            except Exception as e:
                logger.error(f"[OrderSync] Error syncing order {order.id}: {e}")
                report.add(ItemResult.error(order.id, str(e)))
        return report

    async def reconcile(self, order: TrackedOrder) -> ItemResult:
        client = self.client_factory(order.user_id)
        if client is None:
            logger.warning(f"[OrderSync] No exchange keys for user {order.user_id}, skipping order {order.id}")
            return ItemResult.skipped(order.id, "no exchange credentials")

        try:
            state = await client.get_order_status(order.pair, order.exchange_order_id)
        finally:
            await client.close()

        new_status = map_exchange_status(state.status)
        if new_status == order.status:
            return ItemResult.skipped(order.id, "unchanged")
        if ORDER_STATUS_RANK[new_status] < ORDER_STATUS_RANK[order.status]:
            # e.g. exchange says "open" for an order we already saw partially filled
            return ItemResult.skipped(order.id, f"ignoring {order.status.value} -> {new_status.value}")

        logger.info(f"[OrderSync] Order {order.id}: {order.status.value} -> {new_status.value}")

        filled = filled_base_amount(order, state)
        position_error = None
        if new_status == OrderStatus.FILLED and order.side == OrderSide.BUY:
            try:
                self._open_position_once(order, filled)
            except InvalidStateError as e:
                # status still advances; the missing position needs an operator
                logger.error(f"[OrderSync] Order {order.id} filled but no position was opened: {e}")
                position_error = str(e)

        values = {"filled_amount": filled or order.filled_amount}
        if new_status == OrderStatus.FILLED:
            values["filled_at"] = utcnow()
        if not self.orders.transition(order.id, order.status, new_status, **values):
            return ItemResult.skipped(order.id, "already advanced by another cycle")

        if position_error:
            return ItemResult.error(order.id, f"{new_status.value} without position: {position_error}")
        return ItemResult.success(order.id, new_status.value)

    def _open_position_once(self, order: TrackedOrder, amount: float):
        if self.positions.find_by_entry_order(order.id) is not None:
            logger.info(f"[OrderSync] Position for order {order.id} already exists")
            return

        logger.info(f"[OrderSync] Creating position for filled BUY: {order.pair}")
        try:
            self.positions.open(
                user_id=order.user_id,
                pair=order.pair,
                amount=amount,
                entry_price=order.price,
                cost=order.cost or amount * order.price,
                signal_id=order.signal_id,
                stop_loss=order.stop_loss,
                take_profit=order.take_profit,
                entry_order_id=order.id,
            )
        except IntegrityError:
            # Unique index on entry_order_id: a concurrent cycle won the race
            logger.info(f"[OrderSync] Position for order {order.id} created concurrently")
            return

        if order.signal_id:
            self._mark_signal_executed(order.signal_id)

        self.notifier.notify(
            order.user_id,
            NotificationKind.TRADE,
            f"BUY Order Filled - {order.pair.upper()}",
            f"Position opened at {order.price:,.0f} IDR ({amount} units).",
        )

    def _mark_signal_executed(self, signal_id: int):
        stmt = (
            update(Signal)
            .where(
                Signal.id == signal_id,
                Signal.status.in_([SignalStatus.PENDING, SignalStatus.APPROVED]),  # type: ignore[attr-defined]
            )
            .values(status=SignalStatus.EXECUTED, updated_at=utcnow())
        )
        with self.orders.engine.begin() as conn:
            conn.execute(stmt)
