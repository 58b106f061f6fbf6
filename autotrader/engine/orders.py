"""Tracked orders: the local record of everything we send to the exchange.

Every order is written PENDING before the exchange call so a crash mid-call leaves
a trace. Status only moves forward; each write is conditional on the status the
caller last observed.
"""

import logging

from sqlalchemy import update
from sqlmodel import Session, select

from autotrader.engine.errors import ExchangeError, InvalidStateError, NotFoundError
from autotrader.models.enums import (
    ORDER_STATUS_RANK,
    TERMINAL_ORDER_STATUSES,
    OrderKind,
    OrderSide,
    OrderStatus,
)
from autotrader.models.order import TrackedOrder
from autotrader.services.indodax_client import generate_client_order_id
from autotrader.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class OrderBook:
    def __init__(self, engine):
        self.engine = engine

    def get(self, order_id: int, user_id: int | None = None) -> TrackedOrder:
        with Session(self.engine) as session:
            order = session.get(TrackedOrder, order_id)
        if order is None or (user_id is not None and order.user_id != user_id):
            raise NotFoundError(f"Order not found: {order_id}")
        return order

    def list_orders(
        self,
        user_id: int | None = None,
        status: OrderStatus | None = None,
        pair: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TrackedOrder]:
        stmt = select(TrackedOrder).order_by(TrackedOrder.created_at.desc())  # type: ignore[attr-defined]
        if user_id is not None:
            stmt = stmt.where(TrackedOrder.user_id == user_id)
        if status is not None:
            stmt = stmt.where(TrackedOrder.status == status)
        if pair is not None:
            stmt = stmt.where(TrackedOrder.pair == pair.lower())
        with Session(self.engine) as session:
            return list(session.exec(stmt.offset(offset).limit(limit)).all())

    def list_working(self) -> list[TrackedOrder]:
        """PLACED/PARTIAL orders the exchange has acknowledged."""
        with Session(self.engine) as session:
            return list(session.exec(
                select(TrackedOrder).where(
                    TrackedOrder.status.in_([OrderStatus.PLACED, OrderStatus.PARTIAL]),  # type: ignore[attr-defined]
                    TrackedOrder.exchange_order_id != None,  # noqa: E711
                ).order_by(TrackedOrder.id)
            ).all())

    def create_pending(
        self,
        user_id: int,
        pair: str,
        side: OrderSide,
        price: float,
        amount: float = 0.0,
        cost: float = 0.0,
        kind: OrderKind = OrderKind.LIMIT,
        signal_id: int | None = None,
        stop_loss: float | None = None,
        take_profit: float | None = None,
        client_order_id: str | None = None,
    ) -> TrackedOrder:
        order = TrackedOrder(
            user_id=user_id,
            pair=pair.lower(),
            side=side,
            kind=kind,
            price=price,
            amount=amount,
            cost=cost,
            signal_id=signal_id,
            stop_loss=stop_loss,
            take_profit=take_profit,
            client_order_id=client_order_id or generate_client_order_id(side.value.lower()),
        )
        with Session(self.engine) as session:
            session.add(order)
            session.commit()
            session.refresh(order)
        return order

    def transition(self, order_id: int, expected: OrderStatus, new: OrderStatus, **values) -> bool:
        """Move ``expected`` → ``new`` if the row is still at ``expected``.

        Returns False when someone else got there first. Backwards or
        out-of-terminal moves are refused outright.
        """
        if expected in TERMINAL_ORDER_STATUSES:
            raise InvalidStateError(f"Order {order_id} is already {expected.value}")
        if ORDER_STATUS_RANK[new] < ORDER_STATUS_RANK[expected]:
            raise InvalidStateError(f"Order {order_id}: {expected.value} -> {new.value} goes backwards")

        stmt = (
            update(TrackedOrder)
            .where(TrackedOrder.id == order_id, TrackedOrder.status == expected)
            .values(status=new, updated_at=utcnow(), **values)
        )
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount > 0

    def mark_placed(self, order: TrackedOrder, exchange_order_id: str) -> TrackedOrder:
        self.transition(
            order.id, OrderStatus.PENDING, OrderStatus.PLACED,
            exchange_order_id=exchange_order_id, placed_at=utcnow(),
        )
        return self.get(order.id)

    def mark_failed(self, order: TrackedOrder, error: str | None) -> TrackedOrder:
        self.transition(order.id, OrderStatus.PENDING, OrderStatus.FAILED, error=error)
        return self.get(order.id)

    async def submit(
        self,
        client,
        user_id: int,
        pair: str,
        side: OrderSide,
        price: float,
        amount: float | None = None,
        quote_amount: float | None = None,
        kind: OrderKind = OrderKind.LIMIT,
        signal_id: int | None = None,
        stop_loss: float | None = None,
        take_profit: float | None = None,
    ) -> TrackedOrder:
        """Record PENDING, place on the exchange, then PLACED or FAILED.

        Raises ExchangeError when the exchange refuses the order; the FAILED
        record stays behind for the audit trail.
        """
        cost = quote_amount if quote_amount else (amount or 0.0) * price
        order = self.create_pending(
            user_id=user_id,
            pair=pair,
            side=side,
            price=price,
            amount=amount or 0.0,
            cost=cost,
            kind=kind,
            signal_id=signal_id,
            stop_loss=stop_loss,
            take_profit=take_profit,
        )

        result = await client.place_order(
            pair=order.pair,
            side=side,
            price=price,
            amount=amount,
            quote_amount=quote_amount,
            kind=kind,
            client_order_id=order.client_order_id,
        )
        if not result.success:
            self.mark_failed(order, result.error)
            raise ExchangeError(f"{side.value} {order.pair} rejected: {result.error}")

        return self.mark_placed(order, result.order_id)

    async def cancel(self, client, order_id: int, user_id: int) -> TrackedOrder:
        order = self.get(order_id, user_id=user_id)
        if order.status in TERMINAL_ORDER_STATUSES:
            raise InvalidStateError(f"Order {order_id} is already {order.status.value}")

        if order.exchange_order_id:
            cancelled = await client.cancel_order(order.pair, order.exchange_order_id, order.side)
            if not cancelled:
                raise ExchangeError(f"Exchange refused to cancel order {order_id}")

        if not self.transition(order.id, order.status, OrderStatus.CANCELLED):
            raise InvalidStateError(f"Order {order_id} changed while cancelling")
        logger.info(f"[Orders] Cancelled order {order_id} ({order.pair})")
        return self.get(order_id)
