"""Position lifecycle: open, close, and what the bot is allowed to sell.

The bot only ever sells coins it bought itself. ``get_bot_holdings`` is the hard
ceiling for any SELL; the user's wider exchange balance is never touched.
"""

import logging

from sqlalchemy import update
from sqlmodel import Session, select, func

from autotrader.engine.errors import InvalidStateError, NotFoundError
from autotrader.models.enums import CloseReason, PositionStatus
from autotrader.models.position import Position
from autotrader.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class PositionManager:
    def __init__(self, engine):
        self.engine = engine

    def open(
        self,
        user_id: int,
        pair: str,
        amount: float,
        entry_price: float,
        cost: float,
        signal_id: int | None = None,
        stop_loss: float | None = None,
        take_profit: float | None = None,
        entry_order_id: int | None = None,
    ) -> Position:
        if amount <= 0:
            raise InvalidStateError(f"Cannot open a position with amount {amount}")

        position = Position(
            user_id=user_id,
            pair=pair.lower(),
            amount=amount,
            entry_price=entry_price,
            cost=cost,
            signal_id=signal_id,
            stop_loss=stop_loss or None,
            take_profit=take_profit or None,
            entry_order_id=entry_order_id,
        )
        with Session(self.engine) as session:
            session.add(position)
            session.commit()
            session.refresh(position)

        logger.info(f"[Position] Opened position {position.id} for {position.pair}: {amount} @ {entry_price}")
        return position

    def close(
        self,
        position_id: int,
        exit_price: float,
        exit_amount: float | None = None,
        reason: CloseReason = CloseReason.MANUAL,
        exit_order_id: str | None = None,
    ) -> Position:
        """Close (or partially close) an OPEN position and record realized P&L.

        The write is conditional on the row still being OPEN, so two overlapping
        callers can never both close the same position.
        """
        position = self.get(position_id)
        if position.status != PositionStatus.OPEN:
            raise InvalidStateError(f"Position {position_id} is already {position.status.value}")

        amount = exit_amount if exit_amount is not None else position.amount
        if amount <= 0 or amount > position.amount:
            raise InvalidStateError(
                f"Exit amount {amount} is outside (0, {position.amount}] for position {position_id}"
            )

        pnl = amount * (exit_price - position.entry_price)
        pnl_percent = (exit_price - position.entry_price) / position.entry_price * 100
        status = PositionStatus.PARTIALLY_CLOSED if amount < position.amount else PositionStatus.CLOSED
        now = utcnow()

        stmt = (
            update(Position)
            .where(Position.id == position_id, Position.status == PositionStatus.OPEN)
            .values(
                status=status,
                exit_price=exit_price,
                exit_amount=amount,
                pnl=pnl,
                pnl_percent=pnl_percent,
                close_reason=reason,
                exit_order_id=exit_order_id,
                closed_at=now,
                updated_at=now,
            )
        )
        with self.engine.begin() as conn:
            matched = conn.execute(stmt).rowcount

        if matched == 0:
            raise InvalidStateError(f"Position {position_id} was closed concurrently")

        logger.info(
            f"[Position] Closed position {position_id}: {reason.value}, "
            f"P&L: {pnl:.2f} IDR ({pnl_percent:.2f}%)"
        )
        return self.get(position_id)

    def get(self, position_id: int) -> Position:
        with Session(self.engine) as session:
            position = session.get(Position, position_id)
        if position is None:
            raise NotFoundError(f"Position not found: {position_id}")
        return position

    def find_by_entry_order(self, entry_order_id: int) -> Position | None:
        with Session(self.engine) as session:
            return session.exec(
                select(Position).where(Position.entry_order_id == entry_order_id)
            ).first()

    def list_open(self, user_id: int | None = None, pair: str | None = None) -> list[Position]:
        """OPEN positions, oldest first."""
        stmt = select(Position).where(Position.status == PositionStatus.OPEN)
        if user_id is not None:
            stmt = stmt.where(Position.user_id == user_id)
        if pair is not None:
            stmt = stmt.where(Position.pair == pair.lower())
        stmt = stmt.order_by(Position.created_at, Position.id)
        with Session(self.engine) as session:
            return list(session.exec(stmt).all())

    def count_open(self, user_id: int) -> int:
        with Session(self.engine) as session:
            return session.exec(
                select(func.count()).select_from(Position).where(
                    Position.user_id == user_id,
                    Position.status == PositionStatus.OPEN,
                )
            ).one()

    def get_bot_holdings(self, user_id: int, pair: str) -> float:
        """Total coins the bot bought and still holds for this pair."""
        return sum(p.amount for p in self.list_open(user_id, pair))

    def pick_exit_candidate(self, user_id: int, pair: str) -> Position | None:
        """Oldest OPEN position for the pair (FIFO)."""
        positions = self.list_open(user_id, pair)
        return positions[0] if positions else None

    def summary(self, user_id: int) -> dict:
        open_positions = self.list_open(user_id)
        with Session(self.engine) as session:
            closed = list(session.exec(
                select(Position)
                .where(Position.user_id == user_id, Position.status == PositionStatus.CLOSED)
                .order_by(Position.closed_at.desc())  # type: ignore[union-attr]
                .limit(50)
            ).all())

        wins = sum(1 for p in closed if (p.pnl or 0) > 0)
        losses = sum(1 for p in closed if (p.pnl or 0) < 0)
        return {
            "open_positions": open_positions,
            "closed_positions": closed,
            "total_open_cost": round(sum(p.cost for p in open_positions), 2),
            "total_pnl": round(sum(p.pnl or 0 for p in closed), 2),
            "win_count": wins,
            "loss_count": losses,
            "win_rate": round(wins / len(closed) * 100, 1) if closed else 0.0,
        }
