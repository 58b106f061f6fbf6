"""Aggregate counts for dashboards and the Telegram /status command."""

from sqlmodel import Session, select, func

from autotrader.models.enums import OrderStatus, PositionStatus, SignalAction, SignalStatus
from autotrader.models.order import TrackedOrder
from autotrader.models.position import Position
from autotrader.models.signal import Signal


def get_counts(engine, user_id: int | None = None) -> dict:
    """Open positions, pending signals and orders still working on the exchange."""
    def _count(model, *conditions):
        stmt = select(func.count()).select_from(model).where(*conditions)
        if user_id is not None:
            stmt = stmt.where(model.user_id == user_id)
        return session.exec(stmt).one()

    with Session(engine) as session:
        return {
            "open_positions": _count(Position, Position.status == PositionStatus.OPEN),
            "pending_signals": _count(Signal, Signal.status == SignalStatus.PENDING),
            "placed_orders": _count(
                TrackedOrder,
                TrackedOrder.status.in_([OrderStatus.PLACED, OrderStatus.PARTIAL]),  # type: ignore[attr-defined]
            ),
        }


def get_signal_stats(engine, user_id: int) -> dict:
    """Signal counts by status and action, plus P&L of positions opened from signals."""
    with Session(engine) as session:
        rows = session.exec(
            select(Signal.status, Signal.action, func.count())
            .where(Signal.user_id == user_id)
            .group_by(Signal.status, Signal.action)
        ).all()
        closed = list(session.exec(
            select(Position.pnl).where(
                Position.user_id == user_id,
                Position.signal_id != None,  # noqa: E711
                Position.status != PositionStatus.OPEN,
            )
        ).all())

    breakdown = [
        {"status": SignalStatus(status).value, "action": SignalAction(action).value, "count": count}
        for status, action, count in rows
    ]
    profitable = sum(1 for pnl in closed if (pnl or 0) > 0)
    return {
        "signal_breakdown": breakdown,
        "trades": {
            "total": len(closed),
            "total_pnl": sum(pnl or 0 for pnl in closed),
            "profitable": profitable,
            "win_rate": round(profitable / len(closed) * 100, 1) if closed else None,
        },
    }
