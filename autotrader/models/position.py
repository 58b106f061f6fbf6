"""Position model — a holding the bot itself bought, tracked until it is sold."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field

from autotrader.models.enums import CloseReason, PositionStatus


class Position(SQLModel, table=True):
    __tablename__ = "position"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    pair: str = Field(index=True)  # e.g. "btc_idr"
    amount: float  # coin units
    entry_price: float
    cost: float  # IDR spent, amount * entry_price
    stop_loss: float | None = None
    take_profit: float | None = None
    status: PositionStatus = Field(default=PositionStatus.OPEN, index=True)
    signal_id: int | None = Field(default=None, foreign_key="signal.id")
    entry_order_id: int | None = Field(default=None, foreign_key="tracked_order.id", unique=True)

    # Exit fields, written once by close
    exit_price: float | None = None
    exit_amount: float | None = None
    pnl: float | None = None
    pnl_percent: float | None = None
    close_reason: CloseReason | None = None
    exit_order_id: str | None = None  # exchange order id of the SELL
    closed_at: datetime | None = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
