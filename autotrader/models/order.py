"""TrackedOrder model — local mirror of one order submitted to the exchange."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field

from autotrader.models.enums import OrderKind, OrderSide, OrderStatus


class TrackedOrder(SQLModel, table=True):
    __tablename__ = "tracked_order"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    exchange_order_id: str | None = Field(default=None, index=True)  # set once the exchange accepts it
    client_order_id: str | None = None
    pair: str = Field(index=True)
    side: OrderSide
    kind: OrderKind = OrderKind.LIMIT
    price: float
    amount: float = 0.0  # coin units requested
    cost: float = 0.0  # IDR
    status: OrderStatus = Field(default=OrderStatus.PENDING, index=True)
    signal_id: int | None = Field(default=None, foreign_key="signal.id")

    # Risk parameters carried over to the position once the BUY fills
    stop_loss: float | None = None
    take_profit: float | None = None

    filled_amount: float = 0.0
    error: str | None = None
    placed_at: datetime | None = None
    filled_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
