"""Pydantic schemas for positions."""

from datetime import datetime

from pydantic import BaseModel

from autotrader.models.enums import CloseReason, PositionStatus


class PositionRead(BaseModel):
    id: int
    pair: str
    amount: float
    entry_price: float
    cost: float
    stop_loss: float | None
    take_profit: float | None
    status: PositionStatus
    signal_id: int | None
    entry_order_id: int | None
    exit_price: float | None
    exit_amount: float | None
    pnl: float | None
    pnl_percent: float | None
    close_reason: CloseReason | None
    created_at: datetime
    closed_at: datetime | None

    model_config = {"from_attributes": True}


class PositionSummary(BaseModel):
    open_positions: list[PositionRead]
    closed_positions: list[PositionRead]
    total_open_cost: float
    total_pnl: float
    win_count: int
    loss_count: int
    win_rate: float
