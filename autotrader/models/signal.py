"""Signal model — an AI trade recommendation awaiting (or past) approval."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field

from autotrader.models.enums import SignalAction, SignalStatus


class Signal(SQLModel, table=True):
    __tablename__ = "signal"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    pair: str = Field(index=True)
    action: SignalAction  # never HOLD once persisted
    confidence: float  # 0..1
    entry_price: float
    target_price: float
    stop_loss: float
    size_percent: float  # suggested share of IDR balance
    rationale: str = ""
    status: SignalStatus = Field(default=SignalStatus.PENDING, index=True)
    valid_until: datetime
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
