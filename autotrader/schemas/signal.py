"""Pydantic schemas for signals."""

from datetime import datetime

from pydantic import BaseModel

from autotrader.models.enums import SignalAction, SignalStatus
from autotrader.schemas.order import OrderRead
from autotrader.schemas.position import PositionRead


class SignalRead(BaseModel):
    id: int
    pair: str
    action: SignalAction
    confidence: float
    entry_price: float
    target_price: float
    stop_loss: float
    size_percent: float
    rationale: str
    status: SignalStatus
    valid_until: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class GenerateSignalRequest(BaseModel):
    pair: str | None = None  # None: pick from the user's allowed pairs


class ApprovalRead(BaseModel):
    signal: SignalRead
    order: OrderRead
    position: PositionRead | None = None

    model_config = {"from_attributes": True}
