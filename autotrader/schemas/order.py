"""Pydantic schemas for tracked orders."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from autotrader.models.enums import OrderKind, OrderSide, OrderStatus


class OrderCreate(BaseModel):
    pair: str
    side: OrderSide
    price: float = Field(gt=0)
    amount: float | None = Field(default=None, gt=0)
    quote_amount: float | None = Field(default=None, gt=0)  # IDR budget for market buys
    kind: OrderKind = OrderKind.LIMIT

    @field_validator("pair")
    @classmethod
    def _normalise_pair(cls, value: str) -> str:
        pair = value.strip().lower()
        if not pair.endswith("_idr"):
            raise ValueError("must be an IDR pair such as btc_idr")
        return pair

    @model_validator(mode="after")
    def _need_size(self):
        if self.amount is None and self.quote_amount is None:
            raise ValueError("amount or quote_amount is required")
        return self


class OrderRead(BaseModel):
    id: int
    exchange_order_id: str | None
    client_order_id: str | None
    pair: str
    side: OrderSide
    kind: OrderKind
    price: float
    amount: float
    cost: float
    status: OrderStatus
    filled_amount: float
    signal_id: int | None
    error: str | None
    created_at: datetime
    filled_at: datetime | None

    model_config = {"from_attributes": True}
