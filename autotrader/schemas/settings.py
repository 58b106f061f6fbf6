"""Pydantic schemas for per-user bot settings."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from autotrader.models.enums import RiskProfile, TradingMode


class UserSettingsRead(BaseModel):
    user_id: int
    bot_active: bool
    trading_mode: TradingMode
    risk_profile: RiskProfile
    max_open_positions: int
    max_position_percent: float
    stop_loss_percent: float
    take_profit_percent: float
    min_confidence_to_trade: float
    analysis_interval_mins: int
    allowed_pairs: list[str]
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserSettingsUpdate(BaseModel):
    bot_active: bool | None = None
    trading_mode: TradingMode | None = None
    risk_profile: RiskProfile | None = None
    max_open_positions: int | None = Field(default=None, ge=1, le=20)
    max_position_percent: float | None = Field(default=None, gt=0, le=100)
    stop_loss_percent: float | None = Field(default=None, gt=0, le=50)
    take_profit_percent: float | None = Field(default=None, gt=0, le=500)
    min_confidence_to_trade: float | None = Field(default=None, ge=0, le=1)
    analysis_interval_mins: int | None = Field(default=None, ge=1, le=1440)
    allowed_pairs: list[str] | None = None

    @field_validator("allowed_pairs")
    @classmethod
    def _normalise_pairs(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        pairs = [p.strip().lower() for p in value if p.strip()]
        for pair in pairs:
            if not pair.endswith("_idr"):
                raise ValueError(f"{pair} is not an IDR pair")
        return pairs
