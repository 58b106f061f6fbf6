"""UserSettings model — per-user bot configuration and risk limits."""

from datetime import datetime, timezone

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON

from autotrader.models.enums import RiskProfile, TradingMode


class UserSettings(SQLModel, table=True):
    __tablename__ = "user_settings"

    user_id: int = Field(primary_key=True)
    bot_active: bool = Field(default=False, index=True)
    trading_mode: TradingMode = TradingMode.COPILOT
    risk_profile: RiskProfile = RiskProfile.BALANCED

    # Risk & sizing
    max_open_positions: int = 3
    max_position_percent: float = 10.0  # Percentage of IDR balance per trade
    stop_loss_percent: float = 5.0
    take_profit_percent: float = 10.0
    min_confidence_to_trade: float = 0.75

    # Scheduling
    analysis_interval_mins: int = 30
    allowed_pairs: list[str] = Field(default_factory=list, sa_column=Column(JSON))  # empty → defaults

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
