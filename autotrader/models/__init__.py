"""Database models."""

from autotrader.models.position import Position
from autotrader.models.order import TrackedOrder
from autotrader.models.signal import Signal
from autotrader.models.user_settings import UserSettings
from autotrader.models.credential import ExchangeCredential
from autotrader.models.notification import Notification
from autotrader.models.job_log import JobLog

__all__ = [
    "Position",
    "TrackedOrder",
    "Signal",
    "UserSettings",
    "ExchangeCredential",
    "Notification",
    "JobLog",
]
