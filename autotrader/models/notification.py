"""Notification model — user-facing events, kept as an inbox."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field

from autotrader.models.enums import NotificationKind


class Notification(SQLModel, table=True):
    __tablename__ = "notification"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    kind: NotificationKind
    title: str
    body: str
    is_read: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
