"""JobLog model — one row per orchestrated cycle run."""

from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class JobLog(SQLModel, table=True):
    __tablename__ = "job_log"

    id: int | None = Field(default=None, primary_key=True)
    cycle: str = Field(index=True)  # "position_monitor", "order_sync", "signal_analysis"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str  # "success", "partial", "error", "skipped"
    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    duration_ms: int | None = None
    message: str | None = None
