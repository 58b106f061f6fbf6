"""ExchangeCredential model — encrypted Indodax API keys, one set per user."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class ExchangeCredential(SQLModel, table=True):
    __tablename__ = "exchange_credential"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(index=True, unique=True)
    api_key_encrypted: str = ""  # Fernet-encrypted
    secret_key_encrypted: str = ""  # Fernet-encrypted
    is_active: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
