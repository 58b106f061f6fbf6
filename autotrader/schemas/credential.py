"""Pydantic schemas for exchange credentials."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class CredentialUpdate(BaseModel):
    api_key: str = Field(min_length=1)  # Raw Indodax key; encrypted before storage
    secret_key: str = Field(min_length=1)

    @field_validator("api_key", "secret_key")
    @classmethod
    def _strip_key(cls, value: str) -> str:
        key = value.strip()
        if not key:
            raise ValueError("must not be empty")
        return key


class CredentialRead(BaseModel):
    user_id: int
    is_active: bool
    updated_at: datetime
    # keys are NEVER exposed

    model_config = {"from_attributes": True}
