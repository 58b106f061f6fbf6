"""Per-user bot settings and exchange keys."""

import logging

from sqlmodel import Session, select

from autotrader.config import settings
from autotrader.models.credential import ExchangeCredential
from autotrader.models.user_settings import UserSettings
from autotrader.services.encryption import encrypt
from autotrader.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


def get_user_settings(engine, user_id: int) -> UserSettings:
    """Load a user's settings, creating the defaults on first access."""
    with Session(engine) as session:
        user_settings = session.get(UserSettings, user_id)
        if user_settings is None:
            user_settings = UserSettings(user_id=user_id)
            session.add(user_settings)
            session.commit()
            session.refresh(user_settings)
        return user_settings


def update_user_settings(engine, user_id: int, **values) -> UserSettings:
    get_user_settings(engine, user_id)
    with Session(engine) as session:
        user_settings = session.get(UserSettings, user_id)
        for key, value in values.items():
            setattr(user_settings, key, value)
        user_settings.updated_at = utcnow()
        session.add(user_settings)
        session.commit()
        session.refresh(user_settings)
    logger.info(f"[Settings] Updated user {user_id}: {sorted(values)}")
    return user_settings


def list_active_users(engine) -> list[UserSettings]:
    with Session(engine) as session:
        return list(session.exec(
            select(UserSettings).where(UserSettings.bot_active == True).order_by(UserSettings.user_id)
        ).all())


def allowed_pairs(user_settings: UserSettings) -> list[str]:
    return [p.lower() for p in (user_settings.allowed_pairs or settings.default_pairs)]


def save_credentials(engine, user_id: int, api_key: str, secret_key: str) -> ExchangeCredential:
    """Store (or replace) a user's Indodax keys, encrypted at rest."""
    with Session(engine) as session:
        cred = session.exec(
            select(ExchangeCredential).where(ExchangeCredential.user_id == user_id)
        ).first()
        if cred is None:
            cred = ExchangeCredential(user_id=user_id)
        cred.api_key_encrypted = encrypt(api_key)
        cred.secret_key_encrypted = encrypt(secret_key)
        cred.is_active = True
        cred.updated_at = utcnow()
        session.add(cred)
        session.commit()
        session.refresh(cred)
    logger.info(f"[Settings] Stored exchange keys for user {user_id}")
    return cred


def has_credentials(engine, user_id: int) -> bool:
    with Session(engine) as session:
        cred = session.exec(
            select(ExchangeCredential).where(
                ExchangeCredential.user_id == user_id,
                ExchangeCredential.is_active == True,
            )
        ).first()
    return cred is not None


def remove_credentials(engine, user_id: int) -> bool:
    """Delete a user's stored keys. Returns False when there were none."""
    with Session(engine) as session:
        cred = session.exec(
            select(ExchangeCredential).where(ExchangeCredential.user_id == user_id)
        ).first()
        if cred is None:
            return False
        session.delete(cred)
        session.commit()
    logger.info(f"[Settings] Removed exchange keys for user {user_id}")
    return True
