"""Resolve a user's exchange client from their stored, encrypted keys."""

import logging

from sqlmodel import Session, select

from autotrader.models.credential import ExchangeCredential
from autotrader.services.encryption import decrypt
from autotrader.services.indodax_client import IndodaxClient

logger = logging.getLogger(__name__)


class CredentialResolver:
    """Callable ``user_id -> IndodaxClient | None``.

    None means the user has no active keys; callers treat that as "skip this user
    for now", not as a failure.
    """

    def __init__(self, engine):
        self.engine = engine

    def __call__(self, user_id: int) -> IndodaxClient | None:
        with Session(self.engine) as session:
            cred = session.exec(
                select(ExchangeCredential).where(
                    ExchangeCredential.user_id == user_id,
                    ExchangeCredential.is_active == True,
                )
            ).first()

        if not cred or not cred.api_key_encrypted or not cred.secret_key_encrypted:
            return None

        return IndodaxClient(
            api_key=decrypt(cred.api_key_encrypted),
            secret_key=decrypt(cred.secret_key_encrypted),
        )
