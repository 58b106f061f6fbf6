"""Tests for notification delivery and credential resolution."""

import pytest
from cryptography.fernet import Fernet
from sqlmodel import Session, select

from autotrader.engine.errors import ConfigurationError
from autotrader.engine.user_settings import has_credentials, save_credentials
from autotrader.models.credential import ExchangeCredential
from autotrader.models.enums import NotificationKind
from autotrader.models.notification import Notification
from autotrader.services import encryption
from autotrader.services.credentials import CredentialResolver
from autotrader.services.notifier import Notifier


@pytest.fixture
def fernet(monkeypatch):
    monkeypatch.setattr(encryption, "_fernet", Fernet(Fernet.generate_key()))


def test_notification_is_saved_then_sent(engine):
    sent = []
    notifier = Notifier(engine, transport=sent.append)

    notifier.notify(1, NotificationKind.TRADE, "BUY Order Filled - BTC_IDR", "Position opened")

    with Session(engine) as session:
        [saved] = session.exec(select(Notification)).all()
    assert saved.kind == NotificationKind.TRADE
    assert saved.is_read is False
    assert sent == ["[user 1] BUY Order Filled - BTC_IDR\nPosition opened"]


def test_transport_failure_is_swallowed(engine, caplog):
    def broken(message):
        raise ConnectionError("telegram down")

    Notifier(engine, transport=broken).notify(1, NotificationKind.SYSTEM, "t", "b")

    assert "telegram down" in caplog.text


def test_resolver_decrypts_stored_keys(engine, fernet):
    save_credentials(engine, 1, "api-key", "secret-key")

    client = CredentialResolver(engine)(1)

    assert client.api_key == "api-key"
    assert client.secret_key == "secret-key"
    with Session(engine) as session:
        cred = session.exec(select(ExchangeCredential)).one()
    assert cred.api_key_encrypted != "api-key"


def test_saving_again_replaces_keys(engine, fernet):
    save_credentials(engine, 1, "old", "old")
    save_credentials(engine, 1, "new", "new")

    assert CredentialResolver(engine)(1).api_key == "new"


def test_resolver_without_keys(engine):
    assert CredentialResolver(engine)(1) is None
    assert has_credentials(engine, 1) is False


def test_inactive_keys_are_ignored(engine, fernet):
    save_credentials(engine, 1, "k", "s")
    with Session(engine) as session:
        cred = session.exec(select(ExchangeCredential)).one()
        cred.is_active = False
        session.add(cred)
        session.commit()

    assert CredentialResolver(engine)(1) is None


def test_missing_encryption_key(monkeypatch):
    monkeypatch.setattr(encryption, "_fernet", None)
    monkeypatch.setattr(encryption.settings, "encryption_key", "")

    with pytest.raises(ConfigurationError):
        encryption.encrypt("secret")
