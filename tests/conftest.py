"""Shared fixtures: in-memory store, fake exchange client, recording notifier."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from autotrader.database import create_db_and_tables
from autotrader.engine.orders import OrderBook
from autotrader.engine.positions import PositionManager
from autotrader.engine.signals import SignalBook
from autotrader.services.indodax_client import TickerSnapshot
from tests.factories import make_client


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def positions(engine):
    return PositionManager(engine)


@pytest.fixture
def orders(engine):
    return OrderBook(engine)


@pytest.fixture
def signals(engine):
    return SignalBook(engine, validity_minutes=60)


@pytest.fixture
def client():
    return make_client()


@pytest.fixture
def client_factory(client):
    return lambda user_id: client


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def market():
    market = AsyncMock()
    market.get_last_prices.return_value = {}
    market.get_ticker.return_value = TickerSnapshot(
        pair="btc_idr", last=100.0, high=110.0, low=90.0, buy=99.0, sell=101.0,
    )
    return market
