"""Tests for Indodax request signing, payload parsing and order placement."""

import hashlib
import hmac
from unittest.mock import AsyncMock

import pytest

from autotrader.engine.errors import ExchangeError
from autotrader.models.enums import OrderKind, OrderSide
from autotrader.services.indodax_client import (
    IndodaxClient,
    IndodaxPublicClient,
    base_currency,
    generate_nonce,
    parse_order_state,
    sign,
)


def _client() -> IndodaxClient:
    client = IndodaxClient(api_key="key", secret_key="secret", base_url="https://mock/tapi", timeout=1)
    client._request = AsyncMock()
    return client


def test_sign_is_hmac_sha512_of_body():
    body = "method=getInfo&nonce=1"
    expected = hmac.new(b"secret", body.encode(), hashlib.sha512).hexdigest()
    assert sign("secret", body) == expected


def test_nonce_strictly_increases():
    nonces = [generate_nonce() for _ in range(50)]
    assert nonces == sorted(set(nonces))


def test_base_currency():
    assert base_currency("BTC_IDR") == "btc"


class TestParseOrderState:
    def test_filled(self):
        state = parse_order_state("btc_idr", {"status": "filled", "order_btc": "0.5", "remain_btc": "0"})
        assert state.status == "filled"
        assert state.filled_amount == 0.5

    def test_open_with_partial_fill_is_partial(self):
        state = parse_order_state("btc_idr", {"status": "open", "order_btc": "2", "remain_btc": "0.5"})
        assert state.status == "partial"
        assert state.filled_amount == pytest.approx(1.5)

    def test_untouched_open_order(self):
        state = parse_order_state("btc_idr", {"status": "open", "order_btc": "2", "remain_btc": "2"})
        assert state.status == "open"
        assert state.filled_amount == 0

    def test_idr_sized_order_reports_quote_units(self):
        state = parse_order_state("btc_idr", {"status": "filled", "order_rp": "1000", "remain_rp": "0"})
        assert state.filled_amount == 1000
        assert state.in_quote is True

    def test_cancelled(self):
        state = parse_order_state("eth_idr", {"status": "cancelled", "order_eth": "1", "remain_eth": "1"})
        assert state.status == "cancelled"


# ---------------------------------------------------------------------------
# Private API
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_place_limit_sell_sends_coin_amount():
    client = _client()
    client._request.return_value = {"order_id": 123}

    result = await client.place_order("btc_idr", OrderSide.SELL, price=100.0, amount=2, client_order_id="abc")

    assert result.success is True
    assert result.order_id == "123"
    assert result.client_order_id == "abc"
    method, params = client._request.call_args.args[0], client._request.call_args.kwargs
    assert method == "trade"
    assert params["type"] == "sell"
    assert params["order_type"] == "limit"
    assert params["btc"] == 2


@pytest.mark.asyncio
async def test_market_buy_sends_idr_budget():
    client = _client()
    client._request.return_value = {"order_id": 7}

    await client.place_order("btc_idr", OrderSide.BUY, price=100.0, quote_amount=60_000, kind=OrderKind.MARKET)

    params = client._request.call_args.kwargs
    assert params["idr"] == 60_000
    assert "btc" not in params


@pytest.mark.asyncio
async def test_sell_without_amount_fails_locally():
    client = _client()

    result = await client.place_order("btc_idr", OrderSide.SELL, price=100.0)

    assert result.success is False
    client._request.assert_not_called()


@pytest.mark.asyncio
async def test_place_order_never_raises():
    client = _client()
    client._request.side_effect = ExchangeError("trade rejected: Insufficient balance")

    result = await client.place_order("btc_idr", OrderSide.BUY, price=100.0, amount=1)

    assert result.success is False
    assert "Insufficient balance" in result.error


@pytest.mark.asyncio
async def test_cancel_failure_returns_false():
    client = _client()
    client._request.side_effect = ExchangeError("cancelOrder rejected")

    assert await client.cancel_order("btc_idr", "5", OrderSide.BUY) is False


@pytest.mark.asyncio
async def test_get_balance_parses_numbers():
    client = _client()
    client._request.return_value = {"balance": {"idr": "1500000", "btc": "0.25", "eth": None}}

    balance = await client.get_balance()

    assert balance == {"idr": 1_500_000.0, "btc": 0.25, "eth": 0.0}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_last_prices_from_summaries():
    client = IndodaxPublicClient(base_url="https://mock/api")
    client._get = AsyncMock(return_value={
        "tickers": {
            "btc_idr": {"last": "1000000000"},
            "ETH_IDR": {"last": "50000000"},
            "dead_idr": {"last": "0"},
        }
    })

    prices = await client.get_last_prices()

    assert prices == {"btc_idr": 1_000_000_000.0, "eth_idr": 50_000_000.0}


@pytest.mark.asyncio
async def test_missing_ticker_raises():
    client = IndodaxPublicClient(base_url="https://mock/api")
    client._get = AsyncMock(return_value={})

    with pytest.raises(ExchangeError):
        await client.get_ticker("btc_idr")
