"""Indodax REST client for order placement, order status and balances.

Private endpoints (``/tapi``) are form-encoded POSTs signed with HMAC-SHA512 over
the request body. Public endpoints (``/api``) need no auth and are only used for
price snapshots.
"""

import asyncio
import hashlib
import hmac
import logging
import random
import secrets
import time
from dataclasses import dataclass, field
from urllib.parse import urlencode

import aiohttp

from autotrader.config import settings
from autotrader.engine.errors import ExchangeError
from autotrader.models.enums import OrderKind, OrderSide

logger = logging.getLogger(__name__)

_last_nonce = 0


@dataclass
class OrderResult:
    success: bool
    order_id: str | None = None
    client_order_id: str | None = None
    error: str | None = None
    raw_response: dict | None = None


@dataclass
class ExchangeOrderState:
    status: str  # "filled", "partial", "cancelled" or "open"
    filled_amount: float = 0.0
    # True when filled_amount is an IDR total (orders sized by quote amount)
    in_quote: bool = False
    raw: dict = field(default_factory=dict)


@dataclass
class TickerSnapshot:
    pair: str
    last: float
    high: float
    low: float
    buy: float
    sell: float
    volume_idr: float = 0.0


def generate_nonce() -> int:
    """Strictly increasing nonce; Indodax rejects one that is not above the last."""
    global _last_nonce
    nonce = int(time.time() * 1000) * 1000 + random.randint(0, 999)
    if nonce <= _last_nonce:
        nonce = _last_nonce + 1
    _last_nonce = nonce
    return nonce


def sign(secret_key: str, payload: str) -> str:
    return hmac.new(secret_key.encode(), payload.encode(), hashlib.sha512).hexdigest()


def generate_client_order_id(prefix: str = "bot") -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def base_currency(pair: str) -> str:
    return pair.lower().split("_")[0]


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_order_state(pair: str, order: dict) -> ExchangeOrderState:
    """Interpret a ``getOrder`` payload.

    Indodax only reports open/filled/cancelled; a partial fill is an open order
    whose remaining size is below its original size.
    """
    base = base_currency(pair)
    total = 0.0
    remain = 0.0
    in_quote = False
    for unit in (base, "idr", "rp"):
        if f"order_{unit}" in order:
            total = _to_float(order.get(f"order_{unit}"))
            remain = _to_float(order.get(f"remain_{unit}"))
            in_quote = unit != base
            break

    status = (order.get("status") or "").lower()
    if not status:
        status = "filled" if str(order.get("remain_idr", "")) in ("0", "0.0") else "open"

    filled = total - remain if total > 0 and remain >= 0 else 0.0
    if status == "open" and 0 < filled < total:
        status = "partial"
    if status == "filled" and total > 0:
        filled = total
    return ExchangeOrderState(status=status, filled_amount=filled, in_quote=in_quote, raw=order)


class IndodaxClient:
    """Authenticated client for one user's Indodax account."""

    def __init__(
        self,
        api_key: str,
        secret_key: str,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.api_key = api_key
        self.secret_key = secret_key
        self.base_url = base_url or settings.indodax_private_url
        self.timeout = timeout or settings.indodax_timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Lazily open the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def _request(self, method: str, **params) -> dict:
        session = await self._ensure_session()
        body = urlencode({"method": method, "nonce": generate_nonce(), **params})
        headers = {
            "Key": self.api_key,
            "Sign": sign(self.secret_key, body),
            "Content-Type": "application/x-www-form-urlencoded",
        }
        try:
            async with session.post(self.base_url, data=body, headers=headers) as resp:
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ExchangeError(f"{method} request failed: {e}") from e

        if not isinstance(data, dict) or data.get("success") != 1:
            error = data.get("error") if isinstance(data, dict) else None
            raise ExchangeError(f"{method} rejected: {error or 'Unknown API error'}")
        return data.get("return") or {}

    async def place_order(
        self,
        pair: str,
        side: OrderSide,
        price: float,
        amount: float | None = None,
        quote_amount: float | None = None,
        kind: OrderKind = OrderKind.LIMIT,
        client_order_id: str | None = None,
    ) -> OrderResult:
        """Place an order on Indodax.

        Args:
            pair: Market, e.g. "btc_idr".
            side: BUY or SELL.
            price: Limit price in IDR (worst acceptable price for market orders).
            amount: Quantity in coin units. Required for sells and limit buys.
            quote_amount: IDR to spend; only used by market buys.
            kind: LIMIT or MARKET.
            client_order_id: Idempotency reference. Auto-generated if None.
        """
        if client_order_id is None:
            client_order_id = generate_client_order_id()

        params: dict[str, str | float] = {
            "pair": pair,
            "type": side.value.lower(),
            "price": price,
            "order_type": kind.value.lower(),
            "client_order_id": client_order_id,
        }
        base = base_currency(pair)
        if side == OrderSide.SELL:
            if not amount:
                return OrderResult(success=False, client_order_id=client_order_id,
                                   error="Sell orders need a coin amount")
            params[base] = amount
        elif kind == OrderKind.MARKET and quote_amount:
            params["idr"] = quote_amount
        elif amount:
            params[base] = amount
        elif quote_amount:
            params["idr"] = quote_amount
        else:
            return OrderResult(success=False, client_order_id=client_order_id,
                               error="Buy orders need an amount or an IDR budget")

        try:
            resp = await self._request("trade", **params)
        except ExchangeError as e:
            logger.error(f"Order rejected: {pair} {side.value} @ {price}: {e}")
            return OrderResult(success=False, client_order_id=client_order_id, error=str(e))

        order_id = resp.get("order_id")
        if order_id is None:
            logger.error(f"Order response without order_id: {resp}")
            return OrderResult(success=False, client_order_id=client_order_id,
                               error="Exchange response had no order_id", raw_response=resp)
        logger.info(
            f"Order placed: {order_id} ({pair} {side.value} {kind.value.lower()} "
            f"@ {price}, amount={amount}, idr={quote_amount})"
        )
        return OrderResult(success=True, order_id=str(order_id),
                           client_order_id=client_order_id, raw_response=resp)

    async def get_order_status(self, pair: str, order_id: str) -> ExchangeOrderState:
        resp = await self._request("getOrder", pair=pair, order_id=int(order_id))
        return parse_order_state(pair, resp.get("order") or {})

    async def cancel_order(self, pair: str, order_id: str, side: OrderSide) -> bool:
        """Cancel an order. Returns False instead of raising."""
        try:
            await self._request(
                "cancelOrder", pair=pair, order_id=int(order_id), type=side.value.lower()
            )
            return True
        except ExchangeError as e:
            logger.error(f"Cancel failed for order {order_id}: {e}")
            return False

    async def get_balance(self) -> dict[str, float]:
        """Available balance per currency (held amounts excluded)."""
        info = await self._request("getInfo")
        return {currency: _to_float(value) for currency, value in (info.get("balance") or {}).items()}

    async def close(self):
        """Close the HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


class IndodaxPublicClient:
    """Unauthenticated market data (tickers and summaries)."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.indodax_public_url).rstrip("/")
        self.timeout = timeout or settings.indodax_timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    async def _get(self, path: str):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        try:
            async with self._session.get(f"{self.base_url}/{path.lstrip('/')}") as resp:
                if resp.status != 200:
                    raise ExchangeError(f"GET {path} returned HTTP {resp.status}")
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ExchangeError(f"GET {path} failed: {e}") from e

    async def get_last_prices(self) -> dict[str, float]:
        """One snapshot of last traded price for every pair, keyed like "btc_idr"."""
        data = await self._get("summaries")
        tickers = (data or {}).get("tickers") or {}
        prices = {}
        for pair, ticker in tickers.items():
            last = _to_float(ticker.get("last"))
            if last > 0:
                prices[pair.lower()] = last
        return prices

    async def get_ticker(self, pair: str) -> TickerSnapshot:
        data = await self._get(f"ticker/{pair.lower()}")
        ticker = (data or {}).get("ticker")
        if not ticker:
            raise ExchangeError(f"No ticker for {pair}")
        return TickerSnapshot(
            pair=pair.lower(),
            last=_to_float(ticker.get("last")),
            high=_to_float(ticker.get("high")),
            low=_to_float(ticker.get("low")),
            buy=_to_float(ticker.get("buy")),
            sell=_to_float(ticker.get("sell")),
            volume_idr=_to_float(ticker.get("vol_idr")),
        )

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
