"""Turning approved signals (and manual requests) into exchange orders.

Approval is the same path whether a user taps "approve" or the bot runs in
AUTONOMOUS mode: claim the signal PENDING → APPROVED, place the order, and hand
the signal back to PENDING if the exchange says no.
"""

import logging
import math
from dataclasses import dataclass

from autotrader.config import settings
from autotrader.engine.errors import (
    AutotraderError,
    ConfigurationError,
    InvalidStateError,
)
from autotrader.engine.orders import OrderBook
from autotrader.engine.positions import PositionManager
from autotrader.engine.signals import SignalBook
from autotrader.engine.user_settings import get_user_settings
from autotrader.models.enums import (
    CloseReason,
    NotificationKind,
    OrderKind,
    OrderSide,
    SignalAction,
    SignalStatus,
)
from autotrader.models.order import TrackedOrder
from autotrader.models.position import Position
from autotrader.models.signal import Signal

logger = logging.getLogger(__name__)


@dataclass
class ApprovalResult:
    signal: Signal
    order: TrackedOrder
    position: Position | None = None  # set for SELLs, which close immediately


class SignalExecutor:
    def __init__(
        self,
        signals: SignalBook,
        positions: PositionManager,
        orders: OrderBook,
        client_factory,
        market,
        notifier,
        min_order_idr: float | None = None,
    ):
        self.signals = signals
        self.positions = positions
        self.orders = orders
        self.client_factory = client_factory
        self.market = market
        self.notifier = notifier
        self.min_order_idr = min_order_idr if min_order_idr is not None else settings.min_order_idr

    def _client(self, user_id: int):
        client = self.client_factory(user_id)
        if client is None:
            raise ConfigurationError(f"User {user_id} has no active exchange keys")
        return client

    async def approve(self, signal_id: int, user_id: int) -> ApprovalResult:
        signal = self.signals.get(signal_id, user_id=user_id)
        if signal.status == SignalStatus.EXPIRED:
            raise InvalidStateError(f"Signal {signal_id} has expired")
        if signal.status != SignalStatus.PENDING:
            raise InvalidStateError(f"Signal {signal_id} is already {signal.status.value}")

        if signal.action == SignalAction.SELL and self.positions.get_bot_holdings(user_id, signal.pair) <= 0:
            # Never sell coins the user bought outside the bot
            raise InvalidStateError(f"Bot holds no {signal.pair.upper()} to sell")

        client = self._client(user_id)

        if not self.signals.transition(signal.id, SignalStatus.PENDING, SignalStatus.APPROVED):
            await client.close()
            raise InvalidStateError(f"Signal {signal_id} was handled concurrently")

        try:
            if signal.action == SignalAction.BUY:
                result = await self._execute_buy(client, signal)
            else:
                result = await self._execute_sell(client, signal)
        except AutotraderError:
            # No-op once the signal reached EXECUTED (an order is live)
            self.signals.transition(signal.id, SignalStatus.APPROVED, SignalStatus.PENDING)
            raise
        finally:
            await client.close()

        logger.info(f"[Signal] Signal {signal.id} approved: {signal.action.value} {signal.pair}")
        return result

    async def _execute_buy(self, client, signal: Signal) -> ApprovalResult:
        user_settings = get_user_settings(self.signals.engine, signal.user_id)
        balance = await client.get_balance()
        idr_balance = balance.get("idr", 0.0)

        size_percent = min(signal.size_percent, user_settings.max_position_percent)
        budget = idr_balance * size_percent / 100
        if budget < self.min_order_idr:
            raise InvalidStateError(
                f"Order budget {budget:,.0f} IDR is below the {self.min_order_idr:,.0f} IDR minimum"
            )

        amount = math.floor(budget / signal.entry_price)
        if amount < 1:
            raise InvalidStateError(
                f"Budget {budget:,.0f} IDR buys less than one unit at {signal.entry_price:,.0f}"
            )

        order = await self.orders.submit(
            client,
            user_id=signal.user_id,
            pair=signal.pair,
            side=OrderSide.BUY,
            price=signal.entry_price,
            amount=amount,
            kind=OrderKind.LIMIT,
            signal_id=signal.id,
            stop_loss=signal.stop_loss,
            take_profit=signal.target_price,
        )
        self.notifier.notify(
            signal.user_id,
            NotificationKind.TRADE,
            f"BUY Order Placed - {signal.pair.upper()}",
            f"{amount} units @ {signal.entry_price:,.0f} IDR, waiting for fill.",
        )
        # Stays APPROVED until order sync sees the fill
        return ApprovalResult(signal=self.signals.get(signal.id), order=order)

    async def _execute_sell(self, client, signal: Signal) -> ApprovalResult:
        candidate = self.positions.pick_exit_candidate(signal.user_id, signal.pair)
        if candidate is None:
            raise InvalidStateError(f"No open {signal.pair.upper()} position to sell")

        sell_amount = math.floor(candidate.amount)
        if sell_amount < 1:
            raise InvalidStateError(f"Position {candidate.id} holds less than one unit")

        order = await self.orders.submit(
            client,
            user_id=signal.user_id,
            pair=signal.pair,
            side=OrderSide.SELL,
            price=signal.entry_price,
            amount=sell_amount,
            kind=OrderKind.LIMIT,
            signal_id=signal.id,
        )
        # The SELL is live from here on; the signal must not go back to PENDING
        self.signals.transition(signal.id, SignalStatus.APPROVED, SignalStatus.EXECUTED)
        try:
            position = self.positions.close(
                candidate.id,
                exit_price=signal.entry_price,
                reason=CloseReason.SIGNAL,
                exit_order_id=order.exchange_order_id,
            )
        except InvalidStateError as e:
            logger.error(
                f"[Signal] SELL order {order.id} ({order.exchange_order_id}) placed for signal "
                f"{signal.id} but position {candidate.id} could not be closed: {e}"
            )
            raise InvalidStateError(
                f"SELL order {order.id} was placed but position {candidate.id} "
                f"was already closed: {e}"
            ) from e
        self.notifier.notify(
            signal.user_id,
            NotificationKind.TRADE,
            f"SELL Order Placed - {signal.pair.upper()}",
            f"Position closed @ {signal.entry_price:,.0f} IDR. P&L: {position.pnl:,.2f} IDR",
        )
        return ApprovalResult(signal=self.signals.get(signal.id), order=order, position=position)

    def reject(self, signal_id: int, user_id: int) -> Signal:
        signal = self.signals.get(signal_id, user_id=user_id)
        if signal.status != SignalStatus.PENDING:
            raise InvalidStateError(f"Signal {signal_id} is already {signal.status.value}")
        if not self.signals.transition(signal.id, SignalStatus.PENDING, SignalStatus.REJECTED):
            raise InvalidStateError(f"Signal {signal_id} was handled concurrently")
        logger.info(f"[Signal] Signal {signal_id} rejected by user {user_id}")
        return self.signals.get(signal_id)

    async def close_position_manually(self, position_id: int, user_id: int) -> Position:
        """Sell a bot position at the current last price."""
        position = self.positions.get(position_id)
        if position.user_id != user_id:
            raise InvalidStateError(f"Position {position_id} belongs to another user")

        sell_amount = math.floor(position.amount)
        if sell_amount < 1:
            raise InvalidStateError(f"Position {position_id} holds less than one unit")

        ticker = await self.market.get_ticker(position.pair)
        client = self._client(user_id)
        try:
            order = await self.orders.submit(
                client,
                user_id=user_id,
                pair=position.pair,
                side=OrderSide.SELL,
                price=ticker.last,
                amount=sell_amount,
                kind=OrderKind.LIMIT,
                signal_id=position.signal_id,
            )
        finally:
            await client.close()

        try:
            closed = self.positions.close(
                position.id,
                exit_price=ticker.last,
                reason=CloseReason.MANUAL,
                exit_order_id=order.exchange_order_id,
            )
        except InvalidStateError as e:
            raise InvalidStateError(f"SELL order {order.id} was placed but {e}") from e
        self.notifier.notify(
            user_id,
            NotificationKind.TRADE,
            f"Position Closed - {position.pair.upper()}",
            f"Closed manually @ {ticker.last:,.0f} IDR. P&L: {closed.pnl:,.2f} IDR",
        )
        return closed

    async def place_manual_order(
        self,
        user_id: int,
        pair: str,
        side: OrderSide,
        price: float,
        amount: float | None = None,
        quote_amount: float | None = None,
        kind: OrderKind = OrderKind.LIMIT,
    ) -> TrackedOrder:
        """A user-initiated order. SELLs are capped at what the bot holds."""
        if side == OrderSide.SELL:
            holdings = self.positions.get_bot_holdings(user_id, pair)
            if not amount or amount > holdings:
                raise InvalidStateError(
                    f"Cannot sell {amount} {pair.upper()}; the bot holds {holdings}"
                )

        client = self._client(user_id)
        try:
            return await self.orders.submit(
                client,
                user_id=user_id,
                pair=pair,
                side=side,
                price=price,
                amount=amount,
                quote_amount=quote_amount,
                kind=kind,
            )
        finally:
            await client.close()

    async def get_balance(self, user_id: int) -> dict[str, float]:
        client = self._client(user_id)
        try:
            return await client.get_balance()
        finally:
            await client.close()
