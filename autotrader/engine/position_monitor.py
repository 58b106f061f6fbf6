"""Stop-loss / take-profit monitor.

One market snapshot per cycle, then every OPEN position across all users is
checked against it. A triggered position is sold and closed; a position whose
sell fails stays OPEN and is simply looked at again next cycle.
"""

import logging
import math

from autotrader.engine.errors import ExchangeError, InvalidStateError
from autotrader.engine.orders import OrderBook
from autotrader.engine.positions import PositionManager
from autotrader.engine.results import CycleReport, ItemResult
from autotrader.models.enums import CloseReason, NotificationKind, OrderKind, OrderSide
from autotrader.models.position import Position
from autotrader.utils.constants import CYCLE_POSITION_MONITOR

logger = logging.getLogger(__name__)


def evaluate_exit(position: Position, current_price: float) -> CloseReason | None:
    """Stop-loss is checked first, so it wins if both thresholds are crossed."""
    if position.stop_loss and current_price <= position.stop_loss:
        return CloseReason.STOP_LOSS
    if position.take_profit and current_price >= position.take_profit:
        return CloseReason.TAKE_PROFIT
    return None


class PositionMonitor:
    def __init__(self, positions: PositionManager, orders: OrderBook, market, client_factory, notifier):
        self.positions = positions
        self.orders = orders
        self.market = market
        self.client_factory = client_factory
        self.notifier = notifier

    async def run(self) -> CycleReport:
        report = CycleReport(CYCLE_POSITION_MONITOR)

        # A failed snapshot aborts the whole cycle; never act on stale prices
        prices = await self.market.get_last_prices()
        open_positions = self.positions.list_open()
        logger.info(f"[PositionMonitor] Checking {len(open_positions)} open positions")

        for position in open_positions:
            report.add(await self._check_position(position, prices))
        return report

    async def _check_position(self, position: Position, prices: dict[str, float]) -> ItemResult:
        current_price = prices.get(position.pair.lower())
        if current_price is None:
            return ItemResult.skipped(position.id, f"no price for {position.pair}")

        pnl_percent = (current_price - position.entry_price) / position.entry_price * 100
        logger.debug(
            f"[PositionMonitor] {position.pair.upper()} | current={current_price} | PnL={pnl_percent:.2f}%"
        )

        reason = evaluate_exit(position, current_price)
        if reason is None:
            return ItemResult.skipped(position.id, "no exit condition")

        logger.info(f"[PositionMonitor] {reason.value} triggered for position {position.id} @ {current_price}")
        try:
            return await self._exit_position(position, current_price, reason)
        except Exception as e:
            logger.error(f"[PositionMonitor] Failed to exit position {position.id}: {e}")
            return ItemResult.error(position.id, str(e))

    async def _exit_position(self, position: Position, price: float, reason: CloseReason) -> ItemResult:
        client = self.client_factory(position.user_id)
        if client is None:
            logger.warning(f"[PositionMonitor] No exchange keys for user {position.user_id}, skipping")
            return ItemResult.skipped(position.id, "no exchange credentials")

        # Indodax only accepts whole coin units here
        sell_amount = math.floor(position.amount)
        if sell_amount < 1:
            logger.warning(f"[PositionMonitor] Position {position.id} holds {position.amount}, below one unit")
            await client.close()
            return ItemResult.skipped(position.id, "amount below one unit")

        try:
            order = await self.orders.submit(
                client,
                user_id=position.user_id,
                pair=position.pair,
                side=OrderSide.SELL,
                price=price,
                amount=sell_amount,
                kind=OrderKind.LIMIT,
                signal_id=position.signal_id,
            )
        except ExchangeError as e:
            logger.error(f"[PositionMonitor] SELL failed for position {position.id}: {e}")
            return ItemResult.error(position.id, str(e))
        finally:
            await client.close()

        try:
            closed = self.positions.close(
                position.id,
                exit_price=price,
                reason=reason,
                exit_order_id=order.exchange_order_id,
            )
        except InvalidStateError as e:
            message = (
                f"SELL order {order.id} (exchange {order.exchange_order_id}) placed "
                f"but position was not closed: {e}"
            )
            logger.error(f"[PositionMonitor] Position {position.id}: {message}")
            return ItemResult.error(position.id, message)
        self.notifier.notify(
            position.user_id,
            NotificationKind.TRADE,
            f"{reason.value.replace('_', ' ')} - {position.pair.upper()}",
            f"Position closed @ {price:,.0f} IDR. P&L: {closed.pnl:,.2f} IDR ({closed.pnl_percent:.2f}%)",
        )
        return ItemResult.success(position.id, f"{reason.value} @ {price}")
