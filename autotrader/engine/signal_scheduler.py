"""Per-user signal analysis loop.

Each tick walks the users with the bot switched on. A user is analysed at most
once per ``analysis_interval_mins``; the last-analysis timestamps live in an
injected cooldown tracker so they can be shared or persisted if needed.
"""

import logging
import random
from datetime import datetime, timedelta

from autotrader.engine.errors import AutotraderError
from autotrader.engine.positions import PositionManager
from autotrader.engine.results import CycleReport, ItemResult
from autotrader.engine.signal_executor import SignalExecutor
from autotrader.engine.signals import SignalBook
from autotrader.engine.user_settings import allowed_pairs, get_user_settings, list_active_users
from autotrader.models.enums import NotificationKind, SignalAction, SignalStatus, TradingMode
from autotrader.models.user_settings import UserSettings
from autotrader.services.signal_generator import RiskContext
from autotrader.utils.constants import CYCLE_SIGNAL_ANALYSIS
from autotrader.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class InMemoryCooldownTracker:
    def __init__(self):
        self._last: dict[int, datetime] = {}

    def get(self, user_id: int) -> datetime | None:
        return self._last.get(user_id)

    def set(self, user_id: int, ts: datetime):
        self._last[user_id] = ts


class SignalScheduler:
    def __init__(
        self,
        engine,
        signals: SignalBook,
        positions: PositionManager,
        executor: SignalExecutor,
        generator,
        notifier,
        cooldown=None,
        rng: random.Random | None = None,
    ):
        self.engine = engine
        self.signals = signals
        self.positions = positions
        self.executor = executor
        self.generator = generator
        self.notifier = notifier
        self.cooldown = cooldown or InMemoryCooldownTracker()
        self.rng = rng or random.Random()

    async def run(self, now: datetime | None = None) -> CycleReport:
        report = CycleReport(CYCLE_SIGNAL_ANALYSIS)
        now = now or utcnow()
        users = list_active_users(self.engine)
        logger.info(f"[Analysis] {len(users)} active users")

        for user_settings in users:
            try:
                report.add(await self._analyse_user(user_settings, now=now))
            except Exception as e:
                logger.error(f"[Analysis] Error for user {user_settings.user_id}: {e}")
                report.add(ItemResult.error(user_settings.user_id, str(e)))
        return report

    async def evaluate(self, user_id: int, pair: str | None = None) -> ItemResult:
        """On-demand analysis: same portfolio gates, no cooldown."""
        user_settings = get_user_settings(self.engine, user_id)
        return await self._analyse_user(user_settings, pair=pair, respect_cooldown=False)

    async def _analyse_user(
        self,
        user_settings: UserSettings,
        pair: str | None = None,
        now: datetime | None = None,
        respect_cooldown: bool = True,
    ) -> ItemResult:
        user_id = user_settings.user_id
        now = now or utcnow()

        if respect_cooldown:
            last = self.cooldown.get(user_id)
            if last is not None and now - last < timedelta(minutes=user_settings.analysis_interval_mins):
                return ItemResult.skipped(user_id, "cooldown")

        pair = (pair or self.rng.choice(allowed_pairs(user_settings))).lower()

        open_count = self.positions.count_open(user_id)
        if open_count >= user_settings.max_open_positions:
            logger.info(f"[Analysis] User {user_id} at max positions ({open_count}/{user_settings.max_open_positions})")
            return ItemResult.skipped(user_id, "max open positions reached")

        if self.positions.list_open(user_id, pair):
            logger.info(f"[Analysis] User {user_id} already holds {pair}, skipping")
            return ItemResult.skipped(user_id, f"position already open for {pair}")

        context = RiskContext(
            risk_profile=user_settings.risk_profile,
            max_position_percent=user_settings.max_position_percent,
            stop_loss_percent=user_settings.stop_loss_percent,
            take_profit_percent=user_settings.take_profit_percent,
            open_positions=open_count,
            max_open_positions=user_settings.max_open_positions,
            holdings=self.positions.get_bot_holdings(user_id, pair),
        )
        # Failures propagate; no timestamp so the user is retried next tick
        rec = await self.generator.generate(pair, context)

        if rec.action == SignalAction.HOLD:
            self.cooldown.set(user_id, now)
            logger.info(f"[Analysis] {pair} HOLD for user {user_id}")
            return ItemResult.success(user_id, f"{pair} HOLD")

        if rec.confidence < user_settings.min_confidence_to_trade:
            signal = self.signals.record(user_id, pair, rec, status=SignalStatus.SKIPPED)
            self.cooldown.set(user_id, now)
            return ItemResult.skipped(
                user_id,
                f"signal {signal.id} confidence {rec.confidence:.2f} < {user_settings.min_confidence_to_trade}",
            )

        signal = self.signals.record(user_id, pair, rec)
        self.notifier.notify(
            user_id,
            NotificationKind.SIGNAL,
            f"{rec.action.value} Signal - {pair.upper()}",
            f"Confidence {rec.confidence * 100:.0f}% @ {rec.entry_price:,.0f} IDR. {rec.rationale}",
        )
        self.cooldown.set(user_id, now)

        if user_settings.trading_mode == TradingMode.AUTONOMOUS:
            try:
                await self.executor.approve(signal.id, user_id)
            except AutotraderError as e:
                logger.warning(f"[Analysis] Auto-execution of signal {signal.id} failed: {e}")
                return ItemResult.error(user_id, f"signal {signal.id} auto-execution failed: {e}")
            return ItemResult.success(user_id, f"signal {signal.id} auto-executed")

        return ItemResult.success(user_id, f"signal {signal.id} {rec.action.value} {pair}")
