"""Telegram bot for notifications and remote control of the scheduler."""

import asyncio
import logging
import threading
from typing import Optional

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import (
    Application,
    CommandHandler,
    CallbackQueryHandler,
    ContextTypes,
)

from autotrader.config import settings
from autotrader.engine.errors import AutotraderError
from autotrader.utils.constants import CYCLE_NAMES

logger = logging.getLogger(__name__)

_bot_instance: Optional["TelegramBot"] = None


class TelegramBot:
    """Telegram bot running in a background thread with its own event loop."""

    def __init__(self, token: str, chat_ids: list[int]):
        self.token = token
        self.chat_ids = set(chat_ids)
        self._app: Optional[Application] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _is_authorized(self, user_id: int) -> bool:
        return user_id in self.chat_ids

    async def _check_auth(self, update: Update) -> bool:
        if not update.effective_user or not self._is_authorized(update.effective_user.id):
            if update.message:
                await update.message.reply_text("Unauthorized.")
            return False
        return True

    async def _cmd_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        from autotrader.database import engine
        from autotrader.engine.scheduler import get_orchestrator
        from autotrader.engine.stats import get_counts

        status = get_orchestrator().status()
        counts = get_counts(engine)

        scheduler_str = "running" if status["running"] else "stopped"
        busy = ", ".join(status["in_flight"]) or "none"
        text = (
            f"Scheduler: {scheduler_str}\n"
            f"Jobs: {status['job_count']} (in flight: {busy})\n"
            f"Open positions: {counts['open_positions']}\n"
            f"Pending signals: {counts['pending_signals']}\n"
            f"Working orders: {counts['placed_orders']}"
        )
        await update.message.reply_text(text)

    async def _cmd_positions(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        from autotrader.engine.components import get_components

        positions = get_components().positions.list_open()
        if not positions:
            await update.message.reply_text("No open positions.")
            return

        lines = []
        for pos in positions:
            sl = f"{pos.stop_loss:,.0f}" if pos.stop_loss else "-"
            tp = f"{pos.take_profit:,.0f}" if pos.take_profit else "-"
            lines.append(
                f"#{pos.id} {pos.pair.upper()} (user {pos.user_id}): {pos.amount} @ {pos.entry_price:,.0f} "
                f"| SL {sl} | TP {tp}"
            )
        await update.message.reply_text("\n".join(lines))

    async def _cmd_run(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/run <cycle>: trigger one cycle on the scheduler's loop."""
        if not await self._check_auth(update):
            return

        name = context.args[0] if context.args else ""
        if name not in CYCLE_NAMES:
            await update.message.reply_text(f"Usage: /run <{'|'.join(CYCLE_NAMES)}>")
            return

        from autotrader.engine.scheduler import get_orchestrator

        orchestrator = get_orchestrator()
        try:
            report = await orchestrator.call_from_thread(orchestrator.trigger(name))
        except AutotraderError as e:
            await update.message.reply_text(f"Failed: {e}")
            return
        if report is None:
            await update.message.reply_text(f"{name}: skipped or failed, see job logs.")
        else:
            await update.message.reply_text(f"{name}: {report.summary()}")

    async def _cmd_pause(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        keyboard = InlineKeyboardMarkup([
            [
                InlineKeyboardButton("Yes, pause", callback_data="confirm_pause"),
                InlineKeyboardButton("Cancel", callback_data="cancel"),
            ]
        ])
        await update.message.reply_text(
            "Pause all cycles? Open positions will NOT be monitored.",
            reply_markup=keyboard,
        )

    async def _cmd_resume(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        from autotrader.engine.scheduler import get_orchestrator

        orchestrator = get_orchestrator()
        try:
            await orchestrator.call_from_thread(orchestrator.resume())
        except AutotraderError as e:
            await update.message.reply_text(f"Failed: {e}")
            return
        await update.message.reply_text("Scheduler resumed.")

    async def _handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        if not query or not query.from_user or not self._is_authorized(query.from_user.id):
            return

        await query.answer()

        if query.data == "cancel":
            await query.edit_message_text("Cancelled.")
            return

        if query.data == "confirm_pause":
            from autotrader.engine.scheduler import get_orchestrator

            orchestrator = get_orchestrator()
            await query.edit_message_text("Pausing, waiting for running cycles...")
            try:
                await orchestrator.call_from_thread(orchestrator.stop())
            except AutotraderError as e:
                await query.edit_message_text(f"Failed: {e}")
                return
            await query.edit_message_text("Scheduler paused. /resume to start again.")

    async def send_notification(self, message: str):
        """Send a message to all whitelisted chat IDs."""
        if not self._app or not self._app.bot:
            return
        for chat_id in self.chat_ids:
            try:
                await self._app.bot.send_message(chat_id=chat_id, text=message)
            except Exception as e:
                logger.warning(f"Failed to send Telegram notification to {chat_id}: {e}")

    def _run_bot(self):
        """Run the bot in a background thread with its own event loop."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        self._app = (
            Application.builder()
            .token(self.token)
            .build()
        )

        self._app.add_handler(CommandHandler("status", self._cmd_status))
        self._app.add_handler(CommandHandler("positions", self._cmd_positions))
        self._app.add_handler(CommandHandler("run", self._cmd_run))
        self._app.add_handler(CommandHandler("pause", self._cmd_pause))
        self._app.add_handler(CommandHandler("resume", self._cmd_resume))
        self._app.add_handler(CallbackQueryHandler(self._handle_callback))

        logger.info("Telegram bot starting...")
        self._loop.run_until_complete(self._app.initialize())
        self._loop.run_until_complete(self._app.start())
        self._loop.run_until_complete(self._app.updater.start_polling())
        self._loop.run_forever()

    def start(self):
        self._thread = threading.Thread(target=self._run_bot, daemon=True)
        self._thread.start()

    def stop(self):
        if self._loop and self._app:
            async def _shutdown():
                await self._app.updater.stop()
                await self._app.stop()
                await self._app.shutdown()

            asyncio.run_coroutine_threadsafe(_shutdown(), self._loop).result(timeout=10)
            self._loop.call_soon_threadsafe(self._loop.stop)


def init_bot() -> TelegramBot:
    """Initialize and return the bot singleton."""
    global _bot_instance
    _bot_instance = TelegramBot(
        token=settings.telegram_bot_token,
        chat_ids=settings.telegram_chat_ids,
    )
    return _bot_instance


def get_bot() -> Optional[TelegramBot]:
    """Get the bot singleton, or None if not initialized."""
    return _bot_instance
