"""User-facing notifications: saved to the inbox, then pushed to Telegram.

Delivery is fire-and-forget. Nothing in here may raise into a trading workflow.
"""

import asyncio
import logging
from typing import Callable

from sqlmodel import Session

from autotrader.models.enums import NotificationKind
from autotrader.models.notification import Notification

logger = logging.getLogger(__name__)


def _send_telegram(message: str):
    """Hand the message to the Telegram bot's own loop, if the bot is running."""
    from autotrader.services.telegram_bot import get_bot

    bot = get_bot()
    if bot and bot._loop:
        asyncio.run_coroutine_threadsafe(bot.send_notification(message), bot._loop)


class Notifier:
    def __init__(self, engine, transport: Callable[[str], None] | None = None):
        self.engine = engine
        self.transport = transport or _send_telegram

    def notify(self, user_id: int, kind: NotificationKind, title: str, body: str):
        try:
            with Session(self.engine) as session:
                session.add(Notification(user_id=user_id, kind=kind, title=title, body=body))
                session.commit()
        except Exception as e:
            logger.warning(f"[Notification] Failed to save for user {user_id}: {e}")

        try:
            self.transport(f"[user {user_id}] {title}\n{body}")
        except Exception as e:
            logger.warning(f"[Notification] Failed to deliver to user {user_id}: {e}")
