"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance; household announcements (new follow-up
chores) go out as Markdown messages.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, user_id: int, text: str) -> None:
        try:
            await self._bot.send_message(chat_id=user_id, text=text, parse_mode="Markdown")
        except TelegramError as exc:
            logger.error("Failed to notify chat %d: %s", user_id, exc)
            raise
