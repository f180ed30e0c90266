"""
Logging setup and Telegram alerts.

`TelegramAlertHandler` forwards WARNING+ records to the alert chats through a
separate bot. Configure it with:

- TELEGRAM_BOT_ALERT: token of the alert bot.
- TELEGRAM_ALERT_CHAT_ID: comma separated chat ids, e.g. "123456789,-1001234567890".

Without a token or chat ids the handler is a no-op.
"""
import asyncio
import logging
from typing import List, Optional, Set

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from expense_tracker.config import Settings, settings as default_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_ALERT_LENGTH = 3500


class TelegramAlertHandler(logging.Handler):
    """Sends WARNING+ log records to Telegram through the alert bot."""

    def __init__(self, level: int = logging.WARNING, settings: Optional[Settings] = None) -> None:
        super().__init__(level=level)
        settings = settings or default_settings
        self._token: Optional[str] = settings.TELEGRAM_BOT_ALERT
        self._chat_ids: List[int] = settings.alert_chat_ids
        self._bot: Optional[Bot] = None
        self._tasks: Set[asyncio.Task] = set()

        if self._token and self._chat_ids:
            self._bot = Bot(token=self._token)

    @property
    def enabled(self) -> bool:
        return self._bot is not None

    def emit(self, record: logging.LogRecord) -> None:
        if self._bot is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # logged outside the event loop (startup/shutdown): nothing to send with
            return
        try:
            msg = self.format(record)
        except Exception:
            self.handleError(record)
            return
        task = loop.create_task(self._send(msg[:MAX_ALERT_LENGTH]))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, text: str) -> None:
        assert self._bot is not None
        for chat_id in self._chat_ids:
            try:
                await self._bot.send_message(chat_id=chat_id, text=f"🚨 Alert:\n{text}")
            except TelegramAPIError:
                continue

    async def close_bot(self) -> None:
        if self._bot is not None:
            await self._bot.session.close()


def setup_logging(level: str = "INFO", settings: Optional[Settings] = None) -> TelegramAlertHandler:
    """Configures the root logger and attaches the alert handler once.

    Safe to call more than once: neither handler is duplicated.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

    for h in root.handlers:
        if isinstance(h, TelegramAlertHandler):
            return h
    handler = TelegramAlertHandler(level=logging.WARNING, settings=settings)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    return handler
