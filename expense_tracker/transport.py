"""
Outbound side of the chat platform.

Flows talk to the `Transport` protocol only; `BotTransport` maps it onto an
aiogram `Bot` and turns every Telegram API failure into `TransportError`.
"""
from __future__ import annotations

import io
import logging
from typing import BinaryIO, Optional, Protocol, Union

from aiogram import Bot
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.types import InlineKeyboardMarkup, ReplyKeyboardMarkup, ReplyKeyboardRemove

from expense_tracker.errors import TransportError

logger = logging.getLogger(__name__)

Markup = Union[InlineKeyboardMarkup, ReplyKeyboardMarkup, ReplyKeyboardRemove]


class Transport(Protocol):
    async def send_message(self, chat_id: int, text: str, reply_markup: Optional[Markup] = None) -> int: ...

    async def edit_message(
        self, chat_id: int, message_id: int, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None
    ) -> int: ...

    async def delete_message(self, chat_id: int, message_id: int) -> None: ...

    async def answer_callback(self, callback_id: str, text: Optional[str] = None) -> None: ...

    async def download_file(self, file_id: str) -> BinaryIO: ...


class BotTransport:
    """aiogram-backed transport; all texts are sent as HTML."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_message(self, chat_id: int, text: str, reply_markup: Optional[Markup] = None) -> int:
        try:
            msg = await self.bot.send_message(
                chat_id=chat_id, text=text, reply_markup=reply_markup, parse_mode=ParseMode.HTML
            )
        except TelegramAPIError as e:
            raise TransportError(f"send_message to {chat_id} failed: {e}") from e
        return msg.message_id

    async def edit_message(
        self, chat_id: int, message_id: int, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None
    ) -> int:
        try:
            await self.bot.edit_message_text(
                text=text,
                chat_id=chat_id,
                message_id=message_id,
                reply_markup=reply_markup,
                parse_mode=ParseMode.HTML,
            )
        except TelegramBadRequest as e:
            # same text and keyboard: the screen is already what we want
            if "message is not modified" in str(e):
                return message_id
            raise TransportError(f"edit_message {message_id} in {chat_id} failed: {e}") from e
        except TelegramAPIError as e:
            raise TransportError(f"edit_message {message_id} in {chat_id} failed: {e}") from e
        return message_id

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        try:
            await self.bot.delete_message(chat_id, message_id)
        except TelegramAPIError as e:
            raise TransportError(f"delete_message {message_id} in {chat_id} failed: {e}") from e

    async def answer_callback(self, callback_id: str, text: Optional[str] = None) -> None:
        try:
            await self.bot.answer_callback_query(callback_id, text=text)
        except TelegramAPIError as e:
            # stale queries (>15 min) cannot be answered; nothing to do for the user
            logger.debug("Could not answer callback %s: %s", callback_id, e)

    async def download_file(self, file_id: str) -> BinaryIO:
        buffer = io.BytesIO()
        try:
            await self.bot.download(file_id, destination=buffer)
        except TelegramAPIError as e:
            raise TransportError(f"download of {file_id} failed: {e}") from e
        buffer.seek(0)
        return buffer
