import logging
from typing import Optional

from aiogram.types import ReplyKeyboardMarkup, ReplyKeyboardRemove

from expense_tracker.errors import TransportError
from expense_tracker.states.session import ChatSession
from expense_tracker.transport import Markup, Transport

logger = logging.getLogger(__name__)

MAIN_MENU_TEXT = "👋 <b>Main menu</b>\n\nChoose an action:"


async def send_flow_message(
    transport: Transport, chat_id: int, session: ChatSession, text: str, reply_markup: Optional[Markup] = None
) -> int:
    """Sends a new message and tracks it for cleanup on the way back to the main menu."""
    message_id = await transport.send_message(chat_id, text, reply_markup)
    session.last_bot_message_id = message_id
    session.track_message(message_id)
    return message_id


async def edit_or_send_flow_message(
    transport: Transport, chat_id: int, session: ChatSession, text: str, reply_markup: Optional[Markup] = None
) -> int:
    """
    Edits the last bot message in place when possible, otherwise sends a new one.

    The main menu message is never edited, and reply keyboards cannot be
    attached by an edit, so both cases always send.
    """
    target = session.last_bot_message_id
    can_edit = (
        target is not None
        and target != session.main_menu_message_id
        and not isinstance(reply_markup, (ReplyKeyboardMarkup, ReplyKeyboardRemove))
    )
    if can_edit:
        try:
            return await transport.edit_message(chat_id, target, text, reply_markup)
        except TransportError as e:
            logger.debug("Edit of %s in chat %s failed, sending instead: %s", target, chat_id, e)
    return await send_flow_message(transport, chat_id, session, text, reply_markup)


async def delete_tracked_messages(transport: Transport, chat_id: int, session: ChatSession) -> None:
    for message_id in list(session.tracked_message_ids):
        try:
            await transport.delete_message(chat_id, message_id)
        except TransportError as e:
            logger.debug("Cleanup of message %s in chat %s skipped: %s", message_id, chat_id, e)
    session.clear_tracked_messages()
