"""
Flow router: picks the handler for each inbound event.

Global rules (main menu, back, menu commands) are applied here; everything
else goes to the first registered handler whose predicate accepts the event.
Events of one chat are processed under that chat's lock.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from expense_tracker.errors import TransportError
from expense_tracker.flows.base import BackResult, FlowHandler
from expense_tracker.flows.events import (
    BUTTON_BACK, BUTTON_MAIN_MENU, CALLBACK_BACK, CALLBACK_MAIN_MENU,
    BackAction, Callback, ChatRef, Document, Event, MainMenuAction, TextInput, WebAppData,
)
from expense_tracker.flows.messaging import MAIN_MENU_TEXT, delete_tracked_messages
from expense_tracker.flows.registry import FlowRegistry
from expense_tracker.states.session import ChatSession, SessionStore
from expense_tracker.transport import Transport

logger = logging.getLogger(__name__)

START_COMMAND = "/start"
UNRECOGNIZED_ACTION = "❓ Unrecognized action"
UNRECOGNIZED_TEXT = "❓ I didn't understand. Use /start to get started."
UNEXPECTED_DOCUMENT = "📎 I wasn't expecting a file right now. Use /start to get started."
UNEXPECTED_WEB_APP_DATA = "❓ I wasn't expecting that input right now. Use /start to get started."
GENERIC_ERROR = "⚠️ Something went wrong. Please try again."

_FAILED = object()


class FlowRouter:
    def __init__(self, registry: FlowRegistry, sessions: SessionStore, transport: Transport):
        self.registry = registry
        self.sessions = sessions
        self.transport = transport

    async def dispatch(self, event: Event) -> None:
        """Routes one event; never raises for a per-event failure (cancellation excepted)."""
        async with self.sessions.acquire(event.chat.id) as session:
            try:
                await self._route(event, session)
            except Exception:
                logger.exception("Unhandled error for %s in chat %s (step %s)",
                                 type(event).__name__, event.chat.id, session.current_step)
                await self._reply(event.chat, GENERIC_ERROR)

    async def _route(self, event: Event, session: ChatSession) -> None:
        if isinstance(event, MainMenuAction):
            await self._answer(event.callback_id)
            await self.show_main_menu(event.chat, session, force_new=event.force_new)
        elif isinstance(event, BackAction):
            await self._answer(event.callback_id)
            await self._back(event.chat, session)
        elif isinstance(event, Callback):
            await self._callback(event, session)
        elif isinstance(event, TextInput):
            await self._text(event, session)
        elif isinstance(event, Document):
            handler = self._first(lambda h: h.can_handle_document(session))
            if handler is None:
                logger.warning("Unexpected document in chat %s (step %s)", event.chat.id, session.current_step)
                await self._reply(event.chat, UNEXPECTED_DOCUMENT)
                return
            await self._invoke(handler, event.chat, session, handler.handle_document, event, session)
        elif isinstance(event, WebAppData):
            handler = self._first(lambda h: h.can_handle_web_app_data(session))
            if handler is None:
                logger.warning("Unexpected web app data in chat %s (step %s)", event.chat.id, session.current_step)
                await self._reply(event.chat, UNEXPECTED_WEB_APP_DATA)
                return
            await self._invoke(handler, event.chat, session, handler.handle_web_app_data, event, session)
        else:
            raise TypeError(f"Unsupported event {event!r}")

    # ---------- global rules ----------
    async def show_main_menu(self, chat: ChatRef, session: ChatSession, force_new: bool = False) -> None:
        """
        Clears the active flow and its messages.

        The main menu message is sent only when missing, when forced, or when a
        flow left its own reply keyboard on the client.
        """
        await delete_tracked_messages(self.transport, chat.id, session)
        session.reset()
        if session.main_menu_message_id is None or force_new or session.custom_reply_keyboard:
            previous = session.main_menu_message_id
            message_id = await self.transport.send_message(chat.id, MAIN_MENU_TEXT, self.registry.main_menu_keyboard())
            session.set_main_menu_message(message_id)
            if previous is not None:
                try:
                    await self.transport.delete_message(chat.id, previous)
                except TransportError as e:
                    logger.debug("Old main menu %s in chat %s not deleted: %s", previous, chat.id, e)
        session.reset_to_main_menu()

    async def _back(self, chat: ChatRef, session: ChatSession) -> None:
        handler = self._first(lambda h: h.can_handle_back(session))
        if handler is None:
            await self.show_main_menu(chat, session)
            return

        before = session.flow_data
        result = await self._invoke(handler, chat, session, handler.handle_back, chat, session)
        if result is _FAILED or result is BackResult.HANDLED:
            return

        # a sub-flow hands control back by installing its parent's data first
        parent_data = session.flow_data
        if parent_data is not None and parent_data is not before:
            parent = self.registry.owner_of(parent_data)
            if parent is not None and parent is not handler:
                logger.info("Back from %s returns to %s in chat %s", handler.name, parent.name, chat.id)
                await self._invoke(parent, chat, session, parent.resume, chat, session)
                return
        await self.show_main_menu(chat, session)

    async def _callback(self, event: Callback, session: ChatSession) -> None:
        name, data = event.split()
        if name == CALLBACK_MAIN_MENU:
            await self._answer(event.callback_id)
            await self.show_main_menu(event.chat, session)
            return
        if name == CALLBACK_BACK:
            await self._answer(event.callback_id)
            await self._back(event.chat, session)
            return

        handler = self._first(lambda h: h.can_handle_callback(name, data, session))
        if handler is None:
            logger.warning("Unrecognized callback %r in chat %s (step %s)", event.raw, event.chat.id,
                           session.current_step)
            await self._answer(event.callback_id, UNRECOGNIZED_ACTION)
            return
        await self._answer(event.callback_id)
        await self._invoke(handler, event.chat, session, handler.handle_callback, name, data, event, session)

    async def _text(self, event: TextInput, session: ChatSession) -> None:
        text = event.text.strip()
        if text == START_COMMAND or text == BUTTON_MAIN_MENU:
            await self.show_main_menu(event.chat, session, force_new=True)
            return
        if text == BUTTON_BACK:
            await self._back(event.chat, session)
            return

        handler = self._first(lambda h: h.can_handle_menu_command(text))
        if handler is not None:
            await delete_tracked_messages(self.transport, event.chat.id, session)
            session.reset()
            session.reset_to_main_menu()
            await self._invoke(handler, event.chat, session, handler.start_from_menu, event.chat, session)
            return

        handler = self._first(lambda h: h.can_handle_text_input(session))
        if handler is None:
            logger.warning("Unrecognized text in chat %s (step %s)", event.chat.id, session.current_step)
            await self._reply(event.chat, UNRECOGNIZED_TEXT)
            return
        await self._invoke(handler, event.chat, session, handler.handle_text_input, event, session)

    # ---------- helpers ----------
    def _first(self, predicate: Callable[[FlowHandler], bool]) -> Optional[FlowHandler]:
        for handler in self.registry:
            if predicate(handler):
                return handler
        return None

    async def _invoke(
        self, handler: FlowHandler, chat: ChatRef, session: ChatSession,
        method: Callable[..., Awaitable[Any]], *args: Any,
    ) -> Any:
        """Runs one handler operation; failures are logged and answered with the flow's error text."""
        logger.info("%s.%s in chat %s (step %s)", handler.name, method.__name__, chat.id, session.current_step)
        try:
            return await method(*args)
        except Exception:
            logger.exception("%s.%s failed in chat %s (step %s)",
                             handler.name, method.__name__, chat.id, session.current_step)
            await self._reply(chat, handler.error_text)
            return _FAILED

    async def _reply(self, chat: ChatRef, text: str) -> None:
        try:
            await self.transport.send_message(chat.id, text)
        except TransportError as e:
            logger.warning("Could not reply in chat %s: %s", chat.id, e)

    async def _answer(self, callback_id: Optional[str], text: Optional[str] = None) -> None:
        if callback_id:
            await self.transport.answer_callback(callback_id, text)
