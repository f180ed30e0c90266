"""
Flow handler contract.

Every `can_handle_*` predicate looks only at the event kind and the session's
current step, so the router may probe handlers in order without side effects.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Optional, Tuple, Type

from expense_tracker.config import Settings
from expense_tracker.flows.events import Callback, ChatRef, Document, TextInput, WebAppData
from expense_tracker.flows.messaging import MAIN_MENU_TEXT, send_flow_message
from expense_tracker.repo.store import ExpenseStore
from expense_tracker.states.flow_data import FlowData, SettingsData
from expense_tracker.states.session import ChatSession
from expense_tracker.transport import Transport

if TYPE_CHECKING:
    from expense_tracker.flows.registry import FlowRegistry


def parse_id(data: str) -> Optional[int]:
    """Row id carried in callback data; None for anything that is not a positive integer."""
    try:
        value = int(data)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


class BackResult(enum.Enum):
    HANDLED = "handled"
    # the handler did not rewind locally; the router decides what comes next
    DEFER_TO_PARENT = "defer_to_parent"


@dataclass
class FlowContext:
    """Collaborators shared by every handler."""
    transport: Transport
    store: ExpenseStore
    settings: Settings
    registry: Optional["FlowRegistry"] = None


class FlowHandler:
    name: ClassVar[str]
    data_type: ClassVar[Type[FlowData]]
    menu_label: ClassVar[Optional[str]] = None
    error_text: ClassVar[str] = "⚠️ Something went wrong. Please try again."

    def __init__(self, ctx: FlowContext):
        self.ctx = ctx

    @property
    def transport(self) -> Transport:
        return self.ctx.transport

    @property
    def store(self) -> ExpenseStore:
        return self.ctx.store

    @property
    def settings(self) -> Settings:
        return self.ctx.settings

    def owns(self, session: ChatSession) -> bool:
        return isinstance(session.flow_data, self.data_type)

    def step_of(self, session: ChatSession):
        data = session.get_flow_data(self.data_type)
        return data.step if data is not None else None

    # ---------- main menu ----------
    def can_handle_menu_command(self, text: str) -> bool:
        return self.menu_label is not None and text == self.menu_label

    async def start_from_menu(self, chat: ChatRef, session: ChatSession) -> None:
        raise NotImplementedError

    async def resume(self, chat: ChatRef, session: ChatSession) -> None:
        """Re-renders the screen of the current step (used when a child hands control back)."""
        raise NotImplementedError

    # ---------- events ----------
    def can_handle_callback(self, name: str, data: str, session: ChatSession) -> bool:
        return False

    async def handle_callback(self, name: str, data: str, event: Callback, session: ChatSession) -> None:
        raise NotImplementedError

    def can_handle_text_input(self, session: ChatSession) -> bool:
        return False

    async def handle_text_input(self, event: TextInput, session: ChatSession) -> None:
        raise NotImplementedError

    def can_handle_document(self, session: ChatSession) -> bool:
        return False

    async def handle_document(self, event: Document, session: ChatSession) -> None:
        raise NotImplementedError

    def can_handle_web_app_data(self, session: ChatSession) -> bool:
        return False

    async def handle_web_app_data(self, event: WebAppData, session: ChatSession) -> None:
        raise NotImplementedError

    def can_handle_back(self, session: ChatSession) -> bool:
        return False

    async def handle_back(self, chat: ChatRef, session: ChatSession) -> BackResult:
        return BackResult.DEFER_TO_PARENT

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class SubFlow:
    """Mixin for flows entered from the Settings root instead of the main menu."""
    settings_label: ClassVar[str]
    settings_callback: ClassVar[Tuple[str, str]]

    ctx: FlowContext

    def matches_settings_callback(self, name: str, data: str) -> bool:
        return (name, data) == self.settings_callback

    async def start_from_settings_root(self, chat: ChatRef, session: ChatSession) -> None:
        raise NotImplementedError

    def back_to_settings_root(self, session: ChatSession) -> BackResult:
        """Installs the Settings root state and lets the router render it."""
        session.set_flow_data(SettingsData())
        return BackResult.DEFER_TO_PARENT

    async def return_to_settings_root(self, chat: ChatRef, session: ChatSession, new_message: bool = False) -> None:
        """
        Ends the sub-flow on the Settings root, or on the main menu when Settings is disabled.

        With `new_message` the root is sent below the last message instead of replacing it.
        """
        if new_message:
            session.last_bot_message_id = None
        root = SettingsData()
        parent = self.ctx.registry.owner_of(root)
        if parent is None:
            await send_flow_message(
                self.ctx.transport, chat.id, session, MAIN_MENU_TEXT, self.ctx.registry.main_menu_keyboard()
            )
            session.reset()
            return
        await parent.resume(chat, session)
        session.set_flow_data(root)
