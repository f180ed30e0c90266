import logging

from expense_tracker.flows.base import FlowHandler, SubFlow
from expense_tracker.flows.events import Callback, ChatRef
from expense_tracker.flows.messaging import edit_or_send_flow_message
from expense_tracker.keyboards.common import button, kb_list
from expense_tracker.states.flow_data import SettingsData
from expense_tracker.states.session import ChatSession
from expense_tracker.utils.formatting import b

logger = logging.getLogger(__name__)

ROOT_TEXT = f"⚙️ {b('Settings')}\n\nChoose what to configure:"


class SettingsFlow(FlowHandler):
    """Settings root: lists every enabled sub-flow and hands control to the chosen one."""
    name = "settings"
    data_type = SettingsData
    menu_label = "⚙️ Settings"

    async def start_from_menu(self, chat: ChatRef, session: ChatSession) -> None:
        await self.show_root(chat, session)

    async def resume(self, chat: ChatRef, session: ChatSession) -> None:
        await self._render(chat, session)

    async def show_root(self, chat: ChatRef, session: ChatSession) -> None:
        await self._render(chat, session)
        session.set_flow_data(SettingsData())

    async def _render(self, chat: ChatRef, session: ChatSession) -> None:
        buttons = [button(sub.settings_label, *sub.settings_callback) for sub in self._sub_flows()]
        kb = kb_list(buttons, columns=2, main_menu=True)
        await edit_or_send_flow_message(self.transport, chat.id, session, ROOT_TEXT, kb)

    def _sub_flows(self):
        # resolved on every call: the registry is built after the handlers
        return self.ctx.registry.sub_flows()

    def can_handle_callback(self, name: str, data: str, session: ChatSession) -> bool:
        if self.step_of(session) != SettingsData.Step.ROOT:
            return False
        return any(sub.matches_settings_callback(name, data) for sub in self._sub_flows())

    async def handle_callback(self, name: str, data: str, event: Callback, session: ChatSession) -> None:
        for sub in self._sub_flows():
            if sub.matches_settings_callback(name, data):
                logger.info("Settings: opening %s for chat %s", sub.name, event.chat.id)
                await sub.start_from_settings_root(event.chat, session)
                return
