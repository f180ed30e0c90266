"""
Settings › expense categories: add categories, subcategories and their tags.
"""
import logging
from typing import Optional

from expense_tracker.errors import NotFoundError, ValidationError
from expense_tracker.flows.base import BackResult, FlowHandler, SubFlow, parse_id
from expense_tracker.flows.events import Callback, ChatRef, TextInput
from expense_tracker.flows.messaging import edit_or_send_flow_message, send_flow_message
from expense_tracker.keyboards.common import button, kb_list, kb_navigation
from expense_tracker.states.flow_data import SettingsExpensesData
from expense_tracker.states.session import ChatSession
from expense_tracker.utils.formatting import b, clean_name

logger = logging.getLogger(__name__)

Step = SettingsExpensesData.Step

CB_ADD_CATEGORY = "sx_addcat"
CB_ADD_SUBCATEGORY = "sx_addsub"
CB_PICK_CATEGORY = "sx_pickcat"
CB_ADD_TAG = "sx_addtag"
CB_DONE_TAGS = "sx_donetags"

_CALLBACKS_BY_STEP = {
    Step.SELECT_ACTION: {CB_ADD_CATEGORY, CB_ADD_SUBCATEGORY},
    Step.SELECT_CATEGORY_FOR_SUB: {CB_PICK_CATEGORY},
    Step.ASK_ADD_TAG: {CB_ADD_TAG, CB_DONE_TAGS},
    Step.ADD_TAG: {CB_DONE_TAGS},
}
_TEXT_STEPS = {Step.ADD_CATEGORY, Step.ADD_SUBCATEGORY, Step.ADD_TAG}


class SettingsExpensesFlow(FlowHandler, SubFlow):
    name = "settings_expenses"
    data_type = SettingsExpensesData
    settings_label = "🗂 Expense categories"
    settings_callback = ("settings_sub", "expenses")
    error_text = "❌ Could not update the categories. Please try again."

    async def start_from_menu(self, chat: ChatRef, session: ChatSession) -> None:
        await self.start_from_settings_root(chat, session)

    async def start_from_settings_root(self, chat: ChatRef, session: ChatSession) -> None:
        await self._go(chat, session, SettingsExpensesData())

    async def resume(self, chat: ChatRef, session: ChatSession) -> None:
        await self._render(chat, session, session.get_flow_data(SettingsExpensesData))

    # ---------- callbacks ----------
    def can_handle_callback(self, name: str, data: str, session: ChatSession) -> bool:
        step = self.step_of(session)
        return step is not None and name in _CALLBACKS_BY_STEP.get(step, ())

    async def handle_callback(self, name: str, data: str, event: Callback, session: ChatSession) -> None:
        chat = event.chat
        flow = session.get_flow_data(SettingsExpensesData)

        if name == CB_ADD_CATEGORY:
            await self._go(chat, session, flow.evolve(step=Step.ADD_CATEGORY))
        elif name == CB_ADD_SUBCATEGORY:
            await self._go(chat, session, flow.evolve(step=Step.SELECT_CATEGORY_FOR_SUB))
        elif name == CB_PICK_CATEGORY:
            category_id = parse_id(data)
            category = await self.store.get_category(category_id) if category_id else None
            if category is None:
                await send_flow_message(self.transport, chat.id, session, "❌ Category not found.")
                return
            await self._go(chat, session, flow.evolve(
                step=Step.ADD_SUBCATEGORY, category_id=category.id, category_name=category.name,
            ))
        elif name == CB_ADD_TAG:
            await self._go(chat, session, flow.evolve(step=Step.ADD_TAG))
        elif name == CB_DONE_TAGS:
            logger.info("Tags done for subcategory %s in chat %s", flow.created_sub_category_id, chat.id)
            await self.return_to_settings_root(chat, session)

    # ---------- text ----------
    def can_handle_text_input(self, session: ChatSession) -> bool:
        return self.step_of(session) in _TEXT_STEPS

    async def handle_text_input(self, event: TextInput, session: ChatSession) -> None:
        chat = event.chat
        flow = session.get_flow_data(SettingsExpensesData)
        s = self.settings

        try:
            if flow.step == Step.ADD_CATEGORY:
                name = clean_name(event.text, s.MAX_CATEGORY_NAME_LENGTH, "Category name")
            elif flow.step == Step.ADD_SUBCATEGORY:
                name = clean_name(event.text, s.MAX_SUBCATEGORY_NAME_LENGTH, "Subcategory name")
            else:
                name = clean_name(event.text, s.MAX_TAG_NAME_LENGTH, "Tag name")
        except ValidationError as e:
            await send_flow_message(self.transport, chat.id, session, f"❌ {e}")
            return

        if flow.step == Step.ADD_CATEGORY:
            result = await self.store.create_category(name)
            if result.is_duplicate:
                header = f"⚠️ Category {b(result.item.name)} already exists."
            else:
                logger.info("Created category %s", result.item.name)
                header = f"✅ Category {b(result.item.name)} created."
            await self._go(chat, session, flow.evolve(step=Step.SELECT_ACTION), header)

        elif flow.step == Step.ADD_SUBCATEGORY:
            try:
                result = await self.store.create_sub_category(name, flow.category_id)
            except NotFoundError:
                await send_flow_message(self.transport, chat.id, session, "❌ Category not found. Pick it again.")
                await self._go(chat, session, flow.evolve(
                    step=Step.SELECT_CATEGORY_FOR_SUB, category_id=None, category_name=None,
                ))
                return
            sub = result.item
            if result.is_duplicate:
                header = f"⚠️ Subcategory {b(sub.name)} already exists in {b(flow.category_name)}."
            else:
                logger.info("Created subcategory %s under category %s", sub.name, flow.category_id)
                header = f"✅ Subcategory {b(sub.name)} created in {b(flow.category_name)}!"
            await self._go(chat, session, flow.evolve(
                step=Step.ASK_ADD_TAG, created_sub_category_id=sub.id, created_sub_category_name=sub.name,
            ), header)

        else:
            try:
                result = await self.store.create_tag(name, flow.created_sub_category_id)
            except NotFoundError:
                await self._go(chat, session, SettingsExpensesData(), "❌ The subcategory no longer exists.")
                return
            if result.is_duplicate:
                header = f"⚠️ Tag {b(result.item.name)} already exists."
            else:
                logger.info("Created tag %s for subcategory %s", result.item.name, flow.created_sub_category_id)
                header = f"✅ Tag {b(result.item.name)} added!"
            await self._go(chat, session, flow.evolve(step=Step.ASK_ADD_TAG), header)

    # ---------- back ----------
    def can_handle_back(self, session: ChatSession) -> bool:
        return self.owns(session)

    async def handle_back(self, chat: ChatRef, session: ChatSession) -> BackResult:
        flow = session.get_flow_data(SettingsExpensesData)
        logger.info("Settings expenses back from step %s", flow.step.value)

        if flow.step == Step.SELECT_ACTION:
            return self.back_to_settings_root(session)
        if flow.step in (Step.ADD_CATEGORY, Step.SELECT_CATEGORY_FOR_SUB):
            await self._go(chat, session, SettingsExpensesData())
        elif flow.step == Step.ADD_SUBCATEGORY:
            await self._go(chat, session, flow.evolve(
                step=Step.SELECT_CATEGORY_FOR_SUB, category_id=None, category_name=None,
            ))
        else:
            header = (
                f"✅ Subcategory {b(flow.created_sub_category_name)} saved in {b(flow.category_name)}."
            )
            await self._go(chat, session, SettingsExpensesData(), header)
        return BackResult.HANDLED

    # ---------- rendering ----------
    async def _go(self, chat: ChatRef, session: ChatSession, flow: SettingsExpensesData,
                  header: Optional[str] = None) -> None:
        await self._render(chat, session, flow, header)
        session.set_flow_data(flow)

    async def _render(self, chat: ChatRef, session: ChatSession, flow: SettingsExpensesData,
                      header: Optional[str] = None) -> None:
        if flow.step == Step.SELECT_ACTION:
            text = header or f"🗂 {b('Expense categories')}"
            text += "\n\nWhat do you want to add?"
            kb = kb_list([
                button("➕ Category", CB_ADD_CATEGORY),
                button("➕ Subcategory", CB_ADD_SUBCATEGORY),
            ], back=True, main_menu=True)

        elif flow.step == Step.ADD_CATEGORY:
            text = "✏️ Enter the name of the new category:"
            kb = kb_navigation()

        elif flow.step == Step.SELECT_CATEGORY_FOR_SUB:
            categories = await self.store.list_categories()
            text = "📁 Select the category of the new subcategory:"
            if not categories:
                text = "📁 There are no categories yet. Add a category first."
            kb = kb_list([button(c.name, CB_PICK_CATEGORY, c.id) for c in categories], back=True, main_menu=True)

        elif flow.step == Step.ADD_SUBCATEGORY:
            text = f"✏️ Enter the name of the new subcategory for {b(flow.category_name)}:"
            kb = kb_navigation()

        elif flow.step == Step.ASK_ADD_TAG:
            text = (header or "") + "\n\nDo you want to add a tag?"
            kb = kb_list([
                button("🏷️ Add tag", CB_ADD_TAG),
                button("✅ Done", CB_DONE_TAGS),
            ], back=True)

        else:
            text = f"🏷️ Enter the tag name for {b(flow.created_sub_category_name)}:"
            kb = kb_list([button("✅ Done", CB_DONE_TAGS)], back=True)

        await edit_or_send_flow_message(self.transport, chat.id, session, text.strip(), kb)
