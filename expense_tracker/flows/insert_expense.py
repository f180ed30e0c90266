"""
Insert expense: category → subcategory → [tag] → description → amount → date → save.
"""
import logging
from datetime import date
from typing import List, Optional

from expense_tracker.errors import NotFoundError, TransportError, ValidationError
from expense_tracker.flows.base import BackResult, FlowHandler, parse_id
from expense_tracker.flows.events import Callback, ChatRef, TextInput, WebAppData
from expense_tracker.flows.messaging import MAIN_MENU_TEXT, edit_or_send_flow_message, send_flow_message
from expense_tracker.keyboards.common import button, kb_date_picker, kb_list, kb_navigation
from expense_tracker.db.models import Tag
from expense_tracker.states.flow_data import InsertExpenseData
from expense_tracker.states.session import ChatSession
from expense_tracker.utils.formatting import b, fmt_money, parse_amount, parse_date, q

logger = logging.getLogger(__name__)

Step = InsertExpenseData.Step

CB_CATEGORY = "exp_cat"
CB_SUBCATEGORY = "exp_sub"
CB_TAG = "exp_tag"
CB_SKIP_TAG = "exp_skiptag"

BUTTON_USE_TODAY = "📅 Use today"
BUTTON_CHOOSE_DATE = "📆 Choose another date"

_CALLBACKS_BY_STEP = {
    Step.SELECT_CATEGORY: {CB_CATEGORY},
    Step.SELECT_SUBCATEGORY: {CB_SUBCATEGORY},
    Step.SELECT_TAG: {CB_TAG, CB_SKIP_TAG},
}
_TEXT_STEPS = {Step.ADD_DESCRIPTION, Step.INSERT_AMOUNT, Step.SELECT_DATE}


class InsertExpenseFlow(FlowHandler):
    name = "insert_expense"
    data_type = InsertExpenseData
    menu_label = "💰 Add expense"
    error_text = "❌ Something went wrong while saving the expense. Please try again."

    async def start_from_menu(self, chat: ChatRef, session: ChatSession) -> None:
        logger.info("Starting insert expense flow for chat %s", chat.id)
        await self._go(chat, session, InsertExpenseData())

    async def resume(self, chat: ChatRef, session: ChatSession) -> None:
        await self._render(chat, session, session.get_flow_data(InsertExpenseData))

    # ---------- callbacks ----------
    def can_handle_callback(self, name: str, data: str, session: ChatSession) -> bool:
        step = self.step_of(session)
        return step is not None and name in _CALLBACKS_BY_STEP.get(step, ())

    async def handle_callback(self, name: str, data: str, event: Callback, session: ChatSession) -> None:
        chat = event.chat
        flow = session.get_flow_data(InsertExpenseData)

        if name == CB_CATEGORY:
            category_id = parse_id(data)
            category = await self.store.get_category(category_id) if category_id else None
            if category is None:
                await send_flow_message(self.transport, chat.id, session, "❌ Category not found.")
                return
            logger.info("Category selected: %s - %s", category.id, category.name)
            await self._go(chat, session, flow.evolve(
                step=Step.SELECT_SUBCATEGORY, category_id=category.id, category_name=category.name,
            ))

        elif name == CB_SUBCATEGORY:
            sub_id = parse_id(data)
            sub = await self.store.get_sub_category(sub_id) if sub_id else None
            if sub is None or sub.category_id != flow.category_id:
                await send_flow_message(self.transport, chat.id, session, "❌ Subcategory not found.")
                return
            tags = await self.store.list_tags(sub.id)
            logger.info("Subcategory selected: %s - %s (%d tags)", sub.id, sub.name, len(tags))
            nxt = flow.evolve(
                step=Step.SELECT_TAG if tags else Step.ADD_DESCRIPTION,
                sub_category_id=sub.id, sub_category_name=sub.name,
            )
            await self._go(chat, session, nxt, tags=tags)

        elif name == CB_TAG:
            tag_id = parse_id(data)
            tag = await self.store.get_tag(tag_id) if tag_id else None
            if tag is None or tag.sub_category_id != flow.sub_category_id:
                await send_flow_message(self.transport, chat.id, session, "❌ Tag not found.")
                return
            logger.info("Tag selected: %s - %s", tag.id, tag.name)
            await self._go(chat, session, flow.evolve(
                step=Step.ADD_DESCRIPTION, tag_id=tag.id, tag_name=tag.name,
            ))

        elif name == CB_SKIP_TAG:
            await self._go(chat, session, flow.evolve(step=Step.ADD_DESCRIPTION, tag_id=None, tag_name=None))

    # ---------- text ----------
    def can_handle_text_input(self, session: ChatSession) -> bool:
        return self.step_of(session) in _TEXT_STEPS

    async def handle_text_input(self, event: TextInput, session: ChatSession) -> None:
        chat = event.chat
        flow = session.get_flow_data(InsertExpenseData)
        text = event.text.strip()

        if flow.step == Step.ADD_DESCRIPTION:
            if not text:
                await send_flow_message(self.transport, chat.id, session, "❌ The description cannot be empty:")
                return
            await self._go(chat, session, flow.evolve(step=Step.INSERT_AMOUNT, description=text))

        elif flow.step == Step.INSERT_AMOUNT:
            amount = parse_amount(text)
            if amount is None:
                await send_flow_message(
                    self.transport, chat.id, session, "❌ Invalid amount. Enter a positive number (e.g., 12.50):"
                )
                return
            logger.info("Amount entered: %s", amount)
            await self._go(chat, session, flow.evolve(step=Step.SELECT_DATE, amount=amount))

        elif flow.step == Step.SELECT_DATE:
            if text == BUTTON_USE_TODAY:
                await self._save(chat, session, flow, date.today())
                return
            await self._save_with_date_text(chat, session, flow, text)

    def can_handle_web_app_data(self, session: ChatSession) -> bool:
        return self.step_of(session) == Step.SELECT_DATE

    async def handle_web_app_data(self, event: WebAppData, session: ChatSession) -> None:
        flow = session.get_flow_data(InsertExpenseData)
        await self._save_with_date_text(event.chat, session, flow, event.payload)

    # ---------- back ----------
    def can_handle_back(self, session: ChatSession) -> bool:
        step = self.step_of(session)
        return step is not None and step != Step.SELECT_CATEGORY

    async def handle_back(self, chat: ChatRef, session: ChatSession) -> BackResult:
        flow = session.get_flow_data(InsertExpenseData)
        logger.info("Back from step %s in chat %s", flow.step.value, chat.id)

        if flow.step == Step.SELECT_SUBCATEGORY:
            prev = flow.evolve(step=Step.SELECT_CATEGORY, category_id=None, category_name=None)
        elif flow.step == Step.SELECT_TAG:
            prev = flow.evolve(step=Step.SELECT_SUBCATEGORY, sub_category_id=None, sub_category_name=None,
                               tag_id=None, tag_name=None)
        elif flow.step == Step.ADD_DESCRIPTION:
            tags = await self.store.list_tags(flow.sub_category_id)
            if tags:
                prev = flow.evolve(step=Step.SELECT_TAG, tag_id=None, tag_name=None)
                await self._go(chat, session, prev, tags=tags)
                return BackResult.HANDLED
            prev = flow.evolve(step=Step.SELECT_SUBCATEGORY, sub_category_id=None, sub_category_name=None,
                               tag_id=None, tag_name=None)
        elif flow.step == Step.INSERT_AMOUNT:
            prev = flow.evolve(step=Step.ADD_DESCRIPTION, description=None)
        elif flow.step == Step.SELECT_DATE:
            prev = flow.evolve(step=Step.INSERT_AMOUNT, amount=None, spent_on=None)
        else:
            return BackResult.DEFER_TO_PARENT

        await self._go(chat, session, prev)
        return BackResult.HANDLED

    # ---------- rendering ----------
    async def _go(self, chat: ChatRef, session: ChatSession, flow: InsertExpenseData,
                  tags: Optional[List[Tag]] = None) -> None:
        # the new step is committed only once its screen is shown
        await self._render(chat, session, flow, tags)
        session.set_flow_data(flow)

    async def _render(self, chat: ChatRef, session: ChatSession, flow: InsertExpenseData,
                      tags: Optional[List[Tag]] = None) -> None:
        if flow.step == Step.SELECT_CATEGORY:
            categories = await self.store.list_categories()
            if not categories:
                text = "📁 No categories yet. Add one from ⚙️ Settings."
            else:
                text = f"📁 {b('Select a category:')}"
            kb = kb_list([button(c.name, CB_CATEGORY, c.id) for c in categories], main_menu=True)

        elif flow.step == Step.SELECT_SUBCATEGORY:
            subs = await self.store.list_sub_categories(flow.category_id)
            text = f"📁 {b(flow.category_name)}\n\n📂 Select a subcategory:"
            if not subs:
                text += "\n\n(no subcategories yet)"
            kb = kb_list([button(s.name, CB_SUBCATEGORY, s.id) for s in subs], back=True)

        elif flow.step == Step.SELECT_TAG:
            if tags is None:
                tags = await self.store.list_tags(flow.sub_category_id)
            text = f"{self._path(flow)}\n\n🏷️ Select a tag:"
            buttons = [button(f"🏷️ {t.name}", CB_TAG, t.id) for t in tags]
            buttons.append(button("⏭️ Skip", CB_SKIP_TAG))
            kb = kb_list(buttons, back=True)

        elif flow.step == Step.ADD_DESCRIPTION:
            text = f"{self._path(flow)}\n\n📝 Enter a description for the expense:"
            kb = kb_navigation()

        elif flow.step == Step.INSERT_AMOUNT:
            text = f"{self._path(flow)}\n📝 {q(flow.description)}\n\n💰 Enter the amount (e.g., 12.50):"
            kb = kb_navigation()

        else:
            text = (
                f"{self._path(flow)}\n📝 {q(flow.description)}\n"
                f"💰 {fmt_money(flow.amount, self.settings.CURRENCY_SYMBOL)}\n\n"
                f"📆 {b('Select the date of the expense:')}"
            )
            kb = kb_date_picker(BUTTON_USE_TODAY, BUTTON_CHOOSE_DATE, self.settings.DATE_PICKER_URL)

        await edit_or_send_flow_message(self.transport, chat.id, session, text, kb)
        if flow.step == Step.SELECT_DATE:
            session.custom_reply_keyboard = True

    @staticmethod
    def _path(flow: InsertExpenseData) -> str:
        path = f"📁 {b(flow.category_name)} › {b(flow.sub_category_name)}"
        if flow.tag_name:
            path += f"\n🏷️ {q(flow.tag_name)}"
        return path

    # ---------- completion ----------
    async def _save_with_date_text(self, chat: ChatRef, session: ChatSession, flow: InsertExpenseData,
                                   raw: str) -> None:
        try:
            spent_on = parse_date(raw, self.settings.DATE_MIN_YEAR, self.settings.DATE_MAX_YEAR)
        except ValidationError as e:
            logger.warning("Invalid date %r in chat %s", raw, chat.id)
            await send_flow_message(self.transport, chat.id, session, f"❌ {e}")
            return
        await self._save(chat, session, flow, spent_on)

    async def _save(self, chat: ChatRef, session: ChatSession, flow: InsertExpenseData, spent_on: date) -> None:
        flow = flow.evolve(spent_on=spent_on)
        try:
            await self.store.create_expense(
                sub_category_id=flow.sub_category_id,
                amount=flow.amount,
                description=flow.description,
                notes=None,
                performed_by=chat.display_name,
                tag_id=flow.tag_id,
                spent_on=spent_on,
            )
        except NotFoundError:
            await send_flow_message(
                self.transport, chat.id, session, "❌ The subcategory no longer exists. Use 🏠 Main menu to start over."
            )
            return
        logger.info("Expense saved: %s %s (sub %s, tag %s, %s) by %s",
                    flow.amount, flow.description, flow.sub_category_id, flow.tag_id, spent_on, chat.display_name)
        # the row is committed: from here on a retry must not reach the date step again
        session.reset()

        text = (
            f"✅ {b('Expense saved!')}\n\n"
            f"{self._path(flow)}\n"
            f"📝 {q(flow.description)}\n"
            f"💰 {fmt_money(flow.amount, self.settings.CURRENCY_SYMBOL)}\n"
            f"📆 {spent_on:%d/%m/%Y}"
        )
        try:
            await send_flow_message(self.transport, chat.id, session, text)
            await send_flow_message(
                self.transport, chat.id, session, MAIN_MENU_TEXT, self.ctx.registry.main_menu_keyboard()
            )
        except TransportError as e:
            logger.warning("Expense saved but the confirmation did not reach chat %s: %s", chat.id, e)
            return
        session.custom_reply_keyboard = False
