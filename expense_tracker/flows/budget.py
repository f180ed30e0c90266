import logging
from datetime import date

from expense_tracker.flows.base import FlowHandler
from expense_tracker.flows.events import Callback, ChatRef
from expense_tracker.flows.messaging import edit_or_send_flow_message, send_flow_message
from expense_tracker.keyboards.common import button, kb_list
from expense_tracker.services.report_service import ReportService
from expense_tracker.states.flow_data import BudgetData
from expense_tracker.states.session import ChatSession
from expense_tracker.utils.date_ranges import get_month_range, shift_month
from expense_tracker.utils.reports import report_for_budget

logger = logging.getLogger(__name__)

CB_MONTH = "bud_month"


def _month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def _parse_month_key(data: str):
    try:
        year, month = (int(part) for part in data.split("-", 1))
    except ValueError:
        return None
    if not 1 <= month <= 12:
        return None
    return year, month


class BudgetFlow(FlowHandler):
    """Monthly budget against actual spending, with month navigation."""
    name = "budget"
    data_type = BudgetData
    menu_label = "🎯 Budget"
    error_text = "❌ Could not load the budget. Please try again."

    async def start_from_menu(self, chat: ChatRef, session: ChatSession) -> None:
        today = date.today()
        await self._show(chat, session, BudgetData(year=today.year, month=today.month))

    async def resume(self, chat: ChatRef, session: ChatSession) -> None:
        await self._show(chat, session, session.get_flow_data(BudgetData))

    def can_handle_callback(self, name: str, data: str, session: ChatSession) -> bool:
        return name == CB_MONTH and self.step_of(session) == BudgetData.Step.SHOW_MONTH

    async def handle_callback(self, name: str, data: str, event: Callback, session: ChatSession) -> None:
        parsed = _parse_month_key(data)
        if parsed is None:
            await send_flow_message(self.transport, event.chat.id, session, "❌ Unknown month.")
            return
        year, month = parsed
        flow = session.get_flow_data(BudgetData)
        await self._show(event.chat, session, flow.evolve(year=year, month=month))

    async def _show(self, chat: ChatRef, session: ChatSession, flow: BudgetData) -> None:
        year, month = flow.year, flow.month
        lines = await ReportService(self.store).get_budget_lines(year, month, get_month_range(year, month))
        text = report_for_budget(year, month, lines, self.settings.CURRENCY_SYMBOL)

        prev_year, prev_month = shift_month(year, month, -1)
        next_year, next_month = shift_month(year, month, 1)
        kb = kb_list([
            button("◀", CB_MONTH, _month_key(prev_year, prev_month)),
            button("▶", CB_MONTH, _month_key(next_year, next_month)),
        ], columns=2, main_menu=True)
        await edit_or_send_flow_message(self.transport, chat.id, session, text, kb)
        session.set_flow_data(flow)
