import logging
from datetime import date
from typing import Callable, Dict, Tuple

from expense_tracker.flows.base import BackResult, FlowHandler
from expense_tracker.flows.events import Callback, ChatRef
from expense_tracker.flows.messaging import edit_or_send_flow_message, send_flow_message
from expense_tracker.keyboards.common import button, kb_list, kb_navigation
from expense_tracker.services.report_service import ReportService
from expense_tracker.states.flow_data import ReportData
from expense_tracker.states.session import ChatSession
from expense_tracker.utils.date_ranges import (
    get_last_month_range, get_this_month_range, get_this_week_range, get_today_range
)
from expense_tracker.utils.formatting import b
from expense_tracker.utils.reports import report_for_period

logger = logging.getLogger(__name__)

Step = ReportData.Step

CB_PERIOD = "rep_period"

PERIODS: Dict[str, Tuple[str, Callable[[], Tuple[date, date]]]] = {
    "today": ("Today", get_today_range),
    "this_week": ("This week", get_this_week_range),
    "this_month": ("This month", get_this_month_range),
    "last_month": ("Last month", get_last_month_range),
}


class ReportFlow(FlowHandler):
    """Expense totals per category and subcategory for a chosen period."""
    name = "report"
    data_type = ReportData
    menu_label = "📊 Report"
    error_text = "❌ Could not build the report. Please try again."

    async def start_from_menu(self, chat: ChatRef, session: ChatSession) -> None:
        await self._show_periods(chat, session)
        session.set_flow_data(ReportData())

    async def resume(self, chat: ChatRef, session: ChatSession) -> None:
        flow = session.get_flow_data(ReportData)
        if flow.step == Step.SHOW_REPORT and flow.period in PERIODS:
            await self._show_report(chat, session, flow.period)
        else:
            await self._show_periods(chat, session)

    def can_handle_callback(self, name: str, data: str, session: ChatSession) -> bool:
        return name == CB_PERIOD and self.step_of(session) == Step.SELECT_PERIOD

    async def handle_callback(self, name: str, data: str, event: Callback, session: ChatSession) -> None:
        if data not in PERIODS:
            await send_flow_message(self.transport, event.chat.id, session, "❌ Unknown period.")
            return
        flow = session.get_flow_data(ReportData)
        await self._show_report(event.chat, session, data)
        session.set_flow_data(flow.evolve(step=Step.SHOW_REPORT, period=data))

    def can_handle_back(self, session: ChatSession) -> bool:
        return self.step_of(session) == Step.SHOW_REPORT

    async def handle_back(self, chat: ChatRef, session: ChatSession) -> BackResult:
        flow = session.get_flow_data(ReportData)
        await self._show_periods(chat, session)
        session.set_flow_data(flow.evolve(step=Step.SELECT_PERIOD, period=None))
        return BackResult.HANDLED

    async def _show_periods(self, chat: ChatRef, session: ChatSession) -> None:
        buttons = [button(label, CB_PERIOD, key) for key, (label, _) in PERIODS.items()]
        kb = kb_list(buttons, columns=2, main_menu=True)
        await edit_or_send_flow_message(self.transport, chat.id, session, f"📊 {b('Report')}\n\nSelect a period:", kb)

    async def _show_report(self, chat: ChatRef, session: ChatSession, period: str) -> None:
        label, date_range = PERIODS[period]
        summary = await ReportService(self.store).get_period_summary(date_range())
        logger.info("Report %s for chat %s: %d expenses", period, chat.id, summary.count)
        text = report_for_period(label, summary, self.settings.CURRENCY_SYMBOL)
        await edit_or_send_flow_message(self.transport, chat.id, session, text, kb_navigation())
