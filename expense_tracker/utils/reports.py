from datetime import date
from decimal import Decimal
from typing import List, Optional

from expense_tracker.repo.store import ExpenseStore
from expense_tracker.services.report_service import BudgetLine, PeriodSummary, ReportService
from expense_tracker.utils.date_ranges import get_last_week_range
from expense_tracker.utils.formatting import b, fmt_money, q

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


def month_label(year: int, month: int) -> str:
    return f"{MONTH_NAMES[month - 1]} {year}"


def report_for_period(label: str, summary: PeriodSummary, symbol: str = "€") -> str:
    """Builds the expense report text for a period."""
    header = f"📊 {b(label)} ({summary.start:%d/%m/%Y} – {summary.end:%d/%m/%Y})"
    if summary.count == 0:
        return f"{header}\n\nNo expenses in this period."

    lines = [header, ""]
    for cat in summary.categories:
        lines.append(f"📁 {b(cat.name)}: {fmt_money(cat.total, symbol)}")
        for sub_name, amount in cat.sub_totals.items():
            lines.append(f"   • {q(sub_name)}: {fmt_money(amount, symbol)}")
    lines.append("")
    lines.append(f"💰 Total: {b(fmt_money(summary.total, symbol))} ({summary.count} expenses)")
    return "\n".join(lines)


def report_for_budget(year: int, month: int, lines: List[BudgetLine], symbol: str = "€") -> str:
    """Budget vs actual spending for one month."""
    header = f"🎯 {b('Budget ' + month_label(year, month))}"
    if not lines:
        return f"{header}\n\nNo budget for this month. Import one from ⚙️ Settings."

    out = [header, ""]
    current = None
    for line in lines:
        if line.category != current:
            current = line.category
            out.append(f"📁 {b(current)}")
        if line.remaining < 0:
            mark, left = "🔴", f"{fmt_money(-line.remaining, symbol)} over"
        else:
            mark, left = "🟢", f"{fmt_money(line.remaining, symbol)} left"
        out.append(
            f"   {mark} {q(line.sub_category)}: {fmt_money(line.spent, symbol)} / {fmt_money(line.planned, symbol)}"
            f" ({left})"
        )
    planned = sum((line.planned for line in lines), Decimal("0"))
    spent = sum((line.spent for line in lines), Decimal("0"))
    out.append("")
    out.append(f"💰 Spent {b(fmt_money(spent, symbol))} of {fmt_money(planned, symbol)}")
    return "\n".join(out)


async def build_weekly_report(store: ExpenseStore, symbol: str = "€", today: Optional[date] = None) -> str:
    """Last week's expenses, sent by the scheduler every Monday."""
    summary = await ReportService(store).get_period_summary(get_last_week_range(today))
    return report_for_period("Weekly expense report", summary, symbol)
