"""
Expense and budget summaries shared by the report/budget flows and the weekly job.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Tuple

from expense_tracker.db.models import Budget, Expense
from expense_tracker.repo.store import ExpenseStore

logger = logging.getLogger(__name__)


@dataclass
class CategoryTotal:
    name: str
    total: Decimal = Decimal("0")
    sub_totals: Dict[str, Decimal] = field(default_factory=OrderedDict)


@dataclass
class PeriodSummary:
    start: date
    end: date
    total: Decimal
    count: int
    categories: List[CategoryTotal]


@dataclass
class BudgetLine:
    category: str
    sub_category: str
    planned: Decimal
    spent: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.planned - self.spent


def summarize_expenses(expenses: List[Expense], date_range: Tuple[date, date]) -> PeriodSummary:
    """Groups expenses by category and subcategory, biggest category first."""
    start, end = date_range
    by_category: Dict[str, CategoryTotal] = {}
    total = Decimal("0")
    for expense in expenses:
        amount = Decimal(str(expense.amount))
        sub = expense.sub_category
        cat_name = sub.category.name if sub is not None and sub.category is not None else "?"
        sub_name = sub.name if sub is not None else "?"

        bucket = by_category.setdefault(cat_name, CategoryTotal(name=cat_name))
        bucket.total += amount
        bucket.sub_totals[sub_name] = bucket.sub_totals.get(sub_name, Decimal("0")) + amount
        total += amount

    categories = sorted(by_category.values(), key=lambda c: (-c.total, c.name))
    for cat in categories:
        cat.sub_totals = OrderedDict(sorted(cat.sub_totals.items(), key=lambda kv: (-kv[1], kv[0])))
    return PeriodSummary(start=start, end=end, total=total, count=len(expenses), categories=categories)


def budget_lines(budgets: List[Budget], spent: Dict[int, Decimal]) -> List[BudgetLine]:
    lines = []
    for budget in budgets:
        sub = budget.sub_category
        lines.append(BudgetLine(
            category=sub.category.name,
            sub_category=sub.name,
            planned=Decimal(str(budget.amount)),
            spent=spent.get(budget.sub_category_id, Decimal("0")),
        ))
    return lines


class ReportService:
    """Loads data from the store and builds summaries."""

    def __init__(self, store: ExpenseStore):
        self.store = store

    async def get_period_summary(self, date_range: Tuple[date, date]) -> PeriodSummary:
        start, end = date_range
        expenses = await self.store.list_expenses(start, end)
        return summarize_expenses(expenses, date_range)

    async def get_budget_lines(self, year: int, month: int, date_range: Tuple[date, date]) -> List[BudgetLine]:
        budgets = await self.store.list_budgets(year, month)
        spent = await self.store.spending_by_sub_category(*date_range)
        return budget_lines(budgets, spent)
