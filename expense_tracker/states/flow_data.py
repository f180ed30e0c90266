"""Per-flow conversation data.

Each flow owns exactly one FlowData subclass. The `step` field always holds a
member of that subclass's `Step` enum; anything else is rejected on creation.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import ClassVar, Optional, Type


@dataclass
class FlowData:
    Step: ClassVar[Type[enum.Enum]]

    def __post_init__(self) -> None:
        # accepts raw strings too, raises ValueError for foreign steps
        self.step = type(self).Step(self.step)

    def evolve(self, **changes):
        """Copy with changes; the session keeps the old object until the caller commits."""
        return replace(self, **changes)

    @classmethod
    def steps(cls) -> frozenset[str]:
        return frozenset(s.value for s in cls.Step)


@dataclass
class InsertExpenseData(FlowData):
    class Step(str, enum.Enum):
        SELECT_CATEGORY = "select_category"
        SELECT_SUBCATEGORY = "select_subcategory"
        SELECT_TAG = "select_tag"
        ADD_DESCRIPTION = "add_description"
        INSERT_AMOUNT = "insert_amount"
        SELECT_DATE = "select_date"

    step: Step = Step.SELECT_CATEGORY
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    sub_category_id: Optional[int] = None
    sub_category_name: Optional[str] = None
    tag_id: Optional[int] = None
    tag_name: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    spent_on: Optional[date] = None


@dataclass
class ReportData(FlowData):
    class Step(str, enum.Enum):
        SELECT_PERIOD = "select_period"
        SHOW_REPORT = "show_report"

    step: Step = Step.SELECT_PERIOD
    period: Optional[str] = None


@dataclass
class BudgetData(FlowData):
    class Step(str, enum.Enum):
        SHOW_MONTH = "show_month"

    step: Step = Step.SHOW_MONTH
    year: Optional[int] = None
    month: Optional[int] = None


@dataclass
class SettingsData(FlowData):
    class Step(str, enum.Enum):
        ROOT = "settings_root"

    step: Step = Step.ROOT


@dataclass
class SettingsExpensesData(FlowData):
    class Step(str, enum.Enum):
        SELECT_ACTION = "select_action"
        ADD_CATEGORY = "add_category"
        SELECT_CATEGORY_FOR_SUB = "select_category_for_sub"
        ADD_SUBCATEGORY = "add_subcategory"
        ASK_ADD_TAG = "ask_add_tag"
        ADD_TAG = "add_tag"

    step: Step = Step.SELECT_ACTION
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    created_sub_category_id: Optional[int] = None
    created_sub_category_name: Optional[str] = None


@dataclass
class ImportData(FlowData):
    class Step(str, enum.Enum):
        WAITING_FOR_YEAR = "waiting_for_year"
        WAITING_FOR_FILE = "waiting_for_file"

    step: Step = Step.WAITING_FOR_YEAR
    year: Optional[int] = None
