import logging
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Type, TypeVar

from aiogram.types import ReplyKeyboardMarkup

from expense_tracker.errors import ConfigurationError
from expense_tracker.flows.base import FlowContext, FlowHandler, SubFlow
from expense_tracker.flows.budget import BudgetFlow
from expense_tracker.flows.import_flow import ImportFlow
from expense_tracker.flows.insert_expense import InsertExpenseFlow
from expense_tracker.flows.report import ReportFlow
from expense_tracker.flows.settings import SettingsFlow
from expense_tracker.flows.settings_expenses import SettingsExpensesFlow
from expense_tracker.keyboards.common import kb_main_menu
from expense_tracker.states.flow_data import FlowData

logger = logging.getLogger(__name__)

H = TypeVar("H", bound=FlowHandler)

# Registration order is the routing tie-break and the main menu order.
FLOW_TABLE: Tuple[Tuple[str, Type[FlowHandler]], ...] = (
    (InsertExpenseFlow.name, InsertExpenseFlow),
    (ReportFlow.name, ReportFlow),
    (BudgetFlow.name, BudgetFlow),
    (SettingsFlow.name, SettingsFlow),
    (SettingsExpensesFlow.name, SettingsExpensesFlow),
    (ImportFlow.name, ImportFlow),
)


class FlowRegistry:
    """Ordered, read-only list of the enabled flow handlers."""

    def __init__(self, handlers: Iterable[FlowHandler]):
        self._handlers: Tuple[FlowHandler, ...] = tuple(handlers)

    def __iter__(self) -> Iterator[FlowHandler]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    @property
    def names(self) -> List[str]:
        return [h.name for h in self._handlers]

    def menu_labels(self) -> List[str]:
        return [h.menu_label for h in self._handlers if h.menu_label]

    def main_menu_keyboard(self) -> ReplyKeyboardMarkup:
        return kb_main_menu(self.menu_labels())

    def sub_flows(self) -> List[FlowHandler]:
        return [h for h in self._handlers if isinstance(h, SubFlow)]

    def find(self, kind: Type[H]) -> Optional[H]:
        for handler in self._handlers:
            if isinstance(handler, kind):
                return handler
        return None

    def owner_of(self, data: FlowData) -> Optional[FlowHandler]:
        for handler in self._handlers:
            if isinstance(data, handler.data_type):
                return handler
        return None


def build_flows(ctx: FlowContext, enabled: Sequence[str] = ()) -> FlowRegistry:
    """
    Instantiates the enabled flows in table order.

    :param ctx: Shared collaborators; its `registry` is filled in here.
    :param enabled: Flow names to keep; empty keeps every flow.
    :raises ConfigurationError: On unknown names or when nothing is left.
    """
    known = {name for name, _ in FLOW_TABLE}
    unknown = [name for name in enabled if name not in known]
    if unknown:
        raise ConfigurationError(f"Unknown flows in ENABLED_FLOWS: {', '.join(unknown)}")

    wanted = set(enabled) if enabled else known
    handlers = [cls(ctx) for name, cls in FLOW_TABLE if name in wanted]
    if not handlers:
        raise ConfigurationError("No flows enabled")

    registry = FlowRegistry(handlers)
    if registry.sub_flows() and registry.find(SettingsFlow) is None:
        logger.warning("Sub-flows %s are enabled without settings and cannot be reached",
                       [h.name for h in registry.sub_flows()])
    ctx.registry = registry
    logger.info("Enabled flows: %s", ", ".join(registry.names))
    return registry
