import itertools

import pytest

from expense_tracker.errors import ConfigurationError
from expense_tracker.flows import budget, import_flow, insert_expense, report, settings_expenses
from expense_tracker.flows.base import FlowContext
from expense_tracker.flows.events import Callback, ChatRef, callback_data
from expense_tracker.flows.messaging import MAIN_MENU_TEXT
from expense_tracker.flows.registry import FLOW_TABLE, build_flows
from expense_tracker.flows.router import (
    UNEXPECTED_DOCUMENT, UNEXPECTED_WEB_APP_DATA, UNRECOGNIZED_ACTION, UNRECOGNIZED_TEXT,
)
from expense_tracker.states.flow_data import InsertExpenseData, ReportData
from expense_tracker.states.session import ChatSession

CALLBACK_NAMES = [
    insert_expense.CB_CATEGORY, insert_expense.CB_SUBCATEGORY, insert_expense.CB_TAG, insert_expense.CB_SKIP_TAG,
    report.CB_PERIOD, budget.CB_MONTH,
    settings_expenses.CB_ADD_CATEGORY, settings_expenses.CB_ADD_SUBCATEGORY, settings_expenses.CB_PICK_CATEGORY,
    settings_expenses.CB_ADD_TAG, settings_expenses.CB_DONE_TAGS,
]


def test_callback_split_on_first_separator_only():
    event = Callback(chat=ChatRef(id=1), raw="bud_month:2025:03", callback_id="x")
    assert event.split() == ("bud_month", "2025:03")
    assert Callback(chat=ChatRef(id=1), raw="main_menu", callback_id="x").split() == ("main_menu", "")


def test_callback_name_must_not_contain_separator():
    assert callback_data("exp_cat", 3) == "exp_cat:3"
    with pytest.raises(ValueError):
        callback_data("exp:cat", 3)


def _all_sessions(registry):
    yield ChatSession()
    for handler in registry:
        for step in handler.data_type.Step:
            session = ChatSession()
            session.set_flow_data(handler.data_type(step=step))
            yield session


def test_predicates_are_mutually_exclusive(settings):
    ctx = FlowContext(transport=None, store=None, settings=settings)
    registry = build_flows(ctx)
    handlers = list(registry)
    settings_callbacks = [sub.settings_callback for sub in registry.sub_flows()]

    for session in _all_sessions(registry):
        checks = {
            "text": [h.can_handle_text_input(session) for h in handlers],
            "document": [h.can_handle_document(session) for h in handlers],
            "web_app": [h.can_handle_web_app_data(session) for h in handlers],
            "back": [h.can_handle_back(session) for h in handlers],
        }
        for name, data in itertools.chain(((n, "1") for n in CALLBACK_NAMES), settings_callbacks):
            checks[f"callback {name}:{data}"] = [h.can_handle_callback(name, data, session) for h in handlers]
        for kind, answers in checks.items():
            assert sum(answers) <= 1, f"{kind} claimed twice in step {session.current_step}"

    for label in registry.menu_labels():
        assert sum(h.can_handle_menu_command(label) for h in handlers) == 1


def test_build_flows_filters_and_validates(settings):
    ctx = FlowContext(transport=None, store=None, settings=settings)
    registry = build_flows(ctx, ["report", "insert_expense"])
    # table order wins over the configured order
    assert registry.names == ["insert_expense", "report"]
    assert ctx.registry is registry
    assert registry.menu_labels() == ["💰 Add expense", "📊 Report"]

    assert build_flows(ctx).names == [name for name, _ in FLOW_TABLE]

    with pytest.raises(ConfigurationError):
        build_flows(ctx, ["insert_expense", "travel"])


def test_main_menu_twice_is_idempotent(run_bot):
    async def scenario(bot):
        await bot.text("💰 Add expense")
        assert bot.session.tracked_message_ids

        await bot.main_menu()
        first = (bot.flow, list(bot.session.tracked_message_ids), bot.session.last_bot_message_id,
                 bot.session.main_menu_message_id)
        sends = len(bot.transport.sent)

        await bot.main_menu()
        second = (bot.flow, list(bot.session.tracked_message_ids), bot.session.last_bot_message_id,
                  bot.session.main_menu_message_id)

        assert first == second
        assert first[0] is None
        assert first[1] == []
        assert first[2] == first[3]
        assert len(bot.transport.sent) == sends

    run_bot(scenario)


def test_main_menu_deletes_tracked_messages(run_bot):
    async def scenario(bot):
        await bot.text("/start")
        menu_id = bot.session.main_menu_message_id
        assert bot.transport.last.text == MAIN_MENU_TEXT
        assert ["💰 Add expense", "📊 Report"] in bot.transport.buttons()

        await bot.text("📊 Report")
        tracked = list(bot.session.tracked_message_ids)
        assert tracked and menu_id not in tracked

        await bot.click_raw("main_menu")
        assert bot.transport.deleted == tracked
        assert bot.session.main_menu_message_id == menu_id

    run_bot(scenario)


def test_cleanup_failures_are_ignored(run_bot):
    async def scenario(bot):
        await bot.text("📊 Report")
        bot.transport.fail_delete = True
        await bot.main_menu()
        assert bot.flow is None
        assert bot.session.tracked_message_ids == []

    run_bot(scenario)


def test_start_forces_a_new_main_menu(run_bot):
    async def scenario(bot):
        await bot.text("/start")
        old = bot.session.main_menu_message_id
        await bot.text("🏠 Main menu")
        assert bot.session.main_menu_message_id != old
        assert old in bot.transport.deleted

    run_bot(scenario)


def test_menu_command_starts_flow(run_bot):
    async def scenario(bot):
        await bot.text("📊 Report")
        assert isinstance(bot.flow, ReportData)
        await bot.text("💰 Add expense")
        assert isinstance(bot.flow, InsertExpenseData)

    run_bot(scenario)


def test_unrecognized_callback_is_acknowledged(run_bot):
    async def scenario(bot):
        await bot.text("📊 Report")
        before = bot.flow
        await bot.click("exp_cat", 1)
        assert bot.transport.answered[-1] == ("cb-exp_cat:1", UNRECOGNIZED_ACTION)
        assert bot.flow is before

    run_bot(scenario)


def test_routing_misses_get_neutral_replies(run_bot):
    async def scenario(bot):
        await bot.text("hello")
        assert bot.transport.last.text == UNRECOGNIZED_TEXT
        await bot.document("budget.xlsx", 100)
        assert bot.transport.last.text == UNEXPECTED_DOCUMENT
        await bot.web_app("2025-01-01")
        assert bot.transport.last.text == UNEXPECTED_WEB_APP_DATA
        assert bot.flow is None

    run_bot(scenario)


def test_back_without_handler_shows_main_menu(run_bot):
    async def scenario(bot):
        await bot.text("💰 Add expense")
        await bot.back()
        assert bot.flow is None
        assert bot.session.main_menu_message_id is not None

    run_bot(scenario)


def test_handler_failure_is_reported_and_state_kept(run_bot):
    async def scenario(bot):
        async def broken():
            raise RuntimeError("database is locked")

        bot.store.list_categories = broken
        await bot.text("💰 Add expense")
        assert bot.transport.last.text == insert_expense.InsertExpenseFlow.error_text
        assert bot.flow is None

    run_bot(scenario)


def test_edit_failure_falls_back_to_send(run_bot):
    async def scenario(bot):
        await bot.text("📊 Report")
        bot.transport.fail_edit = True
        await bot.click(report.CB_PERIOD, "today")
        assert bot.transport.last.kind == "send"
        assert bot.flow.step is ReportData.Step.SHOW_REPORT

    run_bot(scenario)
