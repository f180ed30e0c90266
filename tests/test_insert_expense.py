from datetime import date
from decimal import Decimal

import pytest
from aiogram.types import ReplyKeyboardMarkup

from expense_tracker.errors import TransportError
from expense_tracker.flows.insert_expense import (
    BUTTON_USE_TODAY, CB_CATEGORY, CB_SKIP_TAG, CB_SUBCATEGORY, CB_TAG,
)
from expense_tracker.flows.messaging import MAIN_MENU_TEXT
from expense_tracker.states.flow_data import InsertExpenseData

Step = InsertExpenseData.Step


async def _to_amount_step(bot, ids):
    await bot.text("💰 Add expense")
    await bot.click(CB_CATEGORY, ids["food"])
    await bot.click(CB_SUBCATEGORY, ids["groceries"])
    await bot.text("Weekly shopping")


def test_subcategory_without_tags_skips_tag_step(run_bot):
    async def scenario(bot):
        ids = await bot.seed()
        await bot.text("💰 Add expense")
        assert bot.flow.step is Step.SELECT_CATEGORY
        assert ["Food"] in bot.transport.buttons()

        await bot.click(CB_CATEGORY, ids["food"])
        assert bot.flow.step is Step.SELECT_SUBCATEGORY
        assert bot.flow.category_name == "Food"

        await bot.click(CB_SUBCATEGORY, ids["groceries"])
        assert bot.flow.step is Step.ADD_DESCRIPTION
        assert bot.flow.tag_id is None

    run_bot(scenario)


def test_subcategory_with_tags_shows_tags_and_skip(run_bot):
    async def scenario(bot):
        ids = await bot.seed()
        await bot.text("💰 Add expense")
        await bot.click(CB_CATEGORY, ids["food"])
        await bot.click(CB_SUBCATEGORY, ids["restaurants"])
        assert bot.flow.step is Step.SELECT_TAG
        labels = [text for row in bot.transport.buttons() for text in row]
        assert "🏷️ Dinner" in labels and "🏷️ Lunch" in labels and "⏭️ Skip" in labels

        await bot.click(CB_SKIP_TAG)
        assert bot.flow.step is Step.ADD_DESCRIPTION
        assert bot.flow.tag_name is None

    run_bot(scenario)


@pytest.mark.parametrize("raw", ["0", "-5", "abc", "nan", "inf", "12.5.0"])
def test_invalid_amount_keeps_step(run_bot, raw):
    async def scenario(bot):
        ids = await bot.seed()
        await _to_amount_step(bot, ids)
        await bot.text(raw)
        assert bot.flow.step is Step.INSERT_AMOUNT
        assert bot.flow.amount is None
        assert "Invalid amount" in bot.transport.last.text

    run_bot(scenario)


def test_amount_dot_and_comma_are_the_same(run_bot):
    async def scenario(bot):
        ids = await bot.seed()
        amounts = []
        for raw in ("12.50", "12,50"):
            await _to_amount_step(bot, ids)
            await bot.text(raw)
            assert bot.flow.step is Step.SELECT_DATE
            amounts.append(bot.flow.amount)
            await bot.main_menu()
        assert amounts[0] == amounts[1] == Decimal("12.50")

    run_bot(scenario)


def test_full_path_saves_expense(run_bot):
    async def scenario(bot):
        ids = await bot.seed()
        await bot.text("💰 Add expense")
        await bot.click(CB_CATEGORY, ids["food"])
        await bot.click(CB_SUBCATEGORY, ids["restaurants"])
        await bot.click(CB_TAG, ids["lunch"])
        await bot.text("Pizza with the team")
        await bot.text("23.40")
        assert bot.flow.step is Step.SELECT_DATE
        assert [BUTTON_USE_TODAY] in bot.transport.buttons()

        await bot.text(BUTTON_USE_TODAY)
        assert bot.flow is None

        today = date.today()
        expenses = await bot.store.list_expenses(today, today)
        assert len(expenses) == 1
        expense = expenses[0]
        assert Decimal(str(expense.amount)) == Decimal("23.40")
        assert expense.description == "Pizza with the team"
        assert expense.tag_id == ids["lunch"]
        assert expense.performed_by == "alice"

        confirmation, menu = bot.transport.sent[-2:]
        assert "Expense saved" in confirmation.text
        assert menu.text == MAIN_MENU_TEXT
        assert confirmation.message_id in bot.session.tracked_message_ids
        assert menu.message_id in bot.session.tracked_message_ids

    run_bot(scenario)


def test_typed_and_web_app_dates(run_bot):
    async def scenario(bot):
        ids = await bot.seed()
        await _to_amount_step(bot, ids)
        await bot.text("10")
        await bot.text("2019-12-31")
        assert bot.flow.step is Step.SELECT_DATE
        assert "out of range" in bot.transport.last.text

        await bot.text("not a date")
        assert bot.flow.step is Step.SELECT_DATE

        await bot.text("14/03/2025")
        assert bot.flow is None

        await _to_amount_step(bot, ids)
        await bot.text("5")
        await bot.web_app("2025-03-15")
        assert bot.flow is None

        saved = await bot.store.list_expenses(date(2025, 3, 14), date(2025, 3, 15))
        assert sorted(e.spent_on for e in saved) == [date(2025, 3, 14), date(2025, 3, 15)]

    run_bot(scenario)


def test_back_round_trip_matches_direct_path(run_bot):
    async def scenario(bot):
        ids = await bot.seed()
        await bot.text("💰 Add expense")
        await bot.click(CB_CATEGORY, ids["food"])
        await bot.click(CB_SUBCATEGORY, ids["restaurants"])
        await bot.click(CB_TAG, ids["lunch"])
        await bot.text("Pizza")
        await bot.text("20")
        direct = bot.flow
        assert direct.step is Step.SELECT_DATE

        await bot.back()
        assert bot.flow.step is Step.INSERT_AMOUNT and bot.flow.amount is None
        await bot.back()
        assert bot.flow.step is Step.ADD_DESCRIPTION and bot.flow.description is None
        await bot.back()
        assert bot.flow.step is Step.SELECT_TAG and bot.flow.tag_id is None
        await bot.back()
        assert bot.flow.step is Step.SELECT_SUBCATEGORY and bot.flow.sub_category_id is None

        # take a detour through another tag, then go back to the direct choices
        await bot.click(CB_SUBCATEGORY, ids["restaurants"])
        await bot.click(CB_TAG, ids["dinner"])
        await bot.back()
        await bot.click(CB_TAG, ids["lunch"])
        await bot.text("Pizza")
        await bot.text("20")
        assert bot.flow == direct

    run_bot(scenario)


def test_back_from_description_without_tags_goes_to_subcategories(run_bot):
    async def scenario(bot):
        ids = await bot.seed()
        await bot.text("💰 Add expense")
        await bot.click(CB_CATEGORY, ids["food"])
        await bot.click(CB_SUBCATEGORY, ids["groceries"])
        await bot.back()
        assert bot.flow.step is Step.SELECT_SUBCATEGORY
        await bot.back()
        assert bot.flow == InsertExpenseData()
        await bot.back()
        assert bot.flow is None

    run_bot(scenario)


def test_stale_category_is_reported(run_bot):
    async def scenario(bot):
        await bot.seed()
        await bot.text("💰 Add expense")
        await bot.click(CB_CATEGORY, 999)
        assert bot.flow.step is Step.SELECT_CATEGORY
        assert "not found" in bot.transport.last.text

    run_bot(scenario)


def test_save_failure_keeps_date_step(run_bot):
    async def scenario(bot):
        ids = await bot.seed()
        await _to_amount_step(bot, ids)
        await bot.text("10")

        async def broken(**kwargs):
            raise RuntimeError("disk I/O error")

        bot.store.create_expense = broken
        await bot.text(BUTTON_USE_TODAY)
        assert bot.flow.step is Step.SELECT_DATE
        assert bot.flow.amount == Decimal("10")

    run_bot(scenario)


def test_lost_confirmation_does_not_save_twice(run_bot):
    async def scenario(bot):
        ids = await bot.seed()
        await _to_amount_step(bot, ids)
        await bot.text("10")

        send = bot.transport.send_message
        failures = []

        async def flaky_send(chat_id, text, reply_markup=None):
            if "Expense saved" in text and not failures:
                failures.append(text)
                raise TransportError("Bad Gateway")
            return await send(chat_id, text, reply_markup)

        bot.transport.send_message = flaky_send
        await bot.text(BUTTON_USE_TODAY)
        assert failures
        assert bot.flow is None

        await bot.text(BUTTON_USE_TODAY)
        today = date.today()
        assert len(await bot.store.list_expenses(today, today)) == 1

    run_bot(scenario)


def test_main_menu_replaces_date_keyboard(run_bot):
    async def scenario(bot):
        ids = await bot.seed()
        await bot.text("/start")
        menu_id = bot.session.main_menu_message_id
        await _to_amount_step(bot, ids)
        await bot.text("10")
        assert [BUTTON_USE_TODAY] in bot.transport.buttons()

        await bot.back()
        await bot.click_raw("main_menu")
        assert bot.flow is None
        assert bot.session.main_menu_message_id != menu_id
        assert bot.transport.last.text == MAIN_MENU_TEXT
        assert isinstance(bot.transport.last.reply_markup, ReplyKeyboardMarkup)
        assert not bot.session.custom_reply_keyboard

        # with the menu keyboard back in place the inline button reuses the message again
        sends = len(bot.transport.sent)
        await bot.click_raw("main_menu")
        assert len(bot.transport.sent) == sends

    run_bot(scenario)
