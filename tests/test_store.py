from datetime import date
from decimal import Decimal

import pytest

from expense_tracker.errors import NotFoundError


def test_create_category_is_idempotent(run_store):
    async def scenario(store):
        first = await store.create_category("Food")
        second = await store.create_category("FOOD")
        assert first.created and not first.is_duplicate
        assert second.is_duplicate
        assert second.item.id == first.item.id
        assert [c.name for c in await store.list_categories()] == ["Food"]

    run_store(scenario)


def test_case_sensitive_names_are_distinct(run_store):
    async def scenario(store):
        food = (await store.create_category("Food")).item
        assert (await store.create_category("food")).created
        lower = await store.create_sub_category("groceries", food.id)
        upper = await store.create_sub_category("Groceries", food.id)
        assert lower.created and upper.created
        assert (await store.create_sub_category("Groceries", food.id)).is_duplicate

    run_store(scenario, case_insensitive=False)


def test_same_subcategory_name_in_two_categories(run_store):
    async def scenario(store):
        food = (await store.create_category("Food")).item
        home = (await store.create_category("Home")).item
        a = await store.create_sub_category("Other", food.id)
        b = await store.create_sub_category("Other", home.id)
        assert a.created and b.created
        assert a.item.id != b.item.id

    run_store(scenario)


def test_missing_parents_raise_not_found(run_store):
    async def scenario(store):
        with pytest.raises(NotFoundError):
            await store.create_sub_category("Groceries", 42)
        with pytest.raises(NotFoundError):
            await store.create_tag("Lunch", 42)
        with pytest.raises(NotFoundError):
            await store.create_expense(
                sub_category_id=42, amount=Decimal("5"), description="x", notes=None,
                performed_by="alice", tag_id=None, spent_on=date(2025, 1, 1),
            )
        assert await store.get_category(42) is None

    run_store(scenario)


def test_expenses_listing_and_spending(run_store):
    async def scenario(store):
        food = (await store.create_category("Food")).item
        groceries = (await store.create_sub_category("Groceries", food.id)).item
        rent_cat = (await store.create_category("Home")).item
        rent = (await store.create_sub_category("Rent", rent_cat.id)).item

        for sub_id, amount, day in (
            (groceries.id, "10.20", 3), (groceries.id, "4.80", 10), (rent.id, "900", 1), (rent.id, "900", 40),
        ):
            spent_on = date(2025, 3, day) if day <= 31 else date(2025, 4, day - 31)
            await store.create_expense(
                sub_category_id=sub_id, amount=Decimal(amount), description="x", notes=None,
                performed_by="alice", tag_id=None, spent_on=spent_on,
            )

        march = await store.list_expenses(date(2025, 3, 1), date(2025, 3, 31))
        assert len(march) == 3
        assert march[0].spent_on == date(2025, 3, 10)
        assert march[0].sub_category.category.name == "Food"

        spent = await store.spending_by_sub_category(date(2025, 3, 1), date(2025, 3, 31))
        assert spent == {groceries.id: Decimal("15.00"), rent.id: Decimal("900.00")}

    run_store(scenario)
