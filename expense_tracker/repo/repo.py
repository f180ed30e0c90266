from __future__ import annotations
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from expense_tracker.db.models import Category, SubCategory, Tag, Expense, Budget


def _name_matches(column, name: str, case_insensitive: bool):
    if case_insensitive:
        return func.lower(column) == name.lower()
    return column == name

# categories
async def list_categories(session: AsyncSession) -> List[Category]:
    rows = (await session.execute(select(Category).order_by(Category.name))).scalars().all()
    return list(rows)

async def get_category(session: AsyncSession, category_id: int) -> Optional[Category]:
    return (await session.execute(
        select(Category).where(Category.id == category_id)
    )).scalar_one_or_none()

async def find_category(session: AsyncSession, name: str, case_insensitive: bool = True) -> Optional[Category]:
    return (await session.execute(
        select(Category).where(_name_matches(Category.name, name, case_insensitive))
    )).scalars().first()

async def add_category(session: AsyncSession, name: str, case_insensitive: bool = True) -> tuple[Category, bool]:
    """Returns the existing row when the name is already taken (created=False)."""
    existing = await find_category(session, name, case_insensitive)
    if existing is not None:
        return existing, False
    cat = Category(name=name)
    session.add(cat)
    await session.flush()
    return cat, True

# subcategories
async def list_sub_categories(session: AsyncSession, category_id: int) -> List[SubCategory]:
    rows = (await session.execute(
        select(SubCategory)
        .where(SubCategory.category_id == category_id)
        .order_by(SubCategory.name)
    )).scalars().all()
    return list(rows)

async def get_sub_category(session: AsyncSession, sub_category_id: int) -> Optional[SubCategory]:
    return (await session.execute(
        select(SubCategory)
        .options(selectinload(SubCategory.category))
        .where(SubCategory.id == sub_category_id)
    )).scalar_one_or_none()

async def find_sub_category(
    session: AsyncSession, category_id: int, name: str, case_insensitive: bool = True
) -> Optional[SubCategory]:
    return (await session.execute(
        select(SubCategory).where(
            SubCategory.category_id == category_id,
            _name_matches(SubCategory.name, name, case_insensitive),
        )
    )).scalars().first()

async def add_sub_category(
    session: AsyncSession, category_id: int, name: str, case_insensitive: bool = True
) -> tuple[SubCategory, bool]:
    existing = await find_sub_category(session, category_id, name, case_insensitive)
    if existing is not None:
        return existing, False
    sub = SubCategory(name=name, category_id=category_id)
    session.add(sub)
    await session.flush()
    return sub, True

# tags
async def list_tags(session: AsyncSession, sub_category_id: int) -> List[Tag]:
    rows = (await session.execute(
        select(Tag).where(Tag.sub_category_id == sub_category_id).order_by(Tag.name)
    )).scalars().all()
    return list(rows)

async def get_tag(session: AsyncSession, tag_id: int) -> Optional[Tag]:
    return (await session.execute(select(Tag).where(Tag.id == tag_id))).scalar_one_or_none()

async def add_tag(
    session: AsyncSession, sub_category_id: int, name: str, case_insensitive: bool = True
) -> tuple[Tag, bool]:
    existing = (await session.execute(
        select(Tag).where(
            Tag.sub_category_id == sub_category_id,
            _name_matches(Tag.name, name, case_insensitive),
        )
    )).scalars().first()
    if existing is not None:
        return existing, False
    tag = Tag(name=name, sub_category_id=sub_category_id)
    session.add(tag)
    await session.flush()
    return tag, True

# expenses
async def add_expense(
    session: AsyncSession,
    sub_category_id: int,
    amount: Decimal,
    description: str,
    notes: str | None,
    performed_by: str,
    tag_id: int | None,
    spent_on: date,
) -> Expense:
    expense = Expense(
        sub_category_id=sub_category_id,
        amount=amount,
        description=description,
        notes=notes,
        performed_by=performed_by,
        tag_id=tag_id,
        spent_on=spent_on,
    )
    session.add(expense)
    await session.flush()  # flush to get the id
    return expense

async def list_expenses(session: AsyncSession, start: date, end: date) -> List[Expense]:
    """Expenses with `start <= spent_on <= end`, newest first, relations loaded."""
    rows = (await session.execute(
        select(Expense)
        .options(
            selectinload(Expense.sub_category).selectinload(SubCategory.category),
            selectinload(Expense.tag),
        )
        .where(Expense.spent_on.between(start, end))
        .order_by(Expense.spent_on.desc(), Expense.id.desc())
    )).scalars().all()
    return list(rows)

async def sum_expenses_by_sub_category(session: AsyncSession, start: date, end: date) -> Dict[int, Decimal]:
    rows = (await session.execute(
        select(Expense.sub_category_id, func.sum(Expense.amount))
        .where(Expense.spent_on.between(start, end))
        .group_by(Expense.sub_category_id)
    )).all()
    return {sub_id: Decimal(str(total)).quantize(Decimal("0.01")) for sub_id, total in rows}

# budgets
async def list_budgets(session: AsyncSession, year: int, month: int) -> List[Budget]:
    rows = (await session.execute(
        select(Budget)
        .options(selectinload(Budget.sub_category).selectinload(SubCategory.category))
        .where(Budget.year == year, Budget.month == month)
    )).scalars().all()
    return sorted(rows, key=lambda b: (b.sub_category.category.name, b.sub_category.name))

async def upsert_budget(
    session: AsyncSession, sub_category_id: int, year: int, month: int, amount: Decimal
) -> bool:
    """Creates or updates the budget row; returns True when a row was created."""
    existing = (await session.execute(
        select(Budget).where(
            Budget.sub_category_id == sub_category_id,
            Budget.year == year,
            Budget.month == month,
        )
    )).scalar_one_or_none()
    if existing is not None:
        existing.amount = amount
        return False
    session.add(Budget(sub_category_id=sub_category_id, year=year, month=month, amount=amount))
    await session.flush()
    return True
