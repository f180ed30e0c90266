from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import BinaryIO, Dict, Generic, List, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from expense_tracker.db.models import Budget, Category, Expense, SubCategory, Tag
from expense_tracker.errors import NotFoundError
from expense_tracker.repo import repo
from expense_tracker.services.import_service import ImportResult, ImportService

T = TypeVar("T")


@dataclass
class Upsert(Generic[T]):
    """Result of an idempotent create: `created=False` means the name already existed."""
    item: T
    created: bool

    @property
    def is_duplicate(self) -> bool:
        return not self.created


class ExpenseStore:
    """
    Data access used by the conversation flows.

    Every call opens its own short session, so a flow never holds a database
    transaction across user turns.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], case_insensitive_names: bool = True):
        """
        :param session_factory: Factory of async SQLAlchemy sessions.
        :param case_insensitive_names: Duplicate detection rule for category/subcategory/tag names.
        """
        self._session_factory = session_factory
        self.case_insensitive_names = case_insensitive_names

    # ---------- lookups ----------
    async def list_categories(self) -> List[Category]:
        async with self._session_factory() as session:
            return await repo.list_categories(session)

    async def list_sub_categories(self, category_id: int) -> List[SubCategory]:
        async with self._session_factory() as session:
            return await repo.list_sub_categories(session, category_id)

    async def list_tags(self, sub_category_id: int) -> List[Tag]:
        async with self._session_factory() as session:
            return await repo.list_tags(session, sub_category_id)

    async def get_category(self, category_id: int) -> Optional[Category]:
        async with self._session_factory() as session:
            return await repo.get_category(session, category_id)

    async def get_sub_category(self, sub_category_id: int) -> Optional[SubCategory]:
        async with self._session_factory() as session:
            return await repo.get_sub_category(session, sub_category_id)

    async def get_tag(self, tag_id: int) -> Optional[Tag]:
        async with self._session_factory() as session:
            return await repo.get_tag(session, tag_id)

    # ---------- idempotent creates ----------
    async def create_category(self, name: str) -> Upsert[Category]:
        async with self._session_factory() as session:
            category, created = await repo.add_category(session, name, self.case_insensitive_names)
            await session.commit()
            return Upsert(category, created)

    async def create_sub_category(self, name: str, category_id: int) -> Upsert[SubCategory]:
        async with self._session_factory() as session:
            if await repo.get_category(session, category_id) is None:
                raise NotFoundError(f"category {category_id} does not exist")
            sub, created = await repo.add_sub_category(session, category_id, name, self.case_insensitive_names)
            await session.commit()
            return Upsert(sub, created)

    async def create_tag(self, name: str, sub_category_id: int) -> Upsert[Tag]:
        async with self._session_factory() as session:
            if await repo.get_sub_category(session, sub_category_id) is None:
                raise NotFoundError(f"subcategory {sub_category_id} does not exist")
            tag, created = await repo.add_tag(session, sub_category_id, name, self.case_insensitive_names)
            await session.commit()
            return Upsert(tag, created)

    # ---------- expenses ----------
    async def create_expense(
        self,
        sub_category_id: int,
        amount: Decimal,
        description: str,
        notes: str | None,
        performed_by: str,
        tag_id: int | None,
        spent_on: date,
    ) -> Expense:
        """Saves one expense in a single commit."""
        async with self._session_factory() as session:
            if await repo.get_sub_category(session, sub_category_id) is None:
                raise NotFoundError(f"subcategory {sub_category_id} does not exist")
            expense = await repo.add_expense(
                session, sub_category_id, amount, description, notes, performed_by, tag_id, spent_on
            )
            await session.commit()
            return expense

    async def list_expenses(self, start: date, end: date) -> List[Expense]:
        async with self._session_factory() as session:
            return await repo.list_expenses(session, start, end)

    async def spending_by_sub_category(self, start: date, end: date) -> Dict[int, Decimal]:
        async with self._session_factory() as session:
            return await repo.sum_expenses_by_sub_category(session, start, end)

    # ---------- budgets ----------
    async def list_budgets(self, year: int, month: int) -> List[Budget]:
        async with self._session_factory() as session:
            return await repo.list_budgets(session, year, month)

    async def import_budgets(self, stream: BinaryIO, year: int) -> ImportResult:
        async with self._session_factory() as session:
            service = ImportService(session, self.case_insensitive_names)
            return await service.import_workbook(stream, year)
