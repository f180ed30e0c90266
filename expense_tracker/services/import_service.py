"""
Budget import from an Excel workbook.

The first worksheet is read from row 2 onwards (row 1 is the header):

- A: category (blank means "same as the previous row")
- B: subcategory (blank rows and rows starting with "TOTAL" are skipped)
- D: comma separated tags
- E: default monthly budget
- F..Q: per-month overrides, January..December (a positive value wins over E)
"""
import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import BinaryIO, List, Optional

from openpyxl import load_workbook
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.db.models import Category
from expense_tracker.repo import repo

logger = logging.getLogger(__name__)

COL_CATEGORY = 1
COL_SUB_CATEGORY = 2
COL_TAGS = 4
COL_DEFAULT_BUDGET = 5
FIRST_MONTH_COL = 6


@dataclass
class BudgetRow:
    row: int
    category: Optional[str]
    sub_category: str
    tags: List[str]
    monthly: List[Decimal]


@dataclass
class ImportResult:
    categories_created: int = 0
    sub_categories_created: int = 0
    tags_created: int = 0
    budgets_created: int = 0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _cell_text(values: tuple, col: int) -> str:
    if len(values) < col or values[col - 1] is None:
        return ""
    return str(values[col - 1]).strip()


def _cell_amount(values: tuple, col: int) -> Decimal:
    if len(values) < col or values[col - 1] is None:
        return Decimal("0")
    raw = values[col - 1]
    try:
        amount = Decimal(str(raw).replace(",", "."))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return amount if amount.is_finite() and amount > 0 else Decimal("0")


def parse_budget_sheet(stream: BinaryIO) -> List[BudgetRow]:
    """Reads the workbook into `BudgetRow`s without touching the database.

    Raises whatever openpyxl raises for an unreadable file.
    """
    workbook = load_workbook(stream, read_only=True, data_only=True)
    try:
        worksheet = workbook.worksheets[0]
        rows: List[BudgetRow] = []
        for row_number, values in enumerate(worksheet.iter_rows(min_row=2, values_only=True), start=2):
            sub_name = _cell_text(values, COL_SUB_CATEGORY)
            if not sub_name or sub_name.upper().startswith("TOTAL"):
                continue

            category = _cell_text(values, COL_CATEGORY) or None
            tags_cell = _cell_text(values, COL_TAGS)
            tags = [t.strip() for t in tags_cell.split(",") if t.strip()]

            default = _cell_amount(values, COL_DEFAULT_BUDGET)
            monthly = []
            for month in range(12):
                override = _cell_amount(values, FIRST_MONTH_COL + month)
                monthly.append(override if override > 0 else default)

            rows.append(BudgetRow(row=row_number, category=category, sub_category=sub_name, tags=tags, monthly=monthly))
        return rows
    finally:
        workbook.close()


class ImportService:
    """Applies parsed budget rows to the database for one fiscal year."""

    def __init__(self, session: AsyncSession, case_insensitive_names: bool = True):
        self.session = session
        self.case_insensitive = case_insensitive_names

    async def import_rows(self, rows: List[BudgetRow], year: int) -> ImportResult:
        result = ImportResult()
        current: Optional[Category] = None

        for row in rows:
            if row.category:
                current = await self._category(row.category, result)

            if current is None:
                result.errors.append(f"Row {row.row}: no category found for '{row.sub_category}'")
                continue

            sub, created = await repo.add_sub_category(self.session, current.id, row.sub_category, self.case_insensitive)
            if created:
                result.sub_categories_created += 1
                logger.debug("Created subcategory: %s", sub.name)
            else:
                result.warnings.append(f"Subcategory '{row.sub_category}' already exists")

            for tag_name in row.tags:
                _, tag_created = await repo.add_tag(self.session, sub.id, tag_name, self.case_insensitive)
                if tag_created:
                    result.tags_created += 1

            if any(amount > 0 for amount in row.monthly):
                for month, amount in enumerate(row.monthly, start=1):
                    if amount <= 0:
                        continue
                    if await repo.upsert_budget(self.session, sub.id, year, month, amount):
                        result.budgets_created += 1

        return result

    async def import_workbook(self, stream: BinaryIO, year: int) -> ImportResult:
        """Parses and imports in a single transaction; failures end up in `errors`."""
        try:
            # openpyxl blocks; parse in a worker thread
            rows = await asyncio.to_thread(parse_budget_sheet, stream)
        except Exception as e:
            logger.exception("Unreadable budget workbook")
            return ImportResult(errors=[f"Could not read the workbook: {e}"])

        try:
            result = await self.import_rows(rows, year)
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            logger.exception("Budget import for year %s failed", year)
            return ImportResult(errors=[f"Import failed: {e}"])

        logger.info(
            "Import completed: %s categories, %s subcategories, %s tags, %s budgets",
            result.categories_created, result.sub_categories_created,
            result.tags_created, result.budgets_created,
        )
        return result

    async def _category(self, name: str, result: ImportResult) -> Category:
        category, created = await repo.add_category(self.session, name, self.case_insensitive)
        if created:
            result.categories_created += 1
            logger.debug("Created category: %s", name)
        else:
            result.warnings.append(f"Category '{name}' already exists")
        return category
