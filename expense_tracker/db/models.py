from __future__ import annotations
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Date,
    ForeignKey, UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False, unique=True)

    children = relationship(
        "SubCategory", back_populates="category", order_by="SubCategory.name"
    )

class SubCategory(Base):
    __tablename__ = "sub_categories"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)

    category = relationship("Category", back_populates="children")
    tags = relationship("Tag", back_populates="sub_category", order_by="Tag.name")
    expenses = relationship("Expense", back_populates="sub_category")

    __table_args__ = (
        UniqueConstraint("category_id", "name", name="uq_sub_category_category_name"),
        Index("ix_sub_category_category_id", "category_id"),
    )

class Tag(Base):
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False)
    sub_category_id = Column(Integer, ForeignKey("sub_categories.id", ondelete="CASCADE"), nullable=False)

    sub_category = relationship("SubCategory", back_populates="tags")

    __table_args__ = (
        UniqueConstraint("sub_category_id", "name", name="uq_tag_sub_category_name"),
    )

class Expense(Base):
    __tablename__ = "expenses"
    id = Column(Integer, primary_key=True, autoincrement=True)
    amount = Column(Numeric(12, 2), nullable=False)  # Decimal
    sub_category_id = Column(Integer, ForeignKey("sub_categories.id", ondelete="RESTRICT"), nullable=False)
    tag_id = Column(Integer, ForeignKey("tags.id", ondelete="SET NULL"), nullable=True)
    spent_on = Column(Date, nullable=False)
    description = Column(String(512), nullable=False)
    notes = Column(String(1024), nullable=True)
    performed_by = Column(String(64), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    sub_category = relationship("SubCategory", back_populates="expenses")
    tag = relationship("Tag")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
        Index("ix_expense_spent_on", "spent_on"),
    )

class Budget(Base):
    """Planned monthly amount for a subcategory within a fiscal year."""
    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    sub_category_id = Column(Integer, ForeignKey("sub_categories.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)

    sub_category = relationship("SubCategory")

    __table_args__ = (
        CheckConstraint("month between 1 and 12", name="ck_budget_month"),
        UniqueConstraint("sub_category_id", "year", "month", name="uq_budget_sub_category_year_month"),
        Index("ix_budget_year_month", "year", "month"),
    )
