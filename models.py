from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class BudgetType(str, Enum):
    global_ = "global"
    category = "category"
    room = "room"


BUDGET_TYPE_ENUM = SAEnum(
    BudgetType,
    name="budgettype",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    room: Mapped[str] = mapped_column(String(100), nullable=False)
    supplier: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    invoice_url: Mapped[Optional[str]] = mapped_column(String(500))

    __table_args__ = (
        Index("ix_expenses_date", "date"),
        Index("ix_expenses_room_category", "room", "category"),
        CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
    )


class Budget(Base, TimestampMixin):
    """Flat budget row of the legacy system, scoped by ``type``."""

    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[BudgetType] = mapped_column(BUDGET_TYPE_ENUM, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    room: Mapped[Optional[str]] = mapped_column(String(100))

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_budget_amount_positive"),
        Index("ix_budgets_type", "type"),
    )


class GlobalBudget(Base, TimestampMixin):
    __tablename__ = "global_budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    room_allocations: Mapped[list["RoomAllocation"]] = relationship(
        "RoomAllocation",
        back_populates="global_budget",
        cascade="all, delete-orphan",
    )
    category_allocations: Mapped[list["CategoryAllocation"]] = relationship(
        "CategoryAllocation",
        back_populates="global_budget",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "total_amount_cents >= 0", name="ck_global_budget_amount_positive"
        ),
    )


class RoomAllocation(Base, TimestampMixin):
    __tablename__ = "room_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    global_budget_id: Mapped[int] = mapped_column(
        ForeignKey("global_budgets.id", ondelete="CASCADE"), nullable=False
    )
    room: Mapped[str] = mapped_column(String(100), nullable=False)
    allocated_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    global_budget: Mapped["GlobalBudget"] = relationship(
        "GlobalBudget", back_populates="room_allocations"
    )
    category_allocations: Mapped[list["CategoryAllocation"]] = relationship(
        "CategoryAllocation",
        back_populates="room_allocation",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "allocated_amount_cents >= 0", name="ck_room_allocation_amount_positive"
        ),
        Index("ix_room_allocations_budget", "global_budget_id"),
    )


class CategoryAllocation(Base, TimestampMixin):
    """Leaf allocation, parented by a room (hierarchical) or a budget (flat)."""

    __tablename__ = "category_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    room_allocation_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("room_allocations.id", ondelete="CASCADE")
    )
    global_budget_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("global_budgets.id", ondelete="CASCADE")
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    allocated_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    room_allocation: Mapped[Optional["RoomAllocation"]] = relationship(
        "RoomAllocation", back_populates="category_allocations"
    )
    global_budget: Mapped[Optional["GlobalBudget"]] = relationship(
        "GlobalBudget", back_populates="category_allocations"
    )

    __table_args__ = (
        CheckConstraint(
            "allocated_amount_cents >= 0",
            name="ck_category_allocation_amount_positive",
        ),
        CheckConstraint(
            "(room_allocation_id IS NULL) != (global_budget_id IS NULL)",
            name="ck_category_allocation_single_parent",
        ),
        Index("ix_category_allocations_room", "room_allocation_id"),
        Index("ix_category_allocations_budget", "global_budget_id"),
    )
