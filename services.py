from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from catalog import resolve_category, resolve_room
from csv_utils import export_expenses, parse_csv
from models import (
    Budget,
    BudgetType,
    CategoryAllocation,
    Expense,
    GlobalBudget,
    RoomAllocation,
)
from schemas import (
    BudgetIn,
    CSVRow,
    CategoryAllocationIn,
    ExpenseIn,
    GlobalBudgetIn,
    RoomAllocationIn,
)
from stats import (
    BudgetStats,
    ExpenseStats,
    compute_budget_stats,
    compute_expense_stats,
    compute_flat_budget_stats,
    legacy_view,
    select_active_budget,
)


logger = logging.getLogger(__name__)


@dataclass
class ExpenseFilters:
    query: Optional[str] = None
    category: Optional[str] = None
    room: Optional[str] = None


class ExpenseService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _filtered(self, filters: Optional[ExpenseFilters]):
        stmt = select(Expense)
        if not filters:
            return stmt
        if filters.category:
            stmt = stmt.where(Expense.category == filters.category)
        if filters.room:
            stmt = stmt.where(Expense.room == filters.room)
        if filters.query:
            like = f"%{filters.query.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Expense.description).like(like),
                    func.lower(Expense.supplier).like(like),
                    func.lower(Expense.category).like(like),
                    func.lower(Expense.room).like(like),
                )
            )
        return stmt

    def list(self, filters: Optional[ExpenseFilters] = None) -> list[Expense]:
        stmt = self._filtered(filters).order_by(Expense.date.desc(), Expense.id.desc())
        return list(self.session.scalars(stmt).all())

    def total(self, filters: Optional[ExpenseFilters] = None) -> int:
        subq = self._filtered(filters).subquery()
        stmt = select(func.coalesce(func.sum(subq.c.amount_cents), 0))
        return int(self.session.scalar(stmt) or 0)

    def get(self, expense_id: int) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense:
            raise ValueError("Expense not found")
        return expense

    def build(self, data: ExpenseIn) -> Expense:
        return Expense(
            date=data.date,
            amount_cents=data.amount_cents,
            category=resolve_category(data.category),
            room=resolve_room(data.room),
            supplier=data.supplier.strip(),
            description=data.description.strip(),
            invoice_url=(data.invoice_url or "").strip() or None,
        )

    def create(self, data: ExpenseIn) -> Expense:
        expense = self.build(data)
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        logger.info(
            f"expense_created: id={expense.id} room={expense.room} "
            f"category={expense.category} amount_cents={expense.amount_cents}"
        )
        return expense

    def update(self, expense_id: int, data: ExpenseIn) -> Expense:
        expense = self.get(expense_id)
        expense.date = data.date
        expense.amount_cents = data.amount_cents
        expense.category = resolve_category(data.category)
        expense.room = resolve_room(data.room)
        expense.supplier = data.supplier.strip()
        expense.description = data.description.strip()
        expense.invoice_url = (data.invoice_url or "").strip() or None
        self.session.commit()
        self.session.refresh(expense)
        logger.info(f"expense_updated: id={expense.id}")
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()
        logger.info(f"expense_deleted: id={expense_id}")


class BudgetService:
    """Legacy flat budgets (global, per category, per room)."""

    def __init__(self, session: Session) -> None:
        self.session = session

    @staticmethod
    def _scope(data: BudgetIn) -> tuple[Optional[str], Optional[str]]:
        if data.type == BudgetType.category:
            if not (data.category or "").strip():
                raise ValueError("Category budgets require a category")
            return resolve_category(data.category), None
        if data.type == BudgetType.room:
            if not (data.room or "").strip():
                raise ValueError("Room budgets require a room")
            return None, resolve_room(data.room)
        return None, None

    def list(self) -> list[Budget]:
        stmt = select(Budget).order_by(Budget.created_at.desc(), Budget.id.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget:
            raise ValueError("Budget not found")
        return budget

    def create(self, data: BudgetIn) -> Budget:
        category, room = self._scope(data)
        budget = Budget(
            type=data.type,
            name=data.name.strip(),
            amount_cents=data.amount_cents,
            category=category,
            room=room,
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        logger.info(f"budget_created: id={budget.id} type={budget.type.value}")
        return budget

    def update(self, budget_id: int, data: BudgetIn) -> Budget:
        budget = self.get(budget_id)
        category, room = self._scope(data)
        budget.type = data.type
        budget.name = data.name.strip()
        budget.amount_cents = data.amount_cents
        budget.category = category
        budget.room = room
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()
        logger.info(f"budget_deleted: id={budget_id}")


class GlobalBudgetService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self) -> list[GlobalBudget]:
        stmt = select(GlobalBudget).order_by(
            GlobalBudget.created_at.desc(), GlobalBudget.id.desc()
        )
        return list(self.session.scalars(stmt).all())

    def get(self, global_budget_id: int) -> GlobalBudget:
        budget = self.session.get(GlobalBudget, global_budget_id)
        if not budget:
            raise ValueError("Global budget not found")
        return budget

    def create(self, data: GlobalBudgetIn) -> GlobalBudget:
        budget = GlobalBudget(
            name=data.name.strip(), total_amount_cents=data.total_amount_cents
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        logger.info(
            f"global_budget_created: id={budget.id} "
            f"total_amount_cents={budget.total_amount_cents}"
        )
        return budget

    def update(self, global_budget_id: int, data: GlobalBudgetIn) -> GlobalBudget:
        budget = self.get(global_budget_id)
        budget.name = data.name.strip()
        budget.total_amount_cents = data.total_amount_cents
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, global_budget_id: int) -> None:
        budget = self.get(global_budget_id)
        self.session.delete(budget)
        self.session.commit()
        logger.info(f"global_budget_deleted: id={global_budget_id}")


class RoomAllocationService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, global_budget_id: Optional[int] = None) -> list[RoomAllocation]:
        stmt = select(RoomAllocation).order_by(
            RoomAllocation.created_at.desc(), RoomAllocation.id.desc()
        )
        if global_budget_id is not None:
            stmt = stmt.where(RoomAllocation.global_budget_id == global_budget_id)
        return list(self.session.scalars(stmt).all())

    def get(self, allocation_id: int) -> RoomAllocation:
        allocation = self.session.get(RoomAllocation, allocation_id)
        if not allocation:
            raise ValueError("Room allocation not found")
        return allocation

    def create(self, data: RoomAllocationIn) -> RoomAllocation:
        if not self.session.get(GlobalBudget, data.global_budget_id):
            raise ValueError("Global budget not found")
        allocation = RoomAllocation(
            global_budget_id=data.global_budget_id,
            room=resolve_room(data.room),
            allocated_amount_cents=data.allocated_amount_cents,
        )
        self.session.add(allocation)
        self.session.commit()
        self.session.refresh(allocation)
        logger.info(
            f"room_allocation_created: id={allocation.id} "
            f"budget_id={allocation.global_budget_id} room={allocation.room}"
        )
        return allocation

    def update(
        self, allocation_id: int, room: str, allocated_amount_cents: int
    ) -> RoomAllocation:
        if allocated_amount_cents < 0:
            raise ValueError("Allocated amount cannot be negative")
        allocation = self.get(allocation_id)
        allocation.room = resolve_room(room)
        allocation.allocated_amount_cents = allocated_amount_cents
        self.session.commit()
        self.session.refresh(allocation)
        return allocation

    def delete(self, allocation_id: int) -> None:
        allocation = self.get(allocation_id)
        self.session.delete(allocation)
        self.session.commit()
        logger.info(f"room_allocation_deleted: id={allocation_id}")


class CategoryAllocationService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(
        self,
        room_allocation_id: Optional[int] = None,
        global_budget_id: Optional[int] = None,
    ) -> list[CategoryAllocation]:
        stmt = select(CategoryAllocation).order_by(
            CategoryAllocation.created_at.desc(), CategoryAllocation.id.desc()
        )
        if room_allocation_id is not None:
            stmt = stmt.where(CategoryAllocation.room_allocation_id == room_allocation_id)
        if global_budget_id is not None:
            stmt = stmt.where(CategoryAllocation.global_budget_id == global_budget_id)
        return list(self.session.scalars(stmt).all())

    def get(self, allocation_id: int) -> CategoryAllocation:
        allocation = self.session.get(CategoryAllocation, allocation_id)
        if not allocation:
            raise ValueError("Category allocation not found")
        return allocation

    def create(self, data: CategoryAllocationIn) -> CategoryAllocation:
        if (data.room_allocation_id is None) == (data.global_budget_id is None):
            raise ValueError(
                "Exactly one of room_allocation_id or global_budget_id is required"
            )
        if data.room_allocation_id is not None:
            if not self.session.get(RoomAllocation, data.room_allocation_id):
                raise ValueError("Room allocation not found")
        elif not self.session.get(GlobalBudget, data.global_budget_id):
            raise ValueError("Global budget not found")

        allocation = CategoryAllocation(
            room_allocation_id=data.room_allocation_id,
            global_budget_id=data.global_budget_id,
            category=resolve_category(data.category),
            allocated_amount_cents=data.allocated_amount_cents,
        )
        self.session.add(allocation)
        self.session.commit()
        self.session.refresh(allocation)
        logger.info(
            f"category_allocation_created: id={allocation.id} "
            f"room_allocation_id={allocation.room_allocation_id} "
            f"budget_id={allocation.global_budget_id} category={allocation.category}"
        )
        return allocation

    def update(
        self, allocation_id: int, category: str, allocated_amount_cents: int
    ) -> CategoryAllocation:
        if allocated_amount_cents < 0:
            raise ValueError("Allocated amount cannot be negative")
        allocation = self.get(allocation_id)
        allocation.category = resolve_category(category)
        allocation.allocated_amount_cents = allocated_amount_cents
        self.session.commit()
        self.session.refresh(allocation)
        return allocation

    def delete(self, allocation_id: int) -> None:
        allocation = self.get(allocation_id)
        self.session.delete(allocation)
        self.session.commit()
        logger.info(f"category_allocation_deleted: id={allocation_id}")


class StatsService:
    """Loads full collections and hands them to the pure aggregators."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.expenses = ExpenseService(session)
        self.budgets = BudgetService(session)
        self.global_budgets = GlobalBudgetService(session)
        self.rooms = RoomAllocationService(session)
        self.categories = CategoryAllocationService(session)

    def budget_stats(self, global_budget_id: int) -> Optional[BudgetStats]:
        stats = compute_budget_stats(
            global_budget_id,
            self.global_budgets.list(),
            self.expenses.list(),
            self.rooms.list(global_budget_id),
            self.categories.list(),
        )
        if stats is None:
            logger.warning(f"budget_stats: budget_id={global_budget_id} not_found")
            return None
        logger.info(
            f"budget_stats: budget_id={global_budget_id} rooms={len(stats.rooms)} "
            f"total_spent_cents={stats.total_spent}"
        )
        return stats

    def flat_budget_stats(self, global_budget_id: int) -> Optional[BudgetStats]:
        stats = compute_flat_budget_stats(
            global_budget_id,
            self.global_budgets.list(),
            self.expenses.list(),
            self.categories.list(global_budget_id=global_budget_id),
        )
        if stats is None:
            logger.warning(
                f"flat_budget_stats: budget_id={global_budget_id} not_found"
            )
        return stats

    def active_budget_stats(self) -> Optional[BudgetStats]:
        active = select_active_budget(self.global_budgets.list())
        if active is None:
            return None
        return self.budget_stats(active.id)

    def expense_stats(self) -> ExpenseStats:
        return compute_expense_stats(self.expenses.list(), self.budgets.list())

    def dashboard(self) -> tuple[ExpenseStats, bool]:
        """Return legacy-shaped stats and whether they came from a global budget."""
        stats = self.active_budget_stats()
        if stats is not None:
            return legacy_view(stats), True
        return self.expense_stats(), False


class CSVService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _resolved_rows(self, content: str) -> tuple[list[CSVRow], list[str]]:
        rows, errors = parse_csv(content)
        resolved: list[CSVRow] = []
        for row in rows:
            try:
                resolved.append(
                    row.model_copy(
                        update={
                            "category": resolve_category(row.category),
                            "room": resolve_room(row.room),
                        }
                    )
                )
            except ValueError as exc:
                errors.append(f"{row.date.isoformat()} {row.description}: {exc}")
        return resolved, errors

    def preview(self, content: str) -> tuple[list[dict[str, object]], list[str]]:
        rows, errors = self._resolved_rows(content)
        return [row.model_dump(mode="json") for row in rows], errors

    def commit(self, content: str) -> int:
        rows, errors = self._resolved_rows(content)
        if errors:
            raise ValueError("; ".join(errors))
        service = ExpenseService(self.session)
        for row in rows:
            self.session.add(service.build(ExpenseIn(**row.model_dump())))
        self.session.commit()
        logger.info(f"csv_import: rows={len(rows)}")
        return len(rows)

    def export(self, expenses: list[Expense]) -> str:
        return export_expenses(expenses)
