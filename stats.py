"""Spend-versus-budget aggregation.

Everything here is a pure fold over collections that the caller has already
loaded: nothing touches the session, nothing mutates its inputs, and calling
twice with the same inputs yields equal results. Amounts are integer cents;
percentages are floats.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence

from models import (
    Budget,
    BudgetType,
    CategoryAllocation,
    Expense,
    GlobalBudget,
    RoomAllocation,
)


class BudgetStatus(str, Enum):
    on_track = "on_track"
    warning = "warning"
    over_budget = "over_budget"


@dataclass(frozen=True)
class CategoryStats:
    category: str
    allocated: int
    spent: int
    remaining: int
    percentage: float


@dataclass(frozen=True)
class RoomStats:
    room: str
    allocated: int
    spent: int
    remaining: int
    percentage: float
    categories: tuple[CategoryStats, ...] = ()


@dataclass(frozen=True)
class BudgetStats:
    global_budget: GlobalBudget
    total_allocated: int
    total_spent: int
    total_remaining: int
    unallocated_amount: int
    # hierarchical stats fill ``rooms``; the flat variant fills ``categories``
    rooms: tuple[RoomStats, ...] = ()
    categories: tuple[CategoryStats, ...] = ()


@dataclass(frozen=True)
class SpendBudget:
    spent: int = 0
    budget: int = 0


@dataclass(frozen=True)
class ExpenseStats:
    total_spent: int
    total_budget: int
    remaining_budget: int
    budget_used_percentage: float
    by_category: dict[str, SpendBudget] = field(default_factory=dict)
    by_room: dict[str, SpendBudget] = field(default_factory=dict)


def percentage_of(spent: int, allocated: int) -> float:
    if allocated <= 0:
        return 0.0
    return spent * 100 / allocated


def budget_status(percentage: float) -> BudgetStatus:
    if percentage > 100:
        return BudgetStatus.over_budget
    if percentage > 80:
        return BudgetStatus.warning
    return BudgetStatus.on_track


def select_active_budget(
    global_budgets: Iterable[GlobalBudget],
) -> Optional[GlobalBudget]:
    """Most recently created budget, the convention callers use by default."""
    return max(global_budgets, key=lambda b: (b.created_at, b.id), default=None)


def _find_budget(
    global_budget_id: int, global_budgets: Iterable[GlobalBudget]
) -> Optional[GlobalBudget]:
    for budget in global_budgets:
        if budget.id == global_budget_id:
            return budget
    return None


def _category_node(category: str, allocated: int, spent: int) -> CategoryStats:
    return CategoryStats(
        category=category,
        allocated=allocated,
        spent=spent,
        remaining=allocated - spent,
        percentage=percentage_of(spent, allocated),
    )


def _category_breakdown(
    allocations: Sequence[CategoryAllocation], expenses: Sequence[Expense]
) -> list[CategoryStats]:
    nodes = [
        _category_node(
            alloc.category,
            alloc.allocated_amount_cents,
            sum(e.amount_cents for e in expenses if e.category == alloc.category),
        )
        for alloc in allocations
    ]

    allocated_categories = {alloc.category for alloc in allocations}
    unallocated: dict[str, int] = {}
    for expense in expenses:
        if expense.category in allocated_categories:
            continue
        unallocated[expense.category] = (
            unallocated.get(expense.category, 0) + expense.amount_cents
        )
    nodes.extend(
        _category_node(category, 0, spent) for category, spent in unallocated.items()
    )
    return nodes


def compute_budget_stats(
    global_budget_id: int,
    global_budgets: Iterable[GlobalBudget],
    expenses: Sequence[Expense],
    room_allocations: Sequence[RoomAllocation],
    category_allocations: Sequence[CategoryAllocation],
) -> Optional[BudgetStats]:
    """Fold expenses into the global → room → category hierarchy.

    Returns ``None`` when ``global_budget_id`` matches no budget. An expense
    whose room has no allocation still counts in ``total_spent`` but shows up
    under no room node.
    """
    global_budget = _find_budget(global_budget_id, global_budgets)
    if global_budget is None:
        return None

    budget_rooms = [
        r for r in room_allocations if r.global_budget_id == global_budget_id
    ]

    rooms: list[RoomStats] = []
    for room_alloc in budget_rooms:
        room_categories = [
            c for c in category_allocations if c.room_allocation_id == room_alloc.id
        ]
        room_expenses = [e for e in expenses if e.room == room_alloc.room]
        room_spent = sum(e.amount_cents for e in room_expenses)
        allocated = room_alloc.allocated_amount_cents
        rooms.append(
            RoomStats(
                room=room_alloc.room,
                allocated=allocated,
                spent=room_spent,
                remaining=allocated - room_spent,
                percentage=percentage_of(room_spent, allocated),
                categories=tuple(_category_breakdown(room_categories, room_expenses)),
            )
        )

    total_allocated = sum(r.allocated_amount_cents for r in budget_rooms)
    total_spent = sum(e.amount_cents for e in expenses)
    return BudgetStats(
        global_budget=global_budget,
        total_allocated=total_allocated,
        total_spent=total_spent,
        total_remaining=global_budget.total_amount_cents - total_spent,
        unallocated_amount=global_budget.total_amount_cents - total_allocated,
        rooms=tuple(rooms),
    )


def compute_flat_budget_stats(
    global_budget_id: int,
    global_budgets: Iterable[GlobalBudget],
    expenses: Sequence[Expense],
    category_allocations: Sequence[CategoryAllocation],
) -> Optional[BudgetStats]:
    """Single-level variant: category allocations hang off the budget itself."""
    global_budget = _find_budget(global_budget_id, global_budgets)
    if global_budget is None:
        return None

    budget_categories = [
        c for c in category_allocations if c.global_budget_id == global_budget_id
    ]
    total_allocated = sum(c.allocated_amount_cents for c in budget_categories)
    total_spent = sum(e.amount_cents for e in expenses)
    return BudgetStats(
        global_budget=global_budget,
        total_allocated=total_allocated,
        total_spent=total_spent,
        total_remaining=global_budget.total_amount_cents - total_spent,
        unallocated_amount=global_budget.total_amount_cents - total_allocated,
        categories=tuple(_category_breakdown(budget_categories, expenses)),
    )


def _freeze(totals: dict[str, list[int]]) -> dict[str, SpendBudget]:
    return {key: SpendBudget(spent=s, budget=b) for key, (s, b) in totals.items()}


def compute_expense_stats(
    expenses: Sequence[Expense], budgets: Sequence[Budget]
) -> ExpenseStats:
    """Legacy flat statistics, indexed independently by category and by room.

    The total budget is the most recent ``global`` budget row; category and
    room budgets only feed their own index.
    """
    by_category: dict[str, list[int]] = {}
    by_room: dict[str, list[int]] = {}

    for budget in budgets:
        if budget.type == BudgetType.category and budget.category:
            by_category.setdefault(budget.category, [0, 0])[1] += budget.amount_cents
        elif budget.type == BudgetType.room and budget.room:
            by_room.setdefault(budget.room, [0, 0])[1] += budget.amount_cents

    for expense in expenses:
        by_category.setdefault(expense.category, [0, 0])[0] += expense.amount_cents
        by_room.setdefault(expense.room, [0, 0])[0] += expense.amount_cents

    global_budget = max(
        (b for b in budgets if b.type == BudgetType.global_),
        key=lambda b: (b.created_at, b.id),
        default=None,
    )
    total_budget = global_budget.amount_cents if global_budget else 0
    total_spent = sum(e.amount_cents for e in expenses)
    return ExpenseStats(
        total_spent=total_spent,
        total_budget=total_budget,
        remaining_budget=total_budget - total_spent,
        budget_used_percentage=percentage_of(total_spent, total_budget),
        by_category=_freeze(by_category),
        by_room=_freeze(by_room),
    )


def legacy_view(stats: BudgetStats) -> ExpenseStats:
    """Project hierarchical (or flat) budget stats onto the legacy shape."""
    by_category: dict[str, list[int]] = {}
    by_room: dict[str, list[int]] = {}

    category_nodes: list[CategoryStats] = list(stats.categories)
    for room in stats.rooms:
        totals = by_room.setdefault(room.room, [0, 0])
        totals[0] += room.spent
        totals[1] += room.allocated
        category_nodes.extend(room.categories)

    for node in category_nodes:
        totals = by_category.setdefault(node.category, [0, 0])
        totals[0] += node.spent
        totals[1] += node.allocated

    total_budget = stats.global_budget.total_amount_cents
    return ExpenseStats(
        total_spent=stats.total_spent,
        total_budget=total_budget,
        remaining_budget=stats.total_remaining,
        budget_used_percentage=percentage_of(stats.total_spent, total_budget),
        by_category=_freeze(by_category),
        by_room=_freeze(by_room),
    )
