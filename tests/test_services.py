from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base, build_session_factory, session_scope
from models import BudgetType, CategoryAllocation, GlobalBudget, RoomAllocation
from schemas import (
    BudgetIn,
    CategoryAllocationIn,
    ExpenseIn,
    GlobalBudgetIn,
    RoomAllocationIn,
)
from services import (
    BudgetService,
    CategoryAllocationService,
    ExpenseFilters,
    ExpenseService,
    GlobalBudgetService,
    RoomAllocationService,
    StatsService,
)


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def expense_in(room: str, category: str, amount_cents: int, **extra) -> ExpenseIn:
    data = {
        "date": date(2025, 3, 10),
        "amount_cents": amount_cents,
        "category": category,
        "room": room,
        "supplier": "Brico Dépôt",
        "description": f"{category} pour {room}",
    }
    data.update(extra)
    return ExpenseIn(**data)


def test_kitchen_budget_stats_through_services() -> None:
    with make_session() as session:
        budget = GlobalBudgetService(session).create(
            GlobalBudgetIn(name="Appartement", total_amount_cents=1_000_000)
        )
        kitchen = RoomAllocationService(session).create(
            RoomAllocationIn(
                global_budget_id=budget.id, room="Cuisine", allocated_amount_cents=400_000
            )
        )
        CategoryAllocationService(session).create(
            CategoryAllocationIn(
                room_allocation_id=kitchen.id,
                category="Plomberie",
                allocated_amount_cents=100_000,
            )
        )
        expenses = ExpenseService(session)
        expenses.create(expense_in("Cuisine", "Plomberie", 60_000))
        expenses.create(expense_in("Cuisine", "Peinture", 20_000))

        stats = StatsService(session).budget_stats(budget.id)

        assert stats.total_allocated == 400_000
        assert stats.total_spent == 80_000
        assert stats.unallocated_amount == 600_000
        [room] = stats.rooms
        assert room.spent == 80_000
        assert room.remaining == 320_000
        assert room.percentage == 20.0
        by_category = {c.category: c for c in room.categories}
        assert by_category["Plomberie"].percentage == 60.0
        assert by_category["Plomberie"].remaining == 40_000
        assert by_category["Peinture"].allocated == 0
        assert by_category["Peinture"].remaining == -20_000


def test_budget_stats_for_missing_budget_is_none() -> None:
    with make_session() as session:
        ExpenseService(session).create(expense_in("Salon", "Peinture", 1_000))

        assert StatsService(session).budget_stats(42) is None
        assert StatsService(session).flat_budget_stats(42) is None
        assert StatsService(session).active_budget_stats() is None


def test_active_budget_stats_uses_latest_budget() -> None:
    with make_session() as session:
        budgets = GlobalBudgetService(session)
        budgets.create(GlobalBudgetIn(name="Ancien", total_amount_cents=10_000))
        latest = budgets.create(GlobalBudgetIn(name="Nouveau", total_amount_cents=20_000))

        stats = StatsService(session).active_budget_stats()

        assert stats.global_budget.id == latest.id
        assert budgets.list()[0].id == latest.id


def test_flat_budget_stats_through_services() -> None:
    with make_session() as session:
        budget = GlobalBudgetService(session).create(
            GlobalBudgetIn(name="Studio", total_amount_cents=300_000)
        )
        CategoryAllocationService(session).create(
            CategoryAllocationIn(
                global_budget_id=budget.id,
                category="Peinture",
                allocated_amount_cents=40_000,
            )
        )
        ExpenseService(session).create(expense_in("Salon", "Peinture", 10_000))
        ExpenseService(session).create(expense_in("Salon", "Parquet", 50_000))

        stats = StatsService(session).flat_budget_stats(budget.id)

        assert stats.total_allocated == 40_000
        assert stats.unallocated_amount == 260_000
        assert [(c.category, c.spent, c.allocated) for c in stats.categories] == [
            ("Peinture", 10_000, 40_000),
            ("Parquet", 50_000, 0),
        ]


def test_deleting_global_budget_cascades_to_allocations() -> None:
    with make_session() as session:
        budget = GlobalBudgetService(session).create(
            GlobalBudgetIn(name="Maison", total_amount_cents=500_000)
        )
        room = RoomAllocationService(session).create(
            RoomAllocationIn(
                global_budget_id=budget.id, room="Salon", allocated_amount_cents=100_000
            )
        )
        categories = CategoryAllocationService(session)
        categories.create(
            CategoryAllocationIn(
                room_allocation_id=room.id, category="Parquet", allocated_amount_cents=1
            )
        )
        categories.create(
            CategoryAllocationIn(
                global_budget_id=budget.id, category="Isolation", allocated_amount_cents=2
            )
        )

        GlobalBudgetService(session).delete(budget.id)

        assert session.scalars(select(RoomAllocation)).all() == []
        assert session.scalars(select(CategoryAllocation)).all() == []


def test_deleting_room_allocation_cascades_to_its_categories() -> None:
    with make_session() as session:
        budget = GlobalBudgetService(session).create(
            GlobalBudgetIn(name="Maison", total_amount_cents=500_000)
        )
        rooms = RoomAllocationService(session)
        kitchen = rooms.create(
            RoomAllocationIn(
                global_budget_id=budget.id, room="Cuisine", allocated_amount_cents=1_000
            )
        )
        lounge = rooms.create(
            RoomAllocationIn(
                global_budget_id=budget.id, room="Salon", allocated_amount_cents=1_000
            )
        )
        categories = CategoryAllocationService(session)
        categories.create(
            CategoryAllocationIn(
                room_allocation_id=kitchen.id, category="Plomberie", allocated_amount_cents=1
            )
        )
        kept = categories.create(
            CategoryAllocationIn(
                room_allocation_id=lounge.id, category="Peinture", allocated_amount_cents=1
            )
        )

        rooms.delete(kitchen.id)

        assert [c.id for c in categories.list()] == [kept.id]
        assert [r.id for r in rooms.list(budget.id)] == [lounge.id]


def test_allocations_require_existing_parent() -> None:
    with make_session() as session:
        with pytest.raises(ValueError, match="Global budget not found"):
            RoomAllocationService(session).create(
                RoomAllocationIn(
                    global_budget_id=7, room="Cuisine", allocated_amount_cents=10
                )
            )
        with pytest.raises(ValueError, match="Room allocation not found"):
            CategoryAllocationService(session).create(
                CategoryAllocationIn(
                    room_allocation_id=7, category="Peinture", allocated_amount_cents=10
                )
            )


def test_category_allocation_needs_exactly_one_parent() -> None:
    with pytest.raises(ValidationError):
        CategoryAllocationIn(category="Peinture", allocated_amount_cents=10)
    with pytest.raises(ValidationError):
        CategoryAllocationIn(
            room_allocation_id=1,
            global_budget_id=1,
            category="Peinture",
            allocated_amount_cents=10,
        )


def test_expense_amount_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        expense_in("Cuisine", "Plomberie", 0)


def test_labels_are_snapped_to_catalog_spelling() -> None:
    with make_session() as session:
        expenses = ExpenseService(session)
        snapped = expenses.create(expense_in("cuisne", "plomberie", 1_000))
        custom = expenses.create(expense_in("Véranda", "Toiture", 1_000))

        assert (snapped.room, snapped.category) == ("Cuisine", "Plomberie")
        assert (custom.room, custom.category) == ("Véranda", "Toiture")


def test_expense_filters_and_total() -> None:
    with make_session() as session:
        expenses = ExpenseService(session)
        expenses.create(expense_in("Cuisine", "Plomberie", 1_000, supplier="Cedeo"))
        expenses.create(
            expense_in("Salon", "Peinture", 2_500, date=date(2025, 4, 1))
        )
        expenses.create(expense_in("Salon", "Parquet", 4_000, supplier="Cedeo"))

        assert [e.amount_cents for e in expenses.list()] == [2_500, 4_000, 1_000]
        assert expenses.total() == 7_500

        by_supplier = ExpenseFilters(query="cedeo")
        assert {e.room for e in expenses.list(by_supplier)} == {"Cuisine", "Salon"}
        assert expenses.total(by_supplier) == 5_000

        lounge_supplier = ExpenseFilters(query="CEDEO", room="Salon")
        assert [e.category for e in expenses.list(lounge_supplier)] == ["Parquet"]

        assert expenses.total(ExpenseFilters(category="Carrelage")) == 0


def test_expense_update_and_delete() -> None:
    with make_session() as session:
        expenses = ExpenseService(session)
        expense = expenses.create(expense_in("Salon", "Peinture", 1_000))

        updated = expenses.update(
            expense.id, expense_in("Chambre", "Peinture", 1_500, invoice_url="  ")
        )
        assert updated.room == "Chambre"
        assert updated.amount_cents == 1_500
        assert updated.invoice_url is None

        expenses.delete(expense.id)
        with pytest.raises(ValueError, match="Expense not found"):
            expenses.get(expense.id)


def test_legacy_budget_scope_is_required() -> None:
    with make_session() as session:
        budgets = BudgetService(session)
        with pytest.raises(ValueError, match="require a category"):
            budgets.create(
                BudgetIn(type=BudgetType.category, name="Plomberie", amount_cents=100)
            )

        room_budget = budgets.create(
            BudgetIn(
                type=BudgetType.room,
                name="Salon",
                amount_cents=100,
                room="salon",
                category="Peinture",
            )
        )
        assert room_budget.room == "Salon"
        assert room_budget.category is None


def test_dashboard_falls_back_to_legacy_budgets() -> None:
    with make_session() as session:
        BudgetService(session).create(
            BudgetIn(type=BudgetType.global_, name="Total", amount_cents=10_000)
        )
        ExpenseService(session).create(expense_in("Salon", "Peinture", 2_000))

        stats, hierarchical = StatsService(session).dashboard()
        assert hierarchical is False
        assert stats.total_budget == 10_000
        assert stats.budget_used_percentage == 20.0

        GlobalBudgetService(session).create(
            GlobalBudgetIn(name="Maison", total_amount_cents=50_000)
        )
        stats, hierarchical = StatsService(session).dashboard()
        assert hierarchical is True
        assert stats.total_budget == 50_000
        assert stats.total_spent == 2_000
        assert stats.by_room == {}


def test_session_scope_rolls_back_on_error() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    factory = build_session_factory(engine)

    with session_scope(factory) as session:
        session.add(GlobalBudget(name="Gardé", total_amount_cents=1))

    with pytest.raises(RuntimeError):
        with session_scope(factory) as session:
            session.add(GlobalBudget(name="Annulé", total_amount_cents=2))
            session.flush()
            raise RuntimeError("boom")

    with session_scope(factory) as session:
        names = [b.name for b in GlobalBudgetService(session).list()]
    assert names == ["Gardé"]
