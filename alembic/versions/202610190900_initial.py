"""initial renovation schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("room", sa.String(length=100), nullable=False),
        sa.Column("supplier", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("invoice_url", sa.String(length=500)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_date", "expenses", ["date"])
    op.create_index("ix_expenses_room_category", "expenses", ["room", "category"])

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "type",
            sa.Enum("global", "category", "room", name="budgettype"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=100)),
        sa.Column("room", sa.String(length=100)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_budget_amount_positive"),
    )
    op.create_index("ix_budgets_type", "budgets", ["type"])

    op.create_table(
        "global_budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "total_amount_cents >= 0", name="ck_global_budget_amount_positive"
        ),
    )

    op.create_table(
        "room_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "global_budget_id",
            sa.Integer(),
            sa.ForeignKey("global_budgets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("room", sa.String(length=100), nullable=False),
        sa.Column("allocated_amount_cents", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "allocated_amount_cents >= 0", name="ck_room_allocation_amount_positive"
        ),
    )
    op.create_index(
        "ix_room_allocations_budget", "room_allocations", ["global_budget_id"]
    )

    op.create_table(
        "category_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "room_allocation_id",
            sa.Integer(),
            sa.ForeignKey("room_allocations.id", ondelete="CASCADE"),
        ),
        sa.Column(
            "global_budget_id",
            sa.Integer(),
            sa.ForeignKey("global_budgets.id", ondelete="CASCADE"),
        ),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("allocated_amount_cents", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "allocated_amount_cents >= 0",
            name="ck_category_allocation_amount_positive",
        ),
        sa.CheckConstraint(
            "(room_allocation_id IS NULL) != (global_budget_id IS NULL)",
            name="ck_category_allocation_single_parent",
        ),
    )
    op.create_index(
        "ix_category_allocations_room", "category_allocations", ["room_allocation_id"]
    )
    op.create_index(
        "ix_category_allocations_budget", "category_allocations", ["global_budget_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_category_allocations_budget", table_name="category_allocations")
    op.drop_index("ix_category_allocations_room", table_name="category_allocations")
    op.drop_table("category_allocations")
    op.drop_index("ix_room_allocations_budget", table_name="room_allocations")
    op.drop_table("room_allocations")
    op.drop_table("global_budgets")
    op.drop_index("ix_budgets_type", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_expenses_date", table_name="expenses")
    op.drop_index("ix_expenses_room_category", table_name="expenses")
    op.drop_table("expenses")
