from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import BudgetType


class ExpenseIn(BaseModel):
    date: date
    amount_cents: int = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=100)
    room: str = Field(..., min_length=1, max_length=100)
    supplier: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    invoice_url: Optional[str] = Field(default=None, max_length=500)


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: date
    amount_cents: int
    category: str
    room: str
    supplier: str
    description: str
    invoice_url: Optional[str]
    created_at: datetime


class BudgetIn(BaseModel):
    type: BudgetType
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., ge=0)
    category: Optional[str] = Field(default=None, max_length=100)
    room: Optional[str] = Field(default=None, max_length=100)


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: BudgetType
    name: str
    amount_cents: int
    category: Optional[str]
    room: Optional[str]
    created_at: datetime


class GlobalBudgetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    total_amount_cents: int = Field(..., ge=0)


class GlobalBudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    total_amount_cents: int
    created_at: datetime
    updated_at: datetime


class RoomAllocationIn(BaseModel):
    global_budget_id: int
    room: str = Field(..., min_length=1, max_length=100)
    allocated_amount_cents: int = Field(..., ge=0)


class RoomAllocationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    global_budget_id: int
    room: str
    allocated_amount_cents: int
    created_at: datetime
    updated_at: datetime


class CategoryAllocationIn(BaseModel):
    room_allocation_id: Optional[int] = None
    global_budget_id: Optional[int] = None
    category: str = Field(..., min_length=1, max_length=100)
    allocated_amount_cents: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _single_parent(self) -> "CategoryAllocationIn":
        if (self.room_allocation_id is None) == (self.global_budget_id is None):
            raise ValueError(
                "Exactly one of room_allocation_id or global_budget_id is required"
            )
        return self


class CategoryAllocationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    room_allocation_id: Optional[int]
    global_budget_id: Optional[int]
    category: str
    allocated_amount_cents: int
    created_at: datetime
    updated_at: datetime


class AllocationAmountIn(BaseModel):
    """Body for the nested create endpoints where the parent comes from the path."""

    label: str = Field(..., min_length=1, max_length=100)
    allocated_amount_cents: int = Field(..., ge=0)


class CSVRow(BaseModel):
    date: date
    amount_cents: int = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=100)
    room: str = Field(..., min_length=1, max_length=100)
    supplier: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    invoice_url: Optional[str]
