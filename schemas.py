from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import Budget, Expense, ExpenseCategory, Income, User, UserRole


MIN_AMOUNT = Decimal("0.01")
MAX_AMOUNT = Decimal("999999999.99")
CENT = Decimal("0.01")


def to_cents(amount: Decimal) -> int:
    return int((amount.quantize(CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())


def from_cents(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(CENT)


class IncomeIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., ge=MIN_AMOUNT, le=MAX_AMOUNT, decimal_places=2)
    date: date
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("date", mode="before")
    @classmethod
    def _calendar_date(cls, value):
        # Only the calendar day is stored; a time-of-day part is dropped.
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            try:
                return datetime.fromisoformat(value.strip()).date()
            except ValueError:
                return value
        return value


class ExpenseIn(IncomeIn):
    category: str = Field(..., min_length=1, max_length=50)


class ExpenseRecord(BaseModel):
    """Expense payload after the category has been resolved to a known value."""

    title: str
    amount: Decimal
    date: date
    description: Optional[str] = None
    category: ExpenseCategory


class BudgetIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    category: str = Field(..., min_length=1, max_length=50)
    planned_amount: Decimal = Field(
        ..., ge=MIN_AMOUNT, le=MAX_AMOUNT, decimal_places=2
    )
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)


class BudgetRecord(BaseModel):
    category: ExpenseCategory
    planned_amount: Decimal
    month: int
    year: int


class IncomeOut(BaseModel):
    id: int
    title: str
    amount: Decimal
    date: date
    description: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, income: Income) -> "IncomeOut":
        return cls(
            id=income.id,
            title=income.title,
            amount=from_cents(income.amount_cents),
            date=income.date,
            description=income.description,
            created_at=income.created_at,
            updated_at=income.updated_at,
        )


class ExpenseOut(IncomeOut):
    category: str

    @classmethod
    def from_model(cls, expense: Expense) -> "ExpenseOut":
        return cls(
            id=expense.id,
            title=expense.title,
            amount=from_cents(expense.amount_cents),
            date=expense.date,
            description=expense.description,
            category=ExpenseCategory(expense.category).value,
            created_at=expense.created_at,
            updated_at=expense.updated_at,
        )


class BudgetOut(BaseModel):
    id: int
    category: str
    planned_amount: Decimal
    month: int
    year: int

    @classmethod
    def from_model(cls, budget: Budget) -> "BudgetOut":
        return cls(
            id=budget.id,
            category=ExpenseCategory(budget.category).value,
            planned_amount=from_cents(budget.planned_cents),
            month=budget.month,
            year=budget.year,
        )


class UserOut(BaseModel):
    id: int
    first_name: str
    last_name: str
    full_name: str
    email: str
    is_active: bool
    role: Literal["Admin", "User"]
    created_at: datetime

    @classmethod
    def from_model(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            email=user.email,
            is_active=user.is_active,
            role=UserRole(user.role).value,
            created_at=user.created_at,
        )
