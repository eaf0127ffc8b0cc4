from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional, Type

from pydantic import BaseModel, ValidationError
from rapidfuzz.distance import Levenshtein

from models import ExpenseCategory
from periods import local_today
from schemas import (
    BudgetIn,
    BudgetRecord,
    ExpenseIn,
    ExpenseRecord,
    IncomeIn,
)


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class FormValidationError(ValueError):
    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = errors
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in errors))


_FIELD_MESSAGES = {
    "title": "Title is required and must be at most 100 characters",
    "amount": "Amount must be between 0.01 and 999,999,999.99",
    "planned_amount": "Planned amount must be between 0.01 and 999,999,999.99",
    "date": "A valid date is required",
    "description": "Description cannot exceed 500 characters",
    "category": "Category is required",
    "month": "Month must be between 1 and 12",
    "year": "Year must be between 2000 and 2100",
}


def _parse(
    model: Type[BaseModel], payload: Mapping[str, Any]
) -> tuple[Optional[BaseModel], list[FieldError]]:
    try:
        return model.model_validate(dict(payload)), []
    except ValidationError as exc:
        errors: list[FieldError] = []
        seen: set[str] = set()
        for item in exc.errors():
            field = str(item["loc"][0]) if item.get("loc") else "__root__"
            if field in seen:
                continue
            seen.add(field)
            errors.append(FieldError(field, _FIELD_MESSAGES.get(field, item["msg"])))
        return None, errors


def resolve_category(raw: str) -> ExpenseCategory:
    """Match user input against the fixed category list.

    Exact (case-insensitive) matches win. Otherwise a single category within
    Levenshtein distance 1 is accepted; ties are rejected as ambiguous.
    """
    value = (raw or "").strip()
    if not value:
        raise FormValidationError([FieldError("category", "Category is required")])
    lowered = value.lower()
    for member in ExpenseCategory:
        if member.value.lower() == lowered:
            return member

    best_distance: Optional[int] = None
    best: list[ExpenseCategory] = []
    for member in ExpenseCategory:
        dist = int(Levenshtein.distance(lowered, member.value.lower()))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = [member]
        elif dist == best_distance:
            best.append(member)

    if best_distance is not None and best_distance <= 1:
        if len(best) > 1:
            options = ", ".join(sorted(m.value for m in best))
            raise FormValidationError(
                [
                    FieldError(
                        "category",
                        f"Category '{value}' is ambiguous; matches: {options}",
                    )
                ]
            )
        return best[0]
    raise FormValidationError(
        [FieldError("category", f"Unknown category '{value}'")]
    )


def _check_not_future(
    txn_date: date, today: date, errors: list[FieldError]
) -> None:
    if txn_date > today:
        errors.append(FieldError("date", "Date cannot be in the future"))


def validate_income_form(
    payload: Mapping[str, Any], *, today: Optional[date] = None
) -> IncomeIn:
    today = today or local_today()
    data, errors = _parse(IncomeIn, payload)
    if data is not None:
        _check_not_future(data.date, today, errors)
    if errors:
        raise FormValidationError(errors)
    return data


def validate_expense_form(
    payload: Mapping[str, Any], *, today: Optional[date] = None
) -> ExpenseRecord:
    today = today or local_today()
    data, errors = _parse(ExpenseIn, payload)
    category: Optional[ExpenseCategory] = None
    if data is not None:
        _check_not_future(data.date, today, errors)
        try:
            category = resolve_category(data.category)
        except FormValidationError as exc:
            errors.extend(exc.errors)
    if errors:
        raise FormValidationError(errors)
    return ExpenseRecord(
        title=data.title,
        amount=data.amount,
        date=data.date,
        description=data.description,
        category=category,
    )


def validate_budget_form(
    payload: Mapping[str, Any],
    *,
    today: Optional[date] = None,
    reject_future_month: bool = True,
) -> BudgetRecord:
    today = today or local_today()
    data, errors = _parse(BudgetIn, payload)
    category: Optional[ExpenseCategory] = None
    if data is not None:
        try:
            category = resolve_category(data.category)
        except FormValidationError as exc:
            errors.extend(exc.errors)
        future = (data.year, data.month) > (today.year, today.month)
        if reject_future_month and future:
            errors.append(
                FieldError("month", "Cannot create budget for future months")
            )
    if errors:
        raise FormValidationError(errors)
    return BudgetRecord(
        category=category,
        planned_amount=data.planned_amount,
        month=data.month,
        year=data.year,
    )
