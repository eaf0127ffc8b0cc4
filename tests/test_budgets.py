from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import User
from services import (
    DUPLICATE_BUDGET_MESSAGE,
    BudgetConflictError,
    BudgetService,
    ExpenseService,
    NotFoundError,
)
from validation import FormValidationError, validate_budget_form, validate_expense_form


TODAY = date(2025, 3, 15)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def add_user(session, email: str = "a@example.com") -> User:
    user = User(first_name="Test", last_name="User", email=email)
    session.add(user)
    session.commit()
    return user


def budget_form(category="Food & Dining", amount="100.00", month=3, year=2025, **kw):
    payload = {
        "category": category,
        "planned_amount": amount,
        "month": month,
        "year": year,
    }
    return validate_budget_form(payload, today=TODAY, **kw)


def spend(session, user_id: int, amount: str, category: str, on: str = "2025-03-05"):
    ExpenseService(session, user_id).create(
        validate_expense_form(
            {"title": "Spend", "amount": amount, "date": on, "category": category},
            today=TODAY,
        )
    )


def test_future_month_rejected_on_create_only() -> None:
    with pytest.raises(FormValidationError) as excinfo:
        budget_form(month=4)
    assert excinfo.value.errors[0].field == "month"
    assert excinfo.value.errors[0].message == "Cannot create budget for future months"

    # Past months and editing into the future are allowed.
    assert budget_form(month=1, year=2024).year == 2024
    assert budget_form(month=6, reject_future_month=False).month == 6


def test_budget_form_field_ranges() -> None:
    with pytest.raises(FormValidationError) as excinfo:
        validate_budget_form(
            {"category": "Food", "planned_amount": "0", "month": 13, "year": 1999},
            today=TODAY,
        )
    fields = sorted(e.field for e in excinfo.value.errors)
    assert fields == ["month", "planned_amount", "year"]


def test_duplicate_budget_is_a_conflict() -> None:
    session = make_session()
    user = add_user(session)
    service = BudgetService(session, user.id)
    service.create(budget_form())

    with pytest.raises(BudgetConflictError) as excinfo:
        service.create(budget_form(category="food & dining", amount="50"))
    assert excinfo.value.errors[0].field == "category"
    assert excinfo.value.errors[0].message == DUPLICATE_BUDGET_MESSAGE

    # Same category in a different month is fine.
    service.create(budget_form(month=2))


def test_editing_into_an_existing_slot_is_a_conflict() -> None:
    session = make_session()
    user = add_user(session)
    service = BudgetService(session, user.id)
    service.create(budget_form())
    shopping = service.create(budget_form(category="Shopping"))

    with pytest.raises(BudgetConflictError):
        service.update(shopping.id, budget_form(reject_future_month=False))

    # Re-saving a budget onto its own slot is not a collision.
    updated = service.update(shopping.id, budget_form(category="Shopping", amount="75"))
    assert updated.planned_cents == 7_500


def test_budgets_are_scoped_to_their_owner() -> None:
    session = make_session()
    owner = add_user(session, "owner@example.com")
    other = add_user(session, "other@example.com")
    budget = BudgetService(session, owner.id).create(budget_form())

    intruder = BudgetService(session, other.id)
    with pytest.raises(NotFoundError, match="Budget not found"):
        intruder.get(budget.id)
    with pytest.raises(NotFoundError, match="Budget not found"):
        intruder.delete(budget.id)

    # Another user may hold the same category/month.
    intruder.create(budget_form())


def test_status_tracks_spending_in_the_budget_month() -> None:
    session = make_session()
    user = add_user(session)
    service = BudgetService(session, user.id)
    budget = service.create(budget_form(amount="100.00"))

    spend(session, user.id, "60", "Food & Dining")
    spend(session, user.id, "90", "Food & Dining")
    spend(session, user.id, "500", "Food & Dining", on="2025-02-10")
    spend(session, user.id, "40", "Shopping")

    status = service.status(budget.id)
    assert status.planned_cents == 10_000
    assert status.spent_cents == 15_000
    assert status.remaining_cents == -5_000
    assert status.over_budget is True
    assert status.used_percent == pytest.approx(150)


def test_overview_counts_on_track_and_overspent() -> None:
    session = make_session()
    user = add_user(session)
    service = BudgetService(session, user.id)
    service.create(budget_form(amount="100.00"))
    service.create(budget_form(category="Shopping", amount="50.00"))
    spend(session, user.id, "120", "Food & Dining")
    spend(session, user.id, "10", "Shopping")

    overview = service.overview(today=TODAY)
    assert (overview["month"], overview["year"]) == (3, 2025)
    assert overview["on_track"] == 1
    assert overview["overspent"] == 1
    assert overview["total_planned_cents"] == 15_000
    assert overview["total_spent_cents"] == 13_000

    assert service.overview(2, 2025, today=TODAY)["budgets"] == []


def test_delete_budget() -> None:
    session = make_session()
    user = add_user(session)
    service = BudgetService(session, user.id)
    budget = service.create(budget_form())
    service.delete(budget.id)
    with pytest.raises(NotFoundError):
        service.status(budget.id)
