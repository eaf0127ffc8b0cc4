from datetime import date
from types import SimpleNamespace

import pytest

from aggregation import (
    budget_status,
    daily_trend,
    days_observed,
    group_by_category,
    group_by_title,
    growth_rate,
    monthly_trend,
    savings_rate,
    sum_in_range,
    trailing_months,
)
from models import ExpenseCategory


def income(amount_cents: int, on: date, title: str = "Salary", user_id: int = 1):
    return SimpleNamespace(
        user_id=user_id, amount_cents=amount_cents, date=on, title=title
    )


def expense(
    amount_cents: int,
    on: date,
    category: ExpenseCategory = ExpenseCategory.food_dining,
    user_id: int = 1,
):
    return SimpleNamespace(
        user_id=user_id, amount_cents=amount_cents, date=on, category=category
    )


def test_group_by_category_totals_and_percentages() -> None:
    records = [
        expense(3_000, date(2025, 3, 1), ExpenseCategory.food_dining),
        expense(1_000, date(2025, 3, 2), ExpenseCategory.food_dining),
        expense(5_000, date(2025, 3, 3), ExpenseCategory.home_rent),
        expense(1_000, date(2025, 3, 4), ExpenseCategory.travel),
    ]
    breakdown = group_by_category(records)

    assert [b.category for b in breakdown] == ["Home & Rent", "Food & Dining", "Travel"]
    assert sum(b.amount_cents for b in breakdown) == 10_000
    assert sum(b.percentage for b in breakdown) == pytest.approx(100)
    food = breakdown[1]
    assert food.count == 2
    assert food.percentage == pytest.approx(40)


def test_group_by_category_empty_and_limit() -> None:
    assert group_by_category([]) == []

    records = [
        expense(100 * (i + 1), date(2025, 1, 1), category)
        for i, category in enumerate(ExpenseCategory)
    ]
    top = group_by_category(records, limit=3)
    assert len(top) == 3
    assert top[0].category == "Other"
    # Percentages are shares of the grand total, not of the capped list.
    assert sum(b.percentage for b in top) < 100


def test_growth_rate_zero_handling() -> None:
    assert growth_rate(0, 0) == 0
    assert growth_rate(100, 0) == 100
    assert growth_rate(150, 100) == pytest.approx(50)
    assert growth_rate(50, 100) == pytest.approx(-50)


def test_savings_rate() -> None:
    assert savings_rate(100_000, 75_000) == pytest.approx(25)
    assert savings_rate(0, 5_000) == 0
    assert savings_rate(100_000, 110_000) == pytest.approx(-10)


def test_budget_status_over_budget() -> None:
    budget = SimpleNamespace(
        id=7,
        category=ExpenseCategory.shopping,
        month=3,
        year=2025,
        planned_cents=10_000,
    )
    status = budget_status(budget, 15_000)
    assert status.over_budget is True
    assert status.remaining_cents == -5_000
    assert status.used_percent == pytest.approx(150)
    assert status.category == "Shopping"

    exact = budget_status(budget, 10_000)
    assert exact.over_budget is False
    assert exact.remaining_cents == 0


def test_sum_in_range_requires_month_and_year_together() -> None:
    records = [
        income(1_000, date(2025, 2, 10)),
        income(2_000, date(2025, 3, 10)),
        income(4_000, date(2025, 3, 11), user_id=2),
    ]
    assert sum_in_range(records, 1) == 3_000
    assert sum_in_range(records, 1, month=3, year=2025) == 2_000
    assert sum_in_range(records, 2, month=3, year=2025) == 4_000
    assert sum_in_range([], 1, month=3, year=2025) == 0

    with pytest.raises(ValueError):
        sum_in_range(records, 1, month=3)
    with pytest.raises(ValueError):
        sum_in_range(records, 1, year=2025)


def test_trailing_months_crosses_year_boundary() -> None:
    assert trailing_months(date(2025, 2, 14)) == [
        (2024, 9),
        (2024, 10),
        (2024, 11),
        (2024, 12),
        (2025, 1),
        (2025, 2),
    ]


def test_monthly_trend_is_zero_filled_and_oldest_first() -> None:
    today = date(2025, 6, 20)
    incomes = [income(5_000, date(2025, 6, 1)), income(2_000, date(2025, 2, 1))]
    expenses = [
        expense(1_500, date(2025, 6, 5)),
        expense(900, date(2024, 12, 31)),
        expense(700, date(2025, 6, 6), user_id=2),
    ]
    trend = monthly_trend(incomes, expenses, 1, today)

    assert len(trend) == 6
    assert (trend[0].year, trend[0].month) == (2025, 1)
    assert (trend[-1].year, trend[-1].month) == (2025, 6)
    assert [p.label for p in trend] == ["Jan", "Feb", "Mar", "Apr", "May", "Jun"]
    assert trend[-1].income_cents == 5_000
    assert trend[-1].expense_cents == 1_500
    assert trend[-1].balance_cents == 3_500
    assert trend[1].income_cents == 2_000
    assert trend[2].income_cents == 0
    assert trend[2].expense_cents == 0


def test_days_observed_stops_at_today_in_current_month() -> None:
    today = date(2025, 2, 10)
    assert len(days_observed(2, 2025, today)) == 10
    assert len(days_observed(1, 2025, today)) == 31
    assert len(days_observed(2, 2024, today)) == 29


def test_group_by_title_ranks_top_sources() -> None:
    records = [
        income(10_000, date(2025, 1, 1), "Salary"),
        income(10_000, date(2025, 2, 1), "Salary"),
        income(3_000, date(2025, 1, 5), "Freelance"),
        income(500, date(2025, 1, 6), "Interest"),
    ]
    top = group_by_title(records, limit=2)
    assert [(t.name, t.amount_cents, t.count) for t in top] == [
        ("Salary", 20_000, 2),
        ("Freelance", 3_000, 1),
    ]


def test_daily_trend_fills_each_observed_day() -> None:
    today = date(2025, 3, 4)
    incomes = [income(10_000, date(2025, 3, 1))]
    expenses = [
        expense(1_200, date(2025, 3, 3)),
        expense(300, date(2025, 3, 3)),
        expense(999, date(2025, 3, 3), user_id=2),
    ]
    daily = daily_trend(incomes, expenses, 1, 3, 2025, today)

    assert [p.day for p in daily] == [1, 2, 3, 4]
    assert daily[0].income_cents == 10_000
    assert daily[2].expense_cents == 1_500
    assert daily[3].as_dict() == {
        "day": 4,
        "date": "2025-03-04",
        "income_cents": 0,
        "expense_cents": 0,
    }
