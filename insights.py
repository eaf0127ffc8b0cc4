from dataclasses import asdict, dataclass
from typing import Literal, Sequence

from aggregation import DailyTrendPoint, growth_rate, savings_rate


Severity = Literal["success", "info", "warning", "danger"]

OVERSPENDING_DAYS_THRESHOLD = 0.7


@dataclass(frozen=True)
class Insight:
    severity: Severity
    icon: str
    title: str
    description: str

    def as_dict(self) -> dict[str, str]:
        return asdict(self)


def _savings_insight(income: int, expense: int) -> Insight:
    rate = savings_rate(income, expense)
    if rate >= 20:
        return Insight(
            "success",
            "trophy",
            "Excellent Savings!",
            f"You're saving {rate:.1f}% of your income this month. Keep up the great work!",
        )
    if rate >= 10:
        return Insight(
            "info",
            "piggy-bank",
            "Good Savings Rate",
            f"You're saving {rate:.1f}% of your income. Try to reach 20% for optimal financial health.",
        )
    if rate >= 0:
        return Insight(
            "warning",
            "exclamation-triangle",
            "Low Savings",
            f"Your savings rate is only {rate:.1f}%. Consider reducing expenses to improve your savings.",
        )
    return Insight(
        "danger",
        "exclamation-circle",
        "Overspending Alert",
        "You're spending more than you earn this month. Review your expenses immediately.",
    )


def _income_change_insight(income: int, previous_income: int):
    if previous_income <= 0:
        return None
    change = growth_rate(income, previous_income)
    if change > 10:
        return Insight(
            "success",
            "graph-up-arrow",
            "Income Increase!",
            f"Your income increased by {change:.1f}% compared to last month.",
        )
    if change < -10:
        return Insight(
            "warning",
            "graph-down-arrow",
            "Income Decrease",
            f"Your income decreased by {abs(change):.1f}% compared to last month.",
        )
    return None


def _expense_change_insight(expense: int, previous_expense: int):
    if previous_expense <= 0:
        return None
    change = growth_rate(expense, previous_expense)
    if change > 20:
        return Insight(
            "danger",
            "arrow-up-circle",
            "Expenses Spike",
            f"Your expenses increased by {change:.1f}% compared to last month. Review your spending.",
        )
    if change < -10:
        return Insight(
            "success",
            "arrow-down-circle",
            "Expenses Reduced!",
            f"Great job! You reduced expenses by {abs(change):.1f}% compared to last month.",
        )
    return None


def _budget_insight(on_track: int, overspent: int):
    if overspent > 0:
        return Insight(
            "danger",
            "wallet2",
            "Budget Alert",
            f"You've exceeded {overspent} budget(s) this month. Review your spending in those categories.",
        )
    if on_track > 0:
        return Insight(
            "success",
            "check-circle",
            "Budgets On Track",
            f"All {on_track} of your budgets are within limits. Great financial discipline!",
        )
    return None


def count_overspending_days(daily: Sequence[DailyTrendPoint]) -> int:
    return sum(
        1
        for point in daily
        if point.expense_cents > point.income_cents and point.expense_cents > 0
    )


def _overspending_days_insight(daily: Sequence[DailyTrendPoint]):
    days = count_overspending_days(daily)
    if days > len(daily) * OVERSPENDING_DAYS_THRESHOLD:
        return Insight(
            "warning",
            "calendar-x",
            "Frequent Overspending Days",
            f"You've had {days} days where expenses exceeded income. Consider spreading purchases.",
        )
    return None


def generate_insights(
    income: int,
    expense: int,
    previous_income: int,
    previous_expense: int,
    budgets_on_track: int = 0,
    budgets_overspent: int = 0,
    daily: Sequence[DailyTrendPoint] = (),
) -> list[Insight]:
    """Rule-based observations, one per rule at most, in fixed rule order."""
    candidates = [
        _savings_insight(income, expense),
        _income_change_insight(income, previous_income),
        _expense_change_insight(expense, previous_expense),
        _budget_insight(budgets_on_track, budgets_overspent),
        _overspending_days_insight(daily),
    ]
    return [insight for insight in candidates if insight is not None]
