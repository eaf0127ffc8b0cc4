"""Pure aggregation over ledger records.

Records are any objects exposing ``user_id``, ``amount_cents`` and ``date``
(expenses also ``category``, incomes ``title``). All amounts are integer cents;
percentages are floats and every division guards a zero denominator.
"""

from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date
from typing import Iterable, Mapping, Optional

from periods import DisplayFormat, add_months, days_in_month


@dataclass(frozen=True)
class CategoryBreakdown:
    category: str
    amount_cents: int
    count: int
    percentage: float

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class TopItem:
    name: str
    amount_cents: int
    count: int

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class MonthlyTrendPoint:
    year: int
    month: int
    label: str
    income_cents: int
    expense_cents: int
    new_users: Optional[int] = None

    @property
    def balance_cents(self) -> int:
        return self.income_cents - self.expense_cents

    def as_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["balance_cents"] = self.balance_cents
        if self.new_users is None:
            data.pop("new_users")
        return data


@dataclass(frozen=True)
class DailyTrendPoint:
    day: int
    date: date
    income_cents: int
    expense_cents: int

    def as_dict(self) -> dict[str, object]:
        return {
            "day": self.day,
            "date": self.date.isoformat(),
            "income_cents": self.income_cents,
            "expense_cents": self.expense_cents,
        }


@dataclass(frozen=True)
class BudgetStatus:
    budget_id: Optional[int]
    category: str
    month: int
    year: int
    planned_cents: int
    spent_cents: int

    @property
    def remaining_cents(self) -> int:
        return self.planned_cents - self.spent_cents

    @property
    def used_percent(self) -> float:
        if self.planned_cents <= 0:
            return 0.0
        return self.spent_cents / self.planned_cents * 100

    @property
    def over_budget(self) -> bool:
        return self.spent_cents > self.planned_cents

    def as_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["remaining_cents"] = self.remaining_cents
        data["used_percent"] = self.used_percent
        data["over_budget"] = self.over_budget
        return data


def _category_value(category) -> str:
    return getattr(category, "value", category)


def _in_month(record, month: int, year: int) -> bool:
    return record.date.month == month and record.date.year == year


def sum_in_range(
    records: Iterable,
    user_id: int,
    month: Optional[int] = None,
    year: Optional[int] = None,
) -> int:
    """Total cents owned by ``user_id``, optionally for one (month, year).

    The month and year filters only work as a pair.
    """
    if (month is None) != (year is None):
        raise ValueError("month and year must be given together")
    total = 0
    for record in records:
        if record.user_id != user_id:
            continue
        if month is not None and not _in_month(record, month, year):
            continue
        total += record.amount_cents
    return total


def breakdown_from_totals(
    totals: Iterable[tuple[str, int, int]], limit: Optional[int] = None
) -> list[CategoryBreakdown]:
    rows = [
        (_category_value(name), int(amount or 0), int(count or 0))
        for name, amount, count in totals
    ]
    grand_total = sum(amount for _, amount, _ in rows)
    rows.sort(key=lambda r: r[1], reverse=True)
    if limit is not None:
        rows = rows[:limit]
    return [
        CategoryBreakdown(
            category=name,
            amount_cents=amount,
            count=count,
            percentage=(amount / grand_total * 100) if grand_total else 0.0,
        )
        for name, amount, count in rows
    ]


def group_by_category(
    expenses: Iterable, limit: Optional[int] = None
) -> list[CategoryBreakdown]:
    amounts: dict[str, int] = defaultdict(int)
    counts: dict[str, int] = defaultdict(int)
    for expense in expenses:
        key = _category_value(expense.category)
        amounts[key] += expense.amount_cents
        counts[key] += 1
    return breakdown_from_totals(
        ((key, amounts[key], counts[key]) for key in amounts), limit
    )


def top_items(
    totals: Iterable[tuple[str, int, int]], limit: int = 5
) -> list[TopItem]:
    rows = sorted(
        (
            TopItem(str(name), int(amount or 0), int(count or 0))
            for name, amount, count in totals
        ),
        key=lambda item: item.amount_cents,
        reverse=True,
    )
    return rows[:limit]


def group_by_title(incomes: Iterable, limit: int = 5) -> list[TopItem]:
    amounts: dict[str, int] = defaultdict(int)
    counts: dict[str, int] = defaultdict(int)
    for income in incomes:
        amounts[income.title] += income.amount_cents
        counts[income.title] += 1
    return top_items(((k, amounts[k], counts[k]) for k in amounts), limit)


def trailing_months(today: date, width: int = 6) -> list[tuple[int, int]]:
    """(year, month) keys of the ``width`` months ending at today's month."""
    first = add_months(today.replace(day=1), -(width - 1))
    months = []
    for offset in range(width):
        d = add_months(first, offset)
        months.append((d.year, d.month))
    return months


def trend_from_totals(
    months: list[tuple[int, int]],
    income_totals: Mapping[tuple[int, int], int],
    expense_totals: Mapping[tuple[int, int], int],
    *,
    new_users: Optional[Mapping[tuple[int, int], int]] = None,
    display: Optional[DisplayFormat] = None,
) -> list[MonthlyTrendPoint]:
    display = display or DisplayFormat()
    points = []
    for key in months:
        year, month = key
        points.append(
            MonthlyTrendPoint(
                year=year,
                month=month,
                label=display.month_abbr(month),
                income_cents=int(income_totals.get(key, 0)),
                expense_cents=int(expense_totals.get(key, 0)),
                new_users=None if new_users is None else int(new_users.get(key, 0)),
            )
        )
    return points


def totals_by_month(
    records: Iterable, user_id: Optional[int]
) -> dict[tuple[int, int], int]:
    totals: dict[tuple[int, int], int] = defaultdict(int)
    for record in records:
        if user_id is not None and record.user_id != user_id:
            continue
        totals[(record.date.year, record.date.month)] += record.amount_cents
    return totals


def monthly_trend(
    incomes: Iterable,
    expenses: Iterable,
    user_id: Optional[int],
    today: date,
    width: int = 6,
    *,
    display: Optional[DisplayFormat] = None,
) -> list[MonthlyTrendPoint]:
    return trend_from_totals(
        trailing_months(today, width),
        totals_by_month(incomes, user_id),
        totals_by_month(expenses, user_id),
        display=display,
    )


def days_observed(month: int, year: int, today: date) -> list[date]:
    last_day = days_in_month(year, month)
    if (year, month) == (today.year, today.month):
        last_day = min(today.day, last_day)
    return [date(year, month, day) for day in range(1, last_day + 1)]


def daily_trend_from_totals(
    days: list[date],
    income_totals: Mapping[date, int],
    expense_totals: Mapping[date, int],
) -> list[DailyTrendPoint]:
    return [
        DailyTrendPoint(
            day=d.day,
            date=d,
            income_cents=int(income_totals.get(d, 0)),
            expense_cents=int(expense_totals.get(d, 0)),
        )
        for d in days
    ]


def daily_trend(
    incomes: Iterable,
    expenses: Iterable,
    user_id: int,
    month: int,
    year: int,
    today: date,
) -> list[DailyTrendPoint]:
    income_totals: dict[date, int] = defaultdict(int)
    expense_totals: dict[date, int] = defaultdict(int)
    for record in incomes:
        if record.user_id == user_id:
            income_totals[record.date] += record.amount_cents
    for record in expenses:
        if record.user_id == user_id:
            expense_totals[record.date] += record.amount_cents
    return daily_trend_from_totals(
        days_observed(month, year, today), income_totals, expense_totals
    )


def growth_rate(current: float, previous: float) -> float:
    if previous > 0:
        return (current - previous) / previous * 100
    return 100.0 if current > 0 else 0.0


def savings_rate(income: float, expense: float) -> float:
    if income > 0:
        return (income - expense) / income * 100
    return 0.0


def budget_status(budget, spent_cents: int) -> BudgetStatus:
    return BudgetStatus(
        budget_id=getattr(budget, "id", None),
        category=_category_value(budget.category),
        month=budget.month,
        year=budget.year,
        planned_cents=int(budget.planned_cents),
        spent_cents=int(spent_cents),
    )
