from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal, Optional, Union

from sqlalchemy import extract, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aggregation import (
    BudgetStatus,
    CategoryBreakdown,
    DailyTrendPoint,
    MonthlyTrendPoint,
    breakdown_from_totals,
    budget_status,
    daily_trend_from_totals,
    days_observed,
    group_by_category,
    group_by_title,
    growth_rate,
    savings_rate,
    sum_in_range,
    top_items,
    totals_by_month,
    trailing_months,
    trend_from_totals,
)
from insights import generate_insights
from models import Budget, Expense, ExpenseCategory, Income, User, UserRole
from periods import (
    DisplayFormat,
    MonthPeriod,
    default_display_format,
    local_now,
    local_today,
    month_end,
    resolve_month,
)
from reports import ExpenseRow, IncomeRow, MonthlyReport, YearlyReport
from schemas import BudgetRecord, ExpenseRecord, IncomeIn, to_cents
from validation import FieldError, FormValidationError


logger = logging.getLogger(__name__)

LedgerModel = Union[type[Income], type[Expense]]
UserStatus = Literal["active", "inactive"]

DUPLICATE_BUDGET_MESSAGE = (
    "A budget for this category already exists for the selected month/year"
)


class NotFoundError(ValueError):
    pass


class BudgetConflictError(FormValidationError):
    def __init__(self, message: str = DUPLICATE_BUDGET_MESSAGE) -> None:
        super().__init__([FieldError("category", message)])


def _month_range(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), month_end(year, month)


def _year_range(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


def _average_cents(total_cents: int, days: int) -> int:
    if days <= 0:
        return 0
    return int((Decimal(total_cents) / days).quantize(Decimal(1), ROUND_HALF_UP))


def _category_value(category) -> str:
    return ExpenseCategory(category).value


def _breakdown_dicts(items: list[CategoryBreakdown]) -> list[dict[str, object]]:
    return [item.as_dict() for item in items]


class MetricsService:
    """SQL-side sums, counts and group-bys over the ledger.

    With ``user_id`` set every query is scoped to that owner; ``None`` means
    system wide (admin views).
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id

    def _scoped(self, stmt, model):
        if self.user_id is not None:
            stmt = stmt.where(model.user_id == self.user_id)
        return stmt

    def _range(
        self, month: Optional[int], year: Optional[int]
    ) -> Optional[tuple[date, date]]:
        if (month is None) != (year is None):
            raise ValueError("month and year must be given together")
        if month is None:
            return None
        return _month_range(year, month)

    def total(
        self,
        model: LedgerModel,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> int:
        stmt = self._scoped(
            select(func.coalesce(func.sum(model.amount_cents), 0)), model
        )
        bounds = self._range(month, year)
        if bounds:
            stmt = stmt.where(model.date.between(*bounds))
        return int(self.session.execute(stmt).scalar_one() or 0)

    def count(
        self,
        model: LedgerModel,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> int:
        stmt = self._scoped(select(func.count(model.id)), model)
        bounds = self._range(month, year)
        if bounds:
            stmt = stmt.where(model.date.between(*bounds))
        return int(self.session.execute(stmt).scalar_one() or 0)

    def total_for_year(self, model: LedgerModel, year: int) -> int:
        stmt = self._scoped(
            select(func.coalesce(func.sum(model.amount_cents), 0)), model
        ).where(model.date.between(*_year_range(year)))
        return int(self.session.execute(stmt).scalar_one() or 0)

    def count_for_year(self, model: LedgerModel, year: int) -> int:
        stmt = self._scoped(select(func.count(model.id)), model).where(
            model.date.between(*_year_range(year))
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def budget_count(self) -> int:
        stmt = self._scoped(select(func.count(Budget.id)), Budget)
        return int(self.session.execute(stmt).scalar_one() or 0)

    def planned_total(self, month: int, year: int) -> int:
        stmt = self._scoped(
            select(func.coalesce(func.sum(Budget.planned_cents), 0)), Budget
        ).where(Budget.month == month, Budget.year == year)
        return int(self.session.execute(stmt).scalar_one() or 0)

    def categories_used(self, month: int, year: int) -> int:
        stmt = self._scoped(
            select(func.count(func.distinct(Expense.category))), Expense
        ).where(Expense.date.between(*_month_range(year, month)))
        return int(self.session.execute(stmt).scalar_one() or 0)

    def category_totals(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[tuple[str, int, int]]:
        stmt = self._scoped(
            select(
                Expense.category,
                func.coalesce(func.sum(Expense.amount_cents), 0).label("total"),
                func.count(Expense.id).label("count"),
            ),
            Expense,
        ).group_by(Expense.category)
        if start is not None and end is not None:
            stmt = stmt.where(Expense.date.between(start, end))
        return [
            (_category_value(row.category), int(row.total or 0), int(row.count or 0))
            for row in self.session.execute(stmt)
        ]

    def category_breakdown(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        *,
        limit: Optional[int] = None,
    ) -> list[CategoryBreakdown]:
        bounds = self._range(month, year)
        if bounds:
            return breakdown_from_totals(self.category_totals(*bounds), limit)
        return breakdown_from_totals(self.category_totals(), limit)

    def spent_by_category(self, month: int, year: int) -> dict[str, int]:
        return {
            category: amount
            for category, amount, _ in self.category_totals(*_month_range(year, month))
        }

    def monthly_totals(
        self, model: LedgerModel, start: date, end: date
    ) -> dict[tuple[int, int], int]:
        year_col = extract("year", model.date)
        month_col = extract("month", model.date)
        stmt = (
            self._scoped(
                select(
                    year_col.label("year"),
                    month_col.label("month"),
                    func.coalesce(func.sum(model.amount_cents), 0).label("total"),
                ),
                model,
            )
            .where(model.date.between(start, end))
            .group_by(year_col, month_col)
        )
        return {
            (int(row.year), int(row.month)): int(row.total or 0)
            for row in self.session.execute(stmt)
        }

    def monthly_counts(
        self, model: LedgerModel, start: date, end: date
    ) -> dict[tuple[int, int], int]:
        year_col = extract("year", model.date)
        month_col = extract("month", model.date)
        stmt = (
            self._scoped(
                select(
                    year_col.label("year"),
                    month_col.label("month"),
                    func.count(model.id).label("count"),
                ),
                model,
            )
            .where(model.date.between(start, end))
            .group_by(year_col, month_col)
        )
        return {
            (int(row.year), int(row.month)): int(row.count or 0)
            for row in self.session.execute(stmt)
        }

    def daily_totals(
        self, model: LedgerModel, start: date, end: date
    ) -> dict[date, int]:
        stmt = (
            self._scoped(
                select(
                    model.date,
                    func.coalesce(func.sum(model.amount_cents), 0).label("total"),
                ),
                model,
            )
            .where(model.date.between(start, end))
            .group_by(model.date)
        )
        return {row.date: int(row.total or 0) for row in self.session.execute(stmt)}

    def new_users_by_month(self, start: date, end: date) -> dict[tuple[int, int], int]:
        year_col = extract("year", User.created_at)
        month_col = extract("month", User.created_at)
        stmt = (
            select(
                year_col.label("year"),
                month_col.label("month"),
                func.count(User.id).label("count"),
            )
            .where(
                User.role == UserRole.user,
                User.created_at >= datetime.combine(start, datetime.min.time()),
                User.created_at <= datetime.combine(end, datetime.max.time()),
            )
            .group_by(year_col, month_col)
        )
        return {
            (int(row.year), int(row.month)): int(row.count or 0)
            for row in self.session.execute(stmt)
        }

    def monthly_trend(
        self,
        today: date,
        width: int = 6,
        *,
        include_new_users: bool = False,
        display: Optional[DisplayFormat] = None,
    ) -> list[MonthlyTrendPoint]:
        months = trailing_months(today, width)
        start = date(months[0][0], months[0][1], 1)
        end = month_end(*months[-1])
        new_users = self.new_users_by_month(start, end) if include_new_users else None
        return trend_from_totals(
            months,
            self.monthly_totals(Income, start, end),
            self.monthly_totals(Expense, start, end),
            new_users=new_users,
            display=display,
        )

    def daily_trend(self, month: int, year: int, today: date) -> list[DailyTrendPoint]:
        days = days_observed(month, year, today)
        if not days:
            return []
        start, end = days[0], days[-1]
        return daily_trend_from_totals(
            days,
            self.daily_totals(Income, start, end),
            self.daily_totals(Expense, start, end),
        )

    def budget_statuses(self, month: int, year: int) -> list[BudgetStatus]:
        budgets = self.session.scalars(
            self._scoped(select(Budget), Budget)
            .where(Budget.month == month, Budget.year == year)
            .order_by(Budget.category)
        ).all()
        spent = self.spent_by_category(month, year)
        return [
            budget_status(budget, spent.get(_category_value(budget.category), 0))
            for budget in budgets
        ]

    def years_with_data(self) -> set[int]:
        years: set[int] = set()
        for model in (Income, Expense):
            year_col = extract("year", model.date)
            stmt = self._scoped(select(year_col).distinct(), model)
            years.update(int(y) for y in self.session.scalars(stmt) if y is not None)
        return years


class IncomeService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> list[Income]:
        stmt = select(Income).where(Income.user_id == self.user_id)
        if month is not None or year is not None:
            period = resolve_month(month, year, today=today)
            stmt = stmt.where(Income.date.between(period.start, period.end))
        stmt = stmt.order_by(Income.date.desc(), Income.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, income_id: int) -> Income:
        income = self.session.get(Income, income_id)
        if not income or income.user_id != self.user_id:
            raise NotFoundError("Income not found")
        return income

    def create(self, data: IncomeIn) -> Income:
        income = Income(
            user_id=self.user_id,
            title=data.title,
            amount_cents=to_cents(data.amount),
            date=data.date,
            description=data.description or None,
        )
        self.session.add(income)
        self.session.commit()
        self.session.refresh(income)
        logger.info(
            f"income_created: id={income.id} amount_cents={income.amount_cents} "
            f"date={income.date} user_id={self.user_id}"
        )
        return income

    def update(self, income_id: int, data: IncomeIn) -> Income:
        income = self.get(income_id)
        income.title = data.title
        income.amount_cents = to_cents(data.amount)
        income.date = data.date
        income.description = data.description or None
        income.updated_at = datetime.utcnow()
        self.session.commit()
        self.session.refresh(income)
        logger.info(f"income_updated: id={income.id} user_id={self.user_id}")
        return income

    def delete(self, income_id: int) -> None:
        income = self.get(income_id)
        self.session.delete(income)
        self.session.commit()
        logger.info(f"income_deleted: id={income_id} user_id={self.user_id}")


class ExpenseService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        category: Optional[ExpenseCategory] = None,
        *,
        today: Optional[date] = None,
    ) -> list[Expense]:
        stmt = select(Expense).where(Expense.user_id == self.user_id)
        if month is not None or year is not None:
            period = resolve_month(month, year, today=today)
            stmt = stmt.where(Expense.date.between(period.start, period.end))
        if category is not None:
            stmt = stmt.where(Expense.category == category)
        stmt = stmt.order_by(Expense.date.desc(), Expense.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, expense_id: int) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise NotFoundError("Expense not found")
        return expense

    def create(self, data: ExpenseRecord) -> Expense:
        expense = Expense(
            user_id=self.user_id,
            title=data.title,
            amount_cents=to_cents(data.amount),
            date=data.date,
            category=data.category,
            description=data.description or None,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        logger.info(
            f"expense_created: id={expense.id} category={data.category.value!r} "
            f"amount_cents={expense.amount_cents} date={expense.date} "
            f"user_id={self.user_id}"
        )
        return expense

    def update(self, expense_id: int, data: ExpenseRecord) -> Expense:
        expense = self.get(expense_id)
        expense.title = data.title
        expense.amount_cents = to_cents(data.amount)
        expense.date = data.date
        expense.category = data.category
        expense.description = data.description or None
        expense.updated_at = datetime.utcnow()
        self.session.commit()
        self.session.refresh(expense)
        logger.info(f"expense_updated: id={expense.id} user_id={self.user_id}")
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()
        logger.info(f"expense_deleted: id={expense_id} user_id={self.user_id}")


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.metrics = MetricsService(session, user_id)

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise NotFoundError("Budget not found")
        return budget

    def _find_duplicate(
        self, data: BudgetRecord, exclude_id: Optional[int] = None
    ) -> Optional[Budget]:
        stmt = select(Budget).where(
            Budget.user_id == self.user_id,
            Budget.category == data.category,
            Budget.month == data.month,
            Budget.year == data.year,
        )
        if exclude_id is not None:
            stmt = stmt.where(Budget.id != exclude_id)
        return self.session.scalar(stmt)

    def _commit_or_conflict(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise BudgetConflictError() from exc

    def create(self, data: BudgetRecord) -> Budget:
        if self._find_duplicate(data):
            raise BudgetConflictError()
        budget = Budget(
            user_id=self.user_id,
            category=data.category,
            planned_cents=to_cents(data.planned_amount),
            month=data.month,
            year=data.year,
        )
        self.session.add(budget)
        self._commit_or_conflict()
        self.session.refresh(budget)
        logger.info(
            f"budget_created: id={budget.id} category={data.category.value!r} "
            f"planned_cents={budget.planned_cents} month={budget.month} "
            f"year={budget.year} user_id={self.user_id}"
        )
        return budget

    def update(self, budget_id: int, data: BudgetRecord) -> Budget:
        budget = self.get(budget_id)
        if self._find_duplicate(data, exclude_id=budget.id):
            raise BudgetConflictError()
        budget.category = data.category
        budget.planned_cents = to_cents(data.planned_amount)
        budget.month = data.month
        budget.year = data.year
        budget.updated_at = datetime.utcnow()
        self._commit_or_conflict()
        self.session.refresh(budget)
        logger.info(
            f"budget_updated: id={budget.id} category={data.category.value!r} "
            f"user_id={self.user_id}"
        )
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        category = _category_value(budget.category)
        self.session.delete(budget)
        self.session.commit()
        logger.info(
            f"budget_deleted: id={budget_id} category={category!r} "
            f"user_id={self.user_id}"
        )

    def status(self, budget_id: int) -> BudgetStatus:
        budget = self.get(budget_id)
        spent = self.metrics.spent_by_category(budget.month, budget.year)
        return budget_status(budget, spent.get(_category_value(budget.category), 0))

    def overview(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> dict[str, object]:
        today = today or local_today()
        period = resolve_month(month, year, today=today)
        statuses = self.metrics.budget_statuses(period.month, period.year)
        return {
            "month": period.month,
            "year": period.year,
            "current_month": today.month,
            "current_year": today.year,
            "budgets": [s.as_dict() for s in statuses],
            "total_planned_cents": sum(s.planned_cents for s in statuses),
            "total_spent_cents": sum(s.spent_cents for s in statuses),
            "on_track": sum(1 for s in statuses if not s.over_budget),
            "overspent": sum(1 for s in statuses if s.over_budget),
        }


def _recent_transactions(
    session: Session, user_id: int, limit: int = 10
) -> list[dict[str, object]]:
    per_kind = limit // 2
    incomes = session.scalars(
        select(Income)
        .where(Income.user_id == user_id)
        .order_by(Income.date.desc(), Income.created_at.desc())
        .limit(per_kind)
    ).all()
    expenses = session.scalars(
        select(Expense)
        .where(Expense.user_id == user_id)
        .order_by(Expense.date.desc(), Expense.created_at.desc())
        .limit(per_kind)
    ).all()
    merged = [
        {
            "id": i.id,
            "type": "Income",
            "title": i.title,
            "amount_cents": i.amount_cents,
            "date": i.date,
            "category": None,
        }
        for i in incomes
    ] + [
        {
            "id": e.id,
            "type": "Expense",
            "title": e.title,
            "amount_cents": e.amount_cents,
            "date": e.date,
            "category": _category_value(e.category),
        }
        for e in expenses
    ]
    merged.sort(key=lambda item: item["date"], reverse=True)
    for item in merged:
        item["date"] = item["date"].isoformat()
    return merged[:limit]


class DashboardService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.metrics = MetricsService(session, user_id)

    def build(
        self,
        today: Optional[date] = None,
        display: Optional[DisplayFormat] = None,
    ) -> dict[str, object]:
        today = today or local_today()
        display = display or default_display_format()
        current = MonthPeriod(today.year, today.month)
        previous = current.previous()

        income = self.metrics.total(Income, current.month, current.year)
        expense = self.metrics.total(Expense, current.month, current.year)
        previous_income = self.metrics.total(Income, previous.month, previous.year)
        previous_expense = self.metrics.total(Expense, previous.month, previous.year)
        total_budget = self.metrics.planned_total(current.month, current.year)

        return {
            "month": current.month,
            "year": current.year,
            "month_name": display.month_name(current.month),
            "total_income_cents": income,
            "total_expense_cents": expense,
            "balance_cents": income - expense,
            "savings_rate": savings_rate(income, expense),
            "previous_income_cents": previous_income,
            "previous_expense_cents": previous_expense,
            "income_change_percent": growth_rate(income, previous_income),
            "expense_change_percent": growth_rate(expense, previous_expense),
            "total_budget_cents": total_budget,
            "budget_used_cents": expense,
            "budget_used_percent": (
                expense / total_budget * 100 if total_budget else 0.0
            ),
            "transaction_count": (
                self.metrics.count(Income, current.month, current.year)
                + self.metrics.count(Expense, current.month, current.year)
            ),
            "categories_used": self.metrics.categories_used(
                current.month, current.year
            ),
            "recent_transactions": _recent_transactions(self.session, self.user_id),
        }


class AnalyticsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.metrics = MetricsService(session, user_id)

    def category_trends(
        self, current: MonthPeriod, previous: MonthPeriod, limit: int = 8
    ) -> list[dict[str, object]]:
        now = self.metrics.spent_by_category(current.month, current.year)
        before = self.metrics.spent_by_category(previous.month, previous.year)
        categories = sorted(
            set(now) | set(before), key=lambda c: now.get(c, 0), reverse=True
        )[:limit]
        return [
            {
                "category": category,
                "current_cents": now.get(category, 0),
                "previous_cents": before.get(category, 0),
                "change_percent": growth_rate(
                    now.get(category, 0), before.get(category, 0)
                ),
            }
            for category in categories
        ]

    def build(
        self,
        today: Optional[date] = None,
        display: Optional[DisplayFormat] = None,
    ) -> dict[str, object]:
        today = today or local_today()
        display = display or default_display_format()
        current = MonthPeriod(today.year, today.month)
        previous = current.previous()

        income = self.metrics.total(Income, current.month, current.year)
        expense = self.metrics.total(Expense, current.month, current.year)
        previous_income = self.metrics.total(Income, previous.month, previous.year)
        previous_expense = self.metrics.total(Expense, previous.month, previous.year)

        statuses = self.metrics.budget_statuses(current.month, current.year)
        on_track = sum(1 for s in statuses if not s.over_budget)
        overspent = len(statuses) - on_track
        daily = self.metrics.daily_trend(current.month, current.year, today)
        insights = generate_insights(
            income,
            expense,
            previous_income,
            previous_expense,
            budgets_on_track=on_track,
            budgets_overspent=overspent,
            daily=daily,
        )

        return {
            "month": current.month,
            "year": current.year,
            "month_name": display.month_name(current.month),
            "total_income_cents": income,
            "total_expense_cents": expense,
            "balance_cents": income - expense,
            "savings_rate": savings_rate(income, expense),
            "previous_income_cents": previous_income,
            "previous_expense_cents": previous_expense,
            "income_change_percent": growth_rate(income, previous_income),
            "expense_change_percent": growth_rate(expense, previous_expense),
            "average_daily_income_cents": _average_cents(income, today.day),
            "average_daily_expense_cents": _average_cents(expense, today.day),
            "total_budget_cents": sum(s.planned_cents for s in statuses),
            "budgets_on_track": on_track,
            "budgets_overspent": overspent,
            "daily_trend": [p.as_dict() for p in daily],
            "monthly_trend": [
                p.as_dict() for p in self.metrics.monthly_trend(today, display=display)
            ],
            "category_trends": self.category_trends(current, previous),
            "insights": [i.as_dict() for i in insights],
        }


class ReportService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.metrics = MetricsService(session, user_id)

    def _user_name(self) -> str:
        user = self.session.get(User, self.user_id)
        return user.full_name if user else "User"

    def _ledger(self, model: LedgerModel, start: date, end: date) -> list:
        return list(
            self.session.scalars(
                select(model)
                .where(model.user_id == self.user_id, model.date.between(start, end))
                .order_by(model.date.desc(), model.created_at.desc())
            ).all()
        )

    def index(
        self,
        today: Optional[date] = None,
        display: Optional[DisplayFormat] = None,
    ) -> dict[str, object]:
        today = today or local_today()
        display = display or default_display_format()
        month, year = today.month, today.year

        monthly_income = self.metrics.total(Income, month, year)
        monthly_expense = self.metrics.total(Expense, month, year)
        yearly_income = self.metrics.total_for_year(Income, year)
        yearly_expense = self.metrics.total_for_year(Expense, year)

        start, end = _year_range(year)
        income_totals = self.metrics.monthly_totals(Income, start, end)
        expense_totals = self.metrics.monthly_totals(Expense, start, end)
        income_counts = self.metrics.monthly_counts(Income, start, end)
        expense_counts = self.metrics.monthly_counts(Expense, start, end)
        trend = []
        for point in trend_from_totals(
            [(year, m) for m in range(1, 13)],
            income_totals,
            expense_totals,
            display=display,
        ):
            row = point.as_dict()
            row["income_count"] = income_counts.get((year, point.month), 0)
            row["expense_count"] = expense_counts.get((year, point.month), 0)
            trend.append(row)

        years = self.metrics.years_with_data() | {year}
        return {
            "month": month,
            "year": year,
            "month_name": display.month_name(month),
            "monthly_income_cents": monthly_income,
            "monthly_expense_cents": monthly_expense,
            "monthly_income_count": self.metrics.count(Income, month, year),
            "monthly_expense_count": self.metrics.count(Expense, month, year),
            "monthly_savings_rate": savings_rate(monthly_income, monthly_expense),
            "yearly_income_cents": yearly_income,
            "yearly_expense_cents": yearly_expense,
            "yearly_income_count": self.metrics.count_for_year(Income, year),
            "yearly_expense_count": self.metrics.count_for_year(Expense, year),
            "yearly_savings_rate": savings_rate(yearly_income, yearly_expense),
            "categories": _breakdown_dicts(
                self.metrics.category_breakdown(month, year)
            ),
            "monthly_trend": trend,
            "available_years": sorted(years, reverse=True),
        }

    def monthly(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        *,
        today: Optional[date] = None,
        display: Optional[DisplayFormat] = None,
        generated_at: Optional[datetime] = None,
    ) -> MonthlyReport:
        display = display or default_display_format()
        period = resolve_month(month, year, today=today)
        incomes = self._ledger(Income, period.start, period.end)
        expenses = self._ledger(Expense, period.start, period.end)

        categories = group_by_category(expenses)
        spent = {c.category: c.amount_cents for c in categories}
        budgets = self.session.scalars(
            select(Budget)
            .where(
                Budget.user_id == self.user_id,
                Budget.month == period.month,
                Budget.year == period.year,
            )
            .order_by(Budget.category)
        ).all()

        return MonthlyReport(
            user_name=self._user_name(),
            month=period.month,
            year=period.year,
            generated_at=generated_at or local_now(),
            total_income_cents=sum_in_range(
                incomes, self.user_id, period.month, period.year
            ),
            total_expense_cents=sum_in_range(
                expenses, self.user_id, period.month, period.year
            ),
            budgets=[
                budget_status(b, spent.get(_category_value(b.category), 0))
                for b in budgets
            ],
            categories=categories,
            incomes=[
                IncomeRow(i.date, i.title, i.description, i.amount_cents)
                for i in incomes
            ],
            expenses=[
                ExpenseRow(
                    e.date,
                    e.title,
                    _category_value(e.category),
                    e.description,
                    e.amount_cents,
                )
                for e in expenses
            ],
            display=display,
        )

    def yearly(
        self,
        year: Optional[int] = None,
        *,
        today: Optional[date] = None,
        display: Optional[DisplayFormat] = None,
        generated_at: Optional[datetime] = None,
    ) -> YearlyReport:
        display = display or default_display_format()
        year = year or (today or local_today()).year
        incomes = self._ledger(Income, *_year_range(year))
        expenses = self._ledger(Expense, *_year_range(year))

        categories = group_by_category(expenses)
        months = trend_from_totals(
            [(year, m) for m in range(1, 13)],
            totals_by_month(incomes, self.user_id),
            totals_by_month(expenses, self.user_id),
            display=display,
        )
        return YearlyReport(
            user_name=self._user_name(),
            year=year,
            generated_at=generated_at or local_now(),
            total_income_cents=sum_in_range(incomes, self.user_id),
            total_expense_cents=sum_in_range(expenses, self.user_id),
            income_count=len(incomes),
            expense_count=len(expenses),
            months=months,
            categories=categories,
            top_income_sources=group_by_title(incomes, limit=5),
            top_expense_categories=top_items(
                ((c.category, c.amount_cents, c.count) for c in categories), limit=5
            ),
            display=display,
        )


class AdminService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.metrics = MetricsService(session, None)

    def _users(self):
        return select(User).where(User.role == UserRole.user)

    def _get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user or user.role != UserRole.user:
            raise NotFoundError("User not found")
        return user

    def _user_counts(self, today: date) -> dict[str, int]:
        users = self.session.scalars(self._users()).all()
        current = MonthPeriod(today.year, today.month)
        previous = current.previous()

        def joined(user: User, period: MonthPeriod) -> bool:
            return (
                user.created_at.year == period.year
                and user.created_at.month == period.month
            )

        total = len(users)
        active = sum(1 for u in users if u.is_active)
        return {
            "total_users": total,
            "active_users": active,
            "inactive_users": total - active,
            "new_users_this_month": sum(1 for u in users if joined(u, current)),
            "new_users_last_month": sum(1 for u in users if joined(u, previous)),
        }

    def _per_user(self, model: LedgerModel) -> dict[int, tuple[int, int]]:
        stmt = (
            select(
                model.user_id,
                func.coalesce(func.sum(model.amount_cents), 0).label("total"),
                func.count(model.id).label("count"),
            )
            .join(User, User.id == model.user_id)
            .where(User.role == UserRole.user)
            .group_by(model.user_id)
        )
        return {
            int(row.user_id): (int(row.total or 0), int(row.count or 0))
            for row in self.session.execute(stmt)
        }

    def _top_users(self, model: LedgerModel, limit: int = 5) -> list[dict[str, object]]:
        stats = self._per_user(model)
        ranked = sorted(stats.items(), key=lambda kv: kv[1][0], reverse=True)[:limit]
        users = {
            u.id: u
            for u in self.session.scalars(
                select(User).where(User.id.in_([uid for uid, _ in ranked]))
            )
        }
        out = []
        for user_id, (amount, count) in ranked:
            user = users.get(user_id)
            out.append(
                {
                    "user_id": user_id,
                    "full_name": user.full_name if user else "Unknown",
                    "email": user.email if user else "",
                    "amount_cents": amount,
                    "transaction_count": count,
                }
            )
        return out

    def dashboard(
        self,
        today: Optional[date] = None,
        display: Optional[DisplayFormat] = None,
    ) -> dict[str, object]:
        today = today or local_today()
        display = display or default_display_format()
        counts = self._user_counts(today)
        counts.pop("new_users_last_month")

        recent = self.session.scalars(
            self._users().order_by(User.created_at.desc()).limit(5)
        ).all()

        incomes = self._per_user(Income)
        expenses = self._per_user(Expense)
        activity = []
        for user in self.session.scalars(self._users()):
            income_total, income_count = incomes.get(user.id, (0, 0))
            expense_total, expense_count = expenses.get(user.id, (0, 0))
            activity.append(
                {
                    "id": user.id,
                    "full_name": user.full_name,
                    "email": user.email,
                    "transaction_count": income_count + expense_count,
                    "total_amount_cents": income_total + expense_total,
                }
            )
        activity.sort(key=lambda item: item["transaction_count"], reverse=True)

        return {
            "month": today.month,
            "year": today.year,
            "month_name": display.month_name(today.month),
            **counts,
            "total_system_income_cents": self.metrics.total(Income),
            "total_system_expense_cents": self.metrics.total(Expense),
            "total_transactions": self.metrics.count(Income)
            + self.metrics.count(Expense),
            "total_budgets": self.metrics.budget_count(),
            "recent_users": [
                {
                    "id": u.id,
                    "full_name": u.full_name,
                    "email": u.email,
                    "joined_at": u.created_at.isoformat(),
                    "is_active": u.is_active,
                }
                for u in recent
            ],
            "top_active_users": activity[:5],
        }

    def analytics(
        self,
        today: Optional[date] = None,
        display: Optional[DisplayFormat] = None,
    ) -> dict[str, object]:
        today = today or local_today()
        display = display or default_display_format()
        counts = self._user_counts(today)
        current = MonthPeriod(today.year, today.month)
        previous = current.previous()

        income_transactions = self.metrics.count(Income)
        expense_transactions = self.metrics.count(Expense)
        return {
            "month": current.month,
            "year": current.year,
            "month_name": display.month_name(current.month),
            "total_users": counts["total_users"],
            "active_users": counts["active_users"],
            "new_users_this_month": counts["new_users_this_month"],
            "user_growth_rate": growth_rate(
                counts["new_users_this_month"], counts["new_users_last_month"]
            ),
            "total_system_income_cents": self.metrics.total(Income),
            "total_system_expense_cents": self.metrics.total(Expense),
            "current_month_income_cents": self.metrics.total(
                Income, current.month, current.year
            ),
            "current_month_expense_cents": self.metrics.total(
                Expense, current.month, current.year
            ),
            "last_month_income_cents": self.metrics.total(
                Income, previous.month, previous.year
            ),
            "last_month_expense_cents": self.metrics.total(
                Expense, previous.month, previous.year
            ),
            "total_transactions": income_transactions + expense_transactions,
            "income_transactions": income_transactions,
            "expense_transactions": expense_transactions,
            "budgets_created": self.metrics.budget_count(),
            "categories": _breakdown_dicts(self.metrics.category_breakdown(limit=10)),
            "top_users_by_income": self._top_users(Income),
            "top_users_by_expense": self._top_users(Expense),
            "monthly_trend": [
                p.as_dict()
                for p in self.metrics.monthly_trend(
                    today, include_new_users=True, display=display
                )
            ],
        }

    def list_users(
        self, search: Optional[str] = None, status: Optional[UserStatus] = None
    ) -> dict[str, object]:
        all_users = self.session.scalars(self._users()).all()
        stmt = self._users()
        term = (search or "").strip().lower()
        if term:
            pattern = f"%{term}%"
            stmt = stmt.where(
                or_(
                    func.lower(User.first_name).like(pattern),
                    func.lower(User.last_name).like(pattern),
                    func.lower(User.email).like(pattern),
                )
            )
        if status == "active":
            stmt = stmt.where(User.is_active.is_(True))
        elif status == "inactive":
            stmt = stmt.where(User.is_active.is_(False))
        users = self.session.scalars(stmt.order_by(User.created_at.desc())).all()

        incomes = self._per_user(Income)
        expenses = self._per_user(Expense)
        rows = []
        for user in users:
            income_total, income_count = incomes.get(user.id, (0, 0))
            expense_total, expense_count = expenses.get(user.id, (0, 0))
            rows.append(
                {
                    "id": user.id,
                    "first_name": user.first_name,
                    "last_name": user.last_name,
                    "email": user.email,
                    "created_at": user.created_at.isoformat(),
                    "is_active": user.is_active,
                    "transaction_count": income_count + expense_count,
                    "total_income_cents": income_total,
                    "total_expense_cents": expense_total,
                }
            )
        return {
            "users": rows,
            "total_count": len(all_users),
            "active_count": sum(1 for u in all_users if u.is_active),
            "inactive_count": sum(1 for u in all_users if not u.is_active),
            "search": search,
            "status": status,
        }

    def user_details(
        self, user_id: int, today: Optional[date] = None
    ) -> dict[str, object]:
        today = today or local_today()
        user = self._get_user(user_id)
        metrics = MetricsService(self.session, user.id)
        return {
            "id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "full_name": user.full_name,
            "email": user.email,
            "created_at": user.created_at.isoformat(),
            "is_active": user.is_active,
            "total_income_cents": metrics.total(Income),
            "total_expense_cents": metrics.total(Expense),
            "income_count": metrics.count(Income),
            "expense_count": metrics.count(Expense),
            "budget_count": metrics.budget_count(),
            "monthly_income_cents": metrics.total(Income, today.month, today.year),
            "monthly_expense_cents": metrics.total(Expense, today.month, today.year),
            "recent_transactions": _recent_transactions(self.session, user.id),
        }

    def toggle_status(self, user_id: int) -> User:
        user = self._get_user(user_id)
        user.is_active = not user.is_active
        self.session.commit()
        self.session.refresh(user)
        action = "activated" if user.is_active else "deactivated"
        logger.info(f"User {user.email} has been {action} by admin")
        return user
