import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape

from aggregation import (
    BudgetStatus,
    CategoryBreakdown,
    MonthlyTrendPoint,
    TopItem,
    savings_rate,
)
from periods import DisplayFormat
from schemas import from_cents

if TYPE_CHECKING:  # pragma: no cover
    from weasyprint import HTML, CSS  # noqa: F401
    from weasyprint.text.fonts import FontConfiguration  # noqa: F401


logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
PDF_MEDIA_TYPE = "application/pdf"


class ReportRenderingError(RuntimeError):
    pass


@dataclass(frozen=True)
class IncomeRow:
    date: date
    title: str
    description: Optional[str]
    amount_cents: int


@dataclass(frozen=True)
class ExpenseRow:
    date: date
    title: str
    category: str
    description: Optional[str]
    amount_cents: int


@dataclass
class MonthlyReport:
    user_name: str
    month: int
    year: int
    generated_at: datetime
    total_income_cents: int
    total_expense_cents: int
    budgets: list[BudgetStatus] = field(default_factory=list)
    categories: list[CategoryBreakdown] = field(default_factory=list)
    incomes: list[IncomeRow] = field(default_factory=list)
    expenses: list[ExpenseRow] = field(default_factory=list)
    display: DisplayFormat = field(default_factory=DisplayFormat)

    kind = "monthly"
    title = "Monthly Financial Report"

    @property
    def period_label(self) -> str:
        return f"{self.display.month_name(self.month)} {self.year}"

    @property
    def balance_cents(self) -> int:
        return self.total_income_cents - self.total_expense_cents

    @property
    def savings_rate(self) -> float:
        return savings_rate(self.total_income_cents, self.total_expense_cents)

    @property
    def total_budget_cents(self) -> int:
        return sum(b.planned_cents for b in self.budgets)

    @property
    def filename(self) -> str:
        return f"MonthlyReport_{self.display.month_name(self.month)}_{self.year}.pdf"

    def as_dict(self) -> dict[str, object]:
        return {
            "title": self.title,
            "period": self.period_label,
            "user_name": self.user_name,
            "month": self.month,
            "year": self.year,
            "generated_at": self.generated_at.isoformat(),
            "summary": _summary(self),
            "total_budget_cents": self.total_budget_cents,
            "budgets": [b.as_dict() for b in self.budgets],
            "categories": [c.as_dict() for c in self.categories],
            "incomes": [
                {
                    "date": row.date.isoformat(),
                    "title": row.title,
                    "description": row.description,
                    "amount_cents": row.amount_cents,
                }
                for row in self.incomes
            ],
            "expenses": [
                {
                    "date": row.date.isoformat(),
                    "title": row.title,
                    "category": row.category,
                    "description": row.description,
                    "amount_cents": row.amount_cents,
                }
                for row in self.expenses
            ],
        }


@dataclass
class YearlyReport:
    user_name: str
    year: int
    generated_at: datetime
    total_income_cents: int
    total_expense_cents: int
    income_count: int = 0
    expense_count: int = 0
    months: list[MonthlyTrendPoint] = field(default_factory=list)
    categories: list[CategoryBreakdown] = field(default_factory=list)
    top_income_sources: list[TopItem] = field(default_factory=list)
    top_expense_categories: list[TopItem] = field(default_factory=list)
    display: DisplayFormat = field(default_factory=DisplayFormat)

    kind = "yearly"
    title = "Yearly Financial Report"

    @property
    def period_label(self) -> str:
        return f"Year {self.year}"

    @property
    def balance_cents(self) -> int:
        return self.total_income_cents - self.total_expense_cents

    @property
    def savings_rate(self) -> float:
        return savings_rate(self.total_income_cents, self.total_expense_cents)

    @property
    def filename(self) -> str:
        return f"YearlyReport_{self.year}.pdf"

    def as_dict(self) -> dict[str, object]:
        return {
            "title": self.title,
            "period": self.period_label,
            "user_name": self.user_name,
            "year": self.year,
            "generated_at": self.generated_at.isoformat(),
            "summary": _summary(self),
            "income_count": self.income_count,
            "expense_count": self.expense_count,
            "months": [m.as_dict() for m in self.months],
            "categories": [c.as_dict() for c in self.categories],
            "top_income_sources": [t.as_dict() for t in self.top_income_sources],
            "top_expense_categories": [
                t.as_dict() for t in self.top_expense_categories
            ],
        }


Report = Union[MonthlyReport, YearlyReport]


def _summary(report: Report) -> dict[str, object]:
    return {
        "total_income_cents": report.total_income_cents,
        "total_expense_cents": report.total_expense_cents,
        "balance_cents": report.balance_cents,
        "savings_rate": report.savings_rate,
    }


def format_currency(cents: int, display: Optional[DisplayFormat] = None) -> str:
    display = display or DisplayFormat()
    amount = from_cents(cents)
    sign = "-" if amount < 0 else ""
    return f"{sign}{display.currency_symbol}{abs(amount):,.2f}"


def format_percent(value: float, decimals: int = 1) -> str:
    return f"{value:.{decimals}f}%"


def _build_env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["percent"] = format_percent
    return env


_env = _build_env()


def render_report_html(report: Report) -> str:
    display = report.display
    template = _env.get_template("report.html")
    return template.render(
        report=report,
        currency=lambda cents: format_currency(cents, display),
        short_date=lambda d: d.strftime(display.short_date_format),
        generated=report.generated_at.strftime(display.timestamp_format),
    )


REPORT_CSS = """
    @page {
        size: A4;
        margin: 18mm 16mm 20mm 16mm;
        @bottom-center {
            content: "Page " counter(page) " of " counter(pages);
            color: #64748b;
            font-size: 9pt;
        }
    }
    :root {
        --text: #0f172a;
        --muted: #64748b;
        --border: #e2e8f0;
        --panel: #f8fafc;
        --panel-strong: #f1f5f9;
        --positive: #16a34a;
        --negative: #dc2626;
    }
    body {
        margin: 0;
        font-family: -apple-system, "Segoe UI", Roboto, Helvetica, Arial, sans-serif;
        font-size: 10.5pt;
        line-height: 1.35;
        color: var(--text);
    }
    .header {
        display: flex;
        justify-content: space-between;
        align-items: flex-end;
        padding-bottom: 5mm;
        border-bottom: 1px solid var(--border);
        margin-bottom: 6mm;
    }
    .title { font-size: 19pt; font-weight: 700; }
    .subtitle { margin-top: 2mm; color: var(--muted); }
    .meta { text-align: right; font-size: 9pt; color: var(--muted); }
    .section { margin-top: 8mm; }
    .section-title { font-size: 12pt; font-weight: 700; margin: 0 0 3mm 0; }
    .kpi-grid { display: flex; gap: 10px; }
    .kpi-card {
        flex: 1;
        border: 1px solid var(--border);
        background: var(--panel);
        border-radius: 10px;
        padding: 8px 10px;
    }
    .kpi-label {
        font-size: 8.5pt;
        font-weight: 700;
        text-transform: uppercase;
        color: var(--muted);
    }
    .kpi-value { font-size: 15pt; font-weight: 800; white-space: nowrap; }
    .positive { color: var(--positive); }
    .negative { color: var(--negative); }
    table { width: 100%; border-collapse: collapse; font-size: 9.5pt; }
    thead th {
        text-align: left;
        font-size: 8.5pt;
        text-transform: uppercase;
        color: var(--muted);
        background: var(--panel-strong);
        padding: 6px 8px;
        border-bottom: 1px solid var(--border);
    }
    tbody td { padding: 6px 8px; border-bottom: 1px solid var(--border); }
    tr.over-budget td { background: rgba(220, 38, 38, 0.08); }
    tr.total-row td { font-weight: 700; background: var(--panel); }
    .cell-right { text-align: right; white-space: nowrap; }
    .cell-muted { color: var(--muted); }
"""


def render_pdf(report: Report) -> bytes:
    try:
        from weasyprint import CSS, HTML
        from weasyprint.text.fonts import FontConfiguration
    except Exception as exc:
        raise ReportRenderingError(
            "PDF export requires WeasyPrint system dependencies; install them for your OS and retry."
        ) from exc

    html = render_report_html(report)
    font_config = FontConfiguration()
    css = CSS(string=REPORT_CSS, font_config=font_config)
    start_time = datetime.now()
    try:
        pdf_bytes = HTML(string=html, base_url=str(TEMPLATES_DIR)).write_pdf(
            stylesheets=[css], font_config=font_config
        )
    except Exception as exc:
        logger.exception("Error generating PDF report")
        raise ReportRenderingError(str(exc)) from exc
    pdf_duration = (datetime.now() - start_time).total_seconds()
    logger.info(
        f"report_generated: kind={report.kind} period={report.period_label!r} "
        f"pdf_size_bytes={len(pdf_bytes)} "
        f"pdf_duration={pdf_duration:.2f}s"
    )
    return pdf_bytes
