from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


ENGLISH_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


@dataclass(frozen=True)
class DisplayFormat:
    currency_symbol: str = "$"
    month_names: tuple[str, ...] = ENGLISH_MONTH_NAMES
    abbreviated_month_names: tuple[str, ...] = field(
        default_factory=lambda: tuple(name[:3] for name in ENGLISH_MONTH_NAMES)
    )
    short_date_format: str = "%b %d"
    timestamp_format: str = "%b %d, %Y %H:%M"

    def month_name(self, month: int) -> str:
        return self.month_names[month - 1]

    def month_abbr(self, month: int) -> str:
        return self.abbreviated_month_names[month - 1]


def default_display_format() -> DisplayFormat:
    return DisplayFormat(currency_symbol=get_settings().currency_symbol)


@dataclass(frozen=True)
class MonthPeriod:
    year: int
    month: int

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        return month_end(self.year, self.month)

    def previous(self) -> "MonthPeriod":
        prev = add_months(self.start, -1)
        return MonthPeriod(prev.year, prev.month)


def local_now() -> datetime:
    settings = get_settings()
    return datetime.now(ZoneInfo(settings.timezone))


def local_today() -> date:
    return local_now().date()


def month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


def days_in_month(year: int, month: int) -> int:
    return month_end(year, month).day


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def resolve_month(
    month: Optional[int], year: Optional[int], *, today: Optional[date] = None
) -> MonthPeriod:
    today = today or local_today()
    return MonthPeriod(year or today.year, month or today.month)
