"""Named reporting periods resolved to concrete, inclusive calendar date ranges."""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from typing import Literal

PeriodToken = Literal[
    "this_month",
    "last_month",
    "ytd",
    "this_year",
    "last_year",
    "this_quarter",
    "last_quarter",
]

PERIOD_TOKENS: tuple[str, ...] = (
    "this_month",
    "last_month",
    "ytd",
    "this_year",
    "last_year",
    "this_quarter",
    "last_quarter",
)
YEAR_SCOPED_TOKENS = frozenset({"ytd", "this_year"})
DEFAULT_TOKEN = "ytd"


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar days."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Range start {self.start} is after end {self.end}")

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def start_iso(self) -> str:
        return self.start.isoformat()

    @property
    def end_iso(self) -> str:
        return self.end.isoformat()


@dataclass(frozen=True)
class PeriodPair:
    """A resolved period and the comparator it is reported against."""

    token: str
    current: DateRange
    previous: DateRange

    @property
    def is_year_scoped(self) -> bool:
        return self.token in YEAR_SCOPED_TOKENS

    def as_dict(self) -> dict[str, str]:
        return {
            "start": self.current.start_iso,
            "end": self.current.end_iso,
            "prevStart": self.previous.start_iso,
            "prevEnd": self.previous.end_iso,
        }


def month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move ``delta`` calendar months from (year, month)."""

    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_range(year: int, month: int) -> DateRange:
    return DateRange(date(year, month, 1), month_end(year, month))


def quarter_start_month(month: int) -> int:
    return month - ((month - 1) % 3)


def quarter_range(year: int, start_month: int) -> DateRange:
    end_year, end_month = shift_month(year, start_month, 2)
    return DateRange(date(year, start_month, 1), month_end(end_year, end_month))


def same_day_last_year(day: date) -> date:
    """Return the same month/day one year earlier (Feb 29 becomes Feb 28)."""

    if day.month == 2 and day.day == 29:
        return date(day.year - 1, 2, 28)
    return day.replace(year=day.year - 1)


def resolve_period(token: str | None, today: date) -> PeriodPair:
    """Map a period token and the caller's date to current and previous ranges.

    Unknown or missing tokens resolve as ``ytd``.
    """

    if token not in PERIOD_TOKENS:
        token = DEFAULT_TOKEN

    if token == "this_month":
        current = DateRange(date(today.year, today.month, 1), today)
        previous = month_range(*shift_month(today.year, today.month, -1))
    elif token == "last_month":
        last_year, last_month = shift_month(today.year, today.month, -1)
        current = month_range(last_year, last_month)
        previous = month_range(*shift_month(last_year, last_month, -1))
    elif token == "last_year":
        current = DateRange(date(today.year - 1, 1, 1), date(today.year - 1, 12, 31))
        previous = DateRange(date(today.year - 2, 1, 1), date(today.year - 2, 12, 31))
    elif token in ("this_quarter", "last_quarter"):
        start_month = quarter_start_month(today.month)
        if token == "this_quarter":
            current = DateRange(date(today.year, start_month, 1), today)
            prev_year, prev_month = shift_month(today.year, start_month, -3)
            previous = quarter_range(prev_year, prev_month)
        else:
            cur_year, cur_month = shift_month(today.year, start_month, -3)
            current = quarter_range(cur_year, cur_month)
            previous = quarter_range(*shift_month(cur_year, cur_month, -3))
    else:
        current = DateRange(date(today.year, 1, 1), today)
        previous = DateRange(date(today.year - 1, 1, 1), same_day_last_year(today))

    return PeriodPair(token=token, current=current, previous=previous)


def elapsed_months(today: date) -> list[DateRange]:
    """Return one range per calendar month of the current year up to ``today``.

    The running month ends at ``today`` rather than at its last day.
    """

    ranges: list[DateRange] = []
    for month in range(1, today.month + 1):
        full = month_range(today.year, month)
        ranges.append(DateRange(full.start, min(full.end, today)))
    return ranges
