# backend/app/timeline.py
"""
Calendar-position resolver for the "today" marker.

Given a reference date and the chart's time-column labels, find the column the
date falls in and how far into that column it sits. Granularity is detected
once from the first label:

  - Year:     "2026"
  - Quarter:  "Q1 2026"
  - Month:    "Nov 2025"
  - Week:     "W46 2025"   (ISO-8601 week number, calendar year)

Everything here is pure: no clock reads, no I/O, never raises. A date outside
the chart (or an unrecognized label format) resolves to None.
"""
from __future__ import annotations

import calendar
import datetime
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Sequence

# locale-independent, calendar.month_abbr follows the process locale
MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


class Granularity(str, Enum):
    YEAR = "year"
    QUARTER = "quarter"
    MONTH = "month"
    WEEK = "week"


_GRANULARITY_PATTERNS = (
    (Granularity.YEAR, re.compile(r"^\d{4}$")),
    (Granularity.QUARTER, re.compile(r"^Q[1-4] \d{4}$")),
    (Granularity.MONTH, re.compile(r"^[A-Za-z]{3} \d{4}$")),
    (Granularity.WEEK, re.compile(r"^W\d{1,2} \d{4}$")),
)


@dataclass(frozen=True)
class ColumnPosition:
    index: int
    fraction: float

    def to_dict(self) -> Dict[str, float]:
        return {"index": self.index, "fraction": self.fraction}


def detect_granularity(label: object) -> Optional[Granularity]:
    """Granularity of a single column label, or None if it matches no known format."""
    if not isinstance(label, str):
        return None
    for granularity, pattern in _GRANULARITY_PATTERNS:
        if pattern.match(label):
            return granularity
    return None


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_in_year(year: int) -> int:
    return 366 if is_leap_year(year) else 365


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def quarter_of(month: int) -> int:
    return math.ceil(month / 3)


def iso_week_number(day: datetime.date) -> int:
    """ISO-8601 week number: shift to the Thursday of the same week, count weeks from Jan 1."""
    thursday = day + datetime.timedelta(days=3 - day.weekday())
    year_start = datetime.date(thursday.year, 1, 1)
    return (thursday - year_start).days // 7 + 1


def sunday_based_weekday(day: datetime.date) -> int:
    """0 for Sunday through 6 for Saturday."""
    return day.isoweekday() % 7


# ------------------ per-granularity resolution ------------------

def _year_position(day: datetime.date, labels: Sequence[str]) -> Optional[ColumnPosition]:
    label = f"{day.year:04d}"
    if label not in labels:
        return None
    day_of_year = day.timetuple().tm_yday
    fraction = (day_of_year - 1) / (days_in_year(day.year) - 1)
    return ColumnPosition(labels.index(label), fraction)


def _quarter_position(day: datetime.date, labels: Sequence[str]) -> Optional[ColumnPosition]:
    quarter = quarter_of(day.month)
    label = f"Q{quarter} {day.year:04d}"
    if label not in labels:
        return None
    first_month = (quarter - 1) * 3 + 1
    quarter_start = datetime.date(day.year, first_month, 1)
    total_days = sum(days_in_month(day.year, m) for m in range(first_month, first_month + 3))
    fraction = (day - quarter_start).days / total_days
    return ColumnPosition(labels.index(label), fraction)


def _month_position(day: datetime.date, labels: Sequence[str]) -> Optional[ColumnPosition]:
    label = f"{MONTH_ABBREVIATIONS[day.month - 1]} {day.year:04d}"
    if label not in labels:
        return None
    fraction = day.day / days_in_month(day.year, day.month)
    return ColumnPosition(labels.index(label), fraction)


def _week_position(day: datetime.date, labels: Sequence[str]) -> Optional[ColumnPosition]:
    label = f"W{iso_week_number(day)} {day.year:04d}"
    if label not in labels:
        return None
    # middle of the day, not the week boundary
    fraction = (sunday_based_weekday(day) + 0.5) / 7
    return ColumnPosition(labels.index(label), fraction)


_RESOLVERS: Dict[Granularity, Callable[[datetime.date, Sequence[str]], Optional[ColumnPosition]]] = {
    Granularity.YEAR: _year_position,
    Granularity.QUARTER: _quarter_position,
    Granularity.MONTH: _month_position,
    Granularity.WEEK: _week_position,
}


def resolve_today_position(reference_date: object, time_columns: object) -> Optional[ColumnPosition]:
    """
    Column index and in-column fraction of ``reference_date`` within ``time_columns``.

    Returns None when the columns are empty or unrecognized, when the reference
    is not a date, or when the date's label is not one of the columns.
    """
    if isinstance(reference_date, datetime.datetime):
        reference_date = reference_date.date()
    if not isinstance(reference_date, datetime.date):
        return None
    if not isinstance(time_columns, (list, tuple)) or not time_columns:
        return None

    granularity = detect_granularity(time_columns[0])
    if granularity is None:
        return None

    return _RESOLVERS[granularity](reference_date, list(time_columns))
