"""
Calendar-date arithmetic used by the recurrence engine.

`datetime.date` refuses out-of-range days instead of normalizing them, so every
month/year step here states its overflow policy explicitly: the day is clamped
to the last valid day of the target month (Jan 31 + 1 month -> Feb 28/29,
Feb 29 + 1 year -> Feb 28).
"""

from __future__ import annotations

import datetime as dt

_DAYS_IN_MONTH = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_in_month(year: int, month: int) -> int:
    if month < 1 or month > 12:
        raise ValueError(f"month out of range: {month}")
    if month == 2 and is_leap_year(year):
        return 29
    return _DAYS_IN_MONTH[month - 1]


def clamped_date(year: int, month: int, day: int) -> dt.date:
    """`date(year, month, day)` with `day` pulled back to the month's last day."""
    return dt.date(year, month, max(1, min(int(day), days_in_month(year, month))))


def first_of_month(d: dt.date) -> dt.date:
    return d.replace(day=1)


def last_of_month(d: dt.date) -> dt.date:
    return d.replace(day=days_in_month(d.year, d.month))


def month_bounds(d: dt.date) -> tuple[dt.date, dt.date]:
    return first_of_month(d), last_of_month(d)


def next_month_start(d: dt.date) -> dt.date:
    # December rolls into January of the following year.
    if d.month == 12:
        return dt.date(d.year + 1, 1, 1)
    return dt.date(d.year, d.month + 1, 1)


def add_years(d: dt.date, years: int) -> dt.date:
    return clamped_date(d.year + int(years), d.month, d.day)


def iter_month_starts(start: dt.date, end: dt.date):
    """Yield the first day of every calendar month overlapping [start, end]."""
    cursor = first_of_month(start)
    while cursor <= end:
        yield cursor
        cursor = next_month_start(cursor)
