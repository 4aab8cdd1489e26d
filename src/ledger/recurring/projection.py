"""
Date projection for recurrence rules.

`project_dates` is pure: the same schedule always lands on the same absolute
dates, so a later `window_start` only drops a prefix of the sequence.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from src.ledger.recurring.calendar import add_years, clamped_date, iter_month_starts
from src.ledger.recurring.types import STEP_DAYS, Schedule

log = logging.getLogger(__name__)

DEFAULT_PROJECTION_YEARS = 50


def _monthly(schedule: Schedule, start: dt.date, end: dt.date) -> list[dt.date]:
    anchor_day = schedule.day_of_month or schedule.start_date.day
    out: list[dt.date] = []
    for month_start in iter_month_starts(start, end):
        candidate = clamped_date(month_start.year, month_start.month, anchor_day)
        if start <= candidate <= end and candidate >= schedule.start_date:
            out.append(candidate)
    return out


def _stepped(schedule: Schedule, start: dt.date, end: dt.date, step_days: int) -> list[dt.date]:
    current = schedule.start_date
    if current < start:
        # Jump straight to the first step on or after `start`.
        steps = -(-(start - current).days // step_days)
        current = current + dt.timedelta(days=steps * step_days)
    step = dt.timedelta(days=step_days)
    out: list[dt.date] = []
    while current <= end:
        out.append(current)
        current += step
    return out


def _yearly(schedule: Schedule, start: dt.date, end: dt.date) -> list[dt.date]:
    anchor = schedule.start_date
    out: list[dt.date] = []
    year = start.year
    while True:
        # Feb 29 anchors land on Feb 28 in non-leap years.
        candidate = clamped_date(year, anchor.month, anchor.day)
        if candidate > end:
            break
        if candidate >= start and candidate >= anchor:
            out.append(candidate)
        year += 1
    return out


def project_dates(schedule: Schedule, window_start: dt.date, window_end: dt.date) -> list[dt.date]:
    """
    Ordered occurrence dates of `schedule` inside [window_start, window_end].

    Dates before the schedule's start date are never returned. The frequency is
    assumed valid; rules are validated before they reach this function.
    """
    if window_end < window_start:
        return []
    start = max(window_start, schedule.start_date)
    if window_end < start:
        return []

    if schedule.frequency == "monthly":
        dates = _monthly(schedule, start, window_end)
    elif schedule.frequency in STEP_DAYS:
        dates = _stepped(schedule, start, window_end, STEP_DAYS[schedule.frequency])
    elif schedule.frequency == "yearly":
        dates = _yearly(schedule, start, window_end)
    else:
        raise ValueError(f"unsupported frequency: {schedule.frequency!r}")

    log.debug("Projected %s %s dates in [%s, %s]", len(dates), schedule.frequency, window_start, window_end)
    return dates


def resolve_window_end(
    window_start: dt.date,
    end_date: Optional[dt.date],
    *,
    projection_years: int = DEFAULT_PROJECTION_YEARS,
) -> dt.date:
    """`min(window_start + projection_years, end_date)`; the ceiling keeps open-ended rules finite."""
    ceiling = add_years(window_start, projection_years)
    if end_date is not None and end_date < ceiling:
        return end_date
    return ceiling


def remaining_occurrences(max_occurrences: Optional[int], materialized: int) -> Optional[int]:
    """How many more instances a count-bounded rule may produce; None when unbounded."""
    if max_occurrences is None:
        return None
    return max(0, int(max_occurrences) - int(materialized))
