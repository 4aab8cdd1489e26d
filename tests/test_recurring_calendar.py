from __future__ import annotations

import datetime as dt

import pytest

from src.ledger.recurring.calendar import (
    add_years,
    clamped_date,
    days_in_month,
    is_leap_year,
    iter_month_starts,
    month_bounds,
    next_month_start,
)


def test_leap_years_follow_gregorian_rules():
    assert is_leap_year(2024)
    assert is_leap_year(2000)
    assert not is_leap_year(1900)
    assert not is_leap_year(2025)


def test_days_in_month_handles_february():
    assert days_in_month(2025, 2) == 28
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2025, 4) == 30
    assert days_in_month(2025, 12) == 31
    with pytest.raises(ValueError):
        days_in_month(2025, 13)


def test_clamped_date_pulls_day_back_to_month_end():
    assert clamped_date(2025, 2, 31) == dt.date(2025, 2, 28)
    assert clamped_date(2024, 2, 30) == dt.date(2024, 2, 29)
    assert clamped_date(2025, 4, 31) == dt.date(2025, 4, 30)
    assert clamped_date(2025, 5, 31) == dt.date(2025, 5, 31)


def test_month_stepping_rolls_year_and_clamps():
    assert next_month_start(dt.date(2025, 12, 9)) == dt.date(2026, 1, 1)
    assert next_month_start(dt.date(2025, 1, 31)) == dt.date(2025, 2, 1)


def test_add_years_clamps_leap_day():
    assert add_years(dt.date(2024, 2, 29), 1) == dt.date(2025, 2, 28)
    assert add_years(dt.date(2024, 2, 29), 4) == dt.date(2028, 2, 29)
    assert add_years(dt.date(2025, 7, 4), 50) == dt.date(2075, 7, 4)


def test_month_bounds_and_iteration():
    assert month_bounds(dt.date(2024, 2, 10)) == (dt.date(2024, 2, 1), dt.date(2024, 2, 29))
    starts = list(iter_month_starts(dt.date(2024, 11, 20), dt.date(2025, 2, 1)))
    assert starts == [dt.date(2024, 11, 1), dt.date(2024, 12, 1), dt.date(2025, 1, 1), dt.date(2025, 2, 1)]
