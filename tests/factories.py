from __future__ import annotations

import datetime as dt
from decimal import Decimal

from src.ledger.recurring.types import RuleDraft
from src.utils.time import UTC


def at(year: int, month: int, day: int) -> dt.datetime:
    return dt.datetime(year, month, day, 9, 30, tzinfo=UTC)


def draft(**overrides) -> RuleDraft:
    fields = {
        "owner_id": "user-1",
        "category_id": "cat-rent",
        "kind": "expense",
        "frequency": "monthly",
        "amount": Decimal("50.00"),
        "description": "Rent",
        "start_date": dt.date(2025, 1, 15),
    }
    fields.update(overrides)
    return RuleDraft(**fields)
