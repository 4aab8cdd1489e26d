from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel


Frequency = Literal["weekly", "biweekly", "monthly", "yearly"]
Kind = Literal["income", "expense"]
DeleteMode = Literal["all", "future_and_current", "future_only"]
Resolution = Literal["create", "update"]

FREQUENCIES: tuple[str, ...] = ("weekly", "biweekly", "monthly", "yearly")
KINDS: tuple[str, ...] = ("income", "expense")
DELETE_MODES: tuple[str, ...] = ("all", "future_and_current", "future_only")
RESOLUTIONS: tuple[str, ...] = ("create", "update")

STEP_DAYS = {"weekly": 7, "biweekly": 14}


class RuleDraft(BaseModel):
    """Caller-supplied fields of a rule before it is validated and stored."""

    owner_id: str
    category_id: str
    kind: str
    frequency: str
    amount: Decimal
    description: str = ""
    start_date: dt.date
    end_date: Optional[dt.date] = None
    max_occurrences: Optional[int] = None
    day_of_month: Optional[int] = None


@dataclass(frozen=True)
class Schedule:
    frequency: str
    start_date: dt.date
    day_of_month: Optional[int] = None

    @classmethod
    def of(cls, rule: Any) -> "Schedule":
        # Works for RecurringRule rows and RuleDraft alike.
        return cls(frequency=rule.frequency, start_date=rule.start_date, day_of_month=rule.day_of_month)


@dataclass(frozen=True)
class PlannedInstance:
    date: dt.date
    amount: Decimal
    description: str
    ordinal: Optional[int] = None  # 1-based installment number, None for open-ended rules


@dataclass
class RulePage:
    data: list[Any]
    total: int
    page: int
    per_page: int
    total_pages: int


@dataclass
class ResumeApplied:
    rule_id: int
    branch: Literal["normal", "create", "update"]
    created: int = 0
    updated: int = 0


@dataclass
class ResumeNeedsDecision:
    """Instances already present in the month being resumed into; re-invoke with a resolution."""

    rule_id: int
    existing: list[Any] = field(default_factory=list)


ResumeResult = Union[ResumeApplied, ResumeNeedsDecision]
