"""
Recurring rule lifecycle: create, pause, resume, delete.

Rules are either active or paused. Creating a rule materializes its instances up
front (bounded by end date, occurrence count and the projection ceiling). Pausing
drops every instance from the first of next month on; resuming regenerates from
the first of the current month, asking the caller how to treat instances that
survived the pause in that month.

Every operation takes `now` from the caller and never commits.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from src.db.audit import log_change
from src.db.models import RecurringRule, Transaction
from src.ledger.recurring.calendar import month_bounds, next_month_start
from src.ledger.recurring.config import RecurringConfig
from src.ledger.recurring.errors import (
    AlreadyActiveError,
    AlreadyPausedError,
    RuleNotFoundError,
    RuleValidationError,
)
from src.ledger.recurring.installments import installment_amount, installment_label
from src.ledger.recurring.projection import project_dates, remaining_occurrences, resolve_window_end
from src.ledger.recurring.store import RecurringStore, SqlRecurringStore
from src.ledger.recurring.types import (
    DELETE_MODES,
    FREQUENCIES,
    KINDS,
    RESOLUTIONS,
    PlannedInstance,
    ResumeApplied,
    ResumeNeedsDecision,
    ResumeResult,
    RuleDraft,
    RulePage,
    Schedule,
)
from src.utils.money import to_money
from src.utils.time import ensure_utc

log = logging.getLogger(__name__)

AUDIT_ENTITY = "RecurringRule"


def validate_draft(draft: RuleDraft) -> RuleDraft:
    """Return a normalized copy of `draft` or raise RuleValidationError listing every problem."""
    problems: list[str] = []
    if not (draft.owner_id or "").strip():
        problems.append("owner_id is required")
    if not (draft.category_id or "").strip():
        problems.append("category_id is required")
    if draft.kind not in KINDS:
        problems.append(f"kind must be one of {', '.join(KINDS)}")
    if draft.frequency not in FREQUENCIES:
        problems.append(f"invalid frequency {draft.frequency!r}; expected one of {', '.join(FREQUENCIES)}")
    amount = to_money(draft.amount)
    if amount is None or amount <= 0:
        problems.append("amount must be positive")
    if draft.end_date is not None and draft.end_date < draft.start_date:
        problems.append("end_date must not be before start_date")
    if draft.max_occurrences is not None and draft.max_occurrences < 1:
        problems.append("max_occurrences must be at least 1")
    if draft.day_of_month is not None and not 1 <= draft.day_of_month <= 31:
        problems.append("day_of_month must be between 1 and 31")
    if problems:
        raise RuleValidationError(problems)
    return draft.model_copy(
        update={
            "owner_id": draft.owner_id.strip(),
            "category_id": draft.category_id.strip(),
            "amount": amount,
            "description": (draft.description or "").strip(),
        }
    )


def plan_instances(
    rule: RuleDraft | RecurringRule,
    window_start: dt.date,
    window_end: dt.date,
    *,
    already_materialized: int = 0,
) -> list[PlannedInstance]:
    """
    Dates, amounts and labels for the instances a rule produces in a window.

    For count-bounded rules the window is further truncated to the occurrences
    left, and installment numbering continues from `already_materialized`.
    """
    dates = project_dates(Schedule.of(rule), window_start, window_end)
    remaining = remaining_occurrences(rule.max_occurrences, already_materialized)
    if remaining is None:
        return [PlannedInstance(date=d, amount=Decimal(rule.amount), description=rule.description or "") for d in dates]

    n = int(rule.max_occurrences)
    out: list[PlannedInstance] = []
    for i, d in enumerate(dates[:remaining]):
        ordinal0 = already_materialized + i
        out.append(
            PlannedInstance(
                date=d,
                amount=installment_amount(Decimal(rule.amount), n, ordinal0),
                description=installment_label(rule.description or "", ordinal0 + 1, n),
                ordinal=ordinal0 + 1,
            )
        )
    return out


def preview_instances(
    draft: RuleDraft,
    *,
    window_start: Optional[dt.date] = None,
    window_end: Optional[dt.date] = None,
    limit: Optional[int] = None,
    projection_years: int = 50,
) -> list[PlannedInstance]:
    """What `create` would materialize for `draft` (optionally narrowed to a window), without writing anything."""
    draft = validate_draft(draft)
    start = window_start or draft.start_date
    end = window_end or resolve_window_end(start, draft.end_date, projection_years=projection_years)
    if draft.end_date is not None and draft.end_date < end:
        end = draft.end_date
    already = 0
    if draft.max_occurrences is not None and start > draft.start_date:
        # Occurrences before the window still consume installment numbers.
        earlier = project_dates(Schedule.of(draft), draft.start_date, start - dt.timedelta(days=1))
        already = min(len(earlier), draft.max_occurrences)
    planned = plan_instances(draft, start, end, already_materialized=already)
    if limit is not None:
        planned = planned[: max(0, int(limit))]
    return planned


class RecurringRuleManager:
    def __init__(
        self,
        store: RecurringStore,
        *,
        session: Optional[Session] = None,
        config: Optional[RecurringConfig] = None,
        actor: Optional[str] = None,
    ):
        self.store = store
        self.config = config or RecurringConfig()
        self.actor = actor or self.config.audit_actor
        # Audit rows are written only when a session is available.
        self.session = session if session is not None else getattr(store, "session", None)

    @classmethod
    def for_session(cls, session: Session, **kwargs) -> "RecurringRuleManager":
        return cls(SqlRecurringStore(session), session=session, **kwargs)

    # -- reads -------------------------------------------------------------

    def get_rule(self, rule_id: int, *, for_update: bool = False) -> RecurringRule:
        rule = self.store.find_rule(rule_id, for_update=for_update)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    def list_rules(
        self,
        owner_id: str,
        *,
        kind: Optional[str] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> RulePage:
        if kind and kind not in KINDS:
            raise RuleValidationError(f"kind must be one of {', '.join(KINDS)}")
        per_page = int(per_page or 0)
        if per_page <= 0:
            per_page = self.config.default_per_page
        per_page = min(per_page, self.config.max_per_page)
        page = int(page) if page and int(page) > 0 else 1

        rows, total = self.store.list_rules(
            owner_id,
            kind=kind or None,
            is_active=is_active,
            offset=(page - 1) * per_page,
            limit=per_page,
        )
        return RulePage(
            data=rows,
            total=total,
            page=page,
            per_page=per_page,
            total_pages=int(math.ceil(total / per_page)) if total else 0,
        )

    def preview(
        self,
        draft: RuleDraft,
        *,
        window_start: Optional[dt.date] = None,
        window_end: Optional[dt.date] = None,
        limit: Optional[int] = None,
    ) -> list[PlannedInstance]:
        return preview_instances(
            draft,
            window_start=window_start,
            window_end=window_end,
            limit=limit,
            projection_years=self.config.projection_years,
        )

    # -- lifecycle ---------------------------------------------------------

    def create(self, draft: RuleDraft) -> RecurringRule:
        draft = validate_draft(draft)
        rule = RecurringRule(
            owner_id=draft.owner_id,
            category_id=draft.category_id,
            kind=draft.kind,
            frequency=draft.frequency,
            amount=draft.amount,
            description=draft.description,
            start_date=draft.start_date,
            end_date=draft.end_date,
            max_occurrences=draft.max_occurrences,
            day_of_month=draft.day_of_month,
            is_active=True,
            paused_at=None,
        )
        rule = self.store.persist_rule(rule)
        created = self._generate(rule, rule.start_date)
        log.info("Created recurring rule %s (%s, %s) with %s instances", rule.id, rule.kind, rule.frequency, created)
        self._audit("CREATE", rule, old=None, note=f"{created} instances")
        return rule

    def pause(self, rule_id: int, *, now: dt.datetime) -> RecurringRule:
        rule = self.get_rule(rule_id, for_update=True)
        if not rule.is_active:
            raise AlreadyPausedError(rule_id)
        old = rule.snapshot()

        cutoff = next_month_start(now.date())
        deleted = self.store.delete_instances(rule.id, on_or_after=cutoff)
        rule = self.store.set_active(rule.id, False, ensure_utc(now))
        log.info("Paused recurring rule %s; removed %s instances from %s on", rule.id, deleted, cutoff)
        self._audit("PAUSE", rule, old=old, note=f"{deleted} instances removed from {cutoff.isoformat()}")
        return rule

    def resume(self, rule_id: int, *, now: dt.datetime, resolution: Optional[str] = None) -> ResumeResult:
        if resolution is not None and resolution not in RESOLUTIONS:
            raise RuleValidationError(f"resolution must be one of {', '.join(RESOLUTIONS)}")
        rule = self.get_rule(rule_id, for_update=True)
        if rule.is_active:
            raise AlreadyActiveError(rule_id)

        first_day, last_day = month_bounds(now.date())
        existing = self.store.find_instances(rule.id, first_day, last_day)
        if existing and resolution is None:
            log.warning(
                "Resume of recurring rule %s needs a decision: %s instances already in %s",
                rule.id,
                len(existing),
                first_day.strftime("%Y-%m"),
            )
            return ResumeNeedsDecision(rule_id=rule.id, existing=existing)

        old = rule.snapshot()
        rule = self.store.set_active(rule.id, True, None)

        if existing and resolution == "update":
            updated, created = self._reconcile_month(rule, existing, first_day, last_day)
            created += self._generate(rule, next_month_start(first_day))
            result = ResumeApplied(rule_id=rule.id, branch="update", created=created, updated=updated)
        else:
            created = self._generate(rule, first_day)
            branch = "create" if existing else "normal"
            result = ResumeApplied(rule_id=rule.id, branch=branch, created=created)

        log.info(
            "Resumed recurring rule %s via %s branch: %s created, %s updated",
            rule.id,
            result.branch,
            result.created,
            result.updated,
        )
        self._audit("RESUME", rule, old=old, note=f"{result.branch}: {result.created} created, {result.updated} updated")
        return result

    def delete(self, rule_id: int, mode: str, *, now: dt.datetime) -> dict[str, int]:
        if mode not in DELETE_MODES:
            raise RuleValidationError(f"mode must be one of {', '.join(DELETE_MODES)}")
        rule = self.get_rule(rule_id, for_update=True)
        old = rule.snapshot()

        today = now.date()
        if mode == "all":
            cutoff = None
        elif mode == "future_and_current":
            cutoff = month_bounds(today)[0]
        else:
            cutoff = next_month_start(today)

        deleted = self.store.delete_instances(rule_id, on_or_after=cutoff)
        detached = self.store.detach_instances(rule_id)
        self.store.delete_rule(rule_id)
        log.info("Deleted recurring rule %s (mode=%s): %s instances removed, %s kept", rule_id, mode, deleted, detached)
        self._audit("DELETE", None, old=old, rule_id=rule_id, note=f"mode={mode}")
        return {"instances_deleted": deleted, "instances_detached": detached}

    # -- internals ---------------------------------------------------------

    def _generate(self, rule: RecurringRule, from_date: dt.date) -> int:
        already = 0
        if rule.max_occurrences is not None:
            already = self.store.count_instances(rule.id)
            if remaining_occurrences(rule.max_occurrences, already) == 0:
                log.debug("Recurring rule %s already has all %s occurrences", rule.id, rule.max_occurrences)
                return 0

        window_end = resolve_window_end(from_date, rule.end_date, projection_years=self.config.projection_years)
        planned = plan_instances(rule, from_date, window_end, already_materialized=already)
        self.store.insert_instances([self._instance(rule, p) for p in planned])
        return len(planned)

    def _reconcile_month(
        self,
        rule: RecurringRule,
        existing: list[Transaction],
        first_day: dt.date,
        last_day: dt.date,
    ) -> tuple[int, int]:
        already = 0
        if rule.max_occurrences is not None:
            # Installment numbering resumes after what was materialized before this month.
            already = self.store.count_instances(rule.id, before=first_day)
        planned = plan_instances(rule, first_day, last_day, already_materialized=already)

        by_date: dict[dt.date, Transaction] = {}
        for t in existing:
            by_date.setdefault(t.date, t)

        to_update: list[Transaction] = []
        to_create: list[Transaction] = []
        for p in planned:
            current = by_date.get(p.date)
            if current is None:
                to_create.append(self._instance(rule, p))
                continue
            current.kind = rule.kind
            current.category_id = rule.category_id
            current.amount = p.amount
            current.description = p.description
            to_update.append(current)

        self.store.update_instances(to_update)
        self.store.insert_instances(to_create)
        return len(to_update), len(to_create)

    @staticmethod
    def _instance(rule: RecurringRule, planned: PlannedInstance) -> Transaction:
        return Transaction(
            owner_id=rule.owner_id,
            category_id=rule.category_id,
            kind=rule.kind,
            amount=planned.amount,
            description=planned.description,
            date=planned.date,
            recurring_rule_id=rule.id,
        )

    def _audit(
        self,
        action: str,
        rule: Optional[RecurringRule],
        *,
        old: Optional[dict],
        rule_id: Optional[int] = None,
        note: Optional[str] = None,
    ) -> None:
        if self.session is None:
            return
        log_change(
            self.session,
            actor=self.actor,
            action=action,
            entity=AUDIT_ENTITY,
            entity_id=str(rule.id if rule is not None else rule_id),
            old=old,
            new=rule.snapshot() if rule is not None else None,
            note=note,
        )
