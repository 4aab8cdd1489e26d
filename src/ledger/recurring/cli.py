from __future__ import annotations

import datetime as dt
import json
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Iterator, Optional

import pydantic
import typer
from dotenv import load_dotenv

from src.db.audit import changes_for
from src.db.init_db import init_db
from src.db.models import RecurringRule, Transaction
from src.db.session import get_session
from src.ledger.recurring.config import load_recurring_config
from src.ledger.recurring.errors import (
    PersistenceError,
    RuleNotFoundError,
    RuleValidationError,
    StateConflictError,
)
from src.ledger.recurring.lifecycle import AUDIT_ENTITY, RecurringRuleManager, preview_instances
from src.ledger.recurring.types import PlannedInstance, ResumeNeedsDecision, RuleDraft
from src.utils.money import format_money
from src.utils.time import UTC, parse_date, utcnow


recurring_app = typer.Typer(help="Recurring transactions: create, list, preview, pause, resume, delete.")

EXIT_CONFLICT = 1
EXIT_VALIDATION = 2
EXIT_NOT_FOUND = 3
EXIT_STATE = 4
EXIT_PERSISTENCE = 5


def _date_opt(value: Optional[str], name: str) -> Optional[dt.date]:
    if value is None or not value.strip():
        return None
    try:
        return parse_date(value)
    except ValueError:
        raise typer.BadParameter(f"{name} must be YYYY-MM-DD, got {value!r}")


def _now(as_of: Optional[str]) -> dt.datetime:
    d = _date_opt(as_of, "--as-of")
    if d is None:
        return utcnow()
    return dt.datetime.combine(d, dt.time.min, tzinfo=UTC)


def _rule_row(rule: RecurringRule) -> dict[str, Any]:
    return rule.snapshot()


def _instance_row(t: Transaction) -> dict[str, Any]:
    return {
        "id": t.id,
        "date": t.date.isoformat(),
        "kind": t.kind,
        "amount": str(t.amount),
        "description": t.description,
        "category_id": t.category_id,
    }


def _planned_row(p: PlannedInstance) -> dict[str, Any]:
    return {"date": p.date.isoformat(), "amount": str(p.amount), "description": p.description, "ordinal": p.ordinal}


def _fail(message: str, code: int) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(code=code)


@contextmanager
def _manager() -> Iterator[RecurringRuleManager]:
    """One unit of work: commit when the command body succeeds, roll back otherwise."""
    load_dotenv()
    init_db()
    cfg, _ = load_recurring_config()
    with get_session() as session:
        manager = RecurringRuleManager.for_session(session, config=cfg)
        try:
            yield manager
            session.commit()
        except RuleValidationError as e:
            session.rollback()
            _fail(f"Invalid input: {e}", EXIT_VALIDATION)
        except RuleNotFoundError as e:
            session.rollback()
            _fail(str(e), EXIT_NOT_FOUND)
        except StateConflictError as e:
            session.rollback()
            _fail(str(e), EXIT_STATE)
        except PersistenceError as e:
            session.rollback()
            _fail(f"Database error: {e}", EXIT_PERSISTENCE)
        except BaseException:
            session.rollback()
            raise


def _draft(
    *,
    owner: str,
    category: str,
    kind: str,
    frequency: str,
    amount: str,
    description: str,
    start: str,
    end: Optional[str],
    max_occurrences: Optional[int],
    day_of_month: Optional[int],
) -> RuleDraft:
    try:
        return RuleDraft(
            owner_id=owner,
            category_id=category,
            kind=kind.strip().lower(),
            frequency=frequency.strip().lower(),
            amount=Decimal(amount.replace(",", "").strip()),
            description=description,
            start_date=_date_opt(start, "--start"),
            end_date=_date_opt(end, "--end"),
            max_occurrences=max_occurrences,
            day_of_month=day_of_month,
        )
    except (ArithmeticError, pydantic.ValidationError) as e:
        _fail(f"Invalid input: {e}", EXIT_VALIDATION)


@recurring_app.command("create")
def create_cmd(
    owner: str = typer.Option(..., help="Owner reference"),
    category: str = typer.Option(..., help="Category reference"),
    kind: str = typer.Option(..., help="income|expense"),
    frequency: str = typer.Option(..., help="weekly|biweekly|monthly|yearly"),
    amount: str = typer.Option(..., help="Amount per occurrence, or the installment plan total"),
    description: str = typer.Option("", help="Free-text description"),
    start: str = typer.Option(..., help="Start date (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, help="Optional end date (YYYY-MM-DD)"),
    max_occurrences: Optional[int] = typer.Option(None, help="Installment count; splits --amount across occurrences"),
    day_of_month: Optional[int] = typer.Option(None, help="Monthly only: 1-31, clamped to short months"),
):
    draft = _draft(
        owner=owner,
        category=category,
        kind=kind,
        frequency=frequency,
        amount=amount,
        description=description,
        start=start,
        end=end,
        max_occurrences=max_occurrences,
        day_of_month=day_of_month,
    )
    with _manager() as manager:
        rule = manager.create(draft)
        count = manager.store.count_instances(rule.id)
        typer.echo(json.dumps({"rule": _rule_row(rule), "instances": count}, indent=2))


@recurring_app.command("preview")
def preview_cmd(
    owner: str = typer.Option("preview", help="Owner reference"),
    category: str = typer.Option("preview", help="Category reference"),
    kind: str = typer.Option("expense", help="income|expense"),
    frequency: str = typer.Option(..., help="weekly|biweekly|monthly|yearly"),
    amount: str = typer.Option(..., help="Amount per occurrence, or the installment plan total"),
    description: str = typer.Option("", help="Free-text description"),
    start: str = typer.Option(..., help="Start date (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, help="Optional end date (YYYY-MM-DD)"),
    max_occurrences: Optional[int] = typer.Option(None, help="Installment count"),
    day_of_month: Optional[int] = typer.Option(None, help="Monthly only: 1-31"),
    window_start: Optional[str] = typer.Option(None, "--from", help="Window start (defaults to --start)"),
    window_end: Optional[str] = typer.Option(None, "--to", help="Window end (defaults to end date or ceiling)"),
    limit: int = typer.Option(12, help="Max rows to print"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON rows"),
):
    draft = _draft(
        owner=owner,
        category=category,
        kind=kind,
        frequency=frequency,
        amount=amount,
        description=description,
        start=start,
        end=end,
        max_occurrences=max_occurrences,
        day_of_month=day_of_month,
    )
    cfg, _ = load_recurring_config()
    # Preview never touches the database.
    try:
        planned = preview_instances(
            draft,
            window_start=_date_opt(window_start, "--from"),
            window_end=_date_opt(window_end, "--to"),
            limit=limit,
            projection_years=cfg.projection_years,
        )
    except RuleValidationError as e:
        _fail(f"Invalid input: {e}", EXIT_VALIDATION)
    if as_json:
        typer.echo(json.dumps([_planned_row(p) for p in planned], indent=2))
        return
    for p in planned:
        typer.echo(f"{p.date.isoformat()}  {format_money(p.amount):>12}  {p.description}")


@recurring_app.command("list")
def list_cmd(
    owner: str = typer.Option(..., help="Owner reference"),
    kind: str = typer.Option("", help="income|expense (blank = both)"),
    status: str = typer.Option("", help="active|paused (blank = both)"),
    page: int = typer.Option(1),
    per_page: int = typer.Option(0, help="0 = configured default"),
):
    status_n = status.strip().lower()
    if status_n not in {"", "active", "paused"}:
        raise typer.BadParameter("status must be active or paused")
    is_active = None if not status_n else status_n == "active"
    with _manager() as manager:
        result = manager.list_rules(owner, kind=kind.strip().lower() or None, is_active=is_active, page=page, per_page=per_page)
        typer.echo(
            json.dumps(
                {
                    "data": [_rule_row(r) for r in result.data],
                    "total": result.total,
                    "page": result.page,
                    "per_page": result.per_page,
                    "total_pages": result.total_pages,
                },
                indent=2,
            )
        )


@recurring_app.command("show")
def show_cmd(rule_id: int = typer.Argument(...)):
    with _manager() as manager:
        rule = manager.get_rule(rule_id)
        typer.echo(json.dumps({"rule": _rule_row(rule), "instances": manager.store.count_instances(rule.id)}, indent=2))


@recurring_app.command("pause")
def pause_cmd(
    rule_id: int = typer.Argument(...),
    as_of: Optional[str] = typer.Option(None, help="Treat this date as today (YYYY-MM-DD)"),
):
    now = _now(as_of)
    with _manager() as manager:
        rule = manager.pause(rule_id, now=now)
        typer.echo(f"Paused rule {rule.id}")


@recurring_app.command("resume")
def resume_cmd(
    rule_id: int = typer.Argument(...),
    resolution: Optional[str] = typer.Option(None, help="create|update when the current month already has instances"),
    as_of: Optional[str] = typer.Option(None, help="Treat this date as today (YYYY-MM-DD)"),
):
    now = _now(as_of)
    with _manager() as manager:
        result = manager.resume(rule_id, now=now, resolution=resolution.strip().lower() if resolution else None)
        if isinstance(result, ResumeNeedsDecision):
            typer.echo(
                json.dumps({"conflict": [_instance_row(t) for t in result.existing]}, indent=2),
            )
            typer.echo("Current month already has instances; re-run with --resolution create|update.", err=True)
            raise typer.Exit(code=EXIT_CONFLICT)
        typer.echo(f"Resumed rule {result.rule_id} ({result.branch}): {result.created} created, {result.updated} updated")


@recurring_app.command("delete")
def delete_cmd(
    rule_id: int = typer.Argument(...),
    mode: str = typer.Option(..., help="all|future_and_current|future_only"),
    as_of: Optional[str] = typer.Option(None, help="Treat this date as today (YYYY-MM-DD)"),
):
    now = _now(as_of)
    with _manager() as manager:
        res = manager.delete(rule_id, mode.strip().lower(), now=now)
        typer.echo(json.dumps(res, indent=2))


@recurring_app.command("history")
def history_cmd(rule_id: int = typer.Argument(...)):
    load_dotenv()
    init_db()
    with get_session() as session:
        rows = changes_for(session, entity=AUDIT_ENTITY, entity_id=str(rule_id))
        for r in rows:
            typer.echo(f"{r.at.isoformat()}  {r.action:<7} {r.actor}  {r.note or ''}".rstrip())
