from __future__ import annotations

import datetime as dt
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.db.models import RecurringRule, Transaction
from src.ledger.recurring.errors import PersistenceError, RuleNotFoundError

log = logging.getLogger(__name__)


class RecurringStore(ABC):
    """Persistence operations the lifecycle manager relies on."""

    @abstractmethod
    def find_rule(self, rule_id: int, *, for_update: bool = False) -> Optional[RecurringRule]:
        raise NotImplementedError

    @abstractmethod
    def list_rules(
        self,
        owner_id: str,
        *,
        kind: Optional[str] = None,
        is_active: Optional[bool] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[RecurringRule], int]:
        raise NotImplementedError

    @abstractmethod
    def persist_rule(self, rule: RecurringRule) -> RecurringRule:
        raise NotImplementedError

    @abstractmethod
    def set_active(self, rule_id: int, is_active: bool, paused_at: Optional[dt.datetime] = None) -> RecurringRule:
        raise NotImplementedError

    @abstractmethod
    def delete_rule(self, rule_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def count_instances(self, rule_id: int, *, before: Optional[dt.date] = None) -> int:
        raise NotImplementedError

    @abstractmethod
    def insert_instances(self, instances: list[Transaction]) -> None:
        raise NotImplementedError

    @abstractmethod
    def update_instances(self, instances: list[Transaction]) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_instances(self, rule_id: int, *, on_or_after: Optional[dt.date] = None) -> int:
        raise NotImplementedError

    @abstractmethod
    def detach_instances(self, rule_id: int) -> int:
        raise NotImplementedError

    @abstractmethod
    def find_instances(self, rule_id: int, start: dt.date, end: dt.date) -> list[Transaction]:
        raise NotImplementedError


@contextmanager
def _guard(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        log.error("Store call %s failed: %s", action, type(e).__name__)
        raise PersistenceError(f"{action} failed: {type(e).__name__}: {e}") from e


class SqlRecurringStore(RecurringStore):
    """
    SQLAlchemy-backed store. Every call flushes but never commits: the caller owns
    the transaction and commits (or rolls back) once per lifecycle operation.
    """

    def __init__(self, session: Session):
        self.session = session

    def find_rule(self, rule_id: int, *, for_update: bool = False) -> Optional[RecurringRule]:
        with _guard("find_rule"):
            q = self.session.query(RecurringRule).filter(RecurringRule.id == int(rule_id))
            if for_update:
                # Serializes concurrent lifecycle calls on the same rule (no-op on SQLite).
                q = q.with_for_update()
            return q.one_or_none()

    def list_rules(
        self,
        owner_id: str,
        *,
        kind: Optional[str] = None,
        is_active: Optional[bool] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[RecurringRule], int]:
        with _guard("list_rules"):
            q = self.session.query(RecurringRule).filter(RecurringRule.owner_id == owner_id)
            if kind:
                q = q.filter(RecurringRule.kind == kind)
            if is_active is not None:
                q = q.filter(RecurringRule.is_active.is_(bool(is_active)))
            total = q.count()
            rows = (
                q.order_by(RecurringRule.created_at.desc(), RecurringRule.id.desc())
                .offset(max(0, int(offset)))
                .limit(max(1, int(limit)))
                .all()
            )
            return rows, int(total)

    def persist_rule(self, rule: RecurringRule) -> RecurringRule:
        with _guard("persist_rule"):
            self.session.add(rule)
            self.session.flush()
            return rule

    def set_active(self, rule_id: int, is_active: bool, paused_at: Optional[dt.datetime] = None) -> RecurringRule:
        with _guard("set_active"):
            rule = self.session.get(RecurringRule, int(rule_id))
            if rule is None:
                raise RuleNotFoundError(rule_id)
            rule.is_active = bool(is_active)
            rule.paused_at = None if is_active else paused_at
            self.session.flush()
            return rule

    def delete_rule(self, rule_id: int) -> None:
        with _guard("delete_rule"):
            deleted = (
                self.session.query(RecurringRule)
                .filter(RecurringRule.id == int(rule_id))
                .delete(synchronize_session=False)
            )
            if not deleted:
                raise RuleNotFoundError(rule_id)
            self.session.expire_all()

    def count_instances(self, rule_id: int, *, before: Optional[dt.date] = None) -> int:
        with _guard("count_instances"):
            q = self.session.query(func.count(Transaction.id)).filter(Transaction.recurring_rule_id == int(rule_id))
            if before is not None:
                q = q.filter(Transaction.date < before)
            return int(q.scalar() or 0)

    def insert_instances(self, instances: list[Transaction]) -> None:
        if not instances:
            return
        with _guard("insert_instances"):
            self.session.add_all(instances)
            self.session.flush()

    def update_instances(self, instances: list[Transaction]) -> None:
        if not instances:
            return
        with _guard("update_instances"):
            for t in instances:
                if t.recurring_rule_id is None:
                    raise PersistenceError(f"transaction {t.id} is not tied to a recurring rule")
            self.session.add_all(instances)
            self.session.flush()

    def delete_instances(self, rule_id: int, *, on_or_after: Optional[dt.date] = None) -> int:
        with _guard("delete_instances"):
            q = self.session.query(Transaction).filter(Transaction.recurring_rule_id == int(rule_id))
            if on_or_after is not None:
                q = q.filter(Transaction.date >= on_or_after)
            deleted = q.delete(synchronize_session=False)
            self.session.expire_all()
            return int(deleted or 0)

    def detach_instances(self, rule_id: int) -> int:
        with _guard("detach_instances"):
            updated = (
                self.session.query(Transaction)
                .filter(Transaction.recurring_rule_id == int(rule_id))
                .update({Transaction.recurring_rule_id: None}, synchronize_session=False)
            )
            self.session.expire_all()
            return int(updated or 0)

    def find_instances(self, rule_id: int, start: dt.date, end: dt.date) -> list[Transaction]:
        with _guard("find_instances"):
            return (
                self.session.query(Transaction)
                .filter(
                    Transaction.recurring_rule_id == int(rule_id),
                    Transaction.date >= start,
                    Transaction.date <= end,
                )
                .order_by(Transaction.date.asc(), Transaction.id.asc())
                .all()
            )
