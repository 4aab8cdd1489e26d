from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from src.utils.time import utcnow
from src.db.types import Money, UTCDateTime


class Base(DeclarativeBase):
    pass


TransactionKind = Enum("income", "expense", name="transaction_kind")
RecurrenceFrequency = Enum("weekly", "biweekly", "monthly", "yearly", name="recurrence_frequency")


class RecurringRule(Base):
    __tablename__ = "recurring_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    category_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(TransactionKind, nullable=False)
    frequency: Mapped[str] = mapped_column(RecurrenceFrequency, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    max_occurrences: Mapped[Optional[int]] = mapped_column(Integer)
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    paused_at: Mapped[Optional[dt.datetime]] = mapped_column(UTCDateTime())
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)

    transactions: Mapped[list["Transaction"]] = relationship(back_populates="recurring_rule", passive_deletes=True)

    def snapshot(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "category_id": self.category_id,
            "kind": self.kind,
            "frequency": self.frequency,
            "amount": str(self.amount) if self.amount is not None else None,
            "description": self.description,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "max_occurrences": self.max_occurrences,
            "day_of_month": self.day_of_month,
            "is_active": bool(self.is_active),
            "paused_at": self.paused_at.isoformat() if self.paused_at else None,
        }


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (Index("ix_transactions_rule_date", "recurring_rule_id", "date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    category_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(TransactionKind, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    # NULL for transactions that were never (or are no longer) tied to a rule.
    recurring_rule_id: Mapped[Optional[int]] = mapped_column(ForeignKey("recurring_rules.id", ondelete="SET NULL"))
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)

    recurring_rule: Mapped[Optional["RecurringRule"]] = relationship(back_populates="transactions")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    actor: Mapped[str] = mapped_column(String(200), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(100))
    old_json: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    new_json: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    note: Mapped[Optional[str]] = mapped_column(Text)
