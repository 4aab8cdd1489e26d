from __future__ import annotations

import logging
import re

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

log = logging.getLogger(__name__)


def _table_columns(engine: Engine, table: str) -> set[str]:
    with engine.connect() as conn:
        rows = conn.execute(text(f"PRAGMA table_info({table})")).fetchall()
    # row: (cid, name, type, notnull, dflt_value, pk)
    return {str(r[1]) for r in rows}


_COL_NAME_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\b")


def _add_column(engine: Engine, table: str, column_ddl: str) -> None:
    m = _COL_NAME_RE.match(column_ddl)
    col_name = m.group(1) if m else None
    if col_name and col_name in _table_columns(engine, table):
        return
    try:
        with engine.begin() as conn:
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column_ddl}"))
        log.info("Added column %s.%s", table, col_name or column_ddl)
    except OperationalError as e:
        # SQLite raises OperationalError("duplicate column name: X") for ADD COLUMN on existing columns.
        if "duplicate column name" in str(e).lower():
            return
        raise


_RULE_COLUMNS = [
    ("end_date", "end_date DATE"),
    ("max_occurrences", "max_occurrences INTEGER"),
    ("day_of_month", "day_of_month INTEGER"),
    ("is_active", "is_active BOOLEAN NOT NULL DEFAULT 1"),
    ("paused_at", "paused_at DATETIME"),
    ("updated_at", "updated_at DATETIME"),
]

_TRANSACTION_COLUMNS = [
    ("recurring_rule_id", "recurring_rule_id INTEGER REFERENCES recurring_rules(id) ON DELETE SET NULL"),
    ("updated_at", "updated_at DATETIME"),
]


def ensure_sqlite_schema(engine: Engine) -> None:
    """
    Minimal SQLite "migrations" (no Alembic).
    Safe to call on every startup: only adds missing columns and indexes.
    """
    if engine.url.get_backend_name() != "sqlite":
        return

    # If a table doesn't exist yet, SQLAlchemy create_all will handle it.
    with engine.connect() as conn:
        existing_tables = {r[0] for r in conn.execute(text("SELECT name FROM sqlite_master WHERE type='table'")).fetchall()}

    if "recurring_rules" in existing_tables:
        cols = _table_columns(engine, "recurring_rules")
        for name, ddl in _RULE_COLUMNS:
            if name not in cols:
                _add_column(engine, "recurring_rules", ddl)
                cols.add(name)

    if "transactions" in existing_tables:
        cols = _table_columns(engine, "transactions")
        for name, ddl in _TRANSACTION_COLUMNS:
            if name not in cols:
                _add_column(engine, "transactions", ddl)
                cols.add(name)
        with engine.begin() as conn:
            conn.execute(
                text("CREATE INDEX IF NOT EXISTS ix_transactions_rule_date ON transactions (recurring_rule_id, date)")
            )
