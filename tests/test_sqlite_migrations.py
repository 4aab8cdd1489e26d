from __future__ import annotations

from sqlalchemy import create_engine, text

from src.db.init_db import init_db
from src.db.sqlite_migrations import _table_columns, ensure_sqlite_schema


def test_legacy_tables_gain_missing_columns(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'legacy.db'}", future=True)
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE recurring_rules (id INTEGER PRIMARY KEY, owner_id VARCHAR(64), category_id VARCHAR(64), "
                "kind VARCHAR(7), frequency VARCHAR(8), amount BIGINT, description TEXT, start_date DATE, created_at DATETIME)"
            )
        )
        conn.execute(
            text(
                "CREATE TABLE transactions (id INTEGER PRIMARY KEY, owner_id VARCHAR(64), category_id VARCHAR(64), "
                "kind VARCHAR(7), amount BIGINT, description TEXT, date DATE, created_at DATETIME)"
            )
        )
        conn.execute(text("INSERT INTO recurring_rules (id, owner_id, category_id, kind, frequency, amount, description, start_date) VALUES (1, 'u', 'c', 'expense', 'monthly', 500, 'x', '2025-01-01')"))

    ensure_sqlite_schema(engine)
    ensure_sqlite_schema(engine)

    rule_cols = _table_columns(engine, "recurring_rules")
    assert {"end_date", "max_occurrences", "day_of_month", "is_active", "paused_at", "updated_at"} <= rule_cols
    assert {"recurring_rule_id", "updated_at"} <= _table_columns(engine, "transactions")
    with engine.connect() as conn:
        assert conn.execute(text("SELECT is_active FROM recurring_rules WHERE id = 1")).scalar() == 1
        indexes = {r[1] for r in conn.execute(text("PRAGMA index_list(transactions)")).fetchall()}
    assert "ix_transactions_rule_date" in indexes


def test_init_db_on_fresh_database_creates_tables(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'nested' / 'fresh.db'}", future=True)
    init_db(engine)
    assert "paused_at" in _table_columns(engine, "recurring_rules")
    assert "recurring_rule_id" in _table_columns(engine, "transactions")
    assert "note" in _table_columns(engine, "audit_logs")
