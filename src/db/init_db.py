from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Engine

from src.db.models import Base
from src.db.session import get_engine
from src.db.sqlite_migrations import ensure_sqlite_schema


def _ensure_sqlite_parent_dir(engine: Engine) -> None:
    if engine.url.get_backend_name() != "sqlite":
        return
    database = engine.url.database
    if not database or database == ":memory:":
        return
    Path(database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def init_db(engine: Engine | None = None) -> None:
    engine = engine or get_engine()
    _ensure_sqlite_parent_dir(engine)
    ensure_sqlite_schema(engine)
    Base.metadata.create_all(bind=engine)
