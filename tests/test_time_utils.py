from __future__ import annotations

import datetime as dt

import pytest

from src.db.audit import changes_for, log_change
from src.db.models import AuditLog
from src.ledger.recurring.lifecycle import AUDIT_ENTITY
from src.utils.time import UTC, ensure_utc, parse_date
from tests.factories import at, draft


def test_paused_at_and_audit_timestamps_are_utc(session, manager):
    rule = manager.create(draft())
    manager.pause(rule.id, now=dt.datetime(2025, 3, 20, 12, 0))
    session.commit()

    paused = manager.get_rule(rule.id)
    assert paused.paused_at.tzinfo == UTC
    assert paused.paused_at == dt.datetime(2025, 3, 20, 12, 0, tzinfo=UTC)

    audit = session.query(AuditLog).order_by(AuditLog.id.desc()).first()
    assert audit is not None
    assert isinstance(audit.at, dt.datetime)
    assert audit.at.tzinfo == UTC


def test_non_utc_now_is_normalized():
    plus_three = dt.timezone(dt.timedelta(hours=3))
    assert ensure_utc(dt.datetime(2025, 4, 1, 1, 0, tzinfo=plus_three)) == at(2025, 3, 31).replace(hour=22, minute=0)


def test_changes_for_returns_oldest_first(session):
    for action in ("CREATE", "PAUSE", "RESUME"):
        log_change(session, actor="t", action=action, entity=AUDIT_ENTITY, entity_id="7", old=None, new=None)
    log_change(session, actor="t", action="CREATE", entity=AUDIT_ENTITY, entity_id="8", old=None, new=None)
    session.flush()

    rows = changes_for(session, entity=AUDIT_ENTITY, entity_id="7")
    assert [r.action for r in rows] == ["CREATE", "PAUSE", "RESUME"]


def test_parse_date():
    assert parse_date("2025-02-03") == dt.date(2025, 2, 3)
    assert parse_date("2025-02-03T10:00:00") == dt.date(2025, 2, 3)
    assert parse_date(" ") is None
    assert parse_date(dt.datetime(2025, 2, 3, 10, 0)) == dt.date(2025, 2, 3)
    with pytest.raises(ValueError):
        parse_date("03/02/2025")
