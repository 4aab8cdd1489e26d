from __future__ import annotations

import pydantic
import pytest

from src.ledger.recurring.config import RecurringConfig, load_recurring_config
from src.ledger.recurring.lifecycle import RecurringRuleManager
from tests.factories import draft


def test_defaults_when_no_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    cfg, path = load_recurring_config()
    assert path is None
    assert cfg == RecurringConfig()
    assert (cfg.projection_years, cfg.default_per_page, cfg.max_per_page, cfg.audit_actor) == (50, 20, 100, "cli")


def test_loads_recurring_section(tmp_path):
    p = tmp_path / "recurring.yaml"
    p.write_text("recurring:\n  projection_years: 2\n  default_per_page: 5\n  audit_actor: ops\n")
    cfg, path = load_recurring_config(p)
    assert path == str(p)
    assert cfg.projection_years == 2
    assert cfg.default_per_page == 5
    assert cfg.max_per_page == 100
    assert cfg.audit_actor == "ops"


def test_loads_top_level_keys_from_working_dir(tmp_path, monkeypatch):
    (tmp_path / "recurring.yaml").write_text("max_per_page: 10\n")
    monkeypatch.chdir(tmp_path)
    cfg, path = load_recurring_config()
    assert path == "recurring.yaml"
    assert cfg.max_per_page == 10


def test_rejects_out_of_range_values(tmp_path):
    p = tmp_path / "recurring.yaml"
    p.write_text("projection_years: 0\n")
    with pytest.raises(pydantic.ValidationError):
        load_recurring_config(p)


def test_manager_honors_configured_ceiling_and_page_size(session):
    manager = RecurringRuleManager.for_session(session, config=RecurringConfig(projection_years=2, max_per_page=1))
    manager.create(draft(frequency="yearly"))
    manager.create(draft(frequency="yearly"))
    session.commit()

    page = manager.list_rules("user-1", per_page=50)
    assert page.per_page == 1
    assert page.total_pages == 2
    assert manager.store.count_instances(page.data[0].id) == 3
