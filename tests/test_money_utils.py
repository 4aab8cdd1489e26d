from __future__ import annotations

from decimal import Decimal

from src.db.models import Transaction
from src.utils.money import format_money, from_cents, to_cents, to_money
from tests.factories import draft


def test_to_money_rounds_half_up_and_rejects_garbage():
    assert to_money("1,234.565") == Decimal("1234.57")
    assert to_money(0.1) == Decimal("0.10")
    assert to_money(Decimal("2.005")) == Decimal("2.01")
    assert to_money("") is None
    assert to_money("abc") is None
    assert to_money(Decimal("NaN")) is None
    assert to_money(None) is None


def test_cents_conversion():
    assert to_cents(Decimal("12.34")) == 1234
    assert to_cents(Decimal("-0.05")) == -5
    assert from_cents(1234) == Decimal("12.34")
    assert from_cents(5) == Decimal("0.05")


def test_format_money():
    assert format_money(Decimal("1234.5")) == "1,234.50"
    assert format_money(Decimal("-3.456")) == "-3.46"
    assert format_money(None) == "-"


def test_money_column_round_trips_exact_cents(session, manager):
    rule = manager.create(draft(amount=Decimal("1000.01"), max_occurrences=3))
    session.commit()

    rows = session.query(Transaction).order_by(Transaction.date.asc()).all()
    assert [t.amount for t in rows] == [Decimal("333.34"), Decimal("333.34"), Decimal("333.33")]
    assert manager.get_rule(rule.id).amount == Decimal("1000.01")
