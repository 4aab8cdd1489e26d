from __future__ import annotations

from decimal import Decimal

from src.utils.money import round_cents


def installment_amount(total: Decimal, n: int, ordinal0: int) -> Decimal:
    """
    Amount of the installment at 0-based position `ordinal0` out of `n`.

    Every installment gets `round(total / n)`; the last one gets whatever is left,
    so the n amounts always add up to `total` exactly.
    """
    if n <= 0:
        raise ValueError(f"installment count must be positive, got {n}")
    total = round_cents(Decimal(total))
    base = round_cents(total / n)
    if ordinal0 == n - 1:
        return round_cents(total - base * (n - 1))
    return base


def installment_label(base_description: str, ordinal1: int, n: int) -> str:
    label = f"Parcela {ordinal1}/{n}"
    if not base_description:
        return label
    return f"{base_description} - {label}"


def split_total(total: Decimal, n: int) -> list[Decimal]:
    return [installment_amount(total, n, i) for i in range(n)]
