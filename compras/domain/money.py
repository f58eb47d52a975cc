"""Decimal helpers for monetary values and quantities.

Every amount that crosses the persistence boundary goes through these
functions, so comparisons never touch binary floating point.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable


MONEY_QUANTUM = Decimal("0.01")
QUANTITY_QUANTUM = Decimal("0.001")
ZERO = Decimal("0.00")


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidOperation("empty decimal value")
    # str() keeps floats like 0.1 from expanding to their binary representation
    number = Decimal(str(value).strip())
    if not number.is_finite():
        raise InvalidOperation(f"non-finite decimal value: {value}")
    return number


def to_money(value) -> Decimal:
    return _as_decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def to_quantity(value) -> Decimal:
    return _as_decimal(value).quantize(QUANTITY_QUANTUM, rounding=ROUND_HALF_UP)


def parse_money(value) -> Decimal | None:
    try:
        return to_money(value)
    except (InvalidOperation, ValueError, TypeError):
        return None


def parse_quantity(value) -> Decimal | None:
    try:
        return to_quantity(value)
    except (InvalidOperation, ValueError, TypeError):
        return None


def line_total(quantity, unit_price) -> Decimal:
    return to_money(to_quantity(quantity) * to_money(unit_price))


def sum_money(values: Iterable) -> Decimal:
    total = ZERO
    for value in values:
        total += to_money(value)
    return to_money(total)


def in_range(amount, minimum, maximum) -> bool:
    """Inclusive band check."""
    value = to_money(amount)
    return to_money(minimum) <= value <= to_money(maximum)


def money_to_db(value) -> str:
    return str(to_money(value))


def quantity_to_db(value) -> str:
    return str(to_quantity(value))
