"""Amount validation shared by every funding and reconciliation path."""

from __future__ import annotations

import math
from typing import Any, Iterable

AMOUNT_LIMIT = 100_000.0
BALANCE_TOLERANCE = 1e-6


def validate_amount(value: Any) -> float:
    """Clamp a monetary value to [-AMOUNT_LIMIT, AMOUNT_LIMIT].

    Anything that is not a finite real number becomes 0. Booleans are not
    amounts even though ``bool`` subclasses ``int``.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return float(min(max(value, -AMOUNT_LIMIT), AMOUNT_LIMIT))


def sum_amounts(values: Iterable[Any]) -> float:
    total = 0.0
    for value in values:
        total = validate_amount(total + validate_amount(value))
    return total


def amounts_equal(a: float, b: float) -> bool:
    return abs(a - b) <= BALANCE_TOLERANCE


def format_money(amount: float) -> str:
    return f"${amount:,.2f}"
