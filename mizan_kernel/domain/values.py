"""
Values -- Decimal helpers shared by every ledger computation.

Responsibility:
    Single place where raw numbers become cent-rounded Decimals and where
    the 0.01 equality tolerance lives.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module and by the engines.

Invariants enforced:
    - Amounts are Decimal, never float.  Floats are converted through their
      shortest repr so 0.1 becomes Decimal("0.1"), not the binary expansion.
    - Rounding is ROUND_HALF_UP (half away from zero) to 2 places, applied
      before any summation.
    - Two rounded amounts are equal when they differ by strictly less than
      TOLERANCE.

Failure modes:
    - ValueError when a value cannot be read as a finite number.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
TOLERANCE = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """Convert int/str/float/Decimal to Decimal without binary noise."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a number: {value!r}") from exc
    else:
        raise ValueError(f"Not a number: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def round_amount(value: Any) -> Decimal:
    """Round to cents, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_amounts(values) -> Decimal:
    """Sum after rounding each term to cents."""
    total = ZERO
    for value in values:
        total += round_amount(value)
    return total


def amounts_equal(a: Any, b: Any) -> bool:
    return abs(round_amount(a) - round_amount(b)) < TOLERANCE


def is_outstanding(amount: Any) -> bool:
    """True when an amount still due exceeds the tolerance."""
    return round_amount(amount) > TOLERANCE


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))
