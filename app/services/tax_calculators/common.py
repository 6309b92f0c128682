"""
Mshahara Payroll - Calculator Helpers

Money rounding and input guards shared by the statutory calculators.

Rounding rules:
- Income tax and pension: half-up to the cent
- Flat-rate levies: half-up to the whole currency unit
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from app.utils.error_handling import ComputationInvariantException


CENT = Decimal("0.01")
UNIT = Decimal("1")
ZERO = Decimal("0.00")


def round_money(amount: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def round_to_unit(amount: Decimal) -> Decimal:
    """Round half-up to the nearest whole currency unit, kept at two places."""
    return amount.quantize(UNIT, rounding=ROUND_HALF_UP).quantize(CENT)


def ensure_valid_base(value: Any, name: str = "base") -> Decimal:
    """
    Coerce a calculator input to Decimal.

    Negative or non-finite inputs mean the data feeding the calculator is
    corrupt; they abort the computation instead of being clamped.
    """
    if isinstance(value, bool):
        raise ComputationInvariantException(
            f"{name} must be a monetary amount, got {value!r}",
            details={"input": name, "value": repr(value)},
        )
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ComputationInvariantException(
            f"{name} is not a number: {value!r}",
            details={"input": name, "value": repr(value)},
        )

    if not amount.is_finite():
        raise ComputationInvariantException(
            f"{name} must be finite, got {amount}",
            details={"input": name, "value": str(amount)},
        )
    if amount < 0:
        raise ComputationInvariantException(
            f"{name} must not be negative, got {amount}",
            details={"input": name, "value": str(amount)},
        )
    return amount
