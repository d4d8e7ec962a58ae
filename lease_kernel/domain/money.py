"""
Money -- the single rounding primitive for every monetary value.

Responsibility:
    Converts raw inputs to ``Decimal`` and rounds them to two decimal places
    with round-half-away-from-zero. Every amount the engine produces passes
    through ``round2`` so totals are reproducible bit for bit.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - ValueError when a value cannot be read as a number.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value: Decimal | int | str | float | None) -> Decimal:
    """
    Read a numeric input as ``Decimal``.

    Floats are converted through ``str`` so that 0.1 stays 0.1 rather than
    its binary expansion. ``None`` reads as zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


def round2(value: Decimal | int | str | float | None) -> Decimal:
    """
    Round to 2 decimal places, half away from zero.

    ``decimal.ROUND_HALF_UP`` rounds ties away from zero for both signs,
    so 2.675 -> 2.68 and -2.675 -> -2.68.
    """
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percentage_of(amount: Decimal, percentage: Decimal) -> Decimal:
    """round2(amount * percentage / 100)."""
    return round2(to_decimal(amount) * to_decimal(percentage) / HUNDRED)
