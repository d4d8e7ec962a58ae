"""
Calendar and schedule calculations.

Responsibility:
    Date-range durations for contract unit terms and the installment
    schedule that splits a contract total into equal payments.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - ValidationError when a date range is inverted or empty.
    - ValidationError for a non-positive installment count or a negative total.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_DOWN, Decimal
from enum import Enum

from lease_kernel.domain.money import CENT, ZERO, round2, to_decimal
from lease_kernel.exceptions import ValidationError


@dataclass(frozen=True)
class Duration:
    days: int
    months: int
    years: int


def add_months(start: date, months: int) -> date:
    """Shift ``start`` by whole months, clamping the day to the month end."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def duration_between(from_date: date, to_date: date) -> Duration:
    """
    Calendar difference between two dates.

    ``days`` is the plain day count, ``months`` counts completed calendar
    months and ``years`` completed years.  2024-01-01 .. 2025-01-01 gives
    366 days, 12 months, 1 year.
    """
    if to_date <= from_date:
        raise ValidationError(
            "to_date", to_date, f"must be after from_date {from_date.isoformat()}"
        )
    months = (to_date.year - from_date.year) * 12 + (to_date.month - from_date.month)
    if to_date.day < from_date.day:
        months -= 1
    return Duration(
        days=(to_date - from_date).days,
        months=months,
        years=months // 12,
    )


# =========================================================================
# Installment schedule
# =========================================================================


class InstallmentFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BI_ANNUAL = "bi_annual"
    ANNUAL = "annual"

    @property
    def months(self) -> int:
        return _FREQUENCY_MONTHS[self]


_FREQUENCY_MONTHS = {
    InstallmentFrequency.MONTHLY: 1,
    InstallmentFrequency.QUARTERLY: 3,
    InstallmentFrequency.BI_ANNUAL: 6,
    InstallmentFrequency.ANNUAL: 12,
}


@dataclass(frozen=True)
class Installment:
    number: int
    amount: Decimal
    due_date: date | None = None


def build_installment_schedule(
    total: Decimal | int | str,
    count: int,
    start_date: date | None = None,
    frequency: InstallmentFrequency = InstallmentFrequency.MONTHLY,
) -> tuple[Installment, ...]:
    """
    Split ``total`` into ``count`` installments.

    Each installment is total / count cut down to the cent; the last one
    absorbs the remainder so the schedule sums exactly to round2(total) and
    no installment is negative.
    Due dates are only filled when ``start_date`` is given.
    """
    if count <= 0:
        raise ValidationError("count", count, "must be a positive integer")
    amount_total = round2(total)
    if amount_total < ZERO:
        raise ValidationError("total", amount_total, "must not be negative")

    base = (amount_total / Decimal(count)).quantize(CENT, rounding=ROUND_DOWN)
    installments: list[Installment] = []
    for index in range(count):
        amount = base
        if index == count - 1:
            amount = round2(amount_total - base * (count - 1))
        due = None
        if start_date is not None:
            due = add_months(start_date, index * frequency.months)
        installments.append(Installment(number=index + 1, amount=amount, due_date=due))
    return tuple(installments)


def schedule_total(installments: tuple[Installment, ...]) -> Decimal:
    return round2(sum((to_decimal(i.amount) for i in installments), ZERO))
