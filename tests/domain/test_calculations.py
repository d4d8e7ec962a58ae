"""Tests for durations and installment schedules (lease_kernel/domain/calculations.py)."""

from datetime import date
from decimal import Decimal

import pytest

from lease_kernel.domain.calculations import (
    InstallmentFrequency,
    add_months,
    build_installment_schedule,
    duration_between,
    schedule_total,
)
from lease_kernel.exceptions import ValidationError


class TestDurationBetween:
    def test_leap_year(self):
        d = duration_between(date(2024, 1, 1), date(2025, 1, 1))
        assert (d.days, d.months, d.years) == (366, 12, 1)

    def test_non_leap_year(self):
        d = duration_between(date(2025, 1, 1), date(2026, 1, 1))
        assert (d.days, d.months, d.years) == (365, 12, 1)

    def test_multi_year(self):
        d = duration_between(date(2024, 3, 1), date(2027, 2, 28))
        assert d.months == 35
        assert d.years == 2

    def test_inverted_range(self):
        with pytest.raises(ValidationError):
            duration_between(date(2025, 1, 1), date(2024, 1, 1))


class TestAddMonths:
    def test_clamps_to_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)

    def test_crosses_year(self):
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)


class TestInstallmentSchedule:
    def test_even_split(self):
        schedule = build_installment_schedule(Decimal("12600"), 12)
        assert len(schedule) == 12
        assert {i.amount for i in schedule} == {Decimal("1050.00")}

    def test_last_absorbs_remainder(self):
        schedule = build_installment_schedule(Decimal("100"), 3)
        assert [i.amount for i in schedule] == [
            Decimal("33.33"), Decimal("33.33"), Decimal("33.34"),
        ]
        assert schedule_total(schedule) == Decimal("100.00")

    def test_due_dates_quarterly(self):
        schedule = build_installment_schedule(
            Decimal("4000"), 4, date(2024, 1, 31), InstallmentFrequency.QUARTERLY
        )
        assert [i.due_date for i in schedule] == [
            date(2024, 1, 31), date(2024, 4, 30), date(2024, 7, 31), date(2024, 10, 31),
        ]

    def test_no_start_date_no_due_dates(self):
        schedule = build_installment_schedule(Decimal("10"), 2)
        assert all(i.due_date is None for i in schedule)

    def test_numbers_start_at_one(self):
        schedule = build_installment_schedule(Decimal("10"), 2)
        assert [i.number for i in schedule] == [1, 2]

    @pytest.mark.parametrize("count", [0, -1])
    def test_count_must_be_positive(self, count):
        with pytest.raises(ValidationError):
            build_installment_schedule(Decimal("10"), count)

    def test_negative_total_rejected(self):
        with pytest.raises(ValidationError):
            build_installment_schedule(Decimal("-10"), 2)
