"""
Unit tests for the rounding primitive (``lease_kernel.domain.money``).

Verifies:
- round2 rounds half away from zero for both signs
- Floats are read through ``str``
- Invalid input raises ValueError
- percentage_of applies round2 to the product
"""

from decimal import Decimal

import pytest

from lease_kernel.domain.money import ZERO, percentage_of, round2, to_decimal


class TestRound2:
    """Tests for round2."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2.675", Decimal("2.68")),
            ("2.665", Decimal("2.67")),
            ("-2.675", Decimal("-2.68")),
            ("0.005", Decimal("0.01")),
            ("-0.005", Decimal("-0.01")),
            ("0.004", Decimal("0.00")),
            ("12600", Decimal("12600.00")),
        ],
    )
    def test_half_away_from_zero(self, raw, expected):
        assert round2(Decimal(raw)) == expected

    def test_result_has_two_places(self):
        assert str(round2(Decimal("5"))) == "5.00"

    def test_float_read_through_str(self):
        """1.005 as a float is 1.00499999...; reading via str keeps 1.005."""
        assert round2(1.005) == Decimal("1.01")

    def test_none_reads_as_zero(self):
        assert round2(None) == ZERO

    def test_int_and_str_inputs(self):
        assert round2(7) == Decimal("7.00")
        assert round2("7.125") == Decimal("7.13")

    def test_invalid_string_raises(self):
        with pytest.raises(ValueError):
            round2("not a number")

    def test_bool_rejected(self):
        with pytest.raises(ValueError):
            to_decimal(True)


class TestPercentageOf:
    def test_five_percent_of_annual(self):
        assert percentage_of(Decimal("12000.00"), Decimal("5")) == Decimal("600.00")

    def test_rounds_result(self):
        # 333.33 * 15% = 49.9995
        assert percentage_of(Decimal("333.33"), Decimal("15")) == Decimal("50.00")

    def test_zero_percentage(self):
        assert percentage_of(Decimal("12000.00"), ZERO) == ZERO
