"""Tests for fixed-point money helpers."""

from __future__ import annotations

from decimal import Decimal

import pytest

from splitledger.errors import InvalidAmount
from splitledger.ledger.money import (
    format_money,
    from_minor,
    quantize_money,
    to_decimal,
    to_minor,
)


class TestToMinor:
    """Tests for decimal → minor unit conversion."""

    def test_two_decimals(self) -> None:
        assert to_minor(Decimal("33.34")) == 3334

    def test_whole_number(self) -> None:
        assert to_minor(100) == 10000

    def test_string_input(self) -> None:
        assert to_minor("0.10") == 10

    def test_float_goes_through_str(self) -> None:
        """0.1 must not pick up binary float noise."""
        assert to_minor(0.1) == 10

    def test_negative_amount_is_converted(self) -> None:
        """Sign checks are the caller's job; conversion is exact."""
        assert to_minor(Decimal("-12.50")) == -1250

    def test_sub_cent_precision_rejected(self) -> None:
        with pytest.raises(InvalidAmount):
            to_minor(Decimal("10.005"))

    def test_trailing_zeros_allowed(self) -> None:
        assert to_minor(Decimal("10.500")) == 1050

    def test_nan_rejected(self) -> None:
        with pytest.raises(InvalidAmount):
            to_minor("NaN")

    def test_infinity_rejected(self) -> None:
        with pytest.raises(InvalidAmount):
            to_minor(float("inf"))

    def test_garbage_rejected(self) -> None:
        with pytest.raises(InvalidAmount):
            to_minor("twelve")


class TestFromMinor:
    def test_two_places(self) -> None:
        result = from_minor(3333)
        assert result == Decimal("33.33")
        assert str(result) == "33.33"

    def test_zero(self) -> None:
        assert str(from_minor(0)) == "0.00"

    def test_negative(self) -> None:
        assert from_minor(-150) == Decimal("-1.50")


class TestHelpers:
    def test_quantize_rounds_half_up(self) -> None:
        assert quantize_money(Decimal("1.005")) == Decimal("1.01")

    def test_to_decimal_passthrough(self) -> None:
        value = Decimal("4.20")
        assert to_decimal(value) is value

    def test_format_money_plain(self) -> None:
        assert format_money(Decimal("12")) == "12.00"

    def test_format_money_with_currency(self) -> None:
        assert format_money(Decimal("1280"), "INR") == "INR 1280.00"
