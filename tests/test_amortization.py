"""
Tests for the loan amortization calculator
"""

from decimal import Decimal

import pytest

from securebank.amortization import (
    monthly_payment, quote_monthly_payment, amortization_schedule
)
from securebank.exceptions import ValidationError


class TestMonthlyPayment:

    def test_five_year_loan_at_five_percent(self):
        assert monthly_payment(Decimal("10000"), Decimal("0.05"), 60) == Decimal("188.71")

    def test_zero_rate_is_simple_division(self):
        assert monthly_payment(Decimal("1200"), Decimal("0"), 12) == Decimal("100.00")

    def test_zero_rate_rounds_half_up(self):
        assert monthly_payment(Decimal("1000"), 0, 3) == Decimal("333.33")
        assert monthly_payment(Decimal("0.05"), 0, 2) == Decimal("0.03")

    def test_single_month(self):
        assert monthly_payment("1000", "0.12", 1) == Decimal("1010.00")

    def test_string_inputs(self):
        assert monthly_payment("10000", "0.05", 60) == Decimal("188.71")

    @pytest.mark.parametrize("term", [0, -12])
    def test_non_positive_term_rejected(self, term):
        with pytest.raises(ValidationError):
            monthly_payment(Decimal("1000"), Decimal("0.05"), term)

    def test_float_rate_rejected(self):
        with pytest.raises(ValidationError):
            monthly_payment(Decimal("1000"), 0.05, 12)

    @pytest.mark.parametrize("rate", ["abc", "NaN", "Infinity", "-0.01"])
    def test_malformed_rate_rejected(self, rate):
        with pytest.raises(ValidationError):
            monthly_payment(Decimal("1000"), rate, 12)

    def test_negligible_rate_is_simple_division(self):
        assert monthly_payment("1200", "1e-30", 12) == Decimal("100.00")
        assert amortization_schedule("1200", "1e-30", 12)[-1].remaining == Decimal("0.00")

    @pytest.mark.parametrize("principal,rate,term", [
        ("1000", "1e400", 12),
        ("1000", "1e100000", 360),
        ("1e30", "0.05", 12),
    ])
    def test_out_of_range_payment_rejected(self, principal, rate, term):
        with pytest.raises(ValidationError):
            monthly_payment(principal, rate, term)

    def test_quote_matches_payment(self):
        assert quote_monthly_payment("25000", "0.085", 36) == monthly_payment("25000", "0.085", 36)


class TestSchedule:

    def test_schedule_pays_off_principal(self):
        schedule = amortization_schedule(Decimal("10000"), Decimal("0.05"), 60)
        assert len(schedule) == 60
        assert schedule[0].interest == Decimal("41.67")
        assert schedule[0].principal == Decimal("147.04")
        assert schedule[-1].remaining == Decimal("0.00")
        assert sum(entry.principal for entry in schedule) == Decimal("10000.00")
        assert all(entry.payment == Decimal("188.71") for entry in schedule[:-1])

    def test_zero_rate_schedule(self):
        schedule = amortization_schedule(Decimal("1000"), Decimal("0"), 3)
        assert [e.payment for e in schedule] == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]
        assert all(e.interest == Decimal("0.00") for e in schedule)
        assert schedule[-1].remaining == Decimal("0.00")
