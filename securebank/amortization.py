"""
Loan Amortization Calculator

Fixed-rate, fixed-term monthly payments computed in Decimal arithmetic.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, Overflow
from dataclasses import dataclass
from typing import List

from .exceptions import ValidationError
from .money import CENT, AmountLike, to_amount, to_rate


@dataclass(frozen=True)
class ScheduleEntry:
    """One month of an amortization schedule"""
    number: int
    payment: Decimal
    principal: Decimal
    interest: Decimal
    remaining: Decimal


def monthly_payment(principal: AmountLike, annual_rate: AmountLike, term_months: int) -> Decimal:
    """
    Standard amortizing payment

    payment = P * r * (1 + r)^n / ((1 + r)^n - 1) with r the monthly rate,
    or P / n when the rate is zero or too small to move (1 + r)^n.

    Args:
        principal: Amount borrowed
        annual_rate: Annual rate as a fraction (0.05 for 5%)
        term_months: Number of monthly payments

    Returns:
        Payment rounded half-up to cents

    Raises:
        ValidationError: If term_months is not positive, the rate is
            malformed or negative, or the payment overflows
    """
    if term_months <= 0:
        raise ValidationError(f"Loan term must be at least one month, got {term_months}")

    principal = to_amount(principal)
    rate = to_rate(annual_rate)

    try:
        monthly_rate = rate / Decimal(12)
        factor = (Decimal(1) + monthly_rate) ** term_months
        if factor == Decimal(1):
            payment = principal / Decimal(term_months)
        else:
            payment = principal * monthly_rate * factor / (factor - Decimal(1))
        return payment.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, Overflow):
        raise ValidationError(
            f"Payment for {principal} at rate {annual_rate} over {term_months} months is out of range"
        )


def quote_monthly_payment(amount: AmountLike, annual_rate: AmountLike, term_months: int) -> Decimal:
    """Pre-submission quote; identical to the payment fixed at approval"""
    return monthly_payment(amount, annual_rate, term_months)


def amortization_schedule(principal: AmountLike, annual_rate: AmountLike,
                          term_months: int) -> List[ScheduleEntry]:
    """Month-by-month breakdown; the final entry absorbs rounding so remaining ends at zero"""
    payment = monthly_payment(principal, annual_rate, term_months)
    monthly_rate = to_rate(annual_rate) / Decimal(12)
    remaining = to_amount(principal)

    schedule = []
    for number in range(1, term_months + 1):
        interest = (remaining * monthly_rate).quantize(CENT, rounding=ROUND_HALF_UP)
        if number == term_months:
            principal_part = remaining
            this_payment = principal_part + interest
        else:
            principal_part = min(payment - interest, remaining)
            this_payment = principal_part + interest
        remaining = remaining - principal_part
        schedule.append(ScheduleEntry(
            number=number,
            payment=this_payment,
            principal=principal_part,
            interest=interest,
            remaining=remaining
        ))
    return schedule
