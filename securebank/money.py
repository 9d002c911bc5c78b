"""
Fixed-Point Money Helpers

All balances and amounts are Decimal values quantized to two places with
ROUND_HALF_UP. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Union

from .exceptions import ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

AmountLike = Union[Decimal, str, int]


def to_amount(value: AmountLike) -> Decimal:
    """
    Convert a value to a 2-decimal fixed-point amount

    Args:
        value: Decimal, integer or numeric string

    Returns:
        Decimal rounded half-up to cents

    Raises:
        ValidationError: If the value is a float or not a finite number
    """
    if isinstance(value, float):
        # Floats cannot represent cents exactly
        raise ValidationError("Monetary amounts must be Decimal, int or str, not float")
    if isinstance(value, bool):
        raise ValidationError("Monetary amounts cannot be booleans")

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"Cannot convert '{value}' to an amount")

    if not amount.is_finite():
        raise ValidationError(f"Amount must be finite, got {value}")

    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Amount {value} exceeds the supported precision")


def require_positive(value: AmountLike, field_name: str = "amount") -> Decimal:
    """Convert to an amount and require it to be strictly positive"""
    amount = to_amount(value)
    if amount <= ZERO:
        raise ValidationError(f"{field_name} must be a positive number, got {amount}")
    return amount


def to_rate(value: AmountLike, field_name: str = "Interest rate") -> Decimal:
    """
    Parse an annual rate given as a fraction (0.05 for 5%)

    Raises:
        ValidationError: If the value is a float, boolean, non-numeric,
            non-finite or negative
    """
    if isinstance(value, (float, bool)):
        raise ValidationError(f"{field_name} must be Decimal, int or str, not {type(value).__name__}")
    try:
        rate = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"Cannot convert '{value}' to a rate")
    if not rate.is_finite():
        raise ValidationError(f"{field_name} must be finite, got {value}")
    if rate < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    return rate
