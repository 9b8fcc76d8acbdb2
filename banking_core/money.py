"""
Money Codec Module

Converts user-facing decimal currency amounts to and from integer minor units
(cents). All ledger arithmetic happens on integers; decimal amounts are never
summed. NEVER uses float arithmetic for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

from .errors import ValidationError

MINOR_UNITS_PER_UNIT = 100
CENT = Decimal('0.01')
MIN_FUNDING_MINOR_UNITS = 1
# Storage keeps balances as signed 64-bit integers
MAX_STORABLE_MINOR_UNITS = 2 ** 63 - 1
DEFAULT_MAX_FUNDING_MINOR_UNITS = 100_000_000_000  # $1,000,000,000.00

AmountLike = Union[Decimal, int, float, str]


def _as_decimal(amount: AmountLike) -> Decimal:
    """Coerce an external amount to Decimal without passing through float math"""
    if isinstance(amount, bool):
        raise ValidationError("Amount must be a number")
    if isinstance(amount, Decimal):
        value = amount
    elif isinstance(amount, (int, float)):
        # str() first so 0.1 becomes Decimal('0.1'), not its binary expansion
        value = Decimal(str(amount))
    elif isinstance(amount, str):
        try:
            value = Decimal(amount.strip())
        except InvalidOperation:
            raise ValidationError(f"Cannot convert '{amount}' to an amount")
    else:
        raise ValidationError("Amount must be a number")

    if not value.is_finite():
        raise ValidationError("Amount must be a finite number")
    return value


def to_minor_units(amount: AmountLike) -> int:
    """
    Convert a decimal amount to integer minor units.

    Rounds half away from zero (ROUND_HALF_UP), so 0.005 -> 1 and -0.005 -> -1.
    The rule is applied once at the boundary; stored values are already exact.
    """
    value = _as_decimal(amount) * MINOR_UNITS_PER_UNIT
    try:
        return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        # More digits than the decimal context can hold
        raise ValidationError("Amount is too large")


def to_decimal(minor_units: int) -> Decimal:
    """Convert integer minor units to a two-place Decimal"""
    if isinstance(minor_units, bool) or not isinstance(minor_units, int):
        raise TypeError("minor_units must be an int")
    return (Decimal(minor_units) / MINOR_UNITS_PER_UNIT).quantize(CENT)


def parse_funding_amount(amount: AmountLike,
                         max_minor_units: int = DEFAULT_MAX_FUNDING_MINOR_UNITS) -> int:
    """Convert a funding amount, rejecting anything below one minor unit or above the maximum"""
    minor_units = to_minor_units(amount)
    if minor_units < MIN_FUNDING_MINOR_UNITS:
        raise ValidationError("Amount must be at least $0.01")
    limit = min(max_minor_units, MAX_STORABLE_MINOR_UNITS)
    if minor_units > limit:
        raise ValidationError(f"Amount must not exceed {format_amount(limit)}")
    return minor_units


def format_amount(minor_units: int) -> str:
    """Format for display, e.g. 123456 -> '$1,234.56'"""
    value = to_decimal(minor_units)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"
