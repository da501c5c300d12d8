"""
Money conversion helpers.

Amounts are stored as integer minor units. Decimal values only exist at
the API boundary; converting never rounds silently.
"""

from decimal import Decimal, InvalidOperation
from typing import Union

from backend.app.core.exceptions import LedgerValidationError

# ISO 4217 exponents that differ from the usual 2
MINOR_UNIT_EXPONENTS = {
    "BHD": 3,
    "JOD": 3,
    "KWD": 3,
    "OMR": 3,
    "TND": 3,
    "JPY": 0,
    "KRW": 0,
    "CLP": 0,
}
DEFAULT_EXPONENT = 2


def currency_exponent(currency: str) -> int:
    return MINOR_UNIT_EXPONENTS.get(currency.upper(), DEFAULT_EXPONENT)


def to_minor_units(amount: Union[Decimal, int, str], currency: str) -> int:
    """
    Convert a decimal amount to integer minor units.

    Raises:
        LedgerValidationError: if the amount is not a finite number or carries
            more fractional digits than the currency allows.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise LedgerValidationError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise LedgerValidationError(f"Invalid amount: {amount!r}")

    scaled = value.scaleb(currency_exponent(currency))
    if scaled != scaled.to_integral_value():
        raise LedgerValidationError(
            f"Amount {value} has more precision than {currency} allows",
            details={"amount": str(value), "currency": currency}
        )
    return int(scaled)


def from_minor_units(amount_minor: int, currency: str) -> Decimal:
    """Convert integer minor units back to a Decimal with the currency's scale."""
    exponent = currency_exponent(currency)
    quantum = Decimal(1).scaleb(-exponent)
    return Decimal(amount_minor).scaleb(-exponent).quantize(quantum)
