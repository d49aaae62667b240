"""Fixed-point money helpers.

Amounts are integer cents everywhere inside the ledger. Conversion happens
only at the boundary: ``parse_amount`` on the way in, ``from_cents`` and
``format_money`` on the way out.
"""

from decimal import Decimal, InvalidOperation

from .exceptions import ValidationError

CENT = Decimal("0.01")

# Largest accepted amount; 1024 of them still sum within a signed 64-bit
# SQLite INTEGER.
MAX_CENTS = 2**53
MAX_AMOUNT = Decimal(MAX_CENTS) / 100


def to_cents(amount: Decimal) -> int:
    """
    Convert a Decimal currency amount to integer cents.

    The amount must already be representable at two decimal places; use
    ``parse_amount`` for untrusted input.

    Args:
        amount: Currency amount as Decimal

    Returns:
        Amount in cents (integer)

    Raises:
        ValidationError: If the amount has more than two fractional digits
    """
    cents = amount * 100
    if cents != cents.to_integral_value():
        raise ValidationError(f"Amount {amount} has more than two decimal places")
    return int(cents)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents to a Decimal with exactly two fractional digits."""
    return (Decimal(cents) / 100).quantize(CENT)


def parse_amount(value: Decimal | str | int | float, allow_zero: bool = False) -> int:
    """
    Parse an external currency amount into cents, rejecting bad input.

    Floats are accepted only when their shortest repr is an exact
    two-decimal amount (``12.5`` is fine, ``0.1 + 0.2`` is not). Nothing is
    ever silently truncated.

    Args:
        value: Amount as Decimal, string, int or float
        allow_zero: Accept 0, as a split share may be

    Returns:
        Amount in cents

    Raises:
        ValidationError: If the amount is malformed, not finite, not positive,
            larger than MAX_AMOUNT or has more than two decimal places
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")

    try:
        if isinstance(value, float):
            amount = Decimal(repr(value))
        else:
            amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {value!r}") from None

    if not amount.is_finite():
        raise ValidationError(f"Amount must be a finite number, got {value!r}")

    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"Amount {value} exceeds the maximum of {MAX_AMOUNT}")

    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {value!r}") from None

    # Trailing zeros ("10.500") are still exact.
    if amount != quantized:
        raise ValidationError(f"Amount {value} has more than two decimal places")

    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"Amount must be positive, got {value}")

    return to_cents(quantized)


def format_money(cents: int, symbol: str = "$") -> str:
    """
    Format cents in accounting style.

    Negative amounts use parentheses: ($85.02)
    Positive amounts are plain:        $85.02
    """
    amount = from_cents(abs(cents))
    if cents < 0:
        return f"({symbol}{amount:,.2f})"
    return f"{symbol}{amount:,.2f}"
