"""Fixed-point money helpers.

Ledger arithmetic runs on integer minor units (cents).  :class:`Decimal`
appears only at the boundary: amounts coming in from callers, the stored
expense/settlement records, and the views handed back out.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from splitledger.errors import InvalidAmount

MONEY_PRECISION = Decimal("0.01")
MINOR_UNITS = 100


def quantize_money(value: Decimal) -> Decimal:
    """Return *value* rounded to two decimal places (HALF_UP)."""
    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Coerce a caller-supplied amount to :class:`Decimal`.

    Floats go through ``str`` so that ``0.1`` stays ``Decimal("0.1")``.
    """
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidAmount(f"Not a monetary amount: {value!r}") from exc


def to_minor(value: Decimal | int | float | str) -> int:
    """Convert a decimal amount to integer minor units.

    Raises:
        InvalidAmount: If the value is not finite or carries precision
            finer than one minor unit (e.g. ``10.005``).
    """
    amount = to_decimal(value)
    if not amount.is_finite():
        raise InvalidAmount(f"Not a finite amount: {value!r}")
    scaled = amount * MINOR_UNITS
    if scaled != scaled.to_integral_value():
        raise InvalidAmount(
            f"Amount {amount} has more than two decimal places.",
            details={"amount": str(amount)},
        )
    return int(scaled)


def from_minor(minor: int) -> Decimal:
    """Convert integer minor units back to a two-place :class:`Decimal`."""
    return (Decimal(minor) / MINOR_UNITS).quantize(MONEY_PRECISION)


def format_money(value: Decimal, currency: str | None = None) -> str:
    """Render money with exactly two decimal places, optionally prefixed."""
    text = f"{quantize_money(value):.2f}"
    return f"{currency} {text}" if currency else text
