"""Base-unit <-> decimal conversion for on-chain integer amounts.

Explorers return amounts as integer strings in the asset's smallest unit
(wei for ETH, 10^-decimals for tokens). Conversion is done on the digit
string itself so 30-digit values never pass through a float.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

NATIVE_DECIMALS = 18


def format_units(value: str | int | None, decimals: int) -> Decimal:
    """
    Convert an integer base-unit string into a Decimal amount.

    ``format_units("1500000000000000000", 18) == Decimal("1.5")``.
    Non-numeric input decodes to zero.
    """
    digits = str(value if value is not None else "").strip()
    if not digits.isdigit():
        return Decimal(0)

    normalized = digits.lstrip("0") or "0"
    if decimals <= 0:
        return Decimal(normalized)

    padded = normalized.rjust(decimals + 1, "0")
    integer_part = padded[:-decimals]
    fraction_part = padded[-decimals:].rstrip("0")
    text = f"{integer_part}.{fraction_part}" if fraction_part else integer_part
    return Decimal(text)


def to_base_units(amount: Decimal | str, decimals: int) -> str:
    """Inverse of format_units: Decimal amount -> integer base-unit string."""
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValueError(f"Not a decimal amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"Not a finite amount: {amount!r}")
    if value.is_zero():
        return "0"

    sign, digits, exponent = value.as_tuple()
    if sign:
        raise ValueError(f"Negative amounts have no base-unit form: {amount!r}")

    # normalize() would round to context precision; trim zeros by hand
    text = "".join(str(d) for d in digits)
    shift = exponent + max(decimals, 0)
    while shift < 0 and len(text) > 1 and text.endswith("0"):
        text = text[:-1]
        shift += 1
    if shift < 0:
        raise ValueError(f"{amount!r} has more than {decimals} fractional digits")

    text += "0" * shift
    return text.lstrip("0") or "0"
