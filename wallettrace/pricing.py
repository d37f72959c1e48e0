"""USD estimation for transfers.

Only two kinds of value are ever priced: stablecoins (1:1 with their decimal
amount) and the chain's native asset when the caller supplies a price.
Everything else stays unpriced; no price is ever invented for a token.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Iterable

from wallettrace.models import Asset

DEFAULT_STABLECOINS = ("USDT", "USDC", "DAI", "BUSD", "TUSD", "USDP", "FRAX")


def stablecoin_set(symbols: Iterable[str] | None = None) -> frozenset[str]:
    source = DEFAULT_STABLECOINS if symbols is None else symbols
    return frozenset(s.strip().upper() for s in source if s and s.strip())


def to_decimal(value: Decimal | float | int | str | None) -> Decimal | None:
    """
    Caller-supplied numbers go through str() so 0.1 stays 0.1.

    NaN, infinities and unparseable text are None: they can neither price a
    transfer nor act as a USD floor.
    """
    if value is None:
        return None
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def estimate_usd(
    asset: Asset,
    amount: Decimal,
    native_usd_price: Decimal | None,
    stablecoins: frozenset[str],
) -> Decimal | None:
    if asset.is_native:
        if native_usd_price is None:
            return None
        return amount * native_usd_price
    if asset.symbol.upper() in stablecoins:
        return amount
    return None
