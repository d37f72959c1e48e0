"""Transfer fetching: explorer rows -> filtered, priced Transfer records.

For one address on one chain:
  1. read the newest native (txlist) and token (tokentx) rows concurrently
  2. drop failed, incomplete and zero-value native rows
  3. decode into Transfer, pricing each one as it is built
  4. keep the requested time window (default: last 24h, advisory)
  5. drop contract counterparties unless disabled
  6. apply the minimum-USD floor
  7. newest first, capped at max_transfers
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from wallettrace.cache import MISSING, TRANSFER_TTL, TTLCache
from wallettrace.chains import native_symbol, normalize_address, tx_url
from wallettrace.classifier import ContractClassifier
from wallettrace.fetchers.base import BaseExplorer, ExplorerTokenTx, ExplorerTx
from wallettrace.models import Asset, ChainConfig, TimeInput, TraceOptions, Transfer
from wallettrace.pricing import estimate_usd, stablecoin_set, to_decimal
from wallettrace.units import NATIVE_DECIMALS, format_units

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 24 * 60 * 60 * 1000
MIN_TRANSFERS = 10
DEFAULT_TRANSFERS = 25


def effective_max_transfers(options: TraceOptions) -> int:
    requested = DEFAULT_TRANSFERS if options.max_transfers is None else options.max_transfers
    return max(MIN_TRANSFERS, requested)


def fetch_limit(max_transfers: int) -> int:
    """Rows requested per endpoint: twice the cap, within [20, 100]."""
    return min(100, max(20, max_transfers * 2))


def parse_time_input(value: TimeInput) -> int | None:
    """
    Normalise a window bound to epoch milliseconds.

    Accepts datetimes (naive ones are taken as UTC), numbers (already epoch
    milliseconds) and ISO8601 strings. Anything unparseable is None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.isdigit():
            return int(text)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return parse_time_input(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def has_explicit_window(options: TraceOptions) -> bool:
    return (
        parse_time_input(options.start_time) is not None
        or parse_time_input(options.end_time) is not None
    )


def resolve_time_window(options: TraceOptions, now_ms: int) -> tuple[int, int]:
    """(start_ms, end_ms). A lone bound gets its partner from a 24h span or now."""
    start = parse_time_input(options.start_time)
    end = parse_time_input(options.end_time)
    if start is None and end is None:
        return now_ms - DEFAULT_WINDOW_MS, now_ms
    end_ms = end if end is not None else now_ms
    start_ms = start if start is not None else max(0, end_ms - DEFAULT_WINDOW_MS)
    return start_ms, end_ms


def _iso_from_seconds(value: str) -> str | None:
    """ISO8601 for an explorer timeStamp; None when it is outside the datetime range."""
    seconds = int(value) if value.isdigit() else 0
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
    except (ValueError, OverflowError, OSError):
        return None


class TransferFetcher:
    """
    Fetches and filters transfers for one explorer.

    Results are cached under a key that fingerprints every parameter that
    can change the answer, so a changed option is a cache miss, never a
    stale hit.
    """

    def __init__(
        self,
        explorer: BaseExplorer,
        classifier: ContractClassifier | None = None,
        cache: TTLCache | None = None,
        ttl: float = TRANSFER_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._explorer = explorer
        self._classifier = classifier or ContractClassifier(explorer)
        self._cache = cache if cache is not None else TTLCache(ttl)
        self._ttl = ttl
        self._clock = clock

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def cache_key(self, address: str, chain: ChainConfig, options: TraceOptions) -> str:
        explicit = has_explicit_window(options)
        if explicit:
            start_ms, end_ms = resolve_time_window(options, self.now_ms())
            window = f"{start_ms}-{end_ms}"
        else:
            window = "last24h"
        stables = ",".join(sorted(stablecoin_set(options.stablecoin_symbols)))
        min_usd = to_decimal(options.min_usd)
        price = to_decimal(options.native_usd_price)
        mode = "contracts" if options.ignore_contracts is False else "no-contracts"
        return (
            f"trace:{chain.id}:{normalize_address(address)}:{effective_max_transfers(options)}:"
            f"{min_usd if min_usd is not None else 'none'}:"
            f"{price if price is not None else 'none'}:"
            f"{stables}:{window}:{mode}"
        )

    async def fetch(
        self, address: str, chain: ChainConfig, options: TraceOptions
    ) -> list[Transfer]:
        """
        Newest-first transfers for `address` satisfying `options`.

        Raises:
            NetworkError / APIError: explorer failures on the list calls.
        """
        owner = normalize_address(address)
        key = self.cache_key(owner, chain, options)
        cached = self._cache.get(key, MISSING)
        if cached is not MISSING:
            logger.debug("Transfer cache hit for %s on %s", owner, chain.id)
            return cached

        max_transfers = effective_max_transfers(options)
        offset = fetch_limit(max_transfers)
        native_rows, token_rows = await asyncio.gather(
            self._explorer.list_transactions(owner, chain, offset),
            self._explorer.list_token_transfers(owner, chain, offset),
        )

        price = to_decimal(options.native_usd_price)
        stables = stablecoin_set(options.stablecoin_symbols)
        transfers = [
            t
            for t in (
                *(self._decode_native(r, owner, chain, price, stables) for r in native_rows),
                *(self._decode_token(r, owner, price, stables) for r in token_rows),
            )
            if t is not None
        ]

        start_ms, end_ms = resolve_time_window(options, self.now_ms())
        in_window = [t for t in transfers if start_ms <= t.epoch_ms <= end_ms]
        if not in_window and transfers and not has_explicit_window(options):
            # The default 24h window is advisory: show older activity rather than nothing
            logger.debug("No transfers for %s in the last 24h; using full page", owner)
            in_window = transfers

        if options.ignore_contracts is not False:
            in_window = await self._classifier.filter_transfers(in_window, chain)

        min_usd = to_decimal(options.min_usd)
        if min_usd is not None:
            in_window = [
                t for t in in_window if t.usd_value is not None and t.usd_value >= min_usd
            ]

        in_window.sort(key=lambda t: t.timestamp, reverse=True)
        result = in_window[:max_transfers]
        self._cache.set(key, result, ttl=self._ttl)
        return result

    async def fetch_native_balance(self, address: str, chain: ChainConfig) -> Decimal | None:
        owner = normalize_address(address)
        key = f"balance:{chain.id}:{owner}"
        cached = self._cache.get(key, MISSING)
        if cached is not MISSING:
            return cached

        raw = await self._explorer.get_balance(owner, chain)
        balance = format_units(raw, NATIVE_DECIMALS) if raw else None
        self._cache.set(key, balance, ttl=self._ttl)
        return balance

    # ──────────────────────────────────────────────────────────────
    # Private helpers
    # ──────────────────────────────────────────────────────────────

    def _build(
        self,
        row: ExplorerTx,
        owner: str,
        asset: Asset,
        amount: Decimal,
        price: Decimal | None,
        stables: frozenset[str],
    ) -> Transfer | None:
        timestamp = _iso_from_seconds(row.timestamp)
        if timestamp is None:
            return None
        direction = "in" if row.to_addr == owner else "out"
        return Transfer(
            hash=row.hash,
            timestamp=timestamp,
            from_addr=row.from_addr,
            to_addr=row.to_addr,
            direction=direction,
            counterparty=row.from_addr if direction == "in" else row.to_addr,
            asset=asset,
            amount=amount,
            usd_value=estimate_usd(asset, amount, price, stables),
            explorer_url=tx_url(self._explorer.site_url, row.hash),
        )

    def _decode_native(
        self,
        row: ExplorerTx,
        owner: str,
        chain: ChainConfig,
        price: Decimal | None,
        stables: frozenset[str],
    ) -> Transfer | None:
        if row.failed or not row.complete:
            return None
        amount = format_units(row.value, NATIVE_DECIMALS)
        if amount == 0:
            return None
        asset = Asset(type="native", symbol=native_symbol(chain))
        return self._build(row, owner, asset, amount, price, stables)

    def _decode_token(
        self,
        row: ExplorerTokenTx,
        owner: str,
        price: Decimal | None,
        stables: frozenset[str],
    ) -> Transfer | None:
        if row.failed or not row.complete or not row.token_symbol:
            return None
        decimals = int(row.token_decimal) if row.token_decimal.isdigit() else 0
        asset = Asset(
            type="token",
            symbol=row.token_symbol,
            address=row.contract_address or None,
            decimals=decimals,
        )
        amount = format_units(row.value, decimals)
        return self._build(row, owner, asset, amount, price, stables)
