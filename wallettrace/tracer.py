"""Hop traversal: breadth-first walk of the transfer graph around an address.

The walk is an explicit FIFO queue plus one visited set for the whole trace:

    queue = [(0, seed)]
    while queue:
        hop, addr = queue.popleft()
        skip if visited; mark visited
        transfers = fetch(addr)            # one concurrent burst per node
        no transfers -> dead end
        record Hop(hop, addr, transfers)
        hop < max_hops -> enqueue top counterparties at hop + 1

Every address is fetched at most once and hop indices never exceed
max_hops (at most 2), so the amount of work is bounded by
1 + k + k^2 fetches for k = max_counterparties.

Nodes are processed one at a time in queue order; only the calls inside
a node run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from decimal import Decimal
from typing import Callable

from wallettrace.cache import CONTRACT_TTL, TRANSFER_TTL, TTLCache
from wallettrace.chains import (
    address_url,
    is_valid_address,
    native_symbol,
    normalize_address,
    resolve_chain,
)
from wallettrace.classifier import ContractClassifier
from wallettrace.config import WallettraceConfig, load_config
from wallettrace.exceptions import WallettraceError
from wallettrace.fetchers import get_explorer
from wallettrace.fetchers.base import BaseExplorer
from wallettrace.models import (
    ChainConfig,
    Hop,
    NativeBalance,
    Source,
    TraceOptions,
    Transfer,
    WalletTraceReport,
)
from wallettrace.pricing import to_decimal
from wallettrace.scorer import build_trace_report
from wallettrace.transfers import TransferFetcher

logger = logging.getLogger(__name__)

MAX_HOPS_CEILING = 2
MIN_COUNTERPARTIES = 2
DEFAULT_COUNTERPARTIES = 5
TOP_TRANSFERS = 5


def clamp_hops(requested: int | None) -> int:
    if requested is None:
        return MAX_HOPS_CEILING
    return min(MAX_HOPS_CEILING, max(0, requested))


def effective_max_counterparties(options: TraceOptions) -> int:
    requested = (
        DEFAULT_COUNTERPARTIES if options.max_counterparties is None else options.max_counterparties
    )
    return max(MIN_COUNTERPARTIES, requested)


def pick_top_counterparties(transfers: list[Transfer], limit: int) -> list[str]:
    """
    Counterparties ranked by their single largest transfer (USD value when
    known, else amount). Equal ranks keep first-appearance order.
    """
    best: dict[str, Decimal] = {}
    for t in transfers:
        current = best.get(t.counterparty)
        if current is None or t.rank_value > current:
            best[t.counterparty] = t.rank_value
    ranked = sorted(best.items(), key=lambda item: -item[1])
    return [address for address, _ in ranked[:limit]]


def pick_top_transfers(transfers: list[Transfer], direction: str, limit: int) -> list[Transfer]:
    matching = [t for t in transfers if t.direction == direction]
    return sorted(matching, key=lambda t: -t.rank_value)[:limit]


def sum_usd(transfers: list[Transfer], direction: str) -> Decimal | None:
    """Sum of known USD values; None when no transfer in that direction has one."""
    values = [t.usd_value for t in transfers if t.direction == direction and t.usd_value is not None]
    if not values:
        return None
    return sum(values, Decimal(0))


class WalletTracer:
    """
    Owns the explorer clients and caches for a series of traces.

    Caches live as long as the tracer; build a fresh tracer for isolated
    state (tests do).
    """

    def __init__(
        self,
        config: WallettraceConfig | None = None,
        cache: TTLCache | None = None,
        contract_cache: TTLCache | None = None,
        explorer_factory: Callable[[ChainConfig, WallettraceConfig], BaseExplorer] = get_explorer,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or WallettraceConfig()
        self._cache = cache if cache is not None else TTLCache(TRANSFER_TTL, clock=clock)
        self._contract_cache = (
            contract_cache if contract_cache is not None else TTLCache(CONTRACT_TTL, clock=clock)
        )
        self._explorer_factory = explorer_factory
        self._clock = clock
        self._explorers: dict[str, BaseExplorer] = {}
        self._fetchers: dict[str, TransferFetcher] = {}

    async def __aenter__(self) -> "WalletTracer":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        for explorer in self._explorers.values():
            await explorer.close()
        self._explorers.clear()
        self._fetchers.clear()

    def explorer_for(self, chain: ChainConfig) -> BaseExplorer:
        key = chain.explorer.value
        if key not in self._explorers:
            self._explorers[key] = self._explorer_factory(chain, self.config)
        return self._explorers[key]

    def fetcher_for(self, chain: ChainConfig) -> TransferFetcher:
        key = chain.explorer.value
        if key not in self._fetchers:
            explorer = self.explorer_for(chain)
            classifier = ContractClassifier(
                explorer, cache=self._contract_cache, ttl=self.config.trace.contract_cache_ttl
            )
            self._fetchers[key] = TransferFetcher(
                explorer,
                classifier=classifier,
                cache=self._cache,
                ttl=self.config.trace.transfer_cache_ttl,
                clock=self._clock,
            )
        return self._fetchers[key]

    async def trace(
        self, address: str, options: TraceOptions | None = None
    ) -> WalletTraceReport | None:
        """
        Run one trace.

        Returns None when the address is malformed or no chain resolves.
        Upstream errors (explorer timeouts, bad responses) propagate; use
        trace_wallet() for the soft-failing variant.
        """
        options = options or TraceOptions()
        if not is_valid_address(address):
            logger.info("Not tracing malformed address %r", address)
            return None
        chain = resolve_chain(self.config, chain_id=options.chain_id, chain=options.chain)
        if chain is None:
            logger.info("No usable chain for chain_id=%s chain=%r", options.chain_id, options.chain)
            return None

        seed = normalize_address(address)
        max_hops = clamp_hops(options.max_hops)
        max_counterparties = effective_max_counterparties(options)
        fetcher = self.fetcher_for(chain)
        site = self.explorer_for(chain).site_url
        logger.info("Tracing %s on %s (max_hops=%d)", seed, chain.id, max_hops)

        queue: deque[tuple[int, str]] = deque([(0, seed)])
        visited: set[str] = set()
        hops: list[Hop] = []
        sources: dict[str, str] = {}
        counterparties: set[str] = set()

        while queue:
            hop, current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)

            transfers = await fetcher.fetch(current, chain, options)
            logger.debug("Hop %d %s: %d transfers", hop, current, len(transfers))
            if not transfers:
                continue

            hops.append(Hop(hop=hop, address=current, transfers=tuple(transfers)))
            sources[f"address:{current}"] = address_url(site, current)
            for t in transfers:
                sources[f"tx:{t.hash}"] = t.explorer_url
                counterparties.add(t.counterparty)

            if hop >= max_hops:
                continue
            for counterparty in pick_top_counterparties(transfers, max_counterparties):
                if counterparty not in visited:
                    queue.append((hop + 1, counterparty))

        report = await self._build_report(
            seed, chain, options, hops, sources, len(counterparties), fetcher
        )
        logger.info(
            "Trace of %s done: %d hops, %d transfers, level=%s",
            seed,
            len(hops),
            report.total_transfers,
            report.report.level.value,
        )
        return report

    async def trace_wallet(
        self,
        address: str,
        options: TraceOptions | None = None,
        cancel: asyncio.Event | None = None,
    ) -> WalletTraceReport | None:
        """
        Soft-failing trace with an optional deadline and cancellation event.

        Returns None ("tracing unavailable") on validation failure, upstream
        error, deadline expiry or cancellation. Never a partial report.
        """
        options = options or TraceOptions()
        task = asyncio.ensure_future(self.trace(address, options))
        waiters: set[asyncio.Future] = {task}
        cancel_wait = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        if cancel_wait is not None:
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=options.timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if task not in done:
                reason = "cancelled" if cancel is not None and cancel.is_set() else "deadline exceeded"
                logger.warning("Trace of %s aborted: %s", address, reason)
                return None
            return task.result()
        except WallettraceError as e:
            logger.warning("Trace of %s unavailable: %s", address, e)
            return None
        finally:
            for fut in (task, cancel_wait):
                if fut is not None and not fut.done():
                    fut.cancel()
            await asyncio.gather(
                *(f for f in (task, cancel_wait) if f is not None), return_exceptions=True
            )

    # ──────────────────────────────────────────────────────────────
    # Private helpers
    # ──────────────────────────────────────────────────────────────

    async def _build_report(
        self,
        seed: str,
        chain: ChainConfig,
        options: TraceOptions,
        hops: list[Hop],
        sources: dict[str, str],
        unique_counterparties: int,
        fetcher: TransferFetcher,
    ) -> WalletTraceReport:
        all_transfers = [t for h in hops for t in h.transfers]
        incoming = sum(1 for t in all_transfers if t.direction == "in")
        outgoing = sum(1 for t in all_transfers if t.direction == "out")
        total_in_usd = sum_usd(all_transfers, "in")
        total_out_usd = sum_usd(all_transfers, "out")

        balance = await fetcher.fetch_native_balance(seed, chain)
        price = to_decimal(options.native_usd_price)
        balance_usd = (balance or Decimal(0)) * price if price is not None else None

        return WalletTraceReport(
            address=seed,
            chain_id=chain.chain_id,
            chain_label=chain.label,
            native_balance=NativeBalance(
                amount=balance, usd_value=balance_usd, symbol=native_symbol(chain)
            ),
            total_in_usd=total_in_usd,
            total_out_usd=total_out_usd,
            top_incoming=pick_top_transfers(all_transfers, "in", TOP_TRANSFERS),
            top_outgoing=pick_top_transfers(all_transfers, "out", TOP_TRANSFERS),
            report=build_trace_report(
                total_transfers=len(all_transfers),
                unique_counterparties=unique_counterparties,
                incoming_count=incoming,
                outgoing_count=outgoing,
                total_in_usd=total_in_usd,
                total_out_usd=total_out_usd,
            ),
            hops=hops,
            total_transfers=len(all_transfers),
            incoming_count=incoming,
            outgoing_count=outgoing,
            unique_counterparties=unique_counterparties,
            sources=[_source(key, url) for key, url in sources.items()],
        )


def _source(key: str, url: str) -> Source:
    kind, _, value = key.partition(":")
    title = f"Explorer address {value}" if kind == "address" else f"Transaction {value}"
    return Source(title=title, url=url)


async def trace_wallet(
    address: str,
    options: TraceOptions | None = None,
    config: WallettraceConfig | None = None,
    cancel: asyncio.Event | None = None,
) -> WalletTraceReport | None:
    """
    One-shot entry point: trace `address` with a throwaway WalletTracer.
    Without an explicit config, the config file and WALLETTRACE_* variables
    are loaded. Without options, the config's [trace] limits apply.

    Returns a WalletTraceReport, or None when tracing is unavailable.
    """
    if config is None:
        try:
            config = load_config()
        except WallettraceError as e:
            logger.warning("Trace of %s unavailable: %s", address, e)
            return None
    if options is None:
        options = TraceOptions(
            max_hops=config.trace.max_hops,
            max_transfers=config.trace.max_transfers,
            max_counterparties=config.trace.max_counterparties,
        )
    async with WalletTracer(config) as tracer:
        return await tracer.trace_wallet(address, options, cancel=cancel)
