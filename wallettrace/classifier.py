"""Contract detection for counterparty addresses.

Routers, exchanges and bridges show up as counterparties in almost every
wallet's history. Dropping contract counterparties keeps hop expansion on
wallet-to-wallet flow.

An address counts as a contract when the explorer's getsourcecode endpoint
returns any contract metadata: source code, a contract name, or the ABI
marker "Contract source code not verified" (unverified contracts still get
that marker; an EOA gets empty fields).
"""

from __future__ import annotations

import asyncio
import logging

from wallettrace.cache import CONTRACT_TTL, MISSING, TTLCache
from wallettrace.chains import is_valid_address, normalize_address
from wallettrace.exceptions import WallettraceError
from wallettrace.fetchers.base import BaseExplorer, ExplorerSource
from wallettrace.models import ChainConfig, Transfer

logger = logging.getLogger(__name__)

UNVERIFIED_MARKER = "contract source code not verified"


def looks_like_contract(source: ExplorerSource | None) -> bool:
    if source is None:
        return False
    return bool(
        source.source_code
        or source.contract_name
        or UNVERIFIED_MARKER in source.abi.lower()
    )


class ContractClassifier:
    """
    Cached is-contract checks against one explorer.

    When the explorer call for an address fails, that address is treated as
    a non-contract (its transfers are kept) and nothing is cached, so the
    next fetch asks again.
    """

    def __init__(
        self,
        explorer: BaseExplorer,
        cache: TTLCache | None = None,
        ttl: float = CONTRACT_TTL,
    ) -> None:
        self._explorer = explorer
        self._cache = cache if cache is not None else TTLCache(ttl)
        self._ttl = ttl

    async def is_contract(self, address: str, chain: ChainConfig) -> bool:
        """Raises upstream errors; filter_transfers() decides what they mean."""
        normalized = normalize_address(address)
        if not is_valid_address(normalized):
            return False

        key = f"contract:{chain.id}:{normalized}"
        cached = self._cache.get(key, MISSING)
        if cached is not MISSING:
            return cached

        source = await self._explorer.get_source(normalized, chain)
        result = looks_like_contract(source)
        self._cache.set(key, result, ttl=self._ttl)
        return result

    async def _classify_or_keep(self, address: str, chain: ChainConfig) -> bool:
        try:
            return await self.is_contract(address, chain)
        except WallettraceError as e:
            logger.warning(
                "Contract check failed for %s on %s, keeping it: %s", address, chain.id, e
            )
            return False

    async def filter_transfers(
        self, transfers: list[Transfer], chain: ChainConfig
    ) -> list[Transfer]:
        """Drop transfers whose counterparty is a contract. One concurrent burst."""
        counterparties = list(dict.fromkeys(t.counterparty for t in transfers))
        if not counterparties:
            return transfers

        checks = await asyncio.gather(
            *(self._classify_or_keep(addr, chain) for addr in counterparties)
        )
        contracts = {addr for addr, is_contract in zip(counterparties, checks) if is_contract}
        if not contracts:
            return transfers

        logger.debug("Excluding %d contract counterparties on %s", len(contracts), chain.id)
        return [t for t in transfers if t.counterparty not in contracts]
