"""
DexScreener client — token pair lookup for the pair/contract risk engine.

API docs: https://docs.dexscreener.com/api/reference

Design decisions:
- Search results and pair details are cached for 15s.
- The "best" pair is the one with the deepest liquidity; 24h volume breaks
  ties (and decides alone when no pair reports liquidity).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from wallettrace.cache import LOOKUP_TTL, MISSING, TTLCache
from wallettrace.config import DEFAULT_DEX_BASE
from wallettrace.exceptions import (
    APIError,
    ConnectionFailedError,
    MalformedResponseError,
    NetworkError,
    NetworkTimeoutError,
)

logger = logging.getLogger(__name__)


def _num(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _int(value: Any) -> int | None:
    number = _num(value)
    return int(number) if number is not None else None


@dataclass(frozen=True)
class TokenRef:
    address: str
    name: str
    symbol: str

    @classmethod
    def from_raw(cls, raw: Any) -> "TokenRef":
        raw = raw if isinstance(raw, dict) else {}
        return cls(
            address=str(raw.get("address") or ""),
            name=str(raw.get("name") or ""),
            symbol=str(raw.get("symbol") or ""),
        )


@dataclass(frozen=True)
class DexPair:
    """One pair as returned by search or pair lookup."""

    chain_id: str
    dex_id: str
    pair_address: str
    url: str
    base_token: TokenRef
    quote_token: TokenRef
    price_usd: float | None = None
    change_24h: float | None = None
    liquidity_usd: float | None = None
    fdv_usd: float | None = None
    volume_24h_usd: float | None = None
    buys_24h: int | None = None
    sells_24h: int | None = None
    pair_created_at: int | None = None   # epoch ms
    socials: tuple[dict, ...] = ()
    websites: tuple[dict, ...] = ()

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "DexPair":
        def section(name: str) -> dict:
            value = raw.get(name)
            return value if isinstance(value, dict) else {}

        h24 = section("txns").get("h24")
        h24 = h24 if isinstance(h24, dict) else {}
        info = section("info")
        return cls(
            chain_id=str(raw.get("chainId") or ""),
            dex_id=str(raw.get("dexId") or ""),
            pair_address=str(raw.get("pairAddress") or ""),
            url=str(raw.get("url") or ""),
            base_token=TokenRef.from_raw(raw.get("baseToken")),
            quote_token=TokenRef.from_raw(raw.get("quoteToken")),
            price_usd=_num(raw.get("priceUsd")),
            change_24h=_num(section("priceChange").get("h24")),
            liquidity_usd=_num(section("liquidity").get("usd")),
            fdv_usd=_num(raw.get("fdv")),
            volume_24h_usd=_num(section("volume").get("h24")),
            buys_24h=_int(h24.get("buys")),
            sells_24h=_int(h24.get("sells")),
            pair_created_at=_int(raw.get("pairCreatedAt")),
            socials=tuple(s for s in info.get("socials") or [] if isinstance(s, dict)),
            websites=tuple(w for w in info.get("websites") or [] if isinstance(w, dict)),
        )

    def to_dict(self) -> dict:
        return {
            "chain_id": self.chain_id,
            "dex_id": self.dex_id,
            "pair_address": self.pair_address,
            "url": self.url,
            "base_token": self.base_token.__dict__,
            "quote_token": self.quote_token.__dict__,
            "price_usd": self.price_usd,
            "change_24h": self.change_24h,
            "liquidity_usd": self.liquidity_usd,
            "volume_24h_usd": self.volume_24h_usd,
            "fdv_usd": self.fdv_usd,
            "buys_24h": self.buys_24h,
            "sells_24h": self.sells_24h,
            "pair_created_at": self.pair_created_at,
            "socials": list(self.socials),
            "websites": list(self.websites),
        }


# The pair report is the pair itself once details are merged in
PairReport = DexPair


@dataclass(frozen=True)
class MarketSnapshot:
    """Caller-supplied market data (e.g. from a price API)."""

    mcap_usd: float | None = None
    price_usd: float | None = None


def pair_score(pair: DexPair) -> tuple[float, float]:
    return (pair.liquidity_usd or 0.0, pair.volume_24h_usd or 0.0)


def select_best_pair(pairs: list[DexPair]) -> DexPair | None:
    """
    Deepest liquidity wins, then higher 24h volume.

    Only a strictly better score replaces the current best, so on a full tie
    the earlier pair is kept and repeated calls agree.
    """
    best: DexPair | None = None
    for pair in pairs:
        if best is None or pair_score(pair) > pair_score(best):
            best = pair
    return best


class DexScreenerClient:
    """Async DexScreener client with a private TTL cache."""

    def __init__(
        self,
        base_url: str = DEFAULT_DEX_BASE,
        timeout: float = 8.0,
        cache: TTLCache | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._cache = cache if cache is not None else TTLCache(LOOKUP_TTL)
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def __aenter__(self) -> "DexScreenerClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def search(self, query: str) -> list[DexPair]:
        text = query.strip()
        if not text:
            return []
        key = f"dex:search:{text.lower()}"
        cached = self._cache.get(key, MISSING)
        if cached is not MISSING:
            return cached

        data = await self._get(f"{self._base_url}/search?q={quote(text)}")
        pairs = [DexPair.from_raw(p) for p in data.get("pairs") or [] if isinstance(p, dict)]
        self._cache.set(key, pairs, ttl=LOOKUP_TTL)
        return pairs

    async def get_pair(self, chain_id: str, pair_address: str) -> DexPair | None:
        if not chain_id or not pair_address:
            return None
        key = f"dex:pair:{chain_id}:{pair_address}"
        cached = self._cache.get(key, MISSING)
        if cached is not MISSING:
            return cached

        data = await self._get(f"{self._base_url}/pairs/{chain_id}/{pair_address}")
        raw = next((p for p in data.get("pairs") or [] if isinstance(p, dict)), None)
        if raw is None:
            return None
        pair = DexPair.from_raw(raw)
        self._cache.set(key, pair, ttl=LOOKUP_TTL)
        return pair

    async def resolve_pair(
        self, query: str, chain_id: str | None = None, strict_chain: bool = False
    ) -> PairReport | None:
        """
        Best pair for `query`, optionally restricted to one DexScreener chain id.

        Without strict_chain, a chain filter that matches nothing falls back
        to all results.
        """
        pairs = await self.search(query)
        filtered = (
            [p for p in pairs if p.chain_id.lower() == chain_id.lower()] if chain_id else pairs
        )
        if chain_id and strict_chain and not filtered:
            return None
        best = select_best_pair(filtered or pairs)
        if best is None:
            return None
        details = await self.get_pair(best.chain_id, best.pair_address)
        return details or best

    async def _get(self, url: str) -> dict[str, Any]:
        try:
            resp = await self._client.get(url)
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(f"DexScreener timeout: {e}", details={"url": url}) from e
        except httpx.ConnectError as e:
            raise ConnectionFailedError(f"Cannot connect to DexScreener: {e}", details={"url": url}) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"DexScreener request failed: {e}", details={"url": url}) from e

        if not resp.is_success:
            raise APIError(
                f"DexScreener request failed with status {resp.status_code}",
                status=resp.status_code,
                url=url,
            )
        try:
            data = resp.json() if resp.content else {}
        except ValueError as e:
            raise MalformedResponseError("Failed to parse DexScreener JSON", url=url) from e
        if not isinstance(data, dict):
            raise MalformedResponseError("DexScreener response is not a JSON object", url=url)
        return data
