"""
Etherscan-family explorer client (Etherscan, BscScan).

API docs: https://docs.etherscan.io/api-endpoints/accounts
Rate limit: 5 calls/sec on free tier.

Design decisions:
- Uses async httpx for all HTTP calls, every call bounded by a timeout.
- Implements token bucket rate limiting (5 req/sec by default).
- Only page 1 is read; callers ask for the newest N rows.
- "v2" multi-chain base URLs get an explicit chainid parameter.
- Transport and protocol failures are translated into wallettrace exceptions
  here; nothing above this module handles httpx errors.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from wallettrace.chains import explorer_site, is_v2_base
from wallettrace.exceptions import (
    APIError,
    ConnectionFailedError,
    InvalidAPIKeyError,
    MalformedResponseError,
    NetworkError,
    NetworkTimeoutError,
    RateLimitError,
)
from wallettrace.fetchers.base import ExplorerSource, ExplorerTokenTx, ExplorerTx
from wallettrace.models import ChainConfig

logger = logging.getLogger(__name__)

# Rate limit: 5 calls per second (free tier)
RATE_LIMIT_CALLS = 5
RATE_LIMIT_PERIOD = 1.0  # seconds

DEFAULT_TIMEOUT = 8.0


class _TokenBucket:
    """Simple token bucket rate limiter."""

    def __init__(self, calls: int, period: float) -> None:
        self._calls = calls
        self._period = period
        self._tokens: float = float(calls)
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_refill
            # Refill tokens proportional to elapsed time
            refill = (elapsed / self._period) * self._calls
            self._tokens = min(self._calls, self._tokens + refill)
            self._last_refill = now

            if self._tokens < 1:
                wait = (1 - self._tokens) * (self._period / self._calls)
                await asyncio.sleep(wait)
                self._tokens = 0
            else:
                self._tokens -= 1


class ExplorerClient:
    """
    Async client for one Etherscan-style explorer endpoint.

    One instance serves every chain behind the same base URL; the chain is
    passed per call so v2 endpoints can add ``chainid``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT,
        rate_limit: int = RATE_LIMIT_CALLS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._rate_limiter = _TokenBucket(rate_limit, RATE_LIMIT_PERIOD)
        self.site_url = explorer_site(self._base_url)

    async def __aenter__(self) -> "ExplorerClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ── account module ───────────────────────────────────────────────────────

    async def list_transactions(
        self, address: str, chain: ChainConfig, offset: int
    ) -> list[ExplorerTx]:
        rows = await self._list_page("txlist", address, chain, offset)
        return [ExplorerTx.from_raw(r) for r in rows]

    async def list_token_transfers(
        self, address: str, chain: ChainConfig, offset: int
    ) -> list[ExplorerTokenTx]:
        rows = await self._list_page("tokentx", address, chain, offset)
        return [ExplorerTokenTx.from_raw(r) for r in rows]

    async def get_balance(self, address: str, chain: ChainConfig) -> str | None:
        data = await self._call(
            chain,
            {"module": "account", "action": "balance", "address": address, "tag": "latest"},
        )
        result = data.get("result")
        if isinstance(result, str) and result.strip().isdigit():
            return result.strip()
        return None

    # ── contract module ──────────────────────────────────────────────────────

    async def get_source(self, address: str, chain: ChainConfig) -> ExplorerSource | None:
        data = await self._call(
            chain, {"module": "contract", "action": "getsourcecode", "address": address}
        )
        result = data.get("result")
        if isinstance(result, list) and result and isinstance(result[0], dict):
            return ExplorerSource.from_raw(result[0])
        return None

    async def get_abi(self, address: str, chain: ChainConfig) -> str:
        data = await self._call(
            chain, {"module": "contract", "action": "getabi", "address": address}
        )
        result = data.get("result")
        return result if isinstance(result, str) else ""

    # ──────────────────────────────────────────────────────────────
    # Private helpers
    # ──────────────────────────────────────────────────────────────

    async def _list_page(
        self, action: str, address: str, chain: ChainConfig, offset: int
    ) -> list[dict[str, Any]]:
        data = await self._call(
            chain,
            {
                "module": "account",
                "action": action,
                "address": address,
                "page": 1,
                "offset": offset,
                "sort": "desc",
            },
        )
        result = data.get("result")
        if not isinstance(result, list):
            return []
        return [r for r in result if isinstance(r, dict)]

    def _params(self, chain: ChainConfig, params: dict[str, Any]) -> dict[str, str]:
        req = {k: str(v) for k, v in params.items() if v is not None and v != ""}
        if self._api_key:
            req["apikey"] = self._api_key
        if is_v2_base(self._base_url) and chain.chain_id:
            req["chainid"] = str(chain.chain_id)
        return req

    async def _call(self, chain: ChainConfig, params: dict[str, Any]) -> dict[str, Any]:
        """One GET against the explorer, with errors translated."""
        await self._rate_limiter.acquire()
        action = params.get("action")
        try:
            resp = await self._client.get(self._base_url, params=self._params(chain, params))
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(
                f"Explorer timeout on {action}: {e}", details={"url": self._base_url}
            ) from e
        except httpx.ConnectError as e:
            raise ConnectionFailedError(
                f"Cannot connect to explorer: {e}", details={"url": self._base_url}
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Explorer request failed: {e}", details={"url": self._base_url}
            ) from e

        if resp.status_code == 429:
            raise RateLimitError("Explorer rate limit exceeded", retry_after=60, url=self._base_url)
        if not resp.is_success:
            raise APIError(
                f"Explorer request failed with status {resp.status_code}",
                status=resp.status_code,
                url=self._base_url,
            )

        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError(
                "Failed to parse explorer JSON response",
                status=resp.status_code,
                url=self._base_url,
            ) from e
        if not isinstance(data, dict):
            raise MalformedResponseError(
                "Explorer response is not a JSON object",
                status=resp.status_code,
                url=self._base_url,
            )

        if str(data.get("status", "1")) == "0":
            message = str(data.get("message", ""))
            result = str(data.get("result", ""))
            if "Invalid API Key" in result:
                raise InvalidAPIKeyError("Explorer API key is invalid", url=self._base_url)
            if "rate limit" in result.lower() or "rate limit" in message.lower():
                raise RateLimitError(
                    "Explorer rate limit exceeded", retry_after=60, url=self._base_url
                )
            # "No transactions found" and friends: empty, not an error
            logger.debug("Explorer %s returned status=0: %s", action, message)

        return data
