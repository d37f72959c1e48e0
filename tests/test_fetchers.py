"""Tests for wallettrace fetchers — Etherscan-family explorer client.

Uses respx to mock httpx calls (no real network I/O).
"""

from __future__ import annotations

import httpx
import pytest
import respx

from wallettrace.config import DEFAULT_EXPLORER_BASES
from wallettrace.exceptions import (
    APIError,
    ConnectionFailedError,
    InvalidAPIKeyError,
    MalformedResponseError,
    NetworkTimeoutError,
    RateLimitError,
)
from wallettrace.fetchers import BaseExplorer, ExplorerTokenTx, ExplorerTx, get_explorer
from wallettrace.fetchers.explorer import ExplorerClient
from wallettrace.models import ChainConfig, ExplorerKind

ETHERSCAN_BASE = DEFAULT_EXPLORER_BASES["etherscan"]
LEGACY_BASE = "https://api.etherscan.io/api"
ETH_ADDR = "0xd8da6bf26964af9d7eed9e03e53415d37aa96045"
API_KEY = "test_key_12345"

ETHEREUM = ChainConfig(id="ethereum", label="Ethereum", explorer=ExplorerKind.ETHERSCAN, chain_id=1)


def make_resp(result) -> dict:
    return {"status": "1", "message": "OK", "result": result}


def make_eth_tx(
    tx_hash: str = "0xabc",
    from_addr: str = "0xFROM",
    to_addr: str = ETH_ADDR,
    ts: str = "1706906640",
    value_wei: str = "10000000000000000000",
) -> dict:
    return {
        "hash": tx_hash,
        "blockNumber": "18000001",
        "timeStamp": ts,
        "from": from_addr,
        "to": to_addr,
        "value": value_wei,
        "gasPrice": "20000000000",
        "gasUsed": "21000",
        "isError": "0",
        "txreceipt_status": "1",
    }


def make_client(base: str = ETHERSCAN_BASE) -> ExplorerClient:
    return ExplorerClient(base_url=base, api_key=API_KEY, rate_limit=100)


# ── Listing ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
@respx.mock
async def test_list_transactions_parses_rows_and_params() -> None:
    route = respx.get(ETHERSCAN_BASE).mock(
        return_value=httpx.Response(200, json=make_resp([make_eth_tx()]))
    )

    async with make_client() as client:
        rows = await client.list_transactions(ETH_ADDR, ETHEREUM, 50)

    assert rows == [ExplorerTx.from_raw(make_eth_tx())]
    assert rows[0].from_addr == "0xfrom"
    params = route.calls.last.request.url.params
    assert params["module"] == "account"
    assert params["action"] == "txlist"
    assert params["page"] == "1"
    assert params["offset"] == "50"
    assert params["sort"] == "desc"
    assert params["apikey"] == API_KEY
    assert params["chainid"] == "1"


@pytest.mark.asyncio
@respx.mock
async def test_legacy_base_omits_chainid() -> None:
    route = respx.get(LEGACY_BASE).mock(return_value=httpx.Response(200, json=make_resp([])))

    async with make_client(LEGACY_BASE) as client:
        await client.list_transactions(ETH_ADDR, ETHEREUM, 20)

    assert "chainid" not in route.calls.last.request.url.params


@pytest.mark.asyncio
@respx.mock
async def test_list_token_transfers() -> None:
    row = make_eth_tx() | {
        "tokenSymbol": "USDC",
        "tokenName": "USD Coin",
        "tokenDecimal": "6",
        "contractAddress": "0xA0B86991C6218B36C1D19D4A2E9EB0CE3606EB48",
    }
    respx.get(ETHERSCAN_BASE).mock(return_value=httpx.Response(200, json=make_resp([row])))

    async with make_client() as client:
        rows = await client.list_token_transfers(ETH_ADDR, ETHEREUM, 20)

    assert isinstance(rows[0], ExplorerTokenTx)
    assert rows[0].token_symbol == "USDC"
    assert rows[0].token_decimal == "6"
    assert rows[0].contract_address == "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"


@pytest.mark.asyncio
@respx.mock
async def test_no_transactions_found_is_empty() -> None:
    no_tx = {"status": "0", "message": "No transactions found", "result": []}
    respx.get(ETHERSCAN_BASE).mock(return_value=httpx.Response(200, json=no_tx))

    async with make_client() as client:
        assert await client.list_transactions(ETH_ADDR, ETHEREUM, 20) == []


# ── Balance and source ────────────────────────────────────────────────────────


@pytest.mark.asyncio
@respx.mock
async def test_get_balance() -> None:
    respx.get(ETHERSCAN_BASE).mock(
        return_value=httpx.Response(200, json=make_resp("1230000000000000000"))
    )

    async with make_client() as client:
        assert await client.get_balance(ETH_ADDR, ETHEREUM) == "1230000000000000000"


@pytest.mark.asyncio
@respx.mock
async def test_get_balance_non_numeric_is_none() -> None:
    respx.get(ETHERSCAN_BASE).mock(return_value=httpx.Response(200, json=make_resp("n/a")))

    async with make_client() as client:
        assert await client.get_balance(ETH_ADDR, ETHEREUM) is None


@pytest.mark.asyncio
@respx.mock
async def test_get_source() -> None:
    raw = {
        "SourceCode": "contract Token {}",
        "ABI": "[]",
        "ContractName": "Token",
        "CompilerVersion": "v0.8.19",
        "OptimizationUsed": "1",
        "Runs": "200",
        "Proxy": "0",
        "Implementation": "",
    }
    respx.get(ETHERSCAN_BASE).mock(return_value=httpx.Response(200, json=make_resp([raw])))

    async with make_client() as client:
        source = await client.get_source(ETH_ADDR, ETHEREUM)

    assert source.contract_name == "Token"
    assert source.runs == "200"


# ── Error translation ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
@respx.mock
async def test_rate_limited_body() -> None:
    body = {"status": "0", "message": "NOTOK", "result": "Max rate limit reached"}
    respx.get(ETHERSCAN_BASE).mock(return_value=httpx.Response(200, json=body))

    async with make_client() as client:
        with pytest.raises(RateLimitError):
            await client.list_transactions(ETH_ADDR, ETHEREUM, 20)


@pytest.mark.asyncio
@respx.mock
async def test_http_429() -> None:
    respx.get(ETHERSCAN_BASE).mock(return_value=httpx.Response(429))

    async with make_client() as client:
        with pytest.raises(RateLimitError):
            await client.get_balance(ETH_ADDR, ETHEREUM)


@pytest.mark.asyncio
@respx.mock
async def test_invalid_key() -> None:
    body = {"status": "0", "message": "NOTOK", "result": "Invalid API Key"}
    respx.get(ETHERSCAN_BASE).mock(return_value=httpx.Response(200, json=body))

    async with make_client() as client:
        with pytest.raises(InvalidAPIKeyError):
            await client.list_transactions(ETH_ADDR, ETHEREUM, 20)


@pytest.mark.asyncio
@respx.mock
async def test_server_error() -> None:
    respx.get(ETHERSCAN_BASE).mock(return_value=httpx.Response(503))

    async with make_client() as client:
        with pytest.raises(APIError) as exc_info:
            await client.list_transactions(ETH_ADDR, ETHEREUM, 20)

    assert exc_info.value.status == 503
    assert exc_info.value.exit_code == 2


@pytest.mark.asyncio
@respx.mock
async def test_malformed_json() -> None:
    respx.get(ETHERSCAN_BASE).mock(return_value=httpx.Response(200, text="<html>oops</html>"))

    async with make_client() as client:
        with pytest.raises(MalformedResponseError):
            await client.list_transactions(ETH_ADDR, ETHEREUM, 20)


@pytest.mark.asyncio
@respx.mock
async def test_timeout() -> None:
    respx.get(ETHERSCAN_BASE).mock(side_effect=httpx.ReadTimeout("timed out"))

    async with make_client() as client:
        with pytest.raises(NetworkTimeoutError):
            await client.list_transactions(ETH_ADDR, ETHEREUM, 20)


@pytest.mark.asyncio
@respx.mock
async def test_connect_error() -> None:
    respx.get(ETHERSCAN_BASE).mock(side_effect=httpx.ConnectError("refused"))

    async with make_client() as client:
        with pytest.raises(ConnectionFailedError):
            await client.get_source(ETH_ADDR, ETHEREUM)


# ── Factory ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_get_explorer_uses_config(sample_config) -> None:
    explorer = get_explorer(sample_config.chains[0], sample_config)
    try:
        assert isinstance(explorer, ExplorerClient)
        assert isinstance(explorer, BaseExplorer)
        assert explorer.site_url == "https://etherscan.io"
    finally:
        await explorer.close()
