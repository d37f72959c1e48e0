"""Pytest fixtures shared across all wallettrace tests."""

from __future__ import annotations

import asyncio
import os
from collections import defaultdict

import pytest

from wallettrace.config import (
    DEFAULT_EXPLORER_BASES,
    ExplorerAPIConfig,
    ExplorerConfig,
    OutputConfig,
    WallettraceConfig,
)
from wallettrace.fetchers.base import ExplorerSource, ExplorerTokenTx, ExplorerTx
from wallettrace.models import ChainConfig, ExplorerKind

# Fixed "now" for every clock-driven test (2023-11-14T22:13:20Z)
NOW = 1_700_000_000.0

ONE_ETH = "1000000000000000000"


def addr(n: int) -> str:
    """Deterministic valid EVM address."""
    return "0x" + f"{n:040x}"


def native_row(
    tx_hash: str,
    from_addr: str,
    to_addr: str,
    value: str = ONE_ETH,
    ts: float = NOW - 60,
    is_error: str = "0",
) -> ExplorerTx:
    return ExplorerTx.from_raw(
        {
            "hash": tx_hash,
            "timeStamp": str(int(ts)),
            "from": from_addr,
            "to": to_addr,
            "value": value,
            "isError": is_error,
            "txreceipt_status": "1",
        }
    )


def token_row(
    tx_hash: str,
    from_addr: str,
    to_addr: str,
    value: str,
    symbol: str = "USDC",
    decimals: str = "6",
    ts: float = NOW - 60,
    contract: str = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48",
) -> ExplorerTokenTx:
    return ExplorerTokenTx.from_raw(
        {
            "hash": tx_hash,
            "timeStamp": str(int(ts)),
            "from": from_addr,
            "to": to_addr,
            "value": value,
            "tokenSymbol": symbol,
            "tokenName": symbol,
            "tokenDecimal": decimals,
            "contractAddress": contract,
        }
    )


CONTRACT_SOURCE = ExplorerSource(
    source_code="contract Router {}", abi="[]", contract_name="Router"
)
EOA_SOURCE = ExplorerSource()


class FakeExplorer:
    """
    In-memory BaseExplorer.

    Rows are registered per address; every call is recorded so tests can
    assert which addresses were fetched. A source entry that is an
    exception instance is raised instead of returned.
    """

    site_url = "https://etherscan.io"

    def __init__(self, delay: float = 0.0) -> None:
        self.native: dict[str, list[ExplorerTx]] = defaultdict(list)
        self.tokens: dict[str, list[ExplorerTokenTx]] = defaultdict(list)
        self.sources: dict[str, object] = {}
        self.balances: dict[str, str] = {}
        self.list_errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.offsets: list[int] = []
        self.delay = delay
        self.closed = False

    def add_native(self, owner: str, *rows: ExplorerTx) -> None:
        self.native[owner].extend(rows)

    def add_token(self, owner: str, *rows: ExplorerTokenTx) -> None:
        self.tokens[owner].extend(rows)

    def fetched(self, action: str) -> list[str]:
        return [a for kind, a in self.calls if kind == action]

    async def list_transactions(self, address, chain, offset):
        self.calls.append(("txlist", address))
        self.offsets.append(offset)
        if self.delay:
            await asyncio.sleep(self.delay)
        if address in self.list_errors:
            raise self.list_errors[address]
        return list(self.native.get(address, []))[:offset]

    async def list_token_transfers(self, address, chain, offset):
        self.calls.append(("tokentx", address))
        return list(self.tokens.get(address, []))[:offset]

    async def get_balance(self, address, chain):
        self.calls.append(("balance", address))
        return self.balances.get(address)

    async def get_source(self, address, chain):
        self.calls.append(("getsourcecode", address))
        source = self.sources.get(address, EOA_SOURCE)
        if isinstance(source, Exception):
            raise source
        return source

    async def get_abi(self, address, chain):
        self.calls.append(("getabi", address))
        return ""

    async def close(self) -> None:
        self.closed = True


# ── Config fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def sample_config() -> WallettraceConfig:
    """Minimal usable config: ethereum + bsc, etherscan key only."""
    return WallettraceConfig(
        explorers={
            "etherscan": ExplorerAPIConfig(
                api_key="test_etherscan_key_12345",
                base_url=DEFAULT_EXPLORER_BASES["etherscan"],
            ),
            "bscscan": ExplorerAPIConfig(api_key="", base_url=DEFAULT_EXPLORER_BASES["bscscan"]),
        },
        explorer=ExplorerConfig(timeout=8.0, rate_limit_per_sec=100),
        output=OutputConfig(default_format="json"),
        chains=[
            ChainConfig(id="ethereum", label="Ethereum", explorer=ExplorerKind.ETHERSCAN, chain_id=1),
            ChainConfig(id="bsc", label="BNB Chain", explorer=ExplorerKind.BSCSCAN, chain_id=56),
        ],
    )


@pytest.fixture
def eth_chain() -> ChainConfig:
    return ChainConfig(id="ethereum", label="Ethereum", explorer=ExplorerKind.ETHERSCAN, chain_id=1)


@pytest.fixture
def fake_explorer() -> FakeExplorer:
    return FakeExplorer()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    """No stray WALLETTRACE_* variables; default config path under tmp_path."""
    for name in list(os.environ):
        if name.startswith("WALLETTRACE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("WALLETTRACE_CONFIG_PATH", str(tmp_path / "default-config.toml"))
