"""Tests for wallettrace/chains.py — chain resolution and explorer URLs."""

from __future__ import annotations

from wallettrace.chains import (
    address_url,
    explorer_site,
    is_v2_base,
    is_valid_address,
    native_symbol,
    resolve_chain,
    tx_url,
)
from wallettrace.models import ChainConfig, ExplorerKind


def test_is_valid_address() -> None:
    assert is_valid_address("0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045")
    assert is_valid_address("  0xd8da6bf26964af9d7eed9e03e53415d37aa96045 ")
    assert not is_valid_address("0xshort")
    assert not is_valid_address("bc1qxy2kgdygjrsqtzq2n0yrf2493p83kkfjhx0wlh")
    assert not is_valid_address("")


def test_resolve_chain_by_id_label_and_numeric(sample_config) -> None:
    sample_config.explorers["bscscan"].api_key = "bsc_key"
    assert resolve_chain(sample_config, chain_id=56).id == "bsc"
    assert resolve_chain(sample_config, chain="BSC").id == "bsc"
    assert resolve_chain(sample_config, chain="bnb chain").id == "bsc"
    # numeric id wins over the text hint
    assert resolve_chain(sample_config, chain_id=1, chain="bsc").id == "ethereum"


def test_resolve_chain_default(sample_config) -> None:
    assert resolve_chain(sample_config).id == "ethereum"
    sample_config.chains = sample_config.chains[::-1]
    assert resolve_chain(sample_config).id == "ethereum"


def test_resolve_chain_default_falls_back_to_first(sample_config) -> None:
    sample_config.explorers["bscscan"].api_key = "bsc_key"
    sample_config.chains = [sample_config.chains[1]]
    assert resolve_chain(sample_config).id == "bsc"


def test_resolve_chain_unknown_hint_is_none(sample_config) -> None:
    assert resolve_chain(sample_config, chain="solana") is None
    assert resolve_chain(sample_config, chain_id=137) is None


def test_resolve_chain_without_api_key_is_none(sample_config) -> None:
    assert resolve_chain(sample_config, chain="bsc") is None


def test_native_symbol() -> None:
    assert native_symbol(ChainConfig("ethereum", "Ethereum", ExplorerKind.ETHERSCAN)) == "ETH"
    assert native_symbol(ChainConfig("bsc", "BNB Chain", ExplorerKind.BSCSCAN)) == "BNB"
    assert native_symbol(ChainConfig("base", "base", ExplorerKind.ETHERSCAN, 8453)) == "BASE"
    assert (
        native_symbol(ChainConfig("polygon", "Polygon", ExplorerKind.ETHERSCAN, 137, "POL"))
        == "POL"
    )


def test_explorer_urls() -> None:
    assert is_v2_base("https://api.etherscan.io/v2/api")
    assert not is_v2_base("https://api.etherscan.io/api")
    assert explorer_site("https://api.etherscan.io/v2/api") == "https://etherscan.io"
    assert explorer_site("https://api.bscscan.com/api") == "https://bscscan.com"
    assert address_url("https://etherscan.io", "0xabc") == "https://etherscan.io/address/0xabc"
    assert tx_url("https://bscscan.com", "0x1") == "https://bscscan.com/tx/0x1"
