"""Explorer client protocol and typed boundary records.

Explorer endpoints return loosely-typed JSON where almost every field is an
optional string. Each endpoint's row is validated into one of the records
below the moment it arrives; nothing past fetchers/ sees a raw dict.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from wallettrace.models import ChainConfig


def _text(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class ExplorerTx:
    """Row of account/txlist."""

    hash: str
    timestamp: str              # unix seconds, as sent
    from_addr: str
    to_addr: str
    value: str                  # integer base units
    is_error: str = ""
    receipt_status: str = ""

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "ExplorerTx":
        return cls(
            hash=_text(raw, "hash"),
            timestamp=_text(raw, "timeStamp"),
            from_addr=_text(raw, "from").lower(),
            to_addr=_text(raw, "to").lower(),
            value=_text(raw, "value") or "0",
            is_error=_text(raw, "isError"),
            receipt_status=_text(raw, "txreceipt_status"),
        )

    @property
    def failed(self) -> bool:
        return self.is_error == "1" or self.receipt_status == "0"

    @property
    def complete(self) -> bool:
        return bool(self.hash and self.from_addr and self.to_addr)


@dataclass(frozen=True)
class ExplorerTokenTx(ExplorerTx):
    """Row of account/tokentx."""

    token_symbol: str = ""
    token_name: str = ""
    token_decimal: str = ""
    contract_address: str = ""

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "ExplorerTokenTx":
        base = ExplorerTx.from_raw(raw)
        return cls(
            hash=base.hash,
            timestamp=base.timestamp,
            from_addr=base.from_addr,
            to_addr=base.to_addr,
            value=base.value,
            is_error=base.is_error,
            receipt_status=base.receipt_status,
            token_symbol=_text(raw, "tokenSymbol"),
            token_name=_text(raw, "tokenName"),
            token_decimal=_text(raw, "tokenDecimal"),
            contract_address=_text(raw, "contractAddress").lower(),
        )


@dataclass(frozen=True)
class ExplorerSource:
    """Row of contract/getsourcecode."""

    source_code: str = ""
    abi: str = ""
    contract_name: str = ""
    compiler_version: str = ""
    optimization_used: str = ""
    runs: str = ""
    proxy: str = ""
    implementation: str = ""

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "ExplorerSource":
        return cls(
            source_code=_text(raw, "SourceCode"),
            abi=_text(raw, "ABI"),
            contract_name=_text(raw, "ContractName"),
            compiler_version=_text(raw, "CompilerVersion"),
            optimization_used=_text(raw, "OptimizationUsed"),
            runs=_text(raw, "Runs"),
            proxy=_text(raw, "Proxy"),
            implementation=_text(raw, "Implementation"),
        )


@runtime_checkable
class BaseExplorer(Protocol):
    """
    Protocol that explorer clients implement.

    Explorers are responsible for:
    - Making API calls to the block explorer
    - Rate limiting and timeouts
    - Translating transport failures into wallettrace exceptions
    - Validating rows into the records above

    Explorers are NOT responsible for:
    - Filtering or decoding transfers (that's transfers.py)
    - Caching (callers own their TTLCache)
    """

    site_url: str

    async def list_transactions(
        self, address: str, chain: ChainConfig, offset: int
    ) -> list[ExplorerTx]:
        """Newest-first page 1 of account/txlist."""
        ...

    async def list_token_transfers(
        self, address: str, chain: ChainConfig, offset: int
    ) -> list[ExplorerTokenTx]:
        """Newest-first page 1 of account/tokentx."""
        ...

    async def get_balance(self, address: str, chain: ChainConfig) -> str | None:
        """Native balance in base units, or None if the explorer sent nothing usable."""
        ...

    async def get_source(self, address: str, chain: ChainConfig) -> ExplorerSource | None:
        """contract/getsourcecode row, or None when absent."""
        ...

    async def get_abi(self, address: str, chain: ChainConfig) -> str:
        ...

    async def close(self) -> None:
        ...
