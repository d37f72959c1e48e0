"""
Shared data models for wallettrace.

These dataclasses are the canonical data shapes used across all modules:
fetchers produce them, the tracer and scorer consume them, output renders them.
Raw explorer payloads never travel past fetchers/; they are converted into
these types at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Union

Direction = str  # "in" | "out"
TimeInput = Union[str, int, float, datetime, None]


class ExplorerKind(str, Enum):
    """Block explorer families we know how to talk to."""

    ETHERSCAN = "etherscan"
    BSCSCAN = "bscscan"


class Level(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class ChainConfig:
    """One configured network, looked up by id, label or numeric chain id."""

    id: str                     # "ethereum", "bsc"
    label: str                  # "Ethereum"
    explorer: ExplorerKind
    chain_id: int | None = None
    native_symbol: str | None = None


@dataclass(frozen=True)
class Asset:
    type: str                   # "native" | "token"
    symbol: str
    address: str | None = None  # token contract, lowercase
    decimals: int | None = None

    @property
    def is_native(self) -> bool:
        return self.type == "native"


@dataclass(frozen=True)
class Transfer:
    """A single value movement, seen from the address that owns the hop."""

    hash: str
    timestamp: str              # ISO8601 UTC
    from_addr: str
    to_addr: str
    direction: Direction
    counterparty: str
    asset: Asset
    amount: Decimal
    usd_value: Decimal | None
    explorer_url: str

    @property
    def epoch_ms(self) -> int:
        return int(datetime.fromisoformat(self.timestamp).timestamp() * 1000)

    @property
    def rank_value(self) -> Decimal:
        """USD value when known, otherwise the raw decimal amount."""
        return self.usd_value if self.usd_value is not None else self.amount

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "timestamp": self.timestamp,
            "from": self.from_addr,
            "to": self.to_addr,
            "direction": self.direction,
            "counterparty": self.counterparty,
            "asset": {
                "type": self.asset.type,
                "symbol": self.asset.symbol,
                "address": self.asset.address,
                "decimals": self.asset.decimals,
            },
            "amount": self.amount,
            "usd_value": self.usd_value,
            "explorer_url": self.explorer_url,
        }


@dataclass(frozen=True)
class Hop:
    """Transfers collected for one visited address."""

    hop: int                    # 0 = seed address
    address: str
    transfers: tuple[Transfer, ...]

    def to_dict(self) -> dict:
        return {
            "hop": self.hop,
            "address": self.address,
            "transfers": [t.to_dict() for t in self.transfers],
        }


@dataclass(frozen=True)
class TraceFlag:
    """One triggered heuristic."""

    id: str                     # "flow:inflow-heavy"
    severity: Level
    score: int
    label: str
    rationale: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "severity": self.severity.value,
            "score": self.score,
            "label": self.label,
            "rationale": self.rationale,
        }


@dataclass(frozen=True)
class TraceReport:
    level: Level
    score: int                  # 0–100
    flags: tuple[TraceFlag, ...] = ()

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "score": self.score,
            "flags": [f.to_dict() for f in self.flags],
        }


# Pair/contract risk reports share the same shape
RiskReport = TraceReport


@dataclass(frozen=True)
class NativeBalance:
    amount: Decimal | None
    usd_value: Decimal | None
    symbol: str


@dataclass(frozen=True)
class Source:
    title: str
    url: str


@dataclass
class TraceOptions:
    """Caller knobs for one trace. Out-of-range values are clamped, not rejected."""

    chain_id: int | None = None
    chain: str | None = None
    max_hops: int | None = 2
    max_transfers: int | None = 25
    max_counterparties: int | None = 5
    min_usd: Decimal | float | None = None
    native_usd_price: Decimal | float | None = None
    stablecoin_symbols: list[str] | None = None
    start_time: TimeInput = None
    end_time: TimeInput = None
    ignore_contracts: bool = True
    timeout: float | None = None  # seconds for the whole trace


@dataclass
class WalletTraceReport:
    """Top-level result of one trace. Built once; not persisted."""

    address: str
    chain_id: int | None
    chain_label: str
    native_balance: NativeBalance
    total_in_usd: Decimal | None
    total_out_usd: Decimal | None
    top_incoming: list[Transfer]
    top_outgoing: list[Transfer]
    report: TraceReport
    hops: list[Hop]
    total_transfers: int
    incoming_count: int
    outgoing_count: int
    unique_counterparties: int
    sources: list[Source] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize for JSON output."""
        return {
            "address": self.address,
            "chain_id": self.chain_id,
            "chain_label": self.chain_label,
            "native_balance": {
                "amount": self.native_balance.amount,
                "usd_value": self.native_balance.usd_value,
                "symbol": self.native_balance.symbol,
            },
            "total_in_usd": self.total_in_usd,
            "total_out_usd": self.total_out_usd,
            "top_incoming": [t.to_dict() for t in self.top_incoming],
            "top_outgoing": [t.to_dict() for t in self.top_outgoing],
            "report": self.report.to_dict(),
            "hops": [h.to_dict() for h in self.hops],
            "total_transfers": self.total_transfers,
            "incoming_count": self.incoming_count,
            "outgoing_count": self.outgoing_count,
            "unique_counterparties": self.unique_counterparties,
            "sources": [{"title": s.title, "url": s.url} for s in self.sources],
        }
