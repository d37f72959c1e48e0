"""Heuristic risk scoring (0–100).

Two engines share one shape: evaluate a table of flag rules, sum the scores
of the rules that fire, clamp to [0, 100] and map the total to a level.

  1. Trace engine: activity and flow patterns of a traced wallet.
  2. Pair/contract engine: DEX pair health, contract verification and risky
     ABI functions of a token.

Flag tables are plain data (FlagSpec rows) and every threshold lives in a
frozen dataclass, so both can be tuned or overridden in tests without
touching the rule logic. All scoring functions are pure — no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable

from wallettrace.models import Level, RiskReport, TraceFlag, TraceReport

MAX_SCORE = 100


@dataclass(frozen=True)
class FlagSpec:
    id: str
    severity: Level
    score: int
    label: str
    rationale: str

    def to_flag(self, rationale: str | None = None) -> TraceFlag:
        return TraceFlag(
            id=self.id,
            severity=self.severity,
            score=self.score,
            label=self.label,
            rationale=rationale or self.rationale,
        )


def clamp_score(total: float) -> int:
    if total <= 0:
        return 0
    if total >= MAX_SCORE:
        return MAX_SCORE
    return int(round(total))


def _level(score: int, high: int, medium: int) -> Level:
    if score >= high:
        return Level.HIGH
    if score >= medium:
        return Level.MEDIUM
    return Level.LOW


# ── Trace engine ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TraceInputs:
    total_transfers: int
    unique_counterparties: int
    incoming_count: int
    outgoing_count: int
    total_in_usd: Decimal | None
    total_out_usd: Decimal | None


@dataclass(frozen=True)
class TraceThresholds:
    high_activity: int = 50
    concentrated_max_counterparties: int = 2
    concentrated_min_transfers: int = 10
    flow_min_count: int = 10
    flow_ratio: int = 2
    large_out_usd: Decimal = Decimal(1_000_000)
    large_in_usd: Decimal = Decimal(1_000_000)
    level_high: int = 60
    level_medium: int = 30


# Table order is the tie-break order for equal scores
TRACE_FLAGS: tuple[FlagSpec, ...] = (
    FlagSpec("activity:none", Level.LOW, 5, "No recent activity",
             "No transfers were found for the selected window."),
    FlagSpec("activity:high", Level.LOW, 10, "High activity",
             "Large number of transfers can indicate active routing."),
    FlagSpec("counterparties:concentrated", Level.MEDIUM, 15, "Concentrated counterparties",
             "Most activity is with a small set of addresses."),
    FlagSpec("flow:inflow-heavy", Level.MEDIUM, 15, "Inflow-heavy wallet",
             "Incoming transfers significantly outweigh outgoing."),
    FlagSpec("flow:outflow-heavy", Level.MEDIUM, 15, "Outflow-heavy wallet",
             "Outgoing transfers significantly outweigh incoming."),
    FlagSpec("flow:large-out", Level.MEDIUM, 15, "Large outflows",
             "Significant value moved out in the observed window."),
    FlagSpec("flow:large-in", Level.LOW, 10, "Large inflows",
             "Significant value moved in during the observed window."),
)

_TRACE_RULES: dict[str, Callable[[TraceInputs, TraceThresholds], bool]] = {
    "activity:none": lambda i, t: i.total_transfers == 0,
    "activity:high": lambda i, t: i.total_transfers >= t.high_activity,
    "counterparties:concentrated": lambda i, t: (
        i.unique_counterparties <= t.concentrated_max_counterparties
        and i.total_transfers >= t.concentrated_min_transfers
    ),
    "flow:inflow-heavy": lambda i, t: (
        i.incoming_count >= t.flow_min_count
        and i.incoming_count >= i.outgoing_count * t.flow_ratio
    ),
    "flow:outflow-heavy": lambda i, t: (
        i.outgoing_count >= t.flow_min_count
        and i.outgoing_count >= i.incoming_count * t.flow_ratio
    ),
    "flow:large-out": lambda i, t: (
        i.total_out_usd is not None and i.total_out_usd >= t.large_out_usd
    ),
    "flow:large-in": lambda i, t: (
        i.total_in_usd is not None and i.total_in_usd >= t.large_in_usd
    ),
}


def build_trace_report(
    total_transfers: int,
    unique_counterparties: int,
    incoming_count: int,
    outgoing_count: int,
    total_in_usd: Decimal | None,
    total_out_usd: Decimal | None,
    thresholds: TraceThresholds = TraceThresholds(),
) -> TraceReport:
    """
    Score a traced wallet's transfer set.

    Returns:
        TraceReport with flags in descending score order; equal scores keep
        TRACE_FLAGS order.
    """
    inputs = TraceInputs(
        total_transfers=total_transfers,
        unique_counterparties=unique_counterparties,
        incoming_count=incoming_count,
        outgoing_count=outgoing_count,
        total_in_usd=total_in_usd,
        total_out_usd=total_out_usd,
    )
    flags = [spec.to_flag() for spec in TRACE_FLAGS if _TRACE_RULES[spec.id](inputs, thresholds)]
    score = clamp_score(sum(f.score for f in flags))
    flags.sort(key=lambda f: -f.score)
    return TraceReport(
        level=_level(score, thresholds.level_high, thresholds.level_medium),
        score=score,
        flags=tuple(flags),
    )


# ── Pair/contract engine ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class RiskThresholds:
    liquidity_very_low: float = 10_000
    liquidity_low: float = 50_000
    fdv_liquidity_ratio: float = 200
    volume_very_low: float = 5_000
    volume_low: float = 25_000
    volatile_change_pct: float = 50
    new_pair_days: int = 7
    imbalance_max_sells: int = 5
    imbalance_min_buys: int = 100
    thin_flow_txns: int = 10
    mcap_very_low: float = 10_000
    mcap_low: float = 50_000
    level_high: int = 70
    level_medium: int = 40


RISK_FLAGS: dict[str, FlagSpec] = {
    spec.id: spec
    for spec in (
        FlagSpec("liquidity:very-low", Level.HIGH, 45, "Very low liquidity",
                 "Liquidity below $10k can signal fragility and slippage."),
        FlagSpec("liquidity:low", Level.MEDIUM, 25, "Low liquidity",
                 "Liquidity below $50k can make exits difficult."),
        FlagSpec("liquidity:missing", Level.HIGH, 35, "Liquidity data unavailable",
                 "Missing liquidity data makes it hard to assess exit risk."),
        FlagSpec("fdv:liquidity", Level.MEDIUM, 20, "High FDV-to-liquidity ratio",
                 "FDV vs liquidity suggests heavy dilution risk."),
        FlagSpec("volume:very-low", Level.MEDIUM, 20, "Very low 24h volume",
                 "Low trading volume can indicate limited liquidity and exit risk."),
        FlagSpec("volume:low", Level.LOW, 10, "Low 24h volume",
                 "Low volume can make price discovery unreliable."),
        FlagSpec("price:volatile", Level.MEDIUM, 20, "High 24h volatility",
                 "Large 24h swings can signal unstable liquidity or heavy speculation."),
        FlagSpec("pair:new", Level.MEDIUM, 15, "New pair",
                 "Very recent pairs have limited trading history."),
        FlagSpec("flow:buys-sells", Level.HIGH, 25, "Buys heavily outweigh sells",
                 "Large buy/sell imbalance can indicate honeypot behavior."),
        FlagSpec("socials:missing", Level.LOW, 10, "No socials or website",
                 "Missing public links can make vetting harder."),
        FlagSpec("flow:thin", Level.LOW, 10, "Very thin trading activity",
                 "Low transaction counts can indicate weak market interest."),
        FlagSpec("mcap:very-low", Level.HIGH, 40, "Very low market cap",
                 "Market cap below $10k can signal extreme fragility."),
        FlagSpec("mcap:low", Level.MEDIUM, 20, "Low market cap",
                 "Low market cap can make price action more volatile."),
        FlagSpec("contract:unverified", Level.HIGH, 25, "Unverified contract",
                 "Unverified source code reduces transparency."),
        FlagSpec("contract:proxy", Level.MEDIUM, 10, "Proxy contract",
                 "Proxy patterns can allow upgrades and hidden changes."),
    )
}

# Risky ABI keyword -> flag; rationale comes from the ABI scan
ABI_RISK_FLAGS: dict[str, FlagSpec] = {
    spec.id.split(":", 1)[1]: spec
    for spec in (
        FlagSpec("abi:mint", Level.HIGH, 35, "Minting functions", ""),
        FlagSpec("abi:blacklist", Level.HIGH, 35, "Blacklist control", ""),
        FlagSpec("abi:pause", Level.MEDIUM, 25, "Pause control", ""),
        FlagSpec("abi:settax", Level.MEDIUM, 25, "Transfer tax controls", ""),
        FlagSpec("abi:setfee", Level.MEDIUM, 25, "Transfer fee controls", ""),
        FlagSpec("abi:setmax", Level.MEDIUM, 20, "Max transaction controls", ""),
        FlagSpec("abi:setrouter", Level.MEDIUM, 20, "Router control", ""),
        FlagSpec("abi:setpair", Level.MEDIUM, 20, "Pair control", ""),
        FlagSpec("abi:whitelist", Level.LOW, 15, "Whitelist control", ""),
        FlagSpec("abi:ownership", Level.LOW, 10, "Ownership control", ""),
    )
}


def _pair_flag_ids(pair, t: RiskThresholds, now: datetime) -> Iterable[str]:
    liquidity = pair.liquidity_usd
    if liquidity is None:
        yield "liquidity:missing"
    elif liquidity < t.liquidity_very_low:
        yield "liquidity:very-low"
    elif liquidity < t.liquidity_low:
        yield "liquidity:low"

    if liquidity and pair.fdv_usd and pair.fdv_usd / liquidity > t.fdv_liquidity_ratio:
        yield "fdv:liquidity"

    volume = pair.volume_24h_usd
    if volume is not None:
        if volume < t.volume_very_low:
            yield "volume:very-low"
        elif volume < t.volume_low:
            yield "volume:low"

    if pair.change_24h is not None and abs(pair.change_24h) >= t.volatile_change_pct:
        yield "price:volatile"

    if pair.pair_created_at:
        age_ms = now.timestamp() * 1000 - pair.pair_created_at
        if 0 < age_ms < t.new_pair_days * 24 * 60 * 60 * 1000:
            yield "pair:new"

    buys, sells = pair.buys_24h, pair.sells_24h
    if buys is not None and sells is not None and sells < t.imbalance_max_sells and buys > t.imbalance_min_buys:
        yield "flow:buys-sells"

    if not pair.socials and not pair.websites:
        yield "socials:missing"

    if buys is not None and sells is not None and buys + sells < t.thin_flow_txns:
        yield "flow:thin"


def _market_flag_ids(market, t: RiskThresholds) -> Iterable[str]:
    mcap = market.mcap_usd
    if mcap is None:
        return
    if mcap < t.mcap_very_low:
        yield "mcap:very-low"
    elif mcap < t.mcap_low:
        yield "mcap:low"


def build_risk_report(
    pair=None,
    contract=None,
    market=None,
    now: datetime | None = None,
    thresholds: RiskThresholds = RiskThresholds(),
) -> RiskReport:
    """
    Score a token from its DEX pair, contract report and market snapshot.

    Args:
        pair: dex.PairReport or None
        contract: contracts.ContractReport or None
        market: MarketSnapshot (anything with ``mcap_usd``) or None
        now: Reference time for pair age (default: current UTC time)

    Returns:
        RiskReport with flags ordered by descending score, then label.
    """
    now = now or datetime.now(tz=timezone.utc)
    flags: list[TraceFlag] = []

    if pair is not None:
        flags.extend(RISK_FLAGS[i].to_flag() for i in _pair_flag_ids(pair, thresholds, now))
    if market is not None:
        flags.extend(RISK_FLAGS[i].to_flag() for i in _market_flag_ids(market, thresholds))
    if contract is not None:
        if not contract.verified:
            flags.append(RISK_FLAGS["contract:unverified"].to_flag())
        if contract.proxy:
            flags.append(RISK_FLAGS["contract:proxy"].to_flag())
        for risk in contract.abi_risks:
            spec = ABI_RISK_FLAGS.get(risk.keyword.lower())
            if spec is not None:
                flags.append(spec.to_flag(risk.rationale))

    score = clamp_score(sum(f.score for f in flags))
    flags.sort(key=lambda f: (-f.score, f.label))
    return RiskReport(
        level=_level(score, thresholds.level_high, thresholds.level_medium),
        score=score,
        flags=tuple(flags),
    )
