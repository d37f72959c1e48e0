"""Tests for wallettrace/tracer.py — bounded BFS over the transfer graph."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from conftest import CONTRACT_SOURCE, NOW, FakeExplorer, addr, native_row
from wallettrace.exceptions import APIError
from wallettrace.models import TraceOptions
from wallettrace import tracer as tracer_module
from wallettrace.tracer import (
    WalletTracer,
    clamp_hops,
    effective_max_counterparties,
    pick_top_counterparties,
    sum_usd,
)

A, B, C, D, E = (addr(n) for n in (0xA, 0xB, 0xC, 0xD, 0xE))


def make_tracer(config, explorer: FakeExplorer) -> WalletTracer:
    return WalletTracer(config, explorer_factory=lambda chain, cfg: explorer, clock=lambda: NOW)


# ── Helpers ───────────────────────────────────────────────────────────────────


def test_clamp_hops() -> None:
    assert clamp_hops(10) == 2
    assert clamp_hops(-3) == 0
    assert clamp_hops(1) == 1
    assert clamp_hops(None) == 2


def test_effective_max_counterparties_floor() -> None:
    assert effective_max_counterparties(TraceOptions(max_counterparties=0)) == 2
    assert effective_max_counterparties(TraceOptions(max_counterparties=None)) == 5
    assert effective_max_counterparties(TraceOptions(max_counterparties=7)) == 7


@pytest.mark.asyncio
async def test_pick_top_counterparties_by_largest_transfer(fake_explorer, eth_chain) -> None:
    from wallettrace.transfers import TransferFetcher

    fake_explorer.add_native(
        A,
        native_row("0x1", B, A, value="1000000000000000000"),
        native_row("0x2", C, A, value="5000000000000000000"),
        native_row("0x3", D, A, value="1000000000000000000"),
    )
    transfers = await TransferFetcher(fake_explorer, clock=lambda: NOW).fetch(
        A, eth_chain, TraceOptions()
    )

    # C has the largest transfer; B and D tie and keep first-appearance order
    assert pick_top_counterparties(transfers, 2)[0] == C
    assert pick_top_counterparties(transfers, 3)[1:] == [B, D]


def test_sum_usd_none_without_values() -> None:
    assert sum_usd([], "in") is None


# ── Traversal ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_zero_transfers_reports_no_activity(sample_config, fake_explorer) -> None:
    async with make_tracer(sample_config, fake_explorer) as tracer:
        report = await tracer.trace(A, TraceOptions())

    assert report is not None
    assert report.total_transfers == 0
    assert report.hops == []
    assert report.report.score == 5
    assert report.report.level.value == "LOW"
    assert [f.id for f in report.report.flags] == ["activity:none"]
    assert fake_explorer.closed


@pytest.mark.asyncio
async def test_contract_filter_single_hop(sample_config, fake_explorer) -> None:
    fake_explorer.add_native(A, native_row("0xout", A, C), native_row("0xin", B, A))
    fake_explorer.sources[C] = CONTRACT_SOURCE

    async with make_tracer(sample_config, fake_explorer) as tracer:
        report = await tracer.trace(A, TraceOptions(max_hops=0))

    assert len(report.hops) == 1
    hop = report.hops[0]
    assert hop.hop == 0 and hop.address == A
    assert [t.counterparty for t in hop.transfers] == [B]
    assert fake_explorer.fetched("txlist") == [A]


@pytest.mark.asyncio
async def test_hops_never_exceed_two(sample_config, fake_explorer) -> None:
    # A <- B <- C <- D <- E
    fake_explorer.add_native(A, native_row("0xab", B, A))
    fake_explorer.add_native(B, native_row("0xab", B, A), native_row("0xbc", C, B))
    fake_explorer.add_native(C, native_row("0xbc", C, B), native_row("0xcd", D, C))
    fake_explorer.add_native(D, native_row("0xcd", D, C), native_row("0xde", E, D))

    async with make_tracer(sample_config, fake_explorer) as tracer:
        report = await tracer.trace(A, TraceOptions(max_hops=10))

    assert [(h.hop, h.address) for h in report.hops] == [(0, A), (1, B), (2, C)]
    assert D not in fake_explorer.fetched("txlist")


@pytest.mark.asyncio
async def test_cycle_back_to_seed_is_not_revisited(sample_config, fake_explorer) -> None:
    fake_explorer.add_native(A, native_row("0x1", B, A), native_row("0x2", A, C))
    fake_explorer.add_native(B, native_row("0x1", B, A), native_row("0x3", C, B))
    fake_explorer.add_native(C, native_row("0x2", A, C), native_row("0x3", C, B))

    async with make_tracer(sample_config, fake_explorer) as tracer:
        report = await tracer.trace(A, TraceOptions(max_hops=2))

    visited = fake_explorer.fetched("txlist")
    assert len(visited) == len(set(visited)) == 3
    assert [h.address for h in report.hops] == [A, B, C]
    assert [h.hop for h in report.hops] == [0, 1, 1]


@pytest.mark.asyncio
async def test_inflow_heavy_and_concentrated(sample_config, fake_explorer) -> None:
    rows = [native_row(f"0x{i:02x}", B, A, ts=NOW - 100 - i) for i in range(12)]
    fake_explorer.add_native(A, *rows)

    async with make_tracer(sample_config, fake_explorer) as tracer:
        report = await tracer.trace(A, TraceOptions(max_hops=0))

    ids = {f.id for f in report.report.flags}
    assert {"counterparties:concentrated", "flow:inflow-heavy"} <= ids
    assert report.report.score == min(100, sum(f.score for f in report.report.flags))
    assert report.incoming_count == 12
    assert report.outgoing_count == 0
    assert report.unique_counterparties == 1


@pytest.mark.asyncio
async def test_report_totals_balance_and_sources(sample_config, fake_explorer) -> None:
    fake_explorer.add_native(A, native_row("0xin", B, A), native_row("0xout", A, C, value="500000000000000000"))
    fake_explorer.balances[A] = "3000000000000000000"

    async with make_tracer(sample_config, fake_explorer) as tracer:
        report = await tracer.trace(A, TraceOptions(max_hops=0, native_usd_price=2000))

    assert report.total_in_usd == Decimal("2000")
    assert report.total_out_usd == Decimal("1000")
    assert report.native_balance.amount == Decimal("3")
    assert report.native_balance.usd_value == Decimal("6000")
    assert report.native_balance.symbol == "ETH"
    assert [t.hash for t in report.top_incoming] == ["0xin"]
    assert [t.hash for t in report.top_outgoing] == ["0xout"]
    urls = {s.url for s in report.sources}
    assert f"https://etherscan.io/address/{A}" in urls
    assert "https://etherscan.io/tx/0xin" in urls
    assert report.to_dict()["chain_label"] == "Ethereum"


@pytest.mark.asyncio
async def test_zero_counterparty_cap_still_expands_two(sample_config, fake_explorer) -> None:
    fake_explorer.add_native(
        A,
        native_row("0x1", B, A, value="2000000000000000000"),
        native_row("0x2", C, A, value="5000000000000000000"),
        native_row("0x3", D, A, value="1000000000000000000"),
    )

    async with make_tracer(sample_config, fake_explorer) as tracer:
        await tracer.trace(A, TraceOptions(max_hops=1, max_counterparties=0))

    assert fake_explorer.fetched("txlist") == [A, C, B]


@pytest.mark.asyncio
async def test_out_of_range_timestamp_row_is_skipped(sample_config, fake_explorer) -> None:
    fake_explorer.add_native(A, native_row("0xfar", B, A, ts=99999999999999999))

    async with make_tracer(sample_config, fake_explorer) as tracer:
        report = await tracer.trace_wallet(A, TraceOptions(max_hops=0))

    assert report is not None
    assert report.total_transfers == 0

# ── Unavailable paths ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_invalid_address_is_unavailable(sample_config, fake_explorer) -> None:
    async with make_tracer(sample_config, fake_explorer) as tracer:
        assert await tracer.trace("0xnothex", TraceOptions()) is None
    assert fake_explorer.calls == []


@pytest.mark.asyncio
async def test_unknown_chain_is_unavailable(sample_config, fake_explorer) -> None:
    async with make_tracer(sample_config, fake_explorer) as tracer:
        assert await tracer.trace(A, TraceOptions(chain="solana")) is None


@pytest.mark.asyncio
async def test_chain_without_api_key_is_unavailable(sample_config, fake_explorer) -> None:
    async with make_tracer(sample_config, fake_explorer) as tracer:
        assert await tracer.trace(A, TraceOptions(chain="bsc")) is None


@pytest.mark.asyncio
async def test_upstream_error_propagates_from_trace(sample_config, fake_explorer) -> None:
    fake_explorer.list_errors[A] = APIError("boom", status=502)

    async with make_tracer(sample_config, fake_explorer) as tracer:
        with pytest.raises(APIError):
            await tracer.trace(A, TraceOptions())


@pytest.mark.asyncio
async def test_trace_wallet_soft_fails_on_upstream_error(sample_config, fake_explorer) -> None:
    fake_explorer.list_errors[A] = APIError("boom", status=502)

    async with make_tracer(sample_config, fake_explorer) as tracer:
        assert await tracer.trace_wallet(A, TraceOptions()) is None


@pytest.mark.asyncio
async def test_trace_wallet_deadline_returns_none(sample_config) -> None:
    slow = FakeExplorer(delay=5.0)
    slow.add_native(A, native_row("0x1", B, A))

    async with make_tracer(sample_config, slow) as tracer:
        result = await tracer.trace_wallet(A, TraceOptions(timeout=0.05))

    assert result is None


@pytest.mark.asyncio
async def test_trace_wallet_cancel_event_returns_none(sample_config) -> None:
    slow = FakeExplorer(delay=5.0)
    cancel = asyncio.Event()

    async with make_tracer(sample_config, slow) as tracer:
        asyncio.get_running_loop().call_later(0.05, cancel.set)
        result = await tracer.trace_wallet(A, TraceOptions(), cancel=cancel)

    assert result is None


@pytest.mark.asyncio
async def test_trace_wallet_returns_report(sample_config, fake_explorer) -> None:
    fake_explorer.add_native(A, native_row("0x1", B, A))

    async with make_tracer(sample_config, fake_explorer) as tracer:
        result = await tracer.trace_wallet(A, TraceOptions(max_hops=0, timeout=5))

    assert result is not None
    assert result.total_transfers == 1


@pytest.mark.asyncio
async def test_module_trace_wallet_loads_config_and_soft_fails() -> None:
    from wallettrace import trace_wallet

    # no API key in the environment or config file
    assert await trace_wallet(A, TraceOptions()) is None


@pytest.mark.asyncio
async def test_module_trace_wallet_uses_config_trace_limits(
    sample_config, fake_explorer, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake_explorer.add_native(A, native_row("0x1", B, A))
    fake_explorer.add_native(B, native_row("0x1", B, A), native_row("0x2", C, B))
    sample_config.trace.max_hops = 0
    monkeypatch.setattr(
        tracer_module,
        "WalletTracer",
        lambda config: WalletTracer(config, explorer_factory=lambda chain, cfg: fake_explorer),
    )

    report = await tracer_module.trace_wallet(A, config=sample_config)

    assert report is not None
    assert [h.address for h in report.hops] == [A]
    assert fake_explorer.fetched("txlist") == [A]
