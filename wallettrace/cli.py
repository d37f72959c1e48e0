"""Click CLI entry point for wallettrace.

All commands are thin orchestration wrappers. Business logic lives in
tracer, contracts, dex, scorer and output.

Exit codes:
  0 — success
  1 — trace unavailable (bad address, no usable chain, deadline)
  2 — API error, rate limit, invalid key
  3 — network error
  4 — data error (invalid address, no usable chain)
  5 — config error
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import shutil
import sys
from pathlib import Path
from typing import Any

import click

from wallettrace import __version__
from wallettrace.chains import is_valid_address, normalize_address, resolve_chain
from wallettrace.config import (
    WallettraceConfig,
    _resolve_config_path,
    load_config,
    save_config,
)
from wallettrace.cache import LOOKUP_TTL, TTLCache
from wallettrace.contracts import fetch_contract_report
from wallettrace.dex import DexScreenerClient, MarketSnapshot
from wallettrace.exceptions import (
    ChainUnavailableError,
    DataError,
    InvalidAddressError,
    TraceUnavailableError,
    WallettraceError,
)
from wallettrace.fetchers import get_explorer
from wallettrace.models import TraceOptions
from wallettrace.output import format_output, mask_api_key
from wallettrace.scorer import build_risk_report
from wallettrace.tracer import WalletTracer

# Contract source lookups, shared by every `contract` run in this process
_contract_reports = TTLCache(default_ttl=LOOKUP_TTL)

# ── Error handler ─────────────────────────────────────────────────────────────


def _output_error(err: WallettraceError | Exception) -> None:
    """Write error JSON to stderr and exit with the error's code."""
    if isinstance(err, WallettraceError):
        payload = err.to_dict()
        exit_code = err.exit_code
    else:
        payload = {"error": "unknown_error", "message": str(err), "details": {}}
        exit_code = 1
    sys.stderr.write(json.dumps(payload) + "\n")
    sys.stderr.flush()
    sys.exit(exit_code)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


# ── Root group ────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    envvar="WALLETTRACE_CONFIG",
    default=None,
    help="Config file path (default: ~/.wallettrace/config.toml)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "table"]),
    default=None,
    help="Output format (overrides config default)",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging on stderr")
@click.pass_context
def cli(
    ctx: click.Context, config_path: str | None, output_format: str | None, verbose: bool
) -> None:
    """wallettrace — bounded wallet transfer tracing and token risk scoring."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
        config_error = None
    except WallettraceError as e:
        # Keep going on defaults so `config init` can repair a broken file
        config = WallettraceConfig()
        config_error = e

    ctx.obj["config"] = config
    ctx.obj["config_error"] = config_error
    ctx.obj["format"] = output_format or config.output.default_format
    ctx.obj["config_path"] = config_path


def _require_config(ctx: click.Context) -> WallettraceConfig:
    err = ctx.obj.get("config_error")
    if err is not None:
        _output_error(err)
    return ctx.obj["config"]


def _require_finite(option: str, value: float | None) -> None:
    if value is not None and not math.isfinite(value):
        _output_error(DataError(f"{option} must be a finite number", {option: str(value)}))


# ── Trace ─────────────────────────────────────────────────────────────────────


@cli.command("trace")
@click.argument("address")
@click.option("--chain", default=None, help="Chain id or label (e.g. ethereum, bsc)")
@click.option("--chain-id", type=int, default=None, help="Numeric EVM chain id")
@click.option("--max-hops", type=int, default=None, help="Hops beyond the seed (0-2)")
@click.option("--max-transfers", type=int, default=None, help="Transfers kept per address (min 10)")
@click.option("--max-counterparties", type=int, default=None, help="Counterparties expanded per hop (min 2)")
@click.option("--min-usd", type=float, default=None, help="Drop transfers below this USD value")
@click.option("--native-usd-price", type=float, default=None, help="USD price of the native coin")
@click.option("--stablecoin", "stablecoins", multiple=True, help="Stablecoin symbol (repeatable)")
@click.option("--start", "start_time", default=None, help="Window start (ISO-8601 or epoch ms)")
@click.option("--end", "end_time", default=None, help="Window end (ISO-8601 or epoch ms)")
@click.option("--include-contracts", is_flag=True, help="Keep transfers with contract counterparties")
@click.option("--timeout", type=float, default=None, help="Deadline for the whole trace (seconds)")
@click.pass_context
def trace_cmd(
    ctx: click.Context,
    address: str,
    chain: str | None,
    chain_id: int | None,
    max_hops: int | None,
    max_transfers: int | None,
    max_counterparties: int | None,
    min_usd: float | None,
    native_usd_price: float | None,
    stablecoins: tuple[str, ...],
    start_time: str | None,
    end_time: str | None,
    include_contracts: bool,
    timeout: float | None,
) -> None:
    """Trace transfers around ADDRESS and score the flow pattern."""
    config = _require_config(ctx)
    fmt = ctx.obj["format"]

    if not is_valid_address(address):
        _output_error(InvalidAddressError(f"Invalid address: {address!r}", {"address": address}))
    _require_finite("--min-usd", min_usd)
    _require_finite("--native-usd-price", native_usd_price)

    options = TraceOptions(
        chain_id=chain_id,
        chain=chain,
        max_hops=max_hops if max_hops is not None else config.trace.max_hops,
        max_transfers=max_transfers if max_transfers is not None else config.trace.max_transfers,
        max_counterparties=(
            max_counterparties if max_counterparties is not None else config.trace.max_counterparties
        ),
        min_usd=min_usd,
        native_usd_price=native_usd_price,
        stablecoin_symbols=list(stablecoins) or None,
        start_time=start_time,
        end_time=end_time,
        ignore_contracts=not include_contracts,
        timeout=timeout,
    )

    async def _run() -> dict[str, Any]:
        async with WalletTracer(config) as tracer:
            try:
                report = await asyncio.wait_for(tracer.trace(address, options), timeout=timeout)
            except asyncio.TimeoutError:
                raise TraceUnavailableError(
                    f"Trace exceeded {timeout}s deadline", {"address": address}
                ) from None
        if report is None:
            raise TraceUnavailableError(
                "Tracing unavailable: no usable chain or explorer API key",
                {"address": address, "chain": chain, "chain_id": chain_id},
            )
        return report.to_dict()

    try:
        result = asyncio.run(_run())
    except WallettraceError as e:
        _output_error(e)
        return

    click.echo(format_output(result, fmt))


# ── Contract ──────────────────────────────────────────────────────────────────


@cli.command("contract")
@click.argument("address")
@click.option("--chain", default=None, help="Chain id or label (e.g. ethereum, bsc)")
@click.option("--chain-id", type=int, default=None, help="Numeric EVM chain id")
@click.option("--pair-query", default=None, help="DexScreener search text (default: ADDRESS)")
@click.option("--no-pair", is_flag=True, help="Skip the DEX pair lookup")
@click.option("--mcap-usd", type=float, default=None, help="Known market cap in USD")
@click.pass_context
def contract_cmd(
    ctx: click.Context,
    address: str,
    chain: str | None,
    chain_id: int | None,
    pair_query: str | None,
    no_pair: bool,
    mcap_usd: float | None,
) -> None:
    """Score a token contract from explorer metadata and its best DEX pair."""
    config = _require_config(ctx)
    fmt = ctx.obj["format"]

    if not is_valid_address(address):
        _output_error(InvalidAddressError(f"Invalid address: {address!r}", {"address": address}))
    _require_finite("--mcap-usd", mcap_usd)
    normalized = normalize_address(address)

    resolved = resolve_chain(config, chain_id=chain_id, chain=chain)
    if resolved is None:
        _output_error(
            ChainUnavailableError(
                "No usable chain: unknown chain or missing explorer API key",
                {"chain": chain, "chain_id": chain_id},
            )
        )

    async def _run() -> dict[str, Any]:
        explorer = get_explorer(resolved, config)
        try:
            contract = await fetch_contract_report(
                explorer, normalized, resolved, fetch_abi=True, cache=_contract_reports
            )
        finally:
            await explorer.close()

        pair = None
        if not no_pair:
            async with DexScreenerClient(config.dex.base_url, timeout=config.explorer.timeout) as dex:
                pair = await dex.resolve_pair(pair_query or normalized, chain_id=resolved.id)

        market = MarketSnapshot(mcap_usd=mcap_usd) if mcap_usd is not None else None
        risk = build_risk_report(pair=pair, contract=contract, market=market)
        return {
            "address": normalized,
            "chain_label": resolved.label,
            "contract": contract.to_dict() if contract else None,
            "pair": pair.to_dict() if pair else None,
            "risk": risk.to_dict(),
        }

    try:
        result = asyncio.run(_run())
    except WallettraceError as e:
        _output_error(e)
        return

    click.echo(format_output(result, fmt))


# ── Config commands ───────────────────────────────────────────────────────────


@cli.group("config")
def config_group() -> None:
    """Manage wallettrace configuration."""


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing config")
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Write a default config file."""
    config_path = _resolve_config_path(ctx.obj.get("config_path"))

    if config_path.exists() and not force:
        click.echo(
            json.dumps(
                {
                    "status": "already_exists",
                    "config_path": str(config_path),
                    "hint": "Use --force to reinitialize",
                }
            )
        )
        return

    status = "initialized"
    backup = None
    if config_path.exists():
        backup = str(config_path) + ".bak"
        shutil.copy2(config_path, backup)
        status = "reinitialized"

    save_config(WallettraceConfig(), str(config_path))

    result: dict[str, Any] = {"status": status, "config_path": str(config_path)}
    if backup:
        result["backup"] = backup
    click.echo(json.dumps(result))


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current configuration (API keys masked)."""
    config = _require_config(ctx)
    config_path: Path = _resolve_config_path(ctx.obj.get("config_path"))

    result = {
        "config_path": str(config_path),
        "explorers": {
            kind: {"api_key": mask_api_key(api.api_key), "base_url": api.base_url}
            for kind, api in config.explorers.items()
        },
        "explorer": {
            "timeout": config.explorer.timeout,
            "rate_limit_per_sec": config.explorer.rate_limit_per_sec,
        },
        "trace": {
            "max_hops": config.trace.max_hops,
            "max_transfers": config.trace.max_transfers,
            "max_counterparties": config.trace.max_counterparties,
            "transfer_cache_ttl": config.trace.transfer_cache_ttl,
            "contract_cache_ttl": config.trace.contract_cache_ttl,
        },
        "dex": {"base_url": config.dex.base_url},
        "output": {"default_format": config.output.default_format},
        "chains": [
            {
                "id": c.id,
                "label": c.label,
                "explorer": c.explorer.value,
                "chain_id": c.chain_id,
            }
            for c in config.chains
        ],
    }

    click.echo(format_output(result, "json"))


if __name__ == "__main__":  # pragma: no cover
    cli()
