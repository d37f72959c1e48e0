"""Output format routing for wallettrace.

Converts result dicts to the requested format: json or table.

Design rules:
- JSON: 2-space indent, Decimals as numbers, utf-8
- Table: Rich-formatted; HIGH levels red, MEDIUM yellow, LOW green

All functions return strings. The caller writes to stdout.
"""

from __future__ import annotations

import io
import json
from decimal import Decimal
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

VALID_FORMATS = {"json", "table"}

LEVEL_STYLES = {"HIGH": "bold red", "MEDIUM": "yellow", "LOW": "green"}


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal values."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return float(obj)
        return super().default(obj)


def format_output(data: Any, fmt: str) -> str:
    """
    Format data for stdout output.

    Args:
        data: Result dict, list, or any JSON-serialisable value.
        fmt: "json" | "table"

    Returns:
        Formatted string ready to write to stdout.

    Raises:
        ValueError: If fmt is not a recognised format.
    """
    fmt = fmt.lower()
    if fmt not in VALID_FORMATS:
        raise ValueError(f"Unknown format {fmt!r}. Valid: {sorted(VALID_FORMATS)}")

    if fmt == "table":
        return format_table(data)
    return format_json(data)


def format_json(data: Any) -> str:
    """Pretty-print data as JSON (2-space indent)."""
    return json.dumps(data, indent=2, cls=DecimalEncoder, ensure_ascii=False)


# ── Table ─────────────────────────────────────────────────────────────────────


def _render(*renderables: Any) -> str:
    buf = io.StringIO()
    console = Console(file=buf, force_terminal=False, width=140)
    for r in renderables:
        console.print(r)
    return buf.getvalue()


def _short(address: str | None) -> str:
    if not address:
        return ""
    if len(address) > 12:
        return f"{address[:6]}...{address[-4:]}"
    return address


def _usd(value: Any) -> str:
    if value is None:
        return "—"
    return f"${float(value):,.2f}"


def _level_text(level: str, score: int) -> Text:
    return Text(f"{level} ({score})", style=LEVEL_STYLES.get(level, ""))


def _flags_table(title: str, flags: list[dict]) -> Table:
    table = Table(title=title)
    table.add_column("Flag")
    table.add_column("Severity")
    table.add_column("Score", justify="right")
    table.add_column("Rationale")
    for flag in flags:
        table.add_row(
            flag["label"],
            Text(flag["severity"], style=LEVEL_STYLES.get(flag["severity"], "")),
            str(flag["score"]),
            flag["rationale"],
        )
    return table


def format_trace_table(data: dict) -> str:
    """Render a WalletTraceReport dict: summary, flags, then one row per transfer."""
    report = data["report"]
    balance = data.get("native_balance") or {}

    summary = Table(title=f"Wallet trace — {data['address']} ({data['chain_label']})")
    summary.add_column("Metric")
    summary.add_column("Value")
    summary.add_row("Risk", _level_text(report["level"], report["score"]))
    amount = balance.get("amount")
    summary.add_row("Balance", f"{amount} {balance.get('symbol', '')}" if amount is not None else "—")
    summary.add_row("Transfers", f"{data['total_transfers']} ({data['incoming_count']} in / {data['outgoing_count']} out)")
    summary.add_row("Counterparties", str(data["unique_counterparties"]))
    summary.add_row("Total in", _usd(data.get("total_in_usd")))
    summary.add_row("Total out", _usd(data.get("total_out_usd")))

    transfers = Table(title="Transfers by hop")
    transfers.add_column("Hop", justify="right")
    transfers.add_column("Address")
    transfers.add_column("Dir")
    transfers.add_column("Counterparty")
    transfers.add_column("Amount", justify="right")
    transfers.add_column("USD", justify="right")
    transfers.add_column("Time")
    for hop in data.get("hops", []):
        for t in hop["transfers"]:
            dir_style = "green" if t["direction"] == "in" else "red"
            transfers.add_row(
                str(hop["hop"]),
                _short(hop["address"]),
                Text(t["direction"], style=dir_style),
                _short(t["counterparty"]),
                f"{t['amount']} {t['asset']['symbol']}",
                _usd(t.get("usd_value")),
                t["timestamp"],
            )

    return _render(summary, _flags_table("Flags", report["flags"]), transfers)


def format_contract_table(data: dict) -> str:
    contract = data.get("contract") or {}
    risk = data["risk"]

    summary = Table(title=f"Token risk — {data['address']}")
    summary.add_column("Metric")
    summary.add_column("Value")
    summary.add_row("Risk", _level_text(risk["level"], risk["score"]))
    summary.add_row("Contract", str(contract.get("contract_name") or "—"))
    summary.add_row("Verified", str(contract.get("verified", "—")))
    summary.add_row("Proxy", str(contract.get("proxy", "—")))
    pair = data.get("pair")
    if pair:
        summary.add_row("Pair", f"{pair['dex_id']} {pair['pair_address']}")
        summary.add_row("Liquidity", _usd(pair.get("liquidity_usd")))

    return _render(summary, _flags_table("Flags", risk["flags"]))


def format_table(data: Any) -> str:
    """Rich table for known result shapes; JSON for anything else."""
    if isinstance(data, dict) and "hops" in data and "report" in data:
        return format_trace_table(data)
    if isinstance(data, dict) and "risk" in data:
        return format_contract_table(data)
    if isinstance(data, dict):
        table = Table()
        table.add_column("Key")
        table.add_column("Value")
        for key, value in data.items():
            table.add_row(str(key), json.dumps(value, cls=DecimalEncoder) if not isinstance(value, str) else value)
        return _render(table)
    return format_json(data)


def mask_api_key(key: str) -> str:
    """Mask API key for display: show first 4 and last 4 chars."""
    if not key:
        return ""
    if len(key) <= 8:
        return "****"
    return f"{key[:4]}...{key[-4:]}"
