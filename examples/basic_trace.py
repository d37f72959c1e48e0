"""Basic wallet trace example.

Runs one bounded trace through the Python API and prints the risk summary.
Needs an Etherscan key in WALLETTRACE_ETHERSCAN_API_KEY (or the config file).
"""

import asyncio
import sys

from wallettrace import TraceOptions, trace_wallet


async def main(address: str) -> int:
    options = TraceOptions(max_hops=1, max_counterparties=3, native_usd_price=3000, timeout=30)
    report = await trace_wallet(address, options)
    if report is None:
        print("Tracing unavailable (bad address, missing API key, or upstream error)")
        return 1

    print(f"{report.address} on {report.chain_label}")
    print(f"Risk: {report.report.level.value} ({report.report.score})")
    for flag in report.report.flags:
        print(f"  • {flag.label}: {flag.rationale}")

    print(f"\n{report.total_transfers} transfers across {len(report.hops)} hops")
    for hop in report.hops:
        print(f"  hop {hop.hop} {hop.address}: {len(hop.transfers)} transfers")
    return 0


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else "0xd8da6bf26964af9d7eed9e03e53415d37aa96045"
    sys.exit(asyncio.run(main(target)))
