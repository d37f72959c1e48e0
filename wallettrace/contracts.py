"""Contract reports: verification metadata plus a risky-ABI scan.

Feeds the pair/contract engine in scorer.py. The scan looks for function
names that give an owner power over holders (minting, blacklists, pausing,
fee/tax setters, ...).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace

from wallettrace.cache import LOOKUP_TTL, MISSING, TTLCache
from wallettrace.chains import normalize_address
from wallettrace.fetchers.base import BaseExplorer, ExplorerSource
from wallettrace.models import ChainConfig

logger = logging.getLogger(__name__)

UNVERIFIED_TEXT = "Contract source code not verified"


@dataclass(frozen=True)
class AbiRisk:
    keyword: str
    matches: tuple[str, ...]
    rationale: str

    def to_dict(self) -> dict:
        return {"keyword": self.keyword, "matches": list(self.matches), "rationale": self.rationale}


# keyword -> rationale; matched as a substring of lower-cased function names
ABI_RISK_KEYWORDS: dict[str, str] = {
    "mint": "Minting ability can dilute supply.",
    "blacklist": "Blacklist controls can freeze holders.",
    "pause": "Pause controls can halt transfers.",
    "settax": "Tax setters can change transfer costs.",
    "setfee": "Fee setters can change transfer costs.",
    "setmax": "Max tx/wallet setters can restrict trading.",
    "setrouter": "Router setters can redirect liquidity.",
    "setpair": "Pair setters can affect trading routes.",
    "whitelist": "Whitelist controls can gate transfers.",
    "ownership": "Ownership transfers can change control.",
}


@dataclass(frozen=True)
class ContractReport:
    address: str
    verified: bool
    proxy: bool
    implementation: str | None
    contract_name: str | None
    compiler_version: str | None
    optimization_used: bool | None
    runs: int | None
    abi_risks: tuple[AbiRisk, ...]
    source_url: str

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "verified": self.verified,
            "proxy": self.proxy,
            "implementation": self.implementation,
            "contract_name": self.contract_name,
            "compiler_version": self.compiler_version,
            "optimization_used": self.optimization_used,
            "runs": self.runs,
            "abi_risks": [r.to_dict() for r in self.abi_risks],
            "source_url": self.source_url,
        }


def scan_abi_for_risks(abi_json: str) -> list[AbiRisk]:
    """
    Find risky function names in a contract ABI.

    A JSON ABI is scanned function by function. Text that isn't JSON falls
    back to a plain substring search. Unverified contracts have no ABI.
    """
    text = (abi_json or "").strip()
    if not text or text == UNVERIFIED_TEXT:
        return []

    try:
        parsed = json.loads(text)
    except ValueError:
        lower = text.lower()
        return [
            AbiRisk(keyword=k, matches=(k,), rationale=r)
            for k, r in ABI_RISK_KEYWORDS.items()
            if k in lower
        ]

    entries = parsed if isinstance(parsed, list) else []
    names = [
        str(entry.get("name") or "").lower()
        for entry in entries
        if isinstance(entry, dict) and entry.get("type") == "function"
    ]
    names = [n for n in names if n]

    risks = []
    for keyword, rationale in ABI_RISK_KEYWORDS.items():
        matches = tuple(n for n in names if keyword in n)
        if matches:
            risks.append(AbiRisk(keyword=keyword, matches=matches, rationale=rationale))
    return risks


def _flag(value: str) -> bool | None:
    if value == "1":
        return True
    if value == "0":
        return False
    return None


def build_contract_report(
    address: str, source: ExplorerSource, site_url: str = "https://etherscan.io"
) -> ContractReport:
    code = source.source_code.strip()
    return ContractReport(
        address=address,
        verified=bool(code) and UNVERIFIED_TEXT.lower() not in code.lower(),
        proxy=source.proxy == "1",
        implementation=source.implementation or None,
        contract_name=source.contract_name or None,
        compiler_version=source.compiler_version or None,
        optimization_used=_flag(source.optimization_used),
        runs=int(source.runs) if source.runs.isdigit() else None,
        abi_risks=tuple(scan_abi_for_risks(source.abi)),
        source_url=f"{site_url}/address/{address}#code",
    )


async def fetch_contract_report(
    explorer: BaseExplorer,
    address: str,
    chain: ChainConfig,
    fetch_abi: bool = False,
    cache: TTLCache | None = None,
) -> ContractReport | None:
    """
    Look up a contract's source metadata and build its report.

    Returns None for a blank address or when the explorer has no record.
    Upstream errors propagate.
    """
    normalized = normalize_address(address)
    if not normalized:
        return None

    key = f"source:{chain.id}:{normalized}"
    if cache is not None:
        cached = cache.get(key, MISSING)
        if cached is not MISSING:
            return cached

    source = await explorer.get_source(normalized, chain)
    if source is None:
        return None

    if fetch_abi and not source.abi:
        abi = await explorer.get_abi(normalized, chain)
        source = replace(source, abi=abi or source.abi)

    report = build_contract_report(normalized, source, explorer.site_url)
    logger.debug("Contract report for %s: verified=%s", normalized, report.verified)
    if cache is not None:
        cache.set(key, report, ttl=LOOKUP_TTL)
    return report
