"""Chain resolution and explorer URL helpers.

A trace request names its network loosely: a numeric chain id, an id such as
"ethereum", or a label such as "BNB Chain". resolve_chain() turns that hint
into one configured ChainConfig, or None when tracing is unavailable for it.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

from wallettrace.config import WallettraceConfig
from wallettrace.models import ChainConfig

logger = logging.getLogger(__name__)

# EVM address (0x + 40 hex chars); both supported explorer families are EVM
EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")

DEFAULT_CHAIN_ID = "ethereum"

NATIVE_SYMBOLS = {
    "ethereum": "ETH",
    "bsc": "BNB",
}


def normalize_address(address: str) -> str:
    return address.strip().lower()


def is_valid_address(address: str) -> bool:
    """Pure format check. No network calls."""
    return bool(EVM_ADDRESS_RE.match(normalize_address(address)))


def resolve_chain(
    config: WallettraceConfig,
    chain_id: int | None = None,
    chain: str | None = None,
) -> ChainConfig | None:
    """
    Pick the configured chain for a request.

    Order: exact numeric chain id, then case-insensitive id, then
    case-insensitive label. With no hint at all the default chain
    ("ethereum", else the first configured) is used.

    Returns None when a hint matches nothing, or when the matched chain's
    explorer has no API key configured.
    """
    chains = config.chains
    found: ChainConfig | None = None

    if chain_id is not None:
        found = next((c for c in chains if c.chain_id == chain_id), None)

    if found is None and chain:
        needle = chain.strip().lower()
        found = next((c for c in chains if c.id.lower() == needle), None) or next(
            (c for c in chains if c.label.lower() == needle), None
        )

    if found is None:
        if chain_id is not None or chain:
            logger.debug("No chain configured for chain_id=%s chain=%r", chain_id, chain)
            return None
        found = next((c for c in chains if c.id == DEFAULT_CHAIN_ID), None) or (
            chains[0] if chains else None
        )
        if found is None:
            return None

    if not config.explorer_api(found.explorer).api_key:
        logger.warning(
            "Chain %s resolved but %s has no API key; tracing unavailable",
            found.id,
            found.explorer.value,
        )
        return None

    return found


def native_symbol(chain: ChainConfig) -> str:
    return chain.native_symbol or NATIVE_SYMBOLS.get(chain.id) or chain.label.upper()


# ── Explorer URLs ─────────────────────────────────────────────────────────────


def is_v2_base(base_url: str) -> bool:
    """Multi-chain ("v2") endpoints need an explicit chainid parameter."""
    return "/v2/" in (urlparse(base_url).path or base_url)


def explorer_site(base_url: str) -> str:
    """https://api.etherscan.io/v2/api -> https://etherscan.io"""
    parsed = urlparse(base_url)
    if not parsed.scheme or not parsed.hostname:
        return re.sub(r"(/v2)?/api/?$", "", base_url)
    host = parsed.hostname
    if host.startswith("api."):
        host = host[len("api."):]
    return f"{parsed.scheme}://{host}"


def address_url(site: str, address: str) -> str:
    return f"{site}/address/{address}"


def tx_url(site: str, tx_hash: str) -> str:
    return f"{site}/tx/{tx_hash}"
