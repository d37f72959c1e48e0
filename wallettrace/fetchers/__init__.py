"""
Fetcher layer for wallettrace.

Provides a factory function `get_explorer()` that returns the explorer client
for a resolved chain. All explorers implement BaseExplorer.

Usage:
    from wallettrace.fetchers import get_explorer
    explorer = get_explorer(chain, config)
    rows = await explorer.list_transactions(address, chain, offset=50)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from wallettrace.fetchers.base import BaseExplorer, ExplorerSource, ExplorerTokenTx, ExplorerTx
from wallettrace.models import ExplorerKind

if TYPE_CHECKING:
    from wallettrace.config import WallettraceConfig
    from wallettrace.models import ChainConfig

__all__ = [
    "BaseExplorer",
    "ExplorerSource",
    "ExplorerTokenTx",
    "ExplorerTx",
    "get_explorer",
]


def get_explorer(chain: ChainConfig, config: WallettraceConfig) -> BaseExplorer:
    """
    Factory: return the explorer client serving the given chain.

    Args:
        chain: Resolved ChainConfig
        config: WallettraceConfig with API keys and HTTP settings

    Returns:
        Configured BaseExplorer implementation

    Raises:
        ValueError: Unknown explorer kind
    """
    if chain.explorer not in (ExplorerKind.ETHERSCAN, ExplorerKind.BSCSCAN):
        raise ValueError(f"Unsupported explorer: {chain.explorer!r}")  # pragma: no cover

    from wallettrace.fetchers.explorer import ExplorerClient

    api = config.explorer_api(chain.explorer)
    return ExplorerClient(
        base_url=api.base_url,
        api_key=api.api_key,
        timeout=config.explorer.timeout,
        rate_limit=config.explorer.rate_limit_per_sec,
    )
