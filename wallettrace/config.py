"""
Config loading for wallettrace.

Sources (in precedence order, highest first):
  1. Environment variables (WALLETTRACE_*)
  2. ~/.wallettrace/config.toml
  3. Built-in defaults

Usage:
    from wallettrace.config import load_config
    config = load_config()
    print(config.explorers["etherscan"].api_key)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import toml

from wallettrace.exceptions import ConfigInvalidError
from wallettrace.models import ChainConfig, ExplorerKind

# Default config directory and file
DEFAULT_CONFIG_DIR = Path.home() / ".wallettrace"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"

DEFAULT_EXPLORER_BASES = {
    ExplorerKind.ETHERSCAN.value: "https://api.etherscan.io/v2/api",
    ExplorerKind.BSCSCAN.value: "https://api.bscscan.com/v2/api",
}
DEFAULT_DEX_BASE = "https://api.dexscreener.com/latest/dex"

# Environment variable → config key mapping
# Format: (env_var_name, dotted_config_path, type_converter)
_ENV_OVERRIDES: list[tuple[str, str, type]] = [
    ("WALLETTRACE_EXPLORER_TIMEOUT", "explorer.timeout", float),
    ("WALLETTRACE_RATE_LIMIT", "explorer.rate_limit_per_sec", int),
    ("WALLETTRACE_MAX_HOPS", "trace.max_hops", int),
    ("WALLETTRACE_MAX_TRANSFERS", "trace.max_transfers", int),
    ("WALLETTRACE_MAX_COUNTERPARTIES", "trace.max_counterparties", int),
    ("WALLETTRACE_DEX_BASE", "dex.base_url", str),
    ("WALLETTRACE_OUTPUT_FORMAT", "output.default_format", str),
]

# Per-explorer overrides: WALLETTRACE_ETHERSCAN_API_KEY, WALLETTRACE_BSCSCAN_BASE, ...
_EXPLORER_ENV = {
    "API_KEY": "api_key",
    "BASE": "base_url",
}

VALID_FORMATS = {"json", "table"}


@dataclass
class ExplorerAPIConfig:
    """Credentials and endpoint for one explorer family."""

    api_key: str = ""
    base_url: str = ""


@dataclass
class ExplorerConfig:
    """HTTP behaviour shared by every explorer call."""

    timeout: float = 8.0
    rate_limit_per_sec: int = 5


@dataclass
class TraceConfig:
    """Defaults applied when the caller leaves a trace option unset."""

    max_hops: int = 2
    max_transfers: int = 25
    max_counterparties: int = 5
    transfer_cache_ttl: float = 20.0
    contract_cache_ttl: float = 60.0


@dataclass
class DexConfig:
    base_url: str = DEFAULT_DEX_BASE


@dataclass
class OutputConfig:
    """Output formatting defaults."""

    default_format: str = "json"        # json | table


def _default_explorers() -> dict[str, ExplorerAPIConfig]:
    return {kind: ExplorerAPIConfig(base_url=base) for kind, base in DEFAULT_EXPLORER_BASES.items()}


def _default_chains() -> list[ChainConfig]:
    return [ChainConfig(id="ethereum", label="Ethereum", explorer=ExplorerKind.ETHERSCAN, chain_id=1)]


@dataclass
class WallettraceConfig:
    """Full configuration object. Passed via Click context to all commands."""

    explorers: dict[str, ExplorerAPIConfig] = field(default_factory=_default_explorers)
    explorer: ExplorerConfig = field(default_factory=ExplorerConfig)
    trace: TraceConfig = field(default_factory=TraceConfig)
    dex: DexConfig = field(default_factory=DexConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    chains: list[ChainConfig] = field(default_factory=_default_chains)

    def explorer_api(self, kind: ExplorerKind | str) -> ExplorerAPIConfig:
        key = kind.value if isinstance(kind, ExplorerKind) else str(kind)
        return self.explorers.get(key) or ExplorerAPIConfig(
            base_url=DEFAULT_EXPLORER_BASES.get(key, "")
        )


def load_config(path: str | None = None) -> WallettraceConfig:
    """
    Load configuration from TOML file + environment variable overrides.

    Args:
        path: Override config file path. If None, uses WALLETTRACE_CONFIG_PATH
              env var or default (~/.wallettrace/config.toml).

    Returns:
        WallettraceConfig with all values resolved. A missing file is not an
        error; built-in defaults apply.

    Raises:
        ConfigInvalidError: Config file exists but is invalid TOML or values.
    """
    config_path = _resolve_config_path(path)

    raw: dict = {}
    if config_path.exists():
        try:
            raw = toml.load(str(config_path))
        except toml.TomlDecodeError as e:
            raise ConfigInvalidError(f"Invalid TOML in {config_path}: {e}") from e

    config = _dict_to_config(raw)
    _apply_env_overrides(config)
    _validate_config(config)

    return config


def save_config(config: WallettraceConfig, path: str | None = None) -> Path:
    """
    Serialize WallettraceConfig to TOML and write to disk.

    Returns the path where config was written.
    """
    config_path = _resolve_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "explorers": {
            kind: {"api_key": api.api_key, "base_url": api.base_url}
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
        "chains": [_chain_to_dict(chain) for chain in config.chains],
    }

    with open(config_path, "w") as f:
        toml.dump(data, f)

    return config_path


def get_default_config_path() -> Path:
    """Return the default config file path."""
    return DEFAULT_CONFIG_PATH


# ──────────────────────────────────────────────────────────────
# Private helpers
# ──────────────────────────────────────────────────────────────


def _resolve_config_path(path: str | None) -> Path:
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get("WALLETTRACE_CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def _chain_to_dict(chain: ChainConfig) -> dict:
    d: dict = {"id": chain.id, "label": chain.label, "explorer": chain.explorer.value}
    if chain.chain_id is not None:
        d["chain_id"] = chain.chain_id
    if chain.native_symbol:
        d["native_symbol"] = chain.native_symbol
    return d


def _parse_chain(raw: dict) -> ChainConfig:
    try:
        explorer = ExplorerKind(str(raw.get("explorer", "etherscan")).lower())
    except ValueError as e:
        raise ConfigInvalidError(
            f"chains[].explorer must be one of {[k.value for k in ExplorerKind]}, "
            f"got {raw.get('explorer')!r}"
        ) from e
    if not raw.get("id"):
        raise ConfigInvalidError("chains[].id is required")
    chain_id = raw.get("chain_id")
    return ChainConfig(
        id=str(raw["id"]),
        label=str(raw.get("label") or raw["id"]),
        explorer=explorer,
        chain_id=int(chain_id) if chain_id is not None else None,
        native_symbol=raw.get("native_symbol") or None,
    )


def _dict_to_config(raw: dict) -> WallettraceConfig:
    """Build WallettraceConfig from raw TOML dict, applying defaults for missing keys."""
    config = WallettraceConfig()

    for kind, section in raw.get("explorers", {}).items():
        api = config.explorer_api(kind)
        api.api_key = section.get("api_key", api.api_key)
        api.base_url = section.get("base_url", api.base_url)
        config.explorers[kind] = api

    try:
        explorer = raw.get("explorer", {})
        config.explorer.timeout = float(explorer.get("timeout", 8.0))
        config.explorer.rate_limit_per_sec = int(explorer.get("rate_limit_per_sec", 5))

        trace = raw.get("trace", {})
        config.trace.max_hops = int(trace.get("max_hops", 2))
        config.trace.max_transfers = int(trace.get("max_transfers", 25))
        config.trace.max_counterparties = int(trace.get("max_counterparties", 5))
        config.trace.transfer_cache_ttl = float(trace.get("transfer_cache_ttl", 20.0))
        config.trace.contract_cache_ttl = float(trace.get("contract_cache_ttl", 60.0))
    except (TypeError, ValueError) as e:
        raise ConfigInvalidError(f"Invalid numeric config value: {e}") from e

    config.dex.base_url = raw.get("dex", {}).get("base_url", DEFAULT_DEX_BASE)
    config.output.default_format = raw.get("output", {}).get("default_format", "json")

    chains = raw.get("chains")
    if chains is not None:
        if not isinstance(chains, list):
            raise ConfigInvalidError("chains must be an array of tables")
        config.chains = [_parse_chain(c) for c in chains]

    return config


def _apply_env_overrides(config: WallettraceConfig) -> None:
    """Apply environment variable overrides to a loaded config."""
    for kind in DEFAULT_EXPLORER_BASES:
        for suffix, attr in _EXPLORER_ENV.items():
            val = os.environ.get(f"WALLETTRACE_{kind.upper()}_{suffix}")
            if val:
                api = config.explorer_api(kind)
                setattr(api, attr, val)
                config.explorers[kind] = api

    for env_var, dotted_key, converter in _ENV_OVERRIDES:
        val = os.environ.get(env_var)
        if val is None:
            continue
        section, key = dotted_key.split(".", 1)
        section_obj = getattr(config, section)
        try:
            setattr(section_obj, key, converter(val))
        except (ValueError, TypeError) as e:
            raise ConfigInvalidError(
                f"Invalid value for {env_var}={val!r}: {e}"
            ) from e


def _validate_config(config: WallettraceConfig) -> None:
    """Validate config values. Raises ConfigInvalidError on invalid values."""
    if config.output.default_format not in VALID_FORMATS:
        raise ConfigInvalidError(
            f"output.default_format must be one of {VALID_FORMATS}, "
            f"got {config.output.default_format!r}"
        )
    if config.explorer.timeout <= 0:
        raise ConfigInvalidError(
            f"explorer.timeout must be positive, got {config.explorer.timeout}"
        )
    if config.explorer.rate_limit_per_sec < 1:
        raise ConfigInvalidError(
            f"explorer.rate_limit_per_sec must be >= 1, "
            f"got {config.explorer.rate_limit_per_sec}"
        )
    if not config.chains:
        raise ConfigInvalidError("At least one chain must be configured")
