"""
Soroban Activity Configuration - Network endpoints and retry policy.

Configuration can be loaded from:
- Default values
- Environment variables (a .env file is honoured)

All configuration objects are immutable once built. There is no module-level
"current network": callers build a ScanConfig and pass it to the service.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from dotenv import load_dotenv

from soroban_activity.codec.ledger import native_contract_id
from soroban_activity.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


# =============================================================
# RETRY POLICY
# =============================================================


@dataclass(frozen=True)
class RetryPolicy:
    """
    Per-client retry policy for RPC calls.

    Delay before retry k is min(backoff_ms * 2^k, backoff_max_ms) plus up to
    25% jitter.
    """
    timeout_ms: int = 10_000
    max_retries: int = 2
    backoff_ms: int = 300
    backoff_max_ms: int = 2_000

    def __post_init__(self) -> None:
        """Validate values."""
        if self.timeout_ms <= 0:
            raise ConfigurationError("timeout_ms must be positive", config_key="timeout_ms")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be >= 0", config_key="max_retries")
        if self.backoff_ms < 0:
            raise ConfigurationError("backoff_ms must be >= 0", config_key="backoff_ms")
        if self.backoff_max_ms < self.backoff_ms:
            raise ConfigurationError(
                "backoff_max_ms must be >= backoff_ms",
                config_key="backoff_max_ms",
            )

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeout_ms": self.timeout_ms,
            "max_retries": self.max_retries,
            "backoff_ms": self.backoff_ms,
            "backoff_max_ms": self.backoff_max_ms,
        }


# =============================================================
# NETWORKS
# =============================================================


@dataclass(frozen=True)
class NetworkConfig:
    """Endpoints and identity of one network."""
    name: str
    passphrase: str
    rpc_url: str
    public_rpc_url: str
    explorer_url: str = ""

    # Secondary pre-indexed source
    indexer_url: str = ""
    indexer_enabled: bool = False
    indexer_timeout_seconds: float = 1.0
    indexer_health_timeout_seconds: float = 3.0

    def __post_init__(self) -> None:
        if not self.rpc_url:
            raise ConfigurationError(f"Network {self.name} has no RPC URL", config_key="rpc_url")
        if self.indexer_enabled and not self.indexer_url:
            raise ConfigurationError(
                f"Network {self.name} enables the indexer without a URL",
                config_key="indexer_url",
            )

    @property
    def native_contract_id(self) -> str:
        """Contract id of the native asset wrapper (the only fee event emitter)."""
        return native_contract_id(self.passphrase)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "rpc_url": self.rpc_url,
            "public_rpc_url": self.public_rpc_url,
            "explorer_url": self.explorer_url,
            "indexer_url": self.indexer_url,
            "indexer_enabled": self.indexer_enabled,
        }


TESTNET = NetworkConfig(
    name="testnet",
    passphrase="Test SDF Network ; September 2015",
    rpc_url="https://134-209-117-133.nip.io",
    public_rpc_url="https://soroban-testnet.stellar.org",
    explorer_url="https://stellar.expert/explorer/testnet",
)

MAINNET = NetworkConfig(
    name="mainnet",
    passphrase="Public Global Stellar Network ; September 2015",
    rpc_url="https://157-230-232-173.nip.io",
    public_rpc_url="https://soroban-rpc.mainnet.stellar.gateway.fm",
    explorer_url="https://stellar.expert/explorer/public",
    indexer_url="https://159-65-224-222.sslip.io",
    indexer_enabled=True,
)

NETWORKS: dict[str, NetworkConfig] = {
    TESTNET.name: TESTNET,
    MAINNET.name: MAINNET,
}

DEFAULT_NETWORK = "testnet"


def get_network_config(name: str) -> NetworkConfig:
    """Look up a built-in network, falling back to testnet for unknown names."""
    network = NETWORKS.get(name)
    if network is None:
        logger.warning(f"Unknown network '{name}', using {DEFAULT_NETWORK}")
        return NETWORKS[DEFAULT_NETWORK]
    return network


# =============================================================
# SCAN CONFIG
# =============================================================


@dataclass(frozen=True)
class ScanConfig:
    """Complete client configuration."""
    network: NetworkConfig = TESTNET
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    user_agent: str = "SorobanActivity/1.0"

    def to_dict(self) -> dict[str, Any]:
        return {
            "network": self.network.to_dict(),
            "retry": self.retry.to_dict(),
            "user_agent": self.user_agent,
        }


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}", config_key=name, original_error=e)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config(network: Optional[str] = None, dotenv: bool = True) -> ScanConfig:
    """
    Build a ScanConfig from defaults and environment variables.

    Args:
        network: Network name, overrides SOROBAN_NETWORK
        dotenv: Load a .env file first

    Returns:
        ScanConfig
    """
    if dotenv:
        load_dotenv()

    name = network or os.environ.get("SOROBAN_NETWORK", DEFAULT_NETWORK)
    base = get_network_config(name)

    network_config = replace(
        base,
        rpc_url=os.environ.get("SOROBAN_RPC_URL", base.rpc_url),
        public_rpc_url=os.environ.get("SOROBAN_PUBLIC_RPC_URL", base.public_rpc_url),
        indexer_url=os.environ.get("SOROBAN_INDEXER_URL", base.indexer_url),
        indexer_enabled=_env_bool("SOROBAN_INDEXER_ENABLED", base.indexer_enabled),
    )

    defaults = RetryPolicy()
    retry = RetryPolicy(
        timeout_ms=_env_int("SOROBAN_RPC_TIMEOUT_MS", defaults.timeout_ms),
        max_retries=_env_int("SOROBAN_RPC_MAX_RETRIES", defaults.max_retries),
        backoff_ms=_env_int("SOROBAN_RPC_BACKOFF_MS", defaults.backoff_ms),
        backoff_max_ms=_env_int("SOROBAN_RPC_BACKOFF_MAX_MS", defaults.backoff_max_ms),
    )

    config = ScanConfig(network=network_config, retry=retry)
    logger.info(f"Loaded config for network '{network_config.name}' (rpc={network_config.rpc_url})")
    return config
