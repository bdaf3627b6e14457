"""
Configuration Tests.

============================================================
PURPOSE
============================================================
Tests for network configuration, retry policy validation
and environment loading.

TEST CATEGORIES:
- RetryPolicy validation
- Built-in networks
- Environment overrides

============================================================
"""

import pytest

from soroban_activity.config import (
    MAINNET,
    TESTNET,
    NetworkConfig,
    RetryPolicy,
    get_network_config,
    load_config,
)
from soroban_activity.exceptions import ConfigurationError


ENV_VARS = (
    "SOROBAN_NETWORK",
    "SOROBAN_RPC_URL",
    "SOROBAN_PUBLIC_RPC_URL",
    "SOROBAN_INDEXER_URL",
    "SOROBAN_INDEXER_ENABLED",
    "SOROBAN_RPC_TIMEOUT_MS",
    "SOROBAN_RPC_MAX_RETRIES",
    "SOROBAN_RPC_BACKOFF_MS",
    "SOROBAN_RPC_BACKOFF_MAX_MS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_defaults(self):
        """Test default retry values."""
        policy = RetryPolicy()

        assert policy.max_retries == 2
        assert policy.backoff_ms == 300
        assert policy.backoff_max_ms == 2000
        assert policy.timeout_seconds == 10.0

    @pytest.mark.parametrize("kwargs", [
        {"timeout_ms": 0},
        {"max_retries": -1},
        {"backoff_ms": -5},
        {"backoff_ms": 500, "backoff_max_ms": 100},
    ])
    def test_invalid_values_rejected(self, kwargs):
        """Test invalid policies raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            RetryPolicy(**kwargs)

    def test_immutable(self):
        """Test policies cannot be mutated after construction."""
        policy = RetryPolicy()

        with pytest.raises(AttributeError):
            policy.max_retries = 5


class TestNetworks:
    """Tests for built-in network configuration."""

    def test_only_mainnet_has_indexer(self):
        """Test the indexer is enabled on mainnet only."""
        assert MAINNET.indexer_enabled
        assert not TESTNET.indexer_enabled

    def test_unknown_network_falls_back(self):
        """Test unknown names resolve to testnet."""
        assert get_network_config("futurenet") is TESTNET

    def test_indexer_requires_url(self):
        """Test enabling the indexer without a URL is rejected."""
        with pytest.raises(ConfigurationError):
            NetworkConfig(
                name="custom",
                passphrase="x",
                rpc_url="https://rpc",
                public_rpc_url="",
                indexer_enabled=True,
            )

    def test_native_contract_id_per_network(self):
        """Test each network derives its own native contract."""
        assert TESTNET.native_contract_id != MAINNET.native_contract_id


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self):
        """Test no environment yields the testnet defaults."""
        config = load_config(dotenv=False)

        assert config.network.name == "testnet"
        assert config.network.rpc_url == TESTNET.rpc_url
        assert config.retry == RetryPolicy()

    def test_env_overrides(self, monkeypatch):
        """Test environment variables override defaults."""
        monkeypatch.setenv("SOROBAN_NETWORK", "mainnet")
        monkeypatch.setenv("SOROBAN_RPC_URL", "https://my-rpc")
        monkeypatch.setenv("SOROBAN_INDEXER_ENABLED", "false")
        monkeypatch.setenv("SOROBAN_RPC_MAX_RETRIES", "4")

        config = load_config(dotenv=False)

        assert config.network.name == "mainnet"
        assert config.network.rpc_url == "https://my-rpc"
        assert config.network.indexer_enabled is False
        assert config.retry.max_retries == 4

    def test_explicit_network_wins(self, monkeypatch):
        """Test the network argument overrides SOROBAN_NETWORK."""
        monkeypatch.setenv("SOROBAN_NETWORK", "mainnet")

        assert load_config("testnet", dotenv=False).network.name == "testnet"

    def test_bad_integer_rejected(self, monkeypatch):
        """Test a non-integer retry setting raises ConfigurationError."""
        monkeypatch.setenv("SOROBAN_RPC_TIMEOUT_MS", "soon")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(dotenv=False)

        assert exc_info.value.config_key == "SOROBAN_RPC_TIMEOUT_MS"

    def test_to_dict(self):
        """Test the config serializes without the passphrase."""
        data = load_config(dotenv=False).to_dict()

        assert data["network"]["name"] == "testnet"
        assert data["retry"]["backoff_ms"] == 300
        assert "passphrase" not in data["network"]
