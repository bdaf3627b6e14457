"""
Soroban Activity Package - Token activity ingestion and normalization.

Fetches token events (transfer, mint, burn, clawback, fee) from a Soroban
RPC node and, where available, a secondary pre-indexed source, and turns
them into canonical ActivityEvent records.

Features:
- XDR contract value (ScVal) decoding, including 128-bit integers
- Strict token-event classification (non-conforming events are dropped)
- JSON-RPC transport with timeout, bounded retry and jittered backoff
- Indexer-first fallback with processing-limit query narrowing
- Partial-failure results for parallel token + fee queries
- Liquidity pool ledger-entry decoding

Quick Start:
    from soroban_activity import ActivityService, load_config

    async def show_activity(address: str):
        async with ActivityService.from_config(load_config("testnet")) as service:
            result = await service.get_account_activity(address, limit=50)

            if result.partial_failure:
                print(f"Incomplete: {result.error}")
            for event in result.events:
                print(event.type.value, event.amount, event.direction)

Canonical Event (ActivityEvent):
- id, tx_hash, contract_id, ledger, timestamp
- type: transfer | mint | burn | clawback | fee
- from_address, to_address, direction, counterparty
- amount: non-negative integer in the token's smallest unit
- sac_symbol, sac_name: asset info from a SAC trailing topic
- is_refund: fee events only
"""

from soroban_activity.aggregator import merge_events
from soroban_activity.config import (
    MAINNET,
    TESTNET,
    NetworkConfig,
    RetryPolicy,
    ScanConfig,
    get_network_config,
    load_config,
)
from soroban_activity.exceptions import (
    ConfigurationError,
    DecodeError,
    IndexerError,
    InvalidAddressError,
    NonConformingEventError,
    PartialFailureError,
    ProcessingLimitError,
    ProtocolError,
    RateLimitError,
    RpcTimeoutError,
    SorobanActivityError,
    TransportError,
)
from soroban_activity.filters import (
    build_contract_filters,
    build_fee_event_filters,
    build_network_activity_filters,
    build_token_activity_filters,
    build_token_event_filters,
    build_transfers_only_filters,
)
from soroban_activity.indexer import IndexerClient
from soroban_activity.models import (
    ActivityEvent,
    ActivityResult,
    ActivitySource,
    ContractEvent,
    Direction,
    EventFilter,
    EventType,
    LedgerRange,
    LiquidityPoolState,
    PoolAsset,
    SourceHealth,
    SourceStatus,
    TokenMetadata,
    TransactionInfo,
)
from soroban_activity.parsers import parse_contract_event, parse_fee_event, parse_token_event
from soroban_activity.pools import LiquidityPoolDecoder
from soroban_activity.rpc import SorobanRpcClient
from soroban_activity.service import (
    ActivityService,
    FetchPlan,
    FetchState,
    SourceFallbackOrchestrator,
)
from soroban_activity.storage import InMemoryStore, MetadataCache
from soroban_activity.transport import RpcTransport, compute_backoff_delay
from soroban_activity.validation import extract_contract_ids, is_valid_address, is_valid_tx_hash


__version__ = "1.0.0"

__all__ = [
    # Service
    "ActivityService",
    "SourceFallbackOrchestrator",
    "FetchPlan",
    "FetchState",

    # Clients
    "RpcTransport",
    "SorobanRpcClient",
    "IndexerClient",
    "LiquidityPoolDecoder",
    "compute_backoff_delay",

    # Config
    "NetworkConfig",
    "RetryPolicy",
    "ScanConfig",
    "TESTNET",
    "MAINNET",
    "get_network_config",
    "load_config",

    # Models
    "ActivityEvent",
    "ActivityResult",
    "ActivitySource",
    "ContractEvent",
    "Direction",
    "EventFilter",
    "EventType",
    "LedgerRange",
    "LiquidityPoolState",
    "PoolAsset",
    "SourceHealth",
    "SourceStatus",
    "TokenMetadata",
    "TransactionInfo",

    # Filters
    "build_token_event_filters",
    "build_fee_event_filters",
    "build_token_activity_filters",
    "build_network_activity_filters",
    "build_transfers_only_filters",
    "build_contract_filters",

    # Parsing & aggregation
    "parse_token_event",
    "parse_fee_event",
    "parse_contract_event",
    "merge_events",

    # Storage & validation
    "MetadataCache",
    "InMemoryStore",
    "is_valid_address",
    "is_valid_tx_hash",
    "extract_contract_ids",

    # Exceptions
    "SorobanActivityError",
    "TransportError",
    "RpcTimeoutError",
    "RateLimitError",
    "ProtocolError",
    "ProcessingLimitError",
    "DecodeError",
    "NonConformingEventError",
    "PartialFailureError",
    "IndexerError",
    "ConfigurationError",
    "InvalidAddressError",
]
