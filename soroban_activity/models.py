"""
Activity Data Models - Canonical token activity records and query types.

ActivityEvent instances are transient: built per query response and never
persisted here. Only derived metadata (TokenMetadata) goes to the cache.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class EventType(Enum):
    """Token event taxonomy."""
    TRANSFER = "transfer"
    MINT = "mint"
    BURN = "burn"
    CLAWBACK = "clawback"
    FEE = "fee"


class Direction(Enum):
    """Flow direction relative to the target address."""
    SENT = "sent"
    RECEIVED = "received"


class SourceStatus(Enum):
    """Health status of an upstream source."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class ActivitySource(Enum):
    """Where a result set came from."""
    INDEXER = "indexer"
    RPC = "rpc"
    RPC_NARROWED = "rpc_narrowed"


@dataclass(frozen=True)
class ActivityEvent:
    """
    Normalized token activity record - STRICT schema.

    `amount` is always a non-negative magnitude. For fee events the sign of
    the underlying value is carried by `is_refund`.
    """
    id: str
    tx_hash: str
    contract_id: str
    ledger: int
    timestamp: Optional[str]
    type: EventType
    amount: int

    from_address: Optional[str] = None
    to_address: Optional[str] = None
    direction: Optional[Direction] = None
    counterparty: Optional[str] = None

    # SAC metadata from the trailing topic
    sac_symbol: Optional[str] = None
    sac_name: Optional[str] = None

    # Fee events only
    is_refund: Optional[bool] = None

    in_successful_contract_call: Optional[bool] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "tx_hash": self.tx_hash,
            "contract_id": self.contract_id,
            "ledger": self.ledger,
            "timestamp": self.timestamp,
            "type": self.type.value,
            "amount": str(self.amount),
            "from": self.from_address,
            "to": self.to_address,
            "direction": self.direction.value if self.direction else None,
            "counterparty": self.counterparty,
            "sac_symbol": self.sac_symbol,
            "sac_name": self.sac_name,
            "is_refund": self.is_refund,
            "in_successful_contract_call": self.in_successful_contract_call,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActivityEvent":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            tx_hash=data["tx_hash"],
            contract_id=data["contract_id"],
            ledger=int(data["ledger"]),
            timestamp=data.get("timestamp"),
            type=EventType(data["type"]),
            amount=int(data["amount"]),
            from_address=data.get("from"),
            to_address=data.get("to"),
            direction=Direction(data["direction"]) if data.get("direction") else None,
            counterparty=data.get("counterparty"),
            sac_symbol=data.get("sac_symbol"),
            sac_name=data.get("sac_name"),
            is_refund=data.get("is_refund"),
            in_successful_contract_call=data.get("in_successful_contract_call"),
        )


@dataclass(frozen=True)
class ContractEvent:
    """Generic contract event for invocation display."""
    id: str
    tx_hash: str
    contract_id: str
    ledger: int
    timestamp: Optional[str]
    type: str
    event_type: str
    topics: list[Any] = field(default_factory=list)
    value: Any = None
    in_successful_contract_call: Optional[bool] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "tx_hash": self.tx_hash,
            "contract_id": self.contract_id,
            "ledger": self.ledger,
            "timestamp": self.timestamp,
            "type": self.type,
            "event_type": self.event_type,
            "topics": self.topics,
            "value": self.value,
            "in_successful_contract_call": self.in_successful_contract_call,
        }


@dataclass(frozen=True)
class EventFilter:
    """
    One getEvents filter.

    `topics` holds OR'd patterns; each pattern is positional and its items
    are base64 ScVals, "*" (one position) or "**" (any trailing positions).
    """
    topics: tuple[tuple[str, ...], ...] = ()
    contract_ids: tuple[str, ...] = ()
    event_type: str = "contract"

    def to_rpc(self) -> dict[str, Any]:
        """Render as a getEvents filter object."""
        data: dict[str, Any] = {"type": self.event_type}
        if self.contract_ids:
            data["contractIds"] = list(self.contract_ids)
        if self.topics:
            data["topics"] = [list(pattern) for pattern in self.topics]
        return data


@dataclass
class EventsPage:
    """Raw getEvents response."""
    events: list[dict[str, Any]]
    latest_ledger: Optional[int] = None
    cursor: Optional[str] = None

    @classmethod
    def from_rpc(cls, result: dict[str, Any]) -> "EventsPage":
        return cls(
            events=list(result.get("events") or []),
            latest_ledger=result.get("latestLedger"),
            cursor=result.get("cursor"),
        )


@dataclass
class ActivityResult:
    """
    Result of an activity query.

    `partial_failure` is set when one of several parallel sub-queries failed
    and `events` holds only the surviving half.
    """
    events: list[ActivityEvent]
    source: ActivitySource = ActivitySource.RPC
    partial_failure: bool = False
    error: Optional[Exception] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "events": [e.to_dict() for e in self.events],
            "source": self.source.value,
            "partial_failure": self.partial_failure,
            "error": str(self.error) if self.error else None,
        }


@dataclass(frozen=True)
class PoolAsset:
    """One side of a liquidity pool."""
    code: str
    issuer: Optional[str]
    is_native: bool
    contract_id: str
    reserve: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "code": self.code,
            "issuer": self.issuer,
            "is_native": self.is_native,
            "contract_id": self.contract_id,
            "reserve": str(self.reserve),
        }


@dataclass(frozen=True)
class LiquidityPoolState:
    """Read-only snapshot of a constant-product pool. Re-fetched per request."""
    pool_id: str
    asset_a: PoolAsset
    asset_b: PoolAsset
    fee_bps: int
    total_pool_shares: int
    trustline_count: int
    latest_ledger: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "pool_id": self.pool_id,
            "asset_a": self.asset_a.to_dict(),
            "asset_b": self.asset_b.to_dict(),
            "fee_bps": self.fee_bps,
            "total_pool_shares": str(self.total_pool_shares),
            "trustline_count": str(self.trustline_count),
            "latest_ledger": self.latest_ledger,
        }


@dataclass
class TokenMetadata:
    """Derived token metadata, cacheable per (network, contract id)."""
    symbol: Optional[str]
    name: str = "Unknown"
    decimals: int = 7
    is_pool_share: bool = False
    pool_address: Optional[str] = None
    asset_a: Optional[str] = None
    asset_b: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data: dict[str, Any] = {
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
        }
        if self.is_pool_share:
            data.update({
                "is_pool_share": True,
                "pool_address": self.pool_address,
                "asset_a": self.asset_a,
                "asset_b": self.asset_b,
            })
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenMetadata":
        """Create from dictionary."""
        return cls(
            symbol=data.get("symbol"),
            name=data.get("name", "Unknown"),
            decimals=int(data.get("decimals", 7)),
            is_pool_share=bool(data.get("is_pool_share", False)),
            pool_address=data.get("pool_address"),
            asset_a=data.get("asset_a"),
            asset_b=data.get("asset_b"),
        )


@dataclass(frozen=True)
class LedgerRange:
    """Ledger retention window of an RPC node."""
    latest_ledger: int
    oldest_ledger: int
    oldest_date: datetime
    latest_date: datetime


@dataclass(frozen=True)
class TransactionInfo:
    """Transaction lookup result."""
    status: str
    hash: str
    ledger: Optional[int] = None
    created_at: Optional[str] = None
    application_order: Optional[int] = None
    fee_bump: Optional[bool] = None
    envelope_xdr: Optional[str] = None
    result_xdr: Optional[str] = None
    result_meta_xdr: Optional[str] = None

    @property
    def is_found(self) -> bool:
        return self.status != "NOT_FOUND"

    @classmethod
    def from_rpc(cls, tx_hash: str, result: dict[str, Any]) -> "TransactionInfo":
        status = result.get("status", "NOT_FOUND")
        if status == "NOT_FOUND":
            return cls(status=status, hash=tx_hash)
        return cls(
            status=status,
            hash=tx_hash,
            ledger=result.get("ledger"),
            created_at=result.get("createdAt"),
            application_order=result.get("applicationOrder"),
            fee_bump=result.get("feeBump"),
            envelope_xdr=result.get("envelopeXdr"),
            result_xdr=result.get("resultXdr"),
            result_meta_xdr=result.get("resultMetaXdr"),
        )


@dataclass
class SourceHealth:
    """Health status of an upstream source."""
    status: SourceStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0

    def is_healthy(self) -> bool:
        """Check if source is operational."""
        return self.status == SourceStatus.HEALTHY

    def is_usable(self) -> bool:
        """Check if source can still be used."""
        return self.status in (SourceStatus.HEALTHY, SourceStatus.DEGRADED, SourceStatus.UNKNOWN)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
        }
