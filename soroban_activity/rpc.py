"""
Soroban RPC Client - typed wrappers over the JSON-RPC transport.

Methods consumed:
- getLatestLedger
- getHealth
- getEvents
- getTransaction
- getLedgerEntries
- simulateTransaction (balance/metadata reads, passed through untouched)
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from soroban_activity.models import EventFilter, EventsPage, LedgerRange
from soroban_activity.transport import RpcTransport


logger = logging.getLogger(__name__)


# Ledgers close roughly every 5 seconds
SECONDS_PER_LEDGER = 5

MAX_EVENTS_LIMIT = 10_000


class SorobanRpcClient:
    """
    RPC operations for one endpoint.

    The transport only needs an async `call(method, params)` and a `name`,
    so tests can pass a fake.
    """

    def __init__(self, transport: RpcTransport) -> None:
        self._transport = transport

    @property
    def transport(self) -> RpcTransport:
        return self._transport

    @property
    def name(self) -> str:
        return getattr(self._transport, "name", "rpc")

    async def get_latest_ledger(self) -> int:
        """Latest ledger sequence known to the node."""
        result = await self._transport.call("getLatestLedger", {})
        return int(result["sequence"])

    async def get_health(self) -> dict[str, Any]:
        """Raw getHealth result (status, latestLedger, oldestLedger, ...)."""
        return await self._transport.call("getHealth", {})

    async def get_ledger_range(self, now: Optional[datetime] = None) -> LedgerRange:
        """Retention window with approximate dates."""
        result = await self.get_health()
        latest = int(result["latestLedger"])
        oldest = int(result["oldestLedger"])

        now = now or datetime.utcnow()
        span = timedelta(seconds=(latest - oldest) * SECONDS_PER_LEDGER)
        return LedgerRange(
            latest_ledger=latest,
            oldest_ledger=oldest,
            oldest_date=now - span,
            latest_date=now,
        )

    async def get_events(
        self,
        filters: list[EventFilter],
        start_ledger: Optional[int] = None,
        limit: int = 100,
        order: str = "desc",
        cursor: Optional[str] = None,
    ) -> EventsPage:
        """
        Query contract events.

        Args:
            filters: Up to the node's filter limit, OR'd together
            start_ledger: Ledger to start from (ignored when paging by cursor)
            limit: Page size
            order: "asc" or "desc"
            cursor: Pagination cursor from a previous page
        """
        if order not in ("asc", "desc"):
            raise ValueError(f"order must be 'asc' or 'desc', got {order!r}")
        limit = max(1, min(limit, MAX_EVENTS_LIMIT))

        pagination: dict[str, Any] = {"limit": limit, "order": order}
        params: dict[str, Any] = {
            "filters": [f.to_rpc() for f in filters],
            "pagination": pagination,
        }
        if cursor:
            pagination["cursor"] = cursor
        elif start_ledger is not None:
            params["startLedger"] = start_ledger

        result = await self._transport.call("getEvents", params)
        page = EventsPage.from_rpc(result or {})
        logger.debug(f"[{self.name}] getEvents returned {len(page.events)} events")
        return page

    async def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        """Raw getTransaction result; status NOT_FOUND when outside retention."""
        return await self._transport.call("getTransaction", {"hash": tx_hash})

    async def get_ledger_entries(self, keys: list[str]) -> dict[str, Any]:
        """Batch ledger-entry lookup by base64 LedgerKey."""
        return await self._transport.call("getLedgerEntries", {"keys": list(keys)})

    async def simulate_transaction(self, transaction_xdr: str) -> dict[str, Any]:
        """Simulate a base64 transaction envelope."""
        return await self._transport.call("simulateTransaction", {"transaction": transaction_xdr})

    async def close(self) -> None:
        close = getattr(self._transport, "close", None)
        if close is not None:
            await close()
