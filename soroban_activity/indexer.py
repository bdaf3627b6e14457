"""
Indexer Client - secondary pre-indexed event source (REST).

The indexer serves token events that are already decoded, so results only
need adapting to ActivityEvent, not XDR decoding.

Endpoints:
- GET /events?type=&account=&contract_id=&limit=&order=&cursor=
- GET /health

Requests use short timeouts. The indexer is an optimization, never the only
path: every caller falls back to RPC when it fails.
"""

import asyncio
import logging
import time
from typing import Any, Optional

import aiohttp

from soroban_activity.base import BaseHttpSource
from soroban_activity.exceptions import IndexerError
from soroban_activity.models import ActivityEvent, Direction, EventType


logger = logging.getLogger(__name__)


# Types excluded from token-only views
NON_TOKEN_TYPES = frozenset({"fee", "set_authorized"})

DEFAULT_LIMIT = 200


def parse_asset_name(asset_name: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """
    (symbol, name) from an indexer asset_name.

    Format is "native" or "SYMBOL:ISSUER"; anything else is used as both.
    """
    if not asset_name:
        return None, None
    if asset_name == "native":
        return "XLM", "native"
    if ":" in asset_name:
        return asset_name.split(":", 1)[0], asset_name
    return asset_name, asset_name


def adapt_event(
    event: dict[str, Any],
    target_address: Optional[str] = None,
) -> Optional[ActivityEvent]:
    """
    Convert an indexer event to an ActivityEvent.

    Returns None for event types outside the token/fee taxonomy.
    """
    try:
        event_type = EventType(event.get("type"))
    except ValueError:
        logger.debug(f"[indexer] Skipping event {event.get('id')} of type {event.get('type')!r}")
        return None

    sac_symbol, sac_name = parse_asset_name(event.get("asset_name"))
    account = event.get("account")
    to_account = event.get("to_account")
    amount = int(event.get("amount") or 0)

    base = dict(
        id=str(event["id"]),
        tx_hash=event.get("tx_hash", ""),
        contract_id=event.get("contract_id", ""),
        ledger=int(event.get("ledger_sequence", 0)),
        timestamp=event.get("closed_at"),
        type=event_type,
        sac_symbol=sac_symbol,
        sac_name=sac_name,
        in_successful_contract_call=bool(event.get("successful") and event.get("in_successful_txn")),
    )

    if event_type == EventType.TRANSFER:
        direction = None
        counterparty = None
        if target_address is not None:
            direction = Direction.SENT if account == target_address else Direction.RECEIVED
            counterparty = to_account if direction == Direction.SENT else account
        return ActivityEvent(
            **base,
            amount=abs(amount),
            from_address=account,
            to_address=to_account,
            direction=direction,
            counterparty=counterparty,
        )

    if event_type == EventType.MINT:
        return ActivityEvent(
            **base,
            amount=abs(amount),
            from_address=account,
            to_address=to_account or account,
            direction=Direction.RECEIVED,
            counterparty=account,
        )

    if event_type == EventType.BURN:
        return ActivityEvent(
            **base,
            amount=abs(amount),
            from_address=account,
            direction=Direction.SENT,
        )

    if event_type == EventType.CLAWBACK:
        # account is the admin, to_account the holder clawed back from
        return ActivityEvent(
            **base,
            amount=abs(amount),
            from_address=to_account or account,
            to_address=account,
            direction=Direction.SENT,
            counterparty=account,
        )

    is_refund = amount < 0
    return ActivityEvent(
        **base,
        amount=abs(amount),
        from_address=account,
        direction=Direction.RECEIVED if is_refund else Direction.SENT,
        is_refund=is_refund,
    )


def _adapt_all(
    events: list[dict[str, Any]],
    target_address: Optional[str] = None,
    exclude: frozenset = frozenset(),
    only: Optional[str] = None,
) -> list[ActivityEvent]:
    adapted = []
    for event in events:
        event_type = event.get("type")
        if event_type in exclude or (only is not None and event_type != only):
            continue
        activity = adapt_event(event, target_address)
        if activity is not None:
            adapted.append(activity)
    return adapted


class IndexerClient(BaseHttpSource):
    """
    Client for the secondary event indexer.

    Usage:
        async with IndexerClient("https://indexer.example") as indexer:
            events = await indexer.get_address_activity("G...", limit=50)
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 1.0,
        health_timeout_seconds: float = 3.0,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: str = "SorobanActivity/1.0",
    ) -> None:
        super().__init__(base_url, session=session, user_agent=user_agent)
        self._timeout_seconds = timeout_seconds
        self._health_timeout_seconds = health_timeout_seconds

    @property
    def name(self) -> str:
        return "indexer"

    # ─────────────────────────────────────────────────────────────
    # Raw API
    # ─────────────────────────────────────────────────────────────

    async def fetch_events(
        self,
        type: Optional[str] = None,
        account: Optional[str] = None,
        contract_id: Optional[str] = None,
        limit: Optional[int] = None,
        order: Optional[str] = None,
        cursor: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        GET /events.

        Returns:
            {"events": [...], "cursor": ...}

        Raises:
            IndexerError: On timeout, connection failure, HTTP error or bad JSON
        """
        params = {
            key: str(value)
            for key, value in (
                ("type", type),
                ("account", account),
                ("contract_id", contract_id),
                ("limit", limit),
                ("order", order),
                ("cursor", cursor),
            )
            if value
        }
        url = f"{self._base_url}/events"
        session = await self._get_session()

        start_time = time.time()
        try:
            async with session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self._timeout_seconds),
            ) as response:
                if response.status >= 400:
                    raise IndexerError(
                        message=f"Indexer request failed: HTTP {response.status}",
                        status_code=response.status,
                        url=url,
                    )
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise IndexerError("Indexer returned invalid JSON", url=url, original_error=e)

        except asyncio.TimeoutError as e:
            error = IndexerError(
                f"Indexer request timed out after {self._timeout_seconds}s",
                url=url,
                original_error=e,
            )
            self._on_error(error)
            raise error
        except aiohttp.ClientError as e:
            error = IndexerError(f"Connection error: {e}", url=url, original_error=e)
            self._on_error(error)
            raise error
        except IndexerError as e:
            self._on_error(e)
            raise

        if not isinstance(data, dict):
            error = IndexerError("Unexpected indexer response shape", url=url)
            self._on_error(error)
            raise error

        self._on_success((time.time() - start_time) * 1000)
        return data

    async def is_healthy(self) -> bool:
        """Probe GET /health. Never raises."""
        url = f"{self._base_url}/health"
        session = await self._get_session()

        start_time = time.time()
        try:
            async with session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=self._health_timeout_seconds),
            ) as response:
                status = response.status
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            self._on_error(IndexerError(f"Health check failed: {e}", url=url, original_error=e))
            return False

        if status < 400:
            self._on_success((time.time() - start_time) * 1000)
            return True
        self._on_error(IndexerError(f"Health check failed: HTTP {status}", status_code=status, url=url))
        return False

    # ─────────────────────────────────────────────────────────────
    # Adapted views
    # ─────────────────────────────────────────────────────────────

    async def get_address_activity(self, address: str, limit: int = DEFAULT_LIMIT) -> list[ActivityEvent]:
        """Token events for an address, fees excluded."""
        result = await self.fetch_events(account=address, limit=limit, order="desc")
        return _adapt_all(result.get("events") or [], address, exclude=NON_TOKEN_TYPES)

    async def get_address_activity_with_fees(
        self,
        address: str,
        limit: int = DEFAULT_LIMIT,
    ) -> list[ActivityEvent]:
        """Token and fee events for an address."""
        result = await self.fetch_events(account=address, limit=limit, order="desc")
        return _adapt_all(result.get("events") or [], address, exclude=frozenset({"set_authorized"}))

    async def get_address_fee_events(self, address: str, limit: int = DEFAULT_LIMIT) -> list[ActivityEvent]:
        result = await self.fetch_events(account=address, limit=limit, order="desc")
        return _adapt_all(result.get("events") or [], address, only="fee")

    async def get_network_activity(self, limit: int = DEFAULT_LIMIT) -> list[ActivityEvent]:
        result = await self.fetch_events(limit=limit, order="desc")
        return _adapt_all(result.get("events") or [], exclude=NON_TOKEN_TYPES)

    async def get_contract_activity(self, contract_id: str, limit: int = DEFAULT_LIMIT) -> list[ActivityEvent]:
        result = await self.fetch_events(contract_id=contract_id, limit=limit, order="desc")
        return _adapt_all(result.get("events") or [], exclude=NON_TOKEN_TYPES)
