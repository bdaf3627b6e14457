"""
Activity Service - source selection and high-level activity queries.

Each activity query runs through an explicit state machine:

    TRY_SECONDARY ──(non-empty)──────────────────────────> SUCCESS
         │ (empty or error)
         v
    TRY_PRIMARY ──(ok)───────────────────────────────────> SUCCESS
         │ (processing limit, narrowed query available)
         v
    TRY_NARROWED_PRIMARY ──(ok)──────────────────────────> SUCCESS
         │ (error)
         v
      FAILURE (error raised to the caller)

TRY_SECONDARY is only entered on networks with a trusted indexer.

Transaction lookups use a separate endpoint fallback: primary RPC, then
the public RPC on error or NOT_FOUND, since retention windows differ.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from soroban_activity.aggregator import merge_events
from soroban_activity.config import NetworkConfig, ScanConfig
from soroban_activity.exceptions import (
    PartialFailureError,
    ProcessingLimitError,
    SorobanActivityError,
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
    EventFilter,
    LedgerRange,
    LiquidityPoolState,
    TokenMetadata,
    TransactionInfo,
)
from soroban_activity.parsers import (
    parse_activity_event,
    parse_contract_event,
    parse_fee_event,
    parse_token_event,
)
from soroban_activity.pools import LiquidityPoolDecoder
from soroban_activity.rpc import SorobanRpcClient
from soroban_activity.storage import MetadataCache
from soroban_activity.transport import RpcTransport


logger = logging.getLogger(__name__)


DEFAULT_LIMIT = 200
DEFAULT_NETWORK_ACTIVITY_LIMIT = 50

# RPC over-fetch factors; raw pages include events that fail classification
RECENT_TRANSFERS_PAGE_FACTOR = 5
TOKEN_ACTIVITY_PAGE_FACTOR = 4


# ─────────────────────────────────────────────────────────────
# Fallback state machine
# ─────────────────────────────────────────────────────────────


class FetchState(Enum):
    """States of one activity request."""
    TRY_SECONDARY = "try_secondary"
    TRY_PRIMARY = "try_primary"
    TRY_NARROWED_PRIMARY = "try_narrowed_primary"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class FetchPlan:
    """
    The steps available to one logical request.

    `secondary` returns adapted events from the indexer. `primary` and
    `narrowed` return an ActivityResult built from RPC data.
    """
    name: str
    primary: Callable[[], Awaitable[ActivityResult]]
    secondary: Optional[Callable[[], Awaitable[list[ActivityEvent]]]] = None
    narrowed: Optional[Callable[[], Awaitable[ActivityResult]]] = None
    accept_empty_secondary: bool = False
    limit: Optional[int] = None


class SourceFallbackOrchestrator:
    """
    Runs a FetchPlan through the fallback states.

    Usage:
        orchestrator = SourceFallbackOrchestrator()
        result = await orchestrator.run(FetchPlan(name="recent", primary=...))
    """

    def __init__(self) -> None:
        self._on_fallback_callbacks: list[Callable[[str, FetchState, FetchState], None]] = []

    def on_fallback(self, callback: Callable[[str, FetchState, FetchState], None]) -> None:
        """Register callback for state fallbacks (plan name, from, to)."""
        self._on_fallback_callbacks.append(callback)

    def _notify_fallback(self, plan: FetchPlan, from_state: FetchState, to_state: FetchState) -> None:
        for callback in self._on_fallback_callbacks:
            try:
                callback(plan.name, from_state, to_state)
            except Exception as e:
                logger.error(f"Fallback callback error: {e}")

    async def run(self, plan: FetchPlan) -> ActivityResult:
        """
        Execute the plan.

        Returns:
            ActivityResult from the first step that succeeds

        Raises:
            SorobanActivityError: The primary (or narrowed) step's error
        """
        state = FetchState.TRY_SECONDARY if plan.secondary is not None else FetchState.TRY_PRIMARY
        result: Optional[ActivityResult] = None
        error: Optional[SorobanActivityError] = None

        while state not in (FetchState.SUCCESS, FetchState.FAILURE):
            logger.debug(f"[{plan.name}] state={state.value}")

            if state == FetchState.TRY_SECONDARY:
                try:
                    events = await plan.secondary()
                except Exception as e:
                    logger.warning(f"[{plan.name}] Indexer failed, falling back to RPC: {e}")
                    self._notify_fallback(plan, state, FetchState.TRY_PRIMARY)
                    state = FetchState.TRY_PRIMARY
                    continue

                if events or plan.accept_empty_secondary:
                    result = ActivityResult(
                        events=merge_events(events, limit=plan.limit),
                        source=ActivitySource.INDEXER,
                    )
                    state = FetchState.SUCCESS
                else:
                    logger.info(f"[{plan.name}] Indexer returned no events, falling back to RPC")
                    self._notify_fallback(plan, state, FetchState.TRY_PRIMARY)
                    state = FetchState.TRY_PRIMARY

            elif state == FetchState.TRY_PRIMARY:
                try:
                    result = await plan.primary()
                    state = FetchState.SUCCESS
                except ProcessingLimitError as e:
                    if plan.narrowed is None:
                        error = e
                        state = FetchState.FAILURE
                    else:
                        logger.warning(f"[{plan.name}] Query hit RPC processing limit, narrowing")
                        self._notify_fallback(plan, state, FetchState.TRY_NARROWED_PRIMARY)
                        state = FetchState.TRY_NARROWED_PRIMARY
                except SorobanActivityError as e:
                    error = e
                    state = FetchState.FAILURE

            elif state == FetchState.TRY_NARROWED_PRIMARY:
                try:
                    result = await plan.narrowed()
                    result.source = ActivitySource.RPC_NARROWED
                    state = FetchState.SUCCESS
                except SorobanActivityError as e:
                    error = e
                    state = FetchState.FAILURE

        if state == FetchState.FAILURE:
            logger.error(f"[{plan.name}] Failed: {error}")
            raise error

        return result


# ─────────────────────────────────────────────────────────────
# Service
# ─────────────────────────────────────────────────────────────


class ActivityService:
    """
    High-level token activity client for one network.

    Usage:
        async with ActivityService.from_config(load_config("mainnet")) as service:
            result = await service.get_account_activity("G...")
            for event in result.events:
                print(event.to_dict())
    """

    def __init__(
        self,
        network: NetworkConfig,
        rpc: SorobanRpcClient,
        public_rpc: Optional[SorobanRpcClient] = None,
        indexer: Optional[IndexerClient] = None,
        cache: Optional[MetadataCache] = None,
        orchestrator: Optional[SourceFallbackOrchestrator] = None,
    ) -> None:
        self._network = network
        self._rpc = rpc
        self._public_rpc = public_rpc
        self._indexer = indexer
        self._cache = cache if cache is not None else MetadataCache()
        self._orchestrator = orchestrator or SourceFallbackOrchestrator()
        self._pools = LiquidityPoolDecoder(rpc, network.passphrase)

    @classmethod
    def from_config(
        cls,
        config: ScanConfig,
        session: Optional[aiohttp.ClientSession] = None,
        cache: Optional[MetadataCache] = None,
    ) -> "ActivityService":
        """Build the service and its HTTP clients from a ScanConfig."""
        network = config.network

        rpc = SorobanRpcClient(RpcTransport(
            network.rpc_url,
            config.retry,
            session=session,
            name="rpc",
            user_agent=config.user_agent,
        ))

        public_rpc = None
        if network.public_rpc_url and network.public_rpc_url != network.rpc_url:
            public_rpc = SorobanRpcClient(RpcTransport(
                network.public_rpc_url,
                config.retry,
                session=session,
                name="public-rpc",
                user_agent=config.user_agent,
            ))

        indexer = None
        if network.indexer_enabled:
            indexer = IndexerClient(
                network.indexer_url,
                timeout_seconds=network.indexer_timeout_seconds,
                health_timeout_seconds=network.indexer_health_timeout_seconds,
                session=session,
                user_agent=config.user_agent,
            )

        return cls(network, rpc, public_rpc=public_rpc, indexer=indexer, cache=cache)

    @property
    def network(self) -> NetworkConfig:
        return self._network

    @property
    def cache(self) -> MetadataCache:
        return self._cache

    @property
    def orchestrator(self) -> SourceFallbackOrchestrator:
        return self._orchestrator

    # ─────────────────────────────────────────────────────────────
    # Internal helpers
    # ─────────────────────────────────────────────────────────────

    async def _fetch_raw_events(
        self,
        event_filter: EventFilter,
        page_size: int,
    ) -> list[dict[str, Any]]:
        start_ledger = await self._rpc.get_latest_ledger()
        page = await self._rpc.get_events([event_filter], start_ledger=start_ledger, limit=page_size, order="desc")
        return page.events

    def _remember_sac_metadata(self, events: list[ActivityEvent]) -> None:
        for event in events:
            if event.sac_symbol:
                self._cache.cache_sac_metadata(
                    event.contract_id,
                    event.sac_symbol,
                    event.sac_name,
                    self._network.name,
                )

    async def _run(self, plan: FetchPlan) -> ActivityResult:
        result = await self._orchestrator.run(plan)
        self._remember_sac_metadata(result.events)
        return result

    def _secondary(self, fetch: Callable[[], Awaitable[list[ActivityEvent]]]):
        return fetch if self._indexer is not None else None

    @staticmethod
    def _parse_token_events(
        raw_events: list[dict[str, Any]],
        target_address: Optional[str] = None,
    ) -> list[ActivityEvent]:
        parsed = (parse_token_event(event, target_address) for event in raw_events)
        return [event for event in parsed if event is not None]

    # ─────────────────────────────────────────────────────────────
    # Address activity
    # ─────────────────────────────────────────────────────────────

    async def get_recent_transfers(self, address: str, limit: int = DEFAULT_LIMIT) -> ActivityResult:
        """Token events (transfer/mint/burn/clawback) touching an address."""
        event_filter = build_token_event_filters(address)

        async def primary() -> ActivityResult:
            raw = await self._fetch_raw_events(event_filter, limit * RECENT_TRANSFERS_PAGE_FACTOR)
            return ActivityResult(merge_events(self._parse_token_events(raw, address), limit=limit))

        return await self._run(FetchPlan(
            name="recent-transfers",
            primary=primary,
            secondary=self._secondary(lambda: self._indexer.get_address_activity(address, limit)),
            limit=limit,
        ))

    async def get_account_activity(self, address: str, limit: int = DEFAULT_LIMIT) -> ActivityResult:
        """
        Token and fee events for an address.

        The token and fee queries run in parallel. If exactly one fails the
        other half is returned with partial_failure set; if both fail the
        token query's error is raised.
        """
        token_filter = build_token_event_filters(address)
        fee_filter = build_fee_event_filters(address, self._network.native_contract_id)

        async def primary() -> ActivityResult:
            start_ledger = await self._rpc.get_latest_ledger()
            token_result, fee_result = await asyncio.gather(
                self._rpc.get_events([token_filter], start_ledger=start_ledger, limit=limit, order="desc"),
                self._rpc.get_events([fee_filter], start_ledger=start_ledger, limit=limit, order="desc"),
                return_exceptions=True,
            )
            for outcome in (token_result, fee_result):
                if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                    raise outcome

            token_failed = isinstance(token_result, Exception)
            fee_failed = isinstance(fee_result, Exception)
            if token_failed and fee_failed:
                raise token_result

            raw_events = []
            if not token_failed:
                raw_events.extend(token_result.events)
            if not fee_failed:
                raw_events.extend(fee_result.events)

            parsed = (parse_activity_event(event, address) for event in raw_events)
            events = merge_events([e for e in parsed if e is not None], limit=limit)

            if token_failed or fee_failed:
                failed = "token" if token_failed else "fee"
                cause = token_result if token_failed else fee_result
                logger.warning(f"[account-activity] {failed} query failed, returning partial results: {cause}")
                return ActivityResult(
                    events,
                    partial_failure=True,
                    error=PartialFailureError(
                        f"{failed} events query failed",
                        failed_queries=[failed],
                        original_error=cause,
                    ),
                )
            return ActivityResult(events)

        return await self._run(FetchPlan(
            name="account-activity",
            primary=primary,
            secondary=self._secondary(lambda: self._indexer.get_address_activity_with_fees(address, limit)),
            accept_empty_secondary=True,
            limit=limit,
        ))

    async def get_fee_events(self, address: str, limit: int = DEFAULT_LIMIT) -> ActivityResult:
        """Fee charges and refunds for an address."""
        fee_filter = build_fee_event_filters(address, self._network.native_contract_id)

        async def primary() -> ActivityResult:
            raw = await self._fetch_raw_events(fee_filter, limit)
            return ActivityResult(merge_events([parse_fee_event(e, address) for e in raw], limit=limit))

        return await self._run(FetchPlan(
            name="fee-events",
            primary=primary,
            secondary=self._secondary(lambda: self._indexer.get_address_fee_events(address, limit)),
            limit=limit,
        ))

    # ─────────────────────────────────────────────────────────────
    # Token & network activity
    # ─────────────────────────────────────────────────────────────

    async def get_recent_token_activity(self, limit: int = DEFAULT_NETWORK_ACTIVITY_LIMIT) -> ActivityResult:
        """
        Network-wide token activity.

        Falls back to a transfers-only query when the combined query exceeds
        the node's processing limit.
        """
        async def primary() -> ActivityResult:
            raw = await self._fetch_raw_events(
                build_network_activity_filters(),
                limit * TOKEN_ACTIVITY_PAGE_FACTOR,
            )
            return ActivityResult(merge_events(self._parse_token_events(raw), limit=limit))

        async def narrowed() -> ActivityResult:
            raw = await self._fetch_raw_events(build_transfers_only_filters(), limit)
            return ActivityResult(merge_events(self._parse_token_events(raw), limit=limit))

        return await self._run(FetchPlan(
            name="network-activity",
            primary=primary,
            narrowed=narrowed,
            secondary=self._secondary(lambda: self._indexer.get_network_activity(limit)),
            limit=limit,
        ))

    async def get_token_transfers(self, contract_id: str, limit: int = DEFAULT_LIMIT) -> ActivityResult:
        """Token events emitted by one token contract."""
        event_filter = build_token_activity_filters(contract_id)

        async def primary() -> ActivityResult:
            raw = await self._fetch_raw_events(event_filter, limit * TOKEN_ACTIVITY_PAGE_FACTOR)
            return ActivityResult(merge_events(self._parse_token_events(raw), limit=limit))

        return await self._run(FetchPlan(
            name="token-transfers",
            primary=primary,
            secondary=self._secondary(lambda: self._indexer.get_contract_activity(contract_id, limit)),
            limit=limit,
        ))

    async def get_contract_invocations(self, contract_id: str, limit: int = DEFAULT_LIMIT) -> list[ContractEvent]:
        """All events of one contract, decoded generically."""
        raw = await self._fetch_raw_events(build_contract_filters(contract_id), limit)
        return [parse_contract_event(event) for event in raw]

    # ─────────────────────────────────────────────────────────────
    # Transactions & ledger
    # ─────────────────────────────────────────────────────────────

    async def get_transaction(self, tx_hash: str) -> TransactionInfo:
        """
        Look up a transaction.

        Falls back to the public RPC when the primary errors, and when it
        reports NOT_FOUND (the public node may retain more history).
        """
        used_public = False
        try:
            result = await self._rpc.get_transaction(tx_hash)
        except SorobanActivityError as e:
            if self._public_rpc is None:
                raise
            logger.warning(f"[rpc] getTransaction failed, trying public RPC: {e}")
            result = await self._public_rpc.get_transaction(tx_hash)
            used_public = True

        info = TransactionInfo.from_rpc(tx_hash, result or {})
        if info.is_found or used_public or self._public_rpc is None:
            return info

        try:
            public_info = TransactionInfo.from_rpc(tx_hash, await self._public_rpc.get_transaction(tx_hash) or {})
        except SorobanActivityError as e:
            logger.warning(f"[public-rpc] getTransaction fallback failed: {e}")
            return info

        return public_info if public_info.is_found else info

    async def get_latest_ledger(self) -> int:
        return await self._rpc.get_latest_ledger()

    async def get_ledger_range(self) -> LedgerRange:
        """Retention window of the primary RPC node."""
        return await self._rpc.get_ledger_range()

    # ─────────────────────────────────────────────────────────────
    # Liquidity pools & metadata
    # ─────────────────────────────────────────────────────────────

    async def get_liquidity_pool_data(self, pool_address: str) -> Optional[LiquidityPoolState]:
        """
        Pool state for an L... address, None if no such pool.

        Raises:
            InvalidAddressError: For a non-L address
        """
        return await self._pools.decode_pool(pool_address)

    async def get_pool_share_metadata(self, contract_id: str) -> Optional[TokenMetadata]:
        """Pool share metadata for a C... id, cached once found."""
        cached = self._cache.get_metadata(contract_id, self._network.name)
        if cached is not None and cached.is_pool_share:
            return cached

        metadata = await self._pools.get_pool_share_metadata(contract_id)
        if metadata is not None:
            self._cache.set_metadata(contract_id, metadata, self._network.name)
        return metadata

    def get_cached_metadata(self, contract_id: str) -> Optional[TokenMetadata]:
        return self._cache.get_metadata(contract_id, self._network.name)

    # ─────────────────────────────────────────────────────────────
    # Health & lifecycle
    # ─────────────────────────────────────────────────────────────

    async def check_indexer_health(self) -> bool:
        """Probe the indexer. False when none is configured."""
        if self._indexer is None:
            return False
        return await self._indexer.is_healthy()

    def get_source_health(self) -> dict[str, dict[str, Any]]:
        """Health of every upstream source, keyed by name."""
        health = {}
        for client in (self._rpc, self._public_rpc):
            if client is None:
                continue
            get_health = getattr(client.transport, "get_health", None)
            if get_health is not None:
                health[client.name] = get_health().to_dict()
        if self._indexer is not None:
            health[self._indexer.name] = self._indexer.get_health().to_dict()
        return health

    async def close(self) -> None:
        """Close all HTTP clients."""
        for client in (self._rpc, self._public_rpc, self._indexer):
            if client is None:
                continue
            try:
                await client.close()
            except Exception as e:
                logger.error(f"Error closing {client!r}: {e}")
        logger.info("Activity service closed")

    async def __aenter__(self) -> "ActivityService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
