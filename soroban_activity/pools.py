"""
Liquidity Pool Decoder - on-demand constant-product pool lookups.

A pool is addressed by its L... strkey. The pool share token of a pool uses
the same 32 bytes as its contract id, which is how pool-share tokens are
detected from a C... id.
"""

import logging
from typing import Optional

from soroban_activity.codec import strkey
from soroban_activity.codec.ledger import (
    AssetDescriptor,
    asset_contract_id,
    decode_pool_entry,
    liquidity_pool_key,
)
from soroban_activity.exceptions import DecodeError, InvalidAddressError, SorobanActivityError
from soroban_activity.models import LiquidityPoolState, PoolAsset, TokenMetadata
from soroban_activity.rpc import SorobanRpcClient


logger = logging.getLogger(__name__)


POOL_SHARE_DECIMALS = 7


def pool_id_from_address(pool_address: str) -> bytes:
    """
    Raw pool id of an L... address.

    Raises:
        InvalidAddressError: If the address is not a valid liquidity pool address
    """
    if not pool_address or not pool_address.startswith("L"):
        raise InvalidAddressError(
            f"Invalid liquidity pool address - must start with L: {pool_address!r}",
            address=pool_address,
            expected_kind="liquidity_pool",
        )
    try:
        return strkey.decode_liquidity_pool(pool_address)
    except DecodeError as e:
        raise InvalidAddressError(
            f"Invalid liquidity pool address: {e.message}",
            address=pool_address,
            expected_kind="liquidity_pool",
        )


def _pool_asset(asset: AssetDescriptor, reserve: int, passphrase: str) -> PoolAsset:
    return PoolAsset(
        code=asset.code,
        issuer=asset.issuer,
        is_native=asset.is_native,
        contract_id=asset_contract_id(asset, passphrase),
        reserve=reserve,
    )


class LiquidityPoolDecoder:
    """Fetches and decodes pool ledger entries through one RPC client."""

    def __init__(self, rpc: SorobanRpcClient, passphrase: str) -> None:
        self._rpc = rpc
        self._passphrase = passphrase

    async def decode_pool(self, pool_address: str) -> Optional[LiquidityPoolState]:
        """
        Current state of a pool.

        Returns:
            LiquidityPoolState, or None when no such pool entry exists

        Raises:
            InvalidAddressError: For a non-L address
            DecodeError: If the returned entry is malformed
            TransportError, ProtocolError: From the RPC call
        """
        pool_id = pool_id_from_address(pool_address)
        result = await self._rpc.get_ledger_entries([liquidity_pool_key(pool_id)])

        entries = (result or {}).get("entries") or []
        if not entries:
            return None

        entry = decode_pool_entry(entries[0]["xdr"])
        return LiquidityPoolState(
            pool_id=pool_address,
            asset_a=_pool_asset(entry.asset_a, entry.reserve_a, self._passphrase),
            asset_b=_pool_asset(entry.asset_b, entry.reserve_b, self._passphrase),
            fee_bps=entry.fee_bps,
            total_pool_shares=entry.total_pool_shares,
            trustline_count=entry.trustline_count,
            latest_ledger=result.get("latestLedger"),
        )

    async def get_pool_share_metadata(self, contract_id: str) -> Optional[TokenMetadata]:
        """
        Metadata for a pool share token, or None if `contract_id` is not one.

        Lookup failures are treated as "not a pool share".
        """
        if not contract_id or not contract_id.startswith("C"):
            return None

        try:
            pool_address = strkey.encode_liquidity_pool(strkey.decode_contract(contract_id))
            pool = await self.decode_pool(pool_address)
        except SorobanActivityError as e:
            logger.debug(f"[pools] Pool share lookup failed for {contract_id}: {e}")
            return None

        if pool is None:
            return None

        symbol = f"{pool.asset_a.code}:{pool.asset_b.code}"
        return TokenMetadata(
            symbol=symbol,
            name=symbol,
            decimals=POOL_SHARE_DECIMALS,
            is_pool_share=True,
            pool_address=pool_address,
            asset_a=pool.asset_a.code,
            asset_b=pool.asset_b.code,
        )
