"""
Ledger entry structures - liquidity pool keys/entries and asset descriptors.

Only the subset needed for constant-product pool lookups is modelled:

    LedgerKey(LIQUIDITY_POOL)  -> int32 type || PoolID
    LedgerEntryData(LIQUIDITY_POOL)
        -> PoolID || LiquidityPoolType
           || Asset assetA || Asset assetB || int32 fee
           || int64 reserveA || int64 reserveB
           || int64 totalPoolShares || int64 poolSharesTrustLineCount
"""

import hashlib
from dataclasses import dataclass
from typing import Optional

from soroban_activity.codec import strkey
from soroban_activity.codec.scval import read_account_id
from soroban_activity.codec.xdr import XdrReader, XdrWriter
from soroban_activity.exceptions import DecodeError


LEDGER_ENTRY_TYPE_LIQUIDITY_POOL = 5
LIQUIDITY_POOL_CONSTANT_PRODUCT = 0

ASSET_TYPE_NATIVE = 0
ASSET_TYPE_CREDIT_ALPHANUM4 = 1
ASSET_TYPE_CREDIT_ALPHANUM12 = 2

ENVELOPE_TYPE_CONTRACT_ID = 8
CONTRACT_ID_PREIMAGE_FROM_ASSET = 1


@dataclass(frozen=True)
class AssetDescriptor:
    """A classic asset: native, or a credit code plus issuer public key."""
    code: str
    issuer_key: Optional[bytes] = None

    @property
    def is_native(self) -> bool:
        return self.issuer_key is None

    @property
    def issuer(self) -> Optional[str]:
        if self.issuer_key is None:
            return None
        return strkey.encode_account(self.issuer_key)

    @classmethod
    def native(cls) -> "AssetDescriptor":
        return cls(code="XLM")

    @classmethod
    def credit(cls, code: str, issuer: str) -> "AssetDescriptor":
        if not 1 <= len(code) <= 12:
            raise ValueError(f"Asset code must be 1-12 characters: {code!r}")
        return cls(code=code, issuer_key=strkey.decode_account(issuer))


@dataclass(frozen=True)
class PoolEntry:
    """Decoded constant-product liquidity pool ledger entry."""
    pool_id: bytes
    asset_a: AssetDescriptor
    asset_b: AssetDescriptor
    fee_bps: int
    reserve_a: int
    reserve_b: int
    total_pool_shares: int
    trustline_count: int


def read_asset(reader: XdrReader) -> AssetDescriptor:
    asset_type = reader.read_int32()
    if asset_type == ASSET_TYPE_NATIVE:
        return AssetDescriptor.native()
    if asset_type in (ASSET_TYPE_CREDIT_ALPHANUM4, ASSET_TYPE_CREDIT_ALPHANUM12):
        size = 4 if asset_type == ASSET_TYPE_CREDIT_ALPHANUM4 else 12
        raw_code = reader.read_fixed_opaque(size)
        issuer = read_account_id(reader)
        code = raw_code.rstrip(b"\x00").decode("ascii", errors="replace")
        return AssetDescriptor(code=code, issuer_key=issuer)
    raise DecodeError(f"Unsupported asset type {asset_type}", offset=reader.offset, type_name="Asset")


def write_asset(writer: XdrWriter, asset: AssetDescriptor) -> None:
    if asset.is_native:
        writer.write_int32(ASSET_TYPE_NATIVE)
        return
    code = asset.code.encode("ascii")
    if len(code) <= 4:
        writer.write_int32(ASSET_TYPE_CREDIT_ALPHANUM4)
        writer.write_fixed_opaque(code.ljust(4, b"\x00"))
    else:
        writer.write_int32(ASSET_TYPE_CREDIT_ALPHANUM12)
        writer.write_fixed_opaque(code.ljust(12, b"\x00"))
    writer.write_int32(0)
    writer.write_fixed_opaque(asset.issuer_key)


def network_id(passphrase: str) -> bytes:
    return hashlib.sha256(passphrase.encode("utf-8")).digest()


def asset_contract_id(asset: AssetDescriptor, passphrase: str) -> str:
    """Derive the C... id of the asset's standard wrapping contract."""
    writer = XdrWriter()
    writer.write_int32(ENVELOPE_TYPE_CONTRACT_ID)
    writer.write_fixed_opaque(network_id(passphrase))
    writer.write_int32(CONTRACT_ID_PREIMAGE_FROM_ASSET)
    write_asset(writer, asset)
    return strkey.encode_contract(hashlib.sha256(writer.to_bytes()).digest())


def native_contract_id(passphrase: str) -> str:
    return asset_contract_id(AssetDescriptor.native(), passphrase)


def liquidity_pool_key(pool_id: bytes) -> str:
    """Base64 LedgerKey for a liquidity pool id."""
    if len(pool_id) != 32:
        raise ValueError(f"Pool id must be 32 bytes, got {len(pool_id)}")
    writer = XdrWriter()
    writer.write_int32(LEDGER_ENTRY_TYPE_LIQUIDITY_POOL)
    writer.write_fixed_opaque(pool_id)
    return writer.to_base64()


def decode_pool_entry(data: str) -> PoolEntry:
    """
    Decode a base64 LedgerEntryData holding a liquidity pool.

    Raises:
        DecodeError: If the entry is malformed or not a constant-product pool
    """
    reader = XdrReader.from_base64(data)

    entry_type = reader.read_int32()
    if entry_type != LEDGER_ENTRY_TYPE_LIQUIDITY_POOL:
        raise DecodeError(f"Ledger entry type {entry_type} is not a liquidity pool")

    pool_id = reader.read_fixed_opaque(32)
    pool_type = reader.read_int32()
    if pool_type != LIQUIDITY_POOL_CONSTANT_PRODUCT:
        raise DecodeError(f"Unsupported liquidity pool type {pool_type}")

    asset_a = read_asset(reader)
    asset_b = read_asset(reader)
    fee = reader.read_int32()

    entry = PoolEntry(
        pool_id=pool_id,
        asset_a=asset_a,
        asset_b=asset_b,
        fee_bps=fee,
        reserve_a=reader.read_int64(),
        reserve_b=reader.read_int64(),
        total_pool_shares=reader.read_int64(),
        trustline_count=reader.read_int64(),
    )
    reader.expect_end()
    return entry


def encode_pool_entry(entry: PoolEntry) -> str:
    """Inverse of decode_pool_entry()."""
    writer = XdrWriter()
    writer.write_int32(LEDGER_ENTRY_TYPE_LIQUIDITY_POOL)
    writer.write_fixed_opaque(entry.pool_id)
    writer.write_int32(LIQUIDITY_POOL_CONSTANT_PRODUCT)
    write_asset(writer, entry.asset_a)
    write_asset(writer, entry.asset_b)
    writer.write_int32(entry.fee_bps)
    writer.write_int64(entry.reserve_a)
    writer.write_int64(entry.reserve_b)
    writer.write_int64(entry.total_pool_shares)
    writer.write_int64(entry.trustline_count)
    return writer.to_base64()
