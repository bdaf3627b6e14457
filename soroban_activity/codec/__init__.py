"""
Codec package - binary wire format decoding and encoding.
"""

from soroban_activity.codec.ledger import (
    AssetDescriptor,
    PoolEntry,
    asset_contract_id,
    decode_pool_entry,
    liquidity_pool_key,
    native_contract_id,
)
from soroban_activity.codec.scval import (
    AddressKind,
    ScAddress,
    ScI128,
    ScMap,
    ScString,
    ScSymbol,
    ScU128,
    ScVal,
    ScValType,
    decode_scval,
    encode_scval,
    to_native,
    try_decode_scval,
)


__all__ = [
    "AddressKind",
    "AssetDescriptor",
    "PoolEntry",
    "ScAddress",
    "ScI128",
    "ScMap",
    "ScString",
    "ScSymbol",
    "ScU128",
    "ScVal",
    "ScValType",
    "asset_contract_id",
    "decode_pool_entry",
    "decode_scval",
    "encode_scval",
    "liquidity_pool_key",
    "native_contract_id",
    "to_native",
    "try_decode_scval",
]
