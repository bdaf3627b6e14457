"""
StrKey - text encoding of Stellar addresses.

Layout: base32(version_byte || payload || crc16_xmodem_le(version_byte || payload))

Payloads:
- G (account), C (contract), L (liquidity pool): 32 bytes
- M (muxed account): 32-byte ed25519 key followed by a big-endian uint64 id
- B (claimable balance): 1 type byte followed by a 32-byte hash
"""

import base64
import binascii
import struct
from enum import Enum

from soroban_activity.exceptions import DecodeError


class StrKeyType(Enum):
    """Version bytes of the address kinds handled here."""
    ACCOUNT = 6 << 3             # G...
    CONTRACT = 2 << 3            # C...
    LIQUIDITY_POOL = 11 << 3     # L...
    MUXED_ACCOUNT = 12 << 3      # M...
    CLAIMABLE_BALANCE = 1 << 3   # B...


PAYLOAD_SIZE = 32

PAYLOAD_SIZES = {
    StrKeyType.ACCOUNT: PAYLOAD_SIZE,
    StrKeyType.CONTRACT: PAYLOAD_SIZE,
    StrKeyType.LIQUIDITY_POOL: PAYLOAD_SIZE,
    StrKeyType.MUXED_ACCOUNT: PAYLOAD_SIZE + 8,
    StrKeyType.CLAIMABLE_BALANCE: 1 + PAYLOAD_SIZE,
}

PREFIX_KINDS = {
    "G": StrKeyType.ACCOUNT,
    "C": StrKeyType.CONTRACT,
    "L": StrKeyType.LIQUIDITY_POOL,
    "M": StrKeyType.MUXED_ACCOUNT,
    "B": StrKeyType.CLAIMABLE_BALANCE,
}


def crc16_xmodem(data: bytes) -> int:
    crc = 0x0000
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return crc


def encode(kind: StrKeyType, payload: bytes) -> str:
    """Encode a payload as an address string of the given kind."""
    size = PAYLOAD_SIZES[kind]
    if len(payload) != size:
        raise ValueError(f"StrKey payload for {kind.name} must be {size} bytes, got {len(payload)}")
    body = bytes([kind.value]) + payload
    checksum = struct.pack("<H", crc16_xmodem(body))
    return base64.b32encode(body + checksum).decode("ascii").rstrip("=")


def decode(kind: StrKeyType, address: str) -> bytes:
    """Decode an address string, validating kind and checksum."""
    if not isinstance(address, str) or not address:
        raise DecodeError("Empty address")
    padded = address + "=" * (-len(address) % 8)
    try:
        raw = base64.b32decode(padded)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base32 address: {address}", original_error=e)

    if len(raw) != 1 + PAYLOAD_SIZES[kind] + 2:
        raise DecodeError(f"Invalid address length: {address}")
    if raw[0] != kind.value:
        raise DecodeError(f"Address {address} is not of kind {kind.name}")

    body, checksum = raw[:-2], raw[-2:]
    if struct.pack("<H", crc16_xmodem(body)) != checksum:
        raise DecodeError(f"Invalid address checksum: {address}")
    return body[1:]


def kind_of(address: str) -> StrKeyType:
    """Address kind from the leading character."""
    kind = PREFIX_KINDS.get(address[:1]) if isinstance(address, str) else None
    if kind is None:
        raise DecodeError(f"Unsupported address kind: {address}")
    return kind


def is_valid(kind: StrKeyType, address: str) -> bool:
    try:
        decode(kind, address)
        return True
    except DecodeError:
        return False


def encode_account(public_key: bytes) -> str:
    return encode(StrKeyType.ACCOUNT, public_key)


def encode_contract(contract_id: bytes) -> str:
    return encode(StrKeyType.CONTRACT, contract_id)


def encode_liquidity_pool(pool_id: bytes) -> str:
    return encode(StrKeyType.LIQUIDITY_POOL, pool_id)


def decode_account(address: str) -> bytes:
    return decode(StrKeyType.ACCOUNT, address)


def decode_contract(address: str) -> bytes:
    return decode(StrKeyType.CONTRACT, address)


def decode_liquidity_pool(address: str) -> bytes:
    return decode(StrKeyType.LIQUIDITY_POOL, address)


def encode_muxed_account(public_key: bytes, muxed_id: int) -> str:
    return encode(StrKeyType.MUXED_ACCOUNT, public_key + struct.pack(">Q", muxed_id))


def encode_claimable_balance(balance_id: bytes, id_type: int = 0) -> str:
    return encode(StrKeyType.CLAIMABLE_BALANCE, bytes([id_type]) + balance_id)
