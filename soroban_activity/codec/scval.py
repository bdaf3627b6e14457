"""
Contract Values (ScVal) - closed tagged-variant model of the on-chain value format.

Every topic and value field of a contract event is a base64-encoded ScVal.
decode_scval() turns one into a typed Python value; encode_scval() is the
inverse, used to build topic filters and test fixtures.

Supported variants:
- ScBool, ScVoid, ScError
- ScU32, ScI32, ScU64, ScI64, ScTimepoint, ScDuration
- ScU128, ScI128 (hi/lo halves), ScU256, ScI256 (four 64-bit words)
- ScBytes, ScString, ScSymbol
- ScVec, ScMap
- ScAddress (account, contract, muxed account, claimable balance, liquidity pool)
- ScLedgerKeyContractInstance, ScLedgerKeyNonce

Malformed input raises DecodeError. Callers that must never fail use
try_decode_scval(), which maps DecodeError to None.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from soroban_activity.codec import strkey
from soroban_activity.codec.xdr import XdrReader, XdrWriter
from soroban_activity.exceptions import DecodeError


logger = logging.getLogger(__name__)


MAX_DEPTH = 64
SYMBOL_MAX_LENGTH = 32

U64_MASK = (1 << 64) - 1


class ScValType(Enum):
    """ScVal discriminants as they appear on the wire."""
    BOOL = 0
    VOID = 1
    ERROR = 2
    U32 = 3
    I32 = 4
    U64 = 5
    I64 = 6
    TIMEPOINT = 7
    DURATION = 8
    U128 = 9
    I128 = 10
    U256 = 11
    I256 = 12
    BYTES = 13
    STRING = 14
    SYMBOL = 15
    VEC = 16
    MAP = 17
    ADDRESS = 18
    CONTRACT_INSTANCE = 19
    LEDGER_KEY_CONTRACT_INSTANCE = 20
    LEDGER_KEY_NONCE = 21


class AddressKind(Enum):
    """ScAddress discriminants."""
    ACCOUNT = 0
    CONTRACT = 1
    MUXED_ACCOUNT = 2
    CLAIMABLE_BALANCE = 3
    LIQUIDITY_POOL = 4


ADDRESS_STRKEY_TYPES = {
    AddressKind.ACCOUNT: strkey.StrKeyType.ACCOUNT,
    AddressKind.CONTRACT: strkey.StrKeyType.CONTRACT,
    AddressKind.MUXED_ACCOUNT: strkey.StrKeyType.MUXED_ACCOUNT,
    AddressKind.CLAIMABLE_BALANCE: strkey.StrKeyType.CLAIMABLE_BALANCE,
    AddressKind.LIQUIDITY_POOL: strkey.StrKeyType.LIQUIDITY_POOL,
}

STRKEY_ADDRESS_KINDS = {value: key for key, value in ADDRESS_STRKEY_TYPES.items()}


# ─────────────────────────────────────────────────────────────
# Variants
# ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ScBool:
    value: bool
    type = ScValType.BOOL


@dataclass(frozen=True)
class ScVoid:
    type = ScValType.VOID


@dataclass(frozen=True)
class ScError:
    error_type: int
    code: int
    type = ScValType.ERROR


@dataclass(frozen=True)
class ScU32:
    value: int
    type = ScValType.U32


@dataclass(frozen=True)
class ScI32:
    value: int
    type = ScValType.I32


@dataclass(frozen=True)
class ScU64:
    value: int
    type = ScValType.U64


@dataclass(frozen=True)
class ScI64:
    value: int
    type = ScValType.I64


@dataclass(frozen=True)
class ScTimepoint:
    value: int
    type = ScValType.TIMEPOINT


@dataclass(frozen=True)
class ScDuration:
    value: int
    type = ScValType.DURATION


@dataclass(frozen=True)
class ScU128:
    """Unsigned 128-bit integer as two unsigned 64-bit halves."""
    hi: int
    lo: int
    type = ScValType.U128

    @property
    def value(self) -> int:
        return (self.hi << 64) | self.lo

    @classmethod
    def from_int(cls, value: int) -> "ScU128":
        if value < 0 or value >> 128:
            raise ValueError(f"{value} out of range for u128")
        return cls(hi=value >> 64, lo=value & U64_MASK)


@dataclass(frozen=True)
class ScI128:
    """Signed 128-bit integer: hi is a signed 64-bit half, lo unsigned."""
    hi: int
    lo: int
    type = ScValType.I128

    @property
    def value(self) -> int:
        # hi is already sign-carrying, so the shift sign-extends
        return (self.hi << 64) | self.lo

    @classmethod
    def from_int(cls, value: int) -> "ScI128":
        if not -(1 << 127) <= value < (1 << 127):
            raise ValueError(f"{value} out of range for i128")
        return cls(hi=value >> 64, lo=value & U64_MASK)


@dataclass(frozen=True)
class ScU256:
    hi_hi: int
    hi_lo: int
    lo_hi: int
    lo_lo: int
    type = ScValType.U256

    @property
    def value(self) -> int:
        return (self.hi_hi << 192) | (self.hi_lo << 128) | (self.lo_hi << 64) | self.lo_lo


@dataclass(frozen=True)
class ScI256:
    hi_hi: int
    hi_lo: int
    lo_hi: int
    lo_lo: int
    type = ScValType.I256

    @property
    def value(self) -> int:
        return (self.hi_hi << 192) | (self.hi_lo << 128) | (self.lo_hi << 64) | self.lo_lo


@dataclass(frozen=True)
class ScBytes:
    value: bytes
    type = ScValType.BYTES


@dataclass(frozen=True)
class ScString:
    value: str
    type = ScValType.STRING


@dataclass(frozen=True)
class ScSymbol:
    value: str
    type = ScValType.SYMBOL


@dataclass(frozen=True)
class ScAddress:
    """
    An address value.

    `payload` is kept in strkey order, so a muxed account is key + id and a
    claimable balance is type byte + hash.
    """
    kind: AddressKind
    payload: bytes
    type = ScValType.ADDRESS

    def to_strkey(self) -> str:
        return strkey.encode(ADDRESS_STRKEY_TYPES[self.kind], self.payload)

    @classmethod
    def from_strkey(cls, address: str) -> "ScAddress":
        """Build from a G, C, M, B or L address string."""
        kind = strkey.kind_of(address)
        return cls(STRKEY_ADDRESS_KINDS[kind], strkey.decode(kind, address))

    def __str__(self) -> str:
        return self.to_strkey()


@dataclass(frozen=True)
class ScVec:
    items: tuple = ()
    type = ScValType.VEC


@dataclass(frozen=True)
class ScMap:
    entries: tuple = ()
    type = ScValType.MAP

    def get(self, key: str) -> Optional["ScVal"]:
        """Look up an entry by symbol or string key."""
        for entry_key, entry_value in self.entries:
            if isinstance(entry_key, (ScSymbol, ScString)) and entry_key.value == key:
                return entry_value
        return None


@dataclass(frozen=True)
class ScLedgerKeyContractInstance:
    type = ScValType.LEDGER_KEY_CONTRACT_INSTANCE


@dataclass(frozen=True)
class ScLedgerKeyNonce:
    nonce: int
    type = ScValType.LEDGER_KEY_NONCE


ScVal = Union[
    ScBool, ScVoid, ScError,
    ScU32, ScI32, ScU64, ScI64, ScTimepoint, ScDuration,
    ScU128, ScI128, ScU256, ScI256,
    ScBytes, ScString, ScSymbol,
    ScVec, ScMap, ScAddress,
    ScLedgerKeyContractInstance, ScLedgerKeyNonce,
]

INTEGER_TYPES = (
    ScU32, ScI32, ScU64, ScI64, ScTimepoint, ScDuration,
    ScU128, ScI128, ScU256, ScI256,
)


# ─────────────────────────────────────────────────────────────
# Decoding
# ─────────────────────────────────────────────────────────────


def read_account_id(reader: XdrReader) -> bytes:
    """Read a PublicKey union (only ed25519 keys exist)."""
    key_type = reader.read_int32()
    if key_type != 0:
        raise DecodeError(f"Unknown public key type {key_type}", offset=reader.offset)
    return reader.read_fixed_opaque(32)


def read_sc_address(reader: XdrReader) -> ScAddress:
    kind = reader.read_int32()
    if kind == AddressKind.ACCOUNT.value:
        return ScAddress(AddressKind.ACCOUNT, read_account_id(reader))
    if kind == AddressKind.CONTRACT.value:
        return ScAddress(AddressKind.CONTRACT, reader.read_fixed_opaque(32))
    if kind == AddressKind.MUXED_ACCOUNT.value:
        muxed_id = reader.read_uint64()
        public_key = reader.read_fixed_opaque(32)
        return ScAddress(AddressKind.MUXED_ACCOUNT, public_key + muxed_id.to_bytes(8, "big"))
    if kind == AddressKind.CLAIMABLE_BALANCE.value:
        id_type = reader.read_int32()
        if id_type != 0:
            raise DecodeError(f"Unknown claimable balance id type {id_type}", offset=reader.offset)
        return ScAddress(AddressKind.CLAIMABLE_BALANCE, bytes([id_type]) + reader.read_fixed_opaque(32))
    if kind == AddressKind.LIQUIDITY_POOL.value:
        return ScAddress(AddressKind.LIQUIDITY_POOL, reader.read_fixed_opaque(32))
    raise DecodeError(f"Unsupported address type {kind}", offset=reader.offset, type_name="ScAddress")


def read_scval(reader: XdrReader, depth: int = 0) -> ScVal:
    """Read one ScVal from the reader."""
    if depth > MAX_DEPTH:
        raise DecodeError("ScVal nesting too deep", offset=reader.offset)

    discriminant = reader.read_int32()
    try:
        sc_type = ScValType(discriminant)
    except ValueError:
        raise DecodeError(f"Unknown ScVal type {discriminant}", offset=reader.offset)

    if sc_type == ScValType.BOOL:
        return ScBool(reader.read_bool())
    if sc_type == ScValType.VOID:
        return ScVoid()
    if sc_type == ScValType.ERROR:
        error_type = reader.read_int32()
        # contract errors carry a uint32, the rest an int32 enum
        code = reader.read_uint32() if error_type == 0 else reader.read_int32()
        return ScError(error_type, code)
    if sc_type == ScValType.U32:
        return ScU32(reader.read_uint32())
    if sc_type == ScValType.I32:
        return ScI32(reader.read_int32())
    if sc_type == ScValType.U64:
        return ScU64(reader.read_uint64())
    if sc_type == ScValType.I64:
        return ScI64(reader.read_int64())
    if sc_type == ScValType.TIMEPOINT:
        return ScTimepoint(reader.read_uint64())
    if sc_type == ScValType.DURATION:
        return ScDuration(reader.read_uint64())
    if sc_type == ScValType.U128:
        return ScU128(hi=reader.read_uint64(), lo=reader.read_uint64())
    if sc_type == ScValType.I128:
        return ScI128(hi=reader.read_int64(), lo=reader.read_uint64())
    if sc_type == ScValType.U256:
        return ScU256(
            reader.read_uint64(), reader.read_uint64(),
            reader.read_uint64(), reader.read_uint64(),
        )
    if sc_type == ScValType.I256:
        return ScI256(
            reader.read_int64(), reader.read_uint64(),
            reader.read_uint64(), reader.read_uint64(),
        )
    if sc_type == ScValType.BYTES:
        return ScBytes(reader.read_var_opaque())
    if sc_type == ScValType.STRING:
        return ScString(reader.read_string())
    if sc_type == ScValType.SYMBOL:
        return ScSymbol(reader.read_string(SYMBOL_MAX_LENGTH))
    if sc_type == ScValType.VEC:
        items = reader.read_optional(
            lambda r: r.read_array(lambda rr: read_scval(rr, depth + 1))
        )
        return ScVec(tuple(items or ()))
    if sc_type == ScValType.MAP:
        entries = reader.read_optional(
            lambda r: r.read_array(
                lambda rr: (read_scval(rr, depth + 1), read_scval(rr, depth + 1))
            )
        )
        return ScMap(tuple(entries or ()))
    if sc_type == ScValType.ADDRESS:
        return read_sc_address(reader)
    if sc_type == ScValType.LEDGER_KEY_CONTRACT_INSTANCE:
        return ScLedgerKeyContractInstance()
    if sc_type == ScValType.LEDGER_KEY_NONCE:
        return ScLedgerKeyNonce(reader.read_int64())

    raise DecodeError(f"Unsupported ScVal type {sc_type.name}", offset=reader.offset)


def decode_scval(data: str) -> ScVal:
    """
    Decode a base64-encoded ScVal.

    Raises:
        DecodeError: On malformed, truncated or trailing input
    """
    reader = XdrReader.from_base64(data)
    value = read_scval(reader)
    reader.expect_end()
    return value


def try_decode_scval(data: Optional[str]) -> Optional[ScVal]:
    """Decode an ScVal, returning None for absent or undecodable input."""
    if not data:
        return None
    try:
        return decode_scval(data)
    except DecodeError as e:
        logger.debug(f"[codec] Skipping undecodable field: {e.message}")
        return None


# ─────────────────────────────────────────────────────────────
# Encoding
# ─────────────────────────────────────────────────────────────


def write_scval(writer: XdrWriter, value: ScVal) -> None:
    writer.write_int32(value.type.value)

    if isinstance(value, ScBool):
        writer.write_bool(value.value)
    elif isinstance(value, (ScVoid, ScLedgerKeyContractInstance)):
        pass
    elif isinstance(value, ScError):
        writer.write_int32(value.error_type)
        if value.error_type == 0:
            writer.write_uint32(value.code)
        else:
            writer.write_int32(value.code)
    elif isinstance(value, ScU32):
        writer.write_uint32(value.value)
    elif isinstance(value, ScI32):
        writer.write_int32(value.value)
    elif isinstance(value, (ScU64, ScTimepoint, ScDuration)):
        writer.write_uint64(value.value)
    elif isinstance(value, ScI64):
        writer.write_int64(value.value)
    elif isinstance(value, ScU128):
        writer.write_uint64(value.hi).write_uint64(value.lo)
    elif isinstance(value, ScI128):
        writer.write_int64(value.hi).write_uint64(value.lo)
    elif isinstance(value, ScU256):
        writer.write_uint64(value.hi_hi).write_uint64(value.hi_lo)
        writer.write_uint64(value.lo_hi).write_uint64(value.lo_lo)
    elif isinstance(value, ScI256):
        writer.write_int64(value.hi_hi).write_uint64(value.hi_lo)
        writer.write_uint64(value.lo_hi).write_uint64(value.lo_lo)
    elif isinstance(value, ScBytes):
        writer.write_var_opaque(value.value)
    elif isinstance(value, (ScString, ScSymbol)):
        writer.write_string(value.value)
    elif isinstance(value, ScVec):
        writer.write_bool(True)
        writer.write_uint32(len(value.items))
        for item in value.items:
            write_scval(writer, item)
    elif isinstance(value, ScMap):
        writer.write_bool(True)
        writer.write_uint32(len(value.entries))
        for key, val in value.entries:
            write_scval(writer, key)
            write_scval(writer, val)
    elif isinstance(value, ScAddress):
        writer.write_int32(value.kind.value)
        if value.kind == AddressKind.ACCOUNT:
            writer.write_int32(0)
            writer.write_fixed_opaque(value.payload)
        elif value.kind == AddressKind.MUXED_ACCOUNT:
            writer.write_uint64(int.from_bytes(value.payload[32:], "big"))
            writer.write_fixed_opaque(value.payload[:32])
        elif value.kind == AddressKind.CLAIMABLE_BALANCE:
            writer.write_int32(value.payload[0])
            writer.write_fixed_opaque(value.payload[1:])
        else:
            writer.write_fixed_opaque(value.payload)
    elif isinstance(value, ScLedgerKeyNonce):
        writer.write_int64(value.nonce)
    else:
        raise TypeError(f"Cannot encode {type(value).__name__}")


def encode_scval(value: ScVal) -> str:
    """Encode an ScVal to its base64 wire form."""
    writer = XdrWriter()
    write_scval(writer, value)
    return writer.to_base64()


# ─────────────────────────────────────────────────────────────
# Native conversion
# ─────────────────────────────────────────────────────────────


def to_native(value: ScVal) -> Any:
    """
    Convert an ScVal to plain Python values.

    Addresses become strkey strings, integers become int, vectors lists and
    maps dicts (unhashable keys are stringified).
    """
    if isinstance(value, (ScSymbol, ScString, ScBytes, ScBool)):
        return value.value
    if isinstance(value, INTEGER_TYPES):
        return value.value
    if isinstance(value, (ScVoid, ScLedgerKeyContractInstance)):
        return None
    if isinstance(value, ScAddress):
        return value.to_strkey()
    if isinstance(value, ScVec):
        return [to_native(item) for item in value.items]
    if isinstance(value, ScMap):
        result = {}
        for key, val in value.entries:
            native_key = to_native(key)
            if isinstance(native_key, list):
                native_key = tuple(native_key)
            elif isinstance(native_key, dict):
                native_key = str(native_key)
            result[native_key] = to_native(val)
        return result
    if isinstance(value, ScError):
        return {"error_type": value.error_type, "code": value.code}
    if isinstance(value, ScLedgerKeyNonce):
        return value.nonce
    raise TypeError(f"Unknown ScVal {type(value).__name__}")


def type_name(value: Optional[ScVal]) -> str:
    """Short variant name for display, e.g. 'symbol', 'i128'."""
    if value is None:
        return "none"
    return value.type.name.lower()
