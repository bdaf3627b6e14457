"""
XDR primitives - big-endian reader and writer for the wire format.

Every read is bounds-checked; running off the end of the buffer raises
DecodeError instead of struct.error/IndexError.
"""

import base64
import binascii
import struct
from typing import Callable, Optional, TypeVar

from soroban_activity.exceptions import DecodeError


T = TypeVar("T")

# Guard against absurd length prefixes in corrupt input
MAX_LENGTH = 1 << 24


def b64decode(data: str) -> bytes:
    """Decode a base64 wire string, raising DecodeError on malformed input."""
    if not isinstance(data, str) or not data:
        raise DecodeError("Empty or non-string base64 input")
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64: {e}", original_error=e)


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _padding(length: int) -> int:
    return (4 - length % 4) % 4


class XdrReader:
    """Sequential reader over an XDR byte buffer."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._offset = 0

    @classmethod
    def from_base64(cls, data: str) -> "XdrReader":
        return cls(b64decode(data))

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def _take(self, size: int, type_name: str) -> bytes:
        if size < 0 or self._offset + size > len(self._data):
            raise DecodeError(
                f"Truncated input reading {type_name}: need {size} bytes, "
                f"have {self.remaining}",
                offset=self._offset,
                type_name=type_name,
            )
        chunk = self._data[self._offset:self._offset + size]
        self._offset += size
        return chunk

    def read_int32(self) -> int:
        return struct.unpack(">i", self._take(4, "int32"))[0]

    def read_uint32(self) -> int:
        return struct.unpack(">I", self._take(4, "uint32"))[0]

    def read_int64(self) -> int:
        return struct.unpack(">q", self._take(8, "int64"))[0]

    def read_uint64(self) -> int:
        return struct.unpack(">Q", self._take(8, "uint64"))[0]

    def read_bool(self) -> bool:
        value = self.read_int32()
        if value not in (0, 1):
            raise DecodeError(f"Invalid bool value {value}", offset=self._offset, type_name="bool")
        return value == 1

    def read_fixed_opaque(self, size: int) -> bytes:
        data = self._take(size, f"opaque[{size}]")
        self._take(_padding(size), "padding")
        return data

    def read_var_opaque(self, max_size: Optional[int] = None) -> bytes:
        length = self.read_uint32()
        limit = max_size if max_size is not None else MAX_LENGTH
        if length > limit:
            raise DecodeError(
                f"Length {length} exceeds limit {limit}",
                offset=self._offset,
                type_name="opaque<>",
            )
        return self.read_fixed_opaque(length)

    def read_string(self, max_size: Optional[int] = None) -> str:
        raw = self.read_var_opaque(max_size)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("String is not valid UTF-8", offset=self._offset, original_error=e)

    def read_optional(self, reader: Callable[["XdrReader"], T]) -> Optional[T]:
        if self.read_bool():
            return reader(self)
        return None

    def read_array(self, reader: Callable[["XdrReader"], T]) -> list[T]:
        length = self.read_uint32()
        # Each element is at least 4 bytes on the wire
        if length > MAX_LENGTH or length * 4 > self.remaining:
            raise DecodeError(
                f"Array length {length} exceeds remaining input",
                offset=self._offset,
                type_name="array",
            )
        return [reader(self) for _ in range(length)]

    def expect_end(self) -> None:
        if self.remaining:
            raise DecodeError(
                f"{self.remaining} trailing bytes after value",
                offset=self._offset,
            )


class XdrWriter:
    """Accumulates XDR-encoded bytes."""

    def __init__(self) -> None:
        self._parts: list[bytes] = []

    def write_int32(self, value: int) -> "XdrWriter":
        self._parts.append(struct.pack(">i", value))
        return self

    def write_uint32(self, value: int) -> "XdrWriter":
        self._parts.append(struct.pack(">I", value))
        return self

    def write_int64(self, value: int) -> "XdrWriter":
        self._parts.append(struct.pack(">q", value))
        return self

    def write_uint64(self, value: int) -> "XdrWriter":
        self._parts.append(struct.pack(">Q", value))
        return self

    def write_bool(self, value: bool) -> "XdrWriter":
        return self.write_int32(1 if value else 0)

    def write_fixed_opaque(self, data: bytes) -> "XdrWriter":
        self._parts.append(data)
        self._parts.append(b"\x00" * _padding(len(data)))
        return self

    def write_var_opaque(self, data: bytes) -> "XdrWriter":
        self.write_uint32(len(data))
        return self.write_fixed_opaque(data)

    def write_string(self, value: str) -> "XdrWriter":
        return self.write_var_opaque(value.encode("utf-8"))

    def to_bytes(self) -> bytes:
        return b"".join(self._parts)

    def to_base64(self) -> str:
        return b64encode(self.to_bytes())
