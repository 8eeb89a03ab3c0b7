"""Binary Canonical Serialization (BCS) primitives.

Values are little-endian, sequence lengths and enum tags are ULEB128 encoded
and every value has exactly one valid encoding. The reader rejects
non-canonical ULEB128 values so that decoding stays deterministic.
"""

from __future__ import annotations

from typing import Any, Callable, List, Sequence, TypeVar

from .errors import DecodeError
from .utils import SUI_ADDRESS_LENGTH, normalize_checked_address

T = TypeVar("T")

_MAX_ULEB_U32 = 2**32 - 1
_INT_WIDTHS = {"u8": 1, "u16": 2, "u32": 4, "u64": 8, "u128": 16, "u256": 32}


class BcsError(ValueError):
    """Raised when a value cannot be represented in BCS."""


def encode_uleb128(value: int) -> bytes:
    if value < 0:
        raise BcsError(f"ULEB128 values must be non-negative, got {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


class BcsWriter:
    """Accumulates BCS encoded values."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def to_bytes(self) -> bytes:
        return bytes(self._buffer)

    def write_uleb128(self, value: int) -> "BcsWriter":
        self._buffer += encode_uleb128(value)
        return self

    def write_int(self, kind: str, value: int) -> "BcsWriter":
        width = _INT_WIDTHS[kind]
        value = int(value)
        if value < 0 or value >= 1 << (width * 8):
            raise BcsError(f"{value} does not fit in {kind}")
        self._buffer += value.to_bytes(width, "little")
        return self

    def write_u8(self, value: int) -> "BcsWriter":
        return self.write_int("u8", value)

    def write_u16(self, value: int) -> "BcsWriter":
        return self.write_int("u16", value)

    def write_u32(self, value: int) -> "BcsWriter":
        return self.write_int("u32", value)

    def write_u64(self, value: int) -> "BcsWriter":
        return self.write_int("u64", value)

    def write_u128(self, value: int) -> "BcsWriter":
        return self.write_int("u128", value)

    def write_u256(self, value: int) -> "BcsWriter":
        return self.write_int("u256", value)

    def write_bool(self, value: bool) -> "BcsWriter":
        if not isinstance(value, bool):
            raise BcsError(f"Expected a bool, got {value!r}")
        self._buffer.append(1 if value else 0)
        return self

    def write_fixed_bytes(self, value: bytes) -> "BcsWriter":
        self._buffer += value
        return self

    def write_bytes(self, value: bytes) -> "BcsWriter":
        """Write a length-prefixed ``vector<u8>``."""

        self.write_uleb128(len(value))
        self._buffer += value
        return self

    def write_string(self, value: str) -> "BcsWriter":
        return self.write_bytes(value.encode("utf-8"))

    def write_address(self, value: str) -> "BcsWriter":
        address = normalize_checked_address(value)
        self._buffer += bytes.fromhex(address[2:])
        return self

    def write_vector(self, items: Sequence[T], write_item: Callable[["BcsWriter", T], Any]) -> "BcsWriter":
        self.write_uleb128(len(items))
        for item in items:
            write_item(self, item)
        return self

    def write_option(self, value: T | None, write_item: Callable[["BcsWriter", T], Any]) -> "BcsWriter":
        if value is None:
            self._buffer.append(0)
        else:
            self._buffer.append(1)
            write_item(self, value)
        return self


class BcsReader:
    """Reads BCS encoded values from a byte string."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def _take(self, count: int) -> bytes:
        if count > self.remaining:
            raise DecodeError(
                f"Unexpected end of data: wanted {count} bytes at offset {self._offset}"
            )
        chunk = self._data[self._offset : self._offset + count]
        self._offset += count
        return chunk

    def read_uleb128(self) -> int:
        value = 0
        shift = 0
        while True:
            byte = self._take(1)[0]
            value |= (byte & 0x7F) << shift
            if not byte & 0x80:
                if shift and byte == 0:
                    raise DecodeError("Non-canonical ULEB128 encoding")
                break
            shift += 7
            if shift > 35:
                raise DecodeError("ULEB128 value overflows u32")
        if value > _MAX_ULEB_U32:
            raise DecodeError("ULEB128 value overflows u32")
        return value

    def read_int(self, kind: str) -> int:
        return int.from_bytes(self._take(_INT_WIDTHS[kind]), "little")

    def read_u8(self) -> int:
        return self.read_int("u8")

    def read_u16(self) -> int:
        return self.read_int("u16")

    def read_u32(self) -> int:
        return self.read_int("u32")

    def read_u64(self) -> int:
        return self.read_int("u64")

    def read_u128(self) -> int:
        return self.read_int("u128")

    def read_u256(self) -> int:
        return self.read_int("u256")

    def read_bool(self) -> bool:
        byte = self._take(1)[0]
        if byte > 1:
            raise DecodeError(f"Invalid bool byte {byte}")
        return byte == 1

    def read_fixed_bytes(self, count: int) -> bytes:
        return self._take(count)

    def read_bytes(self) -> bytes:
        return self._take(self.read_uleb128())

    def read_string(self) -> str:
        raw = self.read_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("Invalid UTF-8 string") from exc

    def read_address(self) -> str:
        return "0x" + self._take(SUI_ADDRESS_LENGTH).hex()

    def read_vector(self, read_item: Callable[["BcsReader"], T]) -> List[T]:
        return [read_item(self) for _ in range(self.read_uleb128())]

    def read_option(self, read_item: Callable[["BcsReader"], T]) -> T | None:
        tag = self._take(1)[0]
        if tag == 0:
            return None
        if tag == 1:
            return read_item(self)
        raise DecodeError(f"Invalid option tag {tag}")

    def expect_end(self) -> None:
        if self.remaining:
            raise DecodeError(f"{self.remaining} trailing bytes after transaction data")
