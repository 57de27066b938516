"""
Byte cursor and writer for the Move binary format.

All fixed-width integers are little-endian. ULEB128 reads are canonical: a
trailing zero continuation group is rejected, as is any value above the
caller's bound.
"""

from __future__ import annotations

from typing import Optional

from .errors import BinaryError, StatusCode

U8_MAX = 0xFF
U32_MAX = 0xFFFF_FFFF
U64_MAX = 0xFFFF_FFFF_FFFF_FFFF


class Cursor:
    """
    Read-only view over a byte slice.

    `eof_status` is the status raised when a read runs past the end: the blob
    level cursor reports UNEXPECTED_EOF, while cursors scoped to one table
    report MALFORMED (the table directory already promised that many bytes).
    """

    __slots__ = ("_data", "_pos", "_end", "eof_status")

    def __init__(
        self,
        data: bytes,
        start: int = 0,
        end: Optional[int] = None,
        *,
        eof_status: StatusCode = StatusCode.UNEXPECTED_EOF,
    ) -> None:
        self._data = data
        self._pos = start
        self._end = len(data) if end is None else end
        self.eof_status = eof_status

    def position(self) -> int:
        return self._pos

    def remaining(self) -> int:
        return self._end - self._pos

    def at_end(self) -> bool:
        return self._pos >= self._end

    def read_bytes(self, n: int) -> bytes:
        if n < 0 or n > self._end - self._pos:
            raise BinaryError(self.eof_status, f"need {n} bytes at offset {self._pos}")
        out = self._data[self._pos : self._pos + n]
        self._pos += n
        return out

    def _read_int(self, width: int) -> int:
        return int.from_bytes(self.read_bytes(width), "little")

    def read_u8(self) -> int:
        if self._pos >= self._end:
            raise BinaryError(self.eof_status, f"need 1 byte at offset {self._pos}")
        b = self._data[self._pos]
        self._pos += 1
        return b

    def read_u16(self) -> int:
        return self._read_int(2)

    def read_u32(self) -> int:
        return self._read_int(4)

    def read_u64(self) -> int:
        return self._read_int(8)

    def read_u128(self) -> int:
        return self._read_int(16)

    def read_u256(self) -> int:
        return self._read_int(32)

    def read_uleb128(self, max_value: int = U64_MAX) -> int:
        value = 0
        shift = 0
        while shift < 64:
            byte = self.read_u8()
            digit = byte & 0x7F
            value |= digit << shift
            if not byte & 0x80:
                if shift > 0 and digit == 0:
                    raise BinaryError(StatusCode.BAD_ULEB, "non-canonical ULEB128")
                if value > max_value:
                    raise BinaryError(StatusCode.BAD_ULEB, f"ULEB128 value {value} exceeds {max_value}")
                return value
            shift += 7
        raise BinaryError(StatusCode.BAD_ULEB, "ULEB128 value too long")


class Writer:
    __slots__ = ("_buf",)

    def __init__(self) -> None:
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def write_bytes(self, data: bytes) -> None:
        self._buf.extend(data)

    def write_u8(self, v: int) -> None:
        self._buf.append(v & U8_MAX)

    def write_int(self, v: int, width: int) -> None:
        self._buf.extend(int(v).to_bytes(width, "little"))

    def write_u32(self, v: int) -> None:
        self.write_int(v, 4)

    def write_uleb128(self, v: int) -> None:
        if v < 0:
            raise ValueError("ULEB128 value must be non-negative")
        while True:
            byte = v & 0x7F
            v >>= 7
            if v:
                self._buf.append(byte | 0x80)
            else:
                self._buf.append(byte)
                return

    def getvalue(self) -> bytes:
        return bytes(self._buf)


__all__ = ["Cursor", "Writer", "U8_MAX", "U32_MAX", "U64_MAX"]
