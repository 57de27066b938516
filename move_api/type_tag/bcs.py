"""
Canonical binary (BCS) encoding for type tags.

Layout
------
StructTag:
  address    : 32 raw bytes
  module     : ULEB128 length + UTF-8 bytes
  name       : ULEB128 length + UTF-8 bytes
  type_args  : ULEB128 count + TypeTag*

TypeTag:
  ULEB128 variant index, then the variant payload:

    0 bool    1 u8      2 u64     3 u128    4 address  5 signer
    6 vector(TypeTag)   7 struct(StructTag)
    8 u16     9 u32     10 u256

ULEB128 values must be minimally encoded and fit in 32 bits. Decoding rejects
unknown variants, truncated data, trailing bytes, invalid UTF-8 and invalid
identifiers with CorruptEncoding.
"""

from __future__ import annotations

from typing import Dict, List

from ..errors import CorruptEncoding
from ..identifiers import ADDRESS_LENGTH, is_valid_identifier
from .types import MAX_TYPE_TAG_DEPTH, Primitive, StructTag, TypeTag, VectorTag

U32_MAX = 0xFFFF_FFFF

# Variant indices are wire-stable. Do not reorder.
_PRIMITIVE_VARIANT: Dict[Primitive, int] = {
    Primitive.BOOL: 0,
    Primitive.U8: 1,
    Primitive.U64: 2,
    Primitive.U128: 3,
    Primitive.ADDRESS: 4,
    Primitive.SIGNER: 5,
    Primitive.U16: 8,
    Primitive.U32: 9,
    Primitive.U256: 10,
}
_VARIANT_PRIMITIVE: Dict[int, Primitive] = {v: k for k, v in _PRIMITIVE_VARIANT.items()}
VARIANT_VECTOR = 6
VARIANT_STRUCT = 7


# ----------------------------------------------------------------------------
# Encoding
# ----------------------------------------------------------------------------


class BcsWriter:
    def __init__(self) -> None:
        self._buf = bytearray()

    def uleb128(self, value: int) -> None:
        if value < 0 or value > U32_MAX:
            raise ValueError(f"ULEB128 value out of range: {value}")
        while True:
            byte = value & 0x7F
            value >>= 7
            if value:
                self._buf.append(byte | 0x80)
            else:
                self._buf.append(byte)
                return

    def fixed(self, data: bytes) -> None:
        self._buf.extend(data)

    def string(self, s: str) -> None:
        raw = s.encode("utf-8")
        self.uleb128(len(raw))
        self._buf.extend(raw)

    def getvalue(self) -> bytes:
        return bytes(self._buf)


def _write_type_tag(w: BcsWriter, tag: TypeTag) -> None:
    if isinstance(tag, Primitive):
        w.uleb128(_PRIMITIVE_VARIANT[tag])
    elif isinstance(tag, VectorTag):
        w.uleb128(VARIANT_VECTOR)
        _write_type_tag(w, tag.element)
    elif isinstance(tag, StructTag):
        w.uleb128(VARIANT_STRUCT)
        _write_struct_tag(w, tag)
    else:
        raise TypeError(f"not a type tag: {type(tag).__name__}")


def _write_struct_tag(w: BcsWriter, tag: StructTag) -> None:
    w.fixed(tag.address)
    w.string(tag.module)
    w.string(tag.name)
    w.uleb128(len(tag.type_args))
    for arg in tag.type_args:
        _write_type_tag(w, arg)


def struct_tag_to_bytes(tag: StructTag) -> bytes:
    w = BcsWriter()
    _write_struct_tag(w, tag)
    return w.getvalue()


def type_tag_to_bytes(tag: TypeTag) -> bytes:
    w = BcsWriter()
    _write_type_tag(w, tag)
    return w.getvalue()


# ----------------------------------------------------------------------------
# Decoding
# ----------------------------------------------------------------------------


class BcsReader:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    @property
    def position(self) -> int:
        return self._pos

    def fixed(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise CorruptEncoding("unexpected end of input", offset=self._pos)
        out = self._data[self._pos:end]
        self._pos = end
        return out

    def uleb128(self) -> int:
        value = 0
        shift = 0
        start = self._pos
        while True:
            byte = self.fixed(1)[0]
            digit = byte & 0x7F
            value |= digit << shift
            if value > U32_MAX:
                raise CorruptEncoding("ULEB128 value exceeds u32", offset=start)
            if not byte & 0x80:
                if shift and not digit:
                    raise CorruptEncoding("non-canonical ULEB128", offset=start)
                return value
            shift += 7

    def string(self) -> str:
        size = self.uleb128()
        raw = self.fixed(size)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            raise CorruptEncoding("invalid UTF-8 in string", offset=self._pos - size) from None

    def identifier(self) -> str:
        ident = self.string()
        if not is_valid_identifier(ident):
            raise CorruptEncoding(f"invalid identifier {ident!r}")
        return ident

    def finish(self) -> None:
        if self._pos != len(self._data):
            raise CorruptEncoding(
                "trailing bytes after value", offset=self._pos, trailing=len(self._data) - self._pos
            )


def _read_type_tag(r: BcsReader, depth: int) -> TypeTag:
    if depth > MAX_TYPE_TAG_DEPTH:
        raise CorruptEncoding(f"type tag nesting exceeds {MAX_TYPE_TAG_DEPTH}")
    offset = r.position
    variant = r.uleb128()
    prim = _VARIANT_PRIMITIVE.get(variant)
    if prim is not None:
        return prim
    if variant == VARIANT_VECTOR:
        return VectorTag(_read_type_tag(r, depth + 1))
    if variant == VARIANT_STRUCT:
        return _read_struct_tag(r, depth)
    raise CorruptEncoding(f"unknown type tag variant {variant}", offset=offset)


def _read_struct_tag(r: BcsReader, depth: int) -> StructTag:
    address = r.fixed(ADDRESS_LENGTH)
    module = r.identifier()
    name = r.identifier()
    count = r.uleb128()
    args: List[TypeTag] = []
    for _ in range(count):
        # Each argument consumes at least one byte; the reader bounds the loop.
        args.append(_read_type_tag(r, depth + 1))
    return StructTag(address, module, name, tuple(args))


def struct_tag_from_bytes(data: bytes) -> StructTag:
    r = BcsReader(data)
    tag = _read_struct_tag(r, 1)
    r.finish()
    return tag


def type_tag_from_bytes(data: bytes) -> TypeTag:
    r = BcsReader(data)
    tag = _read_type_tag(r, 1)
    r.finish()
    return tag


__all__ = [
    "BcsWriter",
    "BcsReader",
    "struct_tag_to_bytes",
    "struct_tag_from_bytes",
    "type_tag_to_bytes",
    "type_tag_from_bytes",
]
