"""
move_api.type_tag
=================

Canonical codec for fully-qualified type identifiers.

Three representations of the same value:
  • text    — `0x1::coin::Coin<0x1::aptos_coin::AptosCoin>`
  • binary  — canonical BCS bytes (see `bcs`)
  • value   — `Primitive | VectorTag | StructTag` (see `types`)

Round-trip contract, for every valid tag `t`:

    from_binary(to_binary(t)) == t
    parse_text(to_text(t)) == t

Text parsing tolerates whitespace and a single trailing comma in generic lists;
`to_text` always renders the canonical form. Tags nested deeper than
MAX_TYPE_TAG_DEPTH cannot be decoded, so the encoders refuse them too.
"""

from __future__ import annotations

from ..errors import MalformedInput
from .bcs import (
    struct_tag_from_bytes,
    struct_tag_to_bytes,
    type_tag_from_bytes,
    type_tag_to_bytes,
)
from .parser import MAX_TYPE_TAG_TEXT, parse_struct_tag, parse_type_tag
from .types import (
    MAX_TYPE_TAG_DEPTH,
    Primitive,
    StructTag,
    TypeTag,
    VectorTag,
    depth,
    render,
    struct_tag,
)


def parse_text(text: str) -> StructTag:
    """Parse canonical or whitespace-relaxed struct-tag text."""
    return parse_struct_tag(text)


def _check_depth(tag: TypeTag) -> None:
    nesting = depth(tag)
    if nesting > MAX_TYPE_TAG_DEPTH:
        raise MalformedInput(f"type tag nesting exceeds {MAX_TYPE_TAG_DEPTH}", depth=nesting)


def to_text(tag: TypeTag) -> str:
    _check_depth(tag)
    return render(tag)


def to_binary(tag: StructTag) -> bytes:
    if not isinstance(tag, StructTag):
        raise TypeError(f"expected StructTag, got {type(tag).__name__}")
    _check_depth(tag)
    return struct_tag_to_bytes(tag)


def from_binary(data: bytes) -> StructTag:
    return struct_tag_from_bytes(data)


def type_tag_to_binary(tag: TypeTag) -> bytes:
    _check_depth(tag)
    return type_tag_to_bytes(tag)


def type_tag_from_binary(data: bytes) -> TypeTag:
    return type_tag_from_bytes(data)


__all__ = [
    "MAX_TYPE_TAG_DEPTH",
    "MAX_TYPE_TAG_TEXT",
    "Primitive",
    "VectorTag",
    "StructTag",
    "TypeTag",
    "depth",
    "render",
    "struct_tag",
    "parse_text",
    "parse_type_tag",
    "to_text",
    "to_binary",
    "from_binary",
    "type_tag_to_binary",
    "type_tag_from_binary",
]
