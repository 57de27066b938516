"""
In-memory type tags.

    TypeTag := Primitive | VectorTag | StructTag

`Primitive` covers the nine built-in scalar types. `VectorTag` wraps one element
tag; `StructTag` is a fully-qualified struct identifier with ordered type
arguments. All values are immutable and hashable, so equality is structural and
tags can be used as dict keys.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Tuple, Union

from ..identifiers import (
    ADDRESS_LENGTH,
    ModuleId,
    address_to_hex_literal,
    is_valid_identifier,
)

# Nesting bound shared by the text parser and the binary decoder.
MAX_TYPE_TAG_DEPTH = 64


class Primitive(Enum):
    BOOL = "bool"
    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    U128 = "u128"
    U256 = "u256"
    ADDRESS = "address"
    SIGNER = "signer"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class VectorTag:
    element: "TypeTag"

    def __str__(self) -> str:
        return f"vector<{render(self.element)}>"


@dataclass(frozen=True)
class StructTag:
    address: bytes
    module: str
    name: str
    type_args: Tuple["TypeTag", ...] = ()

    def __post_init__(self) -> None:
        if len(self.address) != ADDRESS_LENGTH:
            raise ValueError(f"address must be {ADDRESS_LENGTH} bytes, got {len(self.address)}")
        for ident in (self.module, self.name):
            if not is_valid_identifier(ident):
                raise ValueError(f"invalid identifier: {ident!r}")
        if not isinstance(self.type_args, tuple):
            object.__setattr__(self, "type_args", tuple(self.type_args))

    def module_id(self) -> ModuleId:
        return ModuleId(self.address, self.module)

    def __str__(self) -> str:
        head = f"{address_to_hex_literal(self.address)}::{self.module}::{self.name}"
        if not self.type_args:
            return head
        return head + "<" + ", ".join(render(t) for t in self.type_args) + ">"


TypeTag = Union[Primitive, VectorTag, StructTag]


def render(tag: TypeTag) -> str:
    """Canonical text of any type tag."""
    if isinstance(tag, Primitive):
        return tag.value
    if isinstance(tag, (VectorTag, StructTag)):
        return str(tag)
    raise TypeError(f"not a type tag: {type(tag).__name__}")


def depth(tag: TypeTag) -> int:
    """Nesting depth; a primitive or a non-generic struct has depth 1."""
    deepest = 0
    stack = [(tag, 1)]
    while stack:
        t, d = stack.pop()
        deepest = max(deepest, d)
        if isinstance(t, VectorTag):
            stack.append((t.element, d + 1))
        elif isinstance(t, StructTag):
            stack.extend((a, d + 1) for a in t.type_args)
    return deepest


def struct_tag(address: bytes, module: str, name: str, type_args: Iterable[TypeTag] = ()) -> StructTag:
    return StructTag(address, module, name, tuple(type_args))


__all__ = [
    "MAX_TYPE_TAG_DEPTH",
    "Primitive",
    "VectorTag",
    "StructTag",
    "TypeTag",
    "render",
    "depth",
    "struct_tag",
]
