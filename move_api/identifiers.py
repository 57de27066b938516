"""
move_api.identifiers — account addresses, identifier rules and module ids.

These are the leaf primitives shared by the type-tag codec and the binary
format parser. Addresses are fixed 32-byte values; the canonical text form is a
`0x` literal with leading zeros trimmed (`0x1`, `0x0`, `0xcafe`).

Identifier grammar (Move):
  - starts with an ASCII letter followed by letters, digits or `_`, or
  - starts with `_` followed by at least one letter, digit or `_`.
Binary identifier tables may also hold the pseudo-identifier `<SELF>` (the
name scripts give their own synthetic module); text type tags never do.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

ADDRESS_LENGTH = 32

_IDENT_RE = re.compile(r"^(?:[A-Za-z][A-Za-z0-9_]*|_[A-Za-z0-9_]+)$")
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")

SELF_IDENTIFIER = "<SELF>"


def is_valid_identifier(s: str) -> bool:
    return bool(_IDENT_RE.match(s))


def address_to_hex_literal(address: bytes) -> str:
    """Short canonical form: '0x' + hex without leading zeros ('0x0' for zero)."""
    stripped = address.hex().lstrip("0")
    return "0x" + (stripped or "0")


def parse_address(text: str) -> bytes:
    """
    Parse a `0x`-prefixed hex address of 1..64 digits, left-padding with zeros.

    Raises ValueError on anything else; callers translate into their own
    error class.
    """
    if not text.startswith(("0x", "0X")):
        raise ValueError(f"address must start with 0x: {text!r}")
    digits = text[2:]
    if not digits or not _HEX_RE.match(digits):
        raise ValueError(f"invalid hex address: {text!r}")
    if len(digits) > ADDRESS_LENGTH * 2:
        raise ValueError(f"address longer than {ADDRESS_LENGTH} bytes: {text!r}")
    return bytes.fromhex(digits.rjust(ADDRESS_LENGTH * 2, "0"))


def address_from_int(value: int) -> bytes:
    return int(value).to_bytes(ADDRESS_LENGTH, "big")


@dataclass(frozen=True, order=True)
class ModuleId:
    """Fully-qualified module identity: owning address + module name."""

    address: bytes
    name: str

    def __post_init__(self) -> None:
        if len(self.address) != ADDRESS_LENGTH:
            raise ValueError(f"address must be {ADDRESS_LENGTH} bytes, got {len(self.address)}")

    @property
    def short_address(self) -> str:
        return address_to_hex_literal(self.address)

    def to_dict(self) -> dict:
        return {"address": self.short_address, "name": self.name}

    def __str__(self) -> str:
        return f"{self.short_address}::{self.name}"


__all__ = [
    "ADDRESS_LENGTH",
    "SELF_IDENTIFIER",
    "ModuleId",
    "is_valid_identifier",
    "address_to_hex_literal",
    "address_from_int",
    "parse_address",
]
