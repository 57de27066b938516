"""
Text grammar for type tags.

    type      := "bool" | "u8" | "u16" | "u32" | "u64" | "u128" | "u256"
               | "address" | "signer"
               | "vector" "<" type ","? ">"
               | struct
    struct    := ADDRESS "::" IDENT "::" IDENT generics?
    generics  := "<" type ("," type)* ","? ">"

Whitespace is allowed between tokens. Addresses are `0x`-prefixed hex (1..64
digits). Nesting deeper than MAX_TYPE_TAG_DEPTH is rejected.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..errors import MalformedTypeTag
from ..identifiers import is_valid_identifier, parse_address
from .types import MAX_TYPE_TAG_DEPTH, Primitive, StructTag, TypeTag, VectorTag

MAX_TYPE_TAG_TEXT = 64 * 1024

_WS_RE = re.compile(r"\s*")
_TOKEN_RE = re.compile(
    r"(?P<sep>::)|(?P<punct>[<>,])|(?P<addr>0[xX][0-9A-Za-z]*)|(?P<ident>[A-Za-z_][A-Za-z0-9_]*)"
)

_PRIMITIVES = {p.value: p for p in Primitive}


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    offset: int


def _tokenize(text: str) -> List[_Token]:
    tokens: List[_Token] = []
    pos, end = 0, len(text)
    while True:
        pos = _WS_RE.match(text, pos).end()
        if pos >= end:
            return tokens
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise MalformedTypeTag(f"unexpected character {text[pos]!r}", offset=pos)
        kind = m.lastgroup or ""
        tokens.append(_Token(kind, m.group(kind), pos))
        pos = m.end()


class _Parser:
    def __init__(self, text: str) -> None:
        self.tokens = _tokenize(text)
        self.i = 0

    def peek(self) -> Optional[_Token]:
        return self.tokens[self.i] if self.i < len(self.tokens) else None

    def next(self, expected: str) -> _Token:
        tok = self.peek()
        if tok is None:
            raise MalformedTypeTag(f"unexpected end of input, expected {expected}")
        self.i += 1
        return tok

    def expect(self, text: str) -> _Token:
        tok = self.next(repr(text))
        if tok.text != text:
            raise MalformedTypeTag(f"expected {text!r}, found {tok.text!r}", offset=tok.offset)
        return tok

    def at_end(self) -> bool:
        return self.i >= len(self.tokens)

    def ident(self) -> str:
        tok = self.next("identifier")
        if tok.kind != "ident" or not is_valid_identifier(tok.text):
            raise MalformedTypeTag(f"invalid identifier {tok.text!r}", offset=tok.offset)
        return tok.text

    def type_tag(self, depth: int) -> TypeTag:
        if depth > MAX_TYPE_TAG_DEPTH:
            raise MalformedTypeTag(f"type tag nesting exceeds {MAX_TYPE_TAG_DEPTH}")
        tok = self.next("type")
        if tok.kind == "ident":
            if tok.text == "vector":
                self.expect("<")
                args = self.generic_list(depth)
                if len(args) != 1:
                    raise MalformedTypeTag("vector takes exactly one type argument", offset=tok.offset)
                return VectorTag(args[0])
            prim = _PRIMITIVES.get(tok.text)
            if prim is None:
                raise MalformedTypeTag(f"unknown type {tok.text!r}", offset=tok.offset)
            return prim
        if tok.kind == "addr":
            return self.struct_tail(tok, depth)
        raise MalformedTypeTag(f"unexpected token {tok.text!r}", offset=tok.offset)

    def struct_tail(self, addr: _Token, depth: int) -> StructTag:
        try:
            address = parse_address(addr.text)
        except ValueError as e:
            raise MalformedTypeTag(str(e), offset=addr.offset) from None
        self.expect("::")
        module = self.ident()
        self.expect("::")
        name = self.ident()
        type_args: Tuple[TypeTag, ...] = ()
        nxt = self.peek()
        if nxt is not None and nxt.text == "<":
            self.i += 1
            type_args = self.generic_list(depth)
        return StructTag(address, module, name, type_args)

    def generic_list(self, depth: int) -> Tuple[TypeTag, ...]:
        """Parse after an opening '<' up to and including the closing '>'."""
        args: List[TypeTag] = []
        while True:
            tok = self.peek()
            if tok is None:
                raise MalformedTypeTag("unterminated generic list")
            if tok.text == ">":
                if not args:
                    raise MalformedTypeTag("empty generic list", offset=tok.offset)
                self.i += 1
                return tuple(args)
            args.append(self.type_tag(depth + 1))
            tok = self.peek()
            if tok is None:
                raise MalformedTypeTag("unterminated generic list")
            if tok.text == ",":
                self.i += 1
            elif tok.text != ">":
                raise MalformedTypeTag(f"expected ',' or '>', found {tok.text!r}", offset=tok.offset)


def _parse(text: str) -> TypeTag:
    if not isinstance(text, str):
        raise MalformedTypeTag(f"type tag text must be str, got {type(text).__name__}")
    if len(text) > MAX_TYPE_TAG_TEXT:
        raise MalformedTypeTag("type tag text too long", length=len(text))
    parser = _Parser(text)
    tag = parser.type_tag(1)
    if not parser.at_end():
        tok = parser.peek()
        assert tok is not None
        raise MalformedTypeTag(f"trailing input {tok.text!r}", offset=tok.offset)
    return tag


def parse_type_tag(text: str) -> TypeTag:
    return _parse(text)


def parse_struct_tag(text: str) -> StructTag:
    tag = _parse(text)
    if not isinstance(tag, StructTag):
        raise MalformedTypeTag(f"expected a struct tag, got {text.strip()!r}")
    return tag


__all__ = ["MAX_TYPE_TAG_TEXT", "parse_type_tag", "parse_struct_tag"]
