"""
Status codes raised by the binary-format parser.

The parser never raises move_api.errors types directly; `move_api.decoder`
classifies a `BinaryError` by its status into the public taxonomy.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class StatusCode(str, Enum):
    UNEXPECTED_EOF = "UNEXPECTED_EOF"
    BAD_MAGIC = "BAD_MAGIC"
    UNKNOWN_VERSION = "UNKNOWN_VERSION"
    MALFORMED = "MALFORMED"
    BAD_HEADER_TABLE = "BAD_HEADER_TABLE"
    UNKNOWN_TABLE_TYPE = "UNKNOWN_TABLE_TYPE"
    DUPLICATE_TABLE = "DUPLICATE_TABLE"
    UNKNOWN_SERIALIZED_TYPE = "UNKNOWN_SERIALIZED_TYPE"
    UNKNOWN_OPCODE = "UNKNOWN_OPCODE"
    UNKNOWN_ABILITY = "UNKNOWN_ABILITY"
    UNKNOWN_NATIVE_STRUCT_FLAG = "UNKNOWN_NATIVE_STRUCT_FLAG"
    UNKNOWN_VISIBILITY = "UNKNOWN_VISIBILITY"
    INVALID_FLAG_BITS = "INVALID_FLAG_BITS"
    BAD_ULEB = "BAD_ULEB"
    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    TRAILING_BYTES = "TRAILING_BYTES"
    INDEX_OUT_OF_BOUNDS = "INDEX_OUT_OF_BOUNDS"
    NUMBER_OF_TYPE_ARGUMENTS_MISMATCH = "NUMBER_OF_TYPE_ARGUMENTS_MISMATCH"
    INVALID_MODULE_HANDLE = "INVALID_MODULE_HANDLE"


class BinaryError(Exception):
    """A single parser failure: a status plus a short human hint."""

    def __init__(self, status: StatusCode, message: Optional[str] = None) -> None:
        self.status = status
        self.message = message or status.value.lower().replace("_", " ")
        super().__init__(f"{status.value}: {self.message}")


__all__ = ["StatusCode", "BinaryError"]
