"""
move_api.binary
===============

Self-contained reader/writer for the Move binary format (versions 4..6).

This is the parsing capability the decoder sits on:
  • deserialize_module / deserialize_script — full decode under a profile
  • read_module_self_id — identity-only partial decode
  • check_bounds — cross-table index validation (run by the deserializers)
  • serialize_module / serialize_script — the inverse, for fixtures and tools

Failures raise `BinaryError` carrying a `StatusCode`; translating those into
the public error taxonomy is the decoder's job.
"""

from __future__ import annotations

from .bounds import check_bounds
from .deserializer import deserialize_module, deserialize_script, read_module_self_id
from .errors import BinaryError, StatusCode
from .file_format import *  # noqa: F401,F403
from .file_format import __all__ as _all_file_format
from .serializer import serialize_module, serialize_script

__all__ = tuple(
    dict.fromkeys(
        (
            *_all_file_format,
            "BinaryError",
            "StatusCode",
            "check_bounds",
            "deserialize_module",
            "deserialize_script",
            "read_module_self_id",
            "serialize_module",
            "serialize_script",
        )
    )
)
