"""
move_api.abi
============

Interface summaries for compiled Move units.

  • types     — immutable summary records with `to_dict()`
  • extract   — `extract_abi(unit)` for modules and scripts
  • encoding  — deterministic JSON (msgspec) / canonical CBOR (cbor2) output
"""

from __future__ import annotations

from .encoding import *  # noqa: F401,F403
from .encoding import __all__ as _all_encoding
from .extract import *  # noqa: F401,F403
from .extract import __all__ as _all_extract
from .types import *  # noqa: F401,F403
from .types import __all__ as _all_types

__all__ = tuple(dict.fromkeys((*_all_types, *_all_extract, *_all_encoding)))
