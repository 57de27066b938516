"""
move_api — read-only Move bytecode services.

A small, stable façade over the internal decoder, ABI extractor, bundle
sorter and type-tag codec:

- decode(blob, profile=None, kind="module") -> CompiledModule | CompiledScript
    Deserialize and bounds-check a compiled unit (versions 4..6).
- extract_abi(unit) -> MoveModuleAbi | MoveFunctionAbi
    Exposed functions and structs of a module, or the `main` of a script.
- read_identity(blob, profile=None) -> ModuleId
    A module's (address, name) without a full decode.
- sort_bundle(blobs, profile=None) -> SortedBundle
    Order modules so each follows its in-bundle dependencies.
- parse_text(text) / to_text(tag) / to_binary(tag) / from_binary(data)
    Canonical struct tag text and BCS codec.

Submodules are imported on first use so `import move_api` stays cheap for
callers that only need one service.
"""

from __future__ import annotations

import importlib
from typing import Any, Optional, Sequence

from .version import __version__


def version() -> str:
    """Return the move_api version string."""
    return __version__


def decode(blob: bytes, profile: Optional[Any] = None, kind: str = "module") -> Any:
    decoder = importlib.import_module(".decoder", __name__)
    return decoder.decode(blob, profile, decoder.UnitKind(kind))


def extract_abi(unit: Any) -> Any:
    abi = importlib.import_module(".abi", __name__)
    return abi.extract_abi(unit)


def read_identity(blob: bytes, profile: Optional[Any] = None) -> Any:
    identity = importlib.import_module(".identity", __name__)
    return identity.read_identity(blob, profile)


def sort_bundle(blobs: Sequence[bytes], profile: Optional[Any] = None) -> Any:
    """
    Decode every blob and return them dependency-ordered.

    Raises CyclicModuleDependency / DuplicateModuleInBundle, or the decode
    error of the first bad blob (with `blob_index` in its data).
    """
    bundle = importlib.import_module(".bundle", __name__)
    return bundle.sort_bundle(blobs, profile)


def parse_text(text: str) -> Any:
    type_tag = importlib.import_module(".type_tag", __name__)
    return type_tag.parse_text(text)


def to_text(tag: Any) -> str:
    type_tag = importlib.import_module(".type_tag", __name__)
    return type_tag.to_text(tag)


def to_binary(tag: Any) -> bytes:
    type_tag = importlib.import_module(".type_tag", __name__)
    return type_tag.to_binary(tag)


def from_binary(data: bytes) -> Any:
    type_tag = importlib.import_module(".type_tag", __name__)
    return type_tag.from_binary(data)


__all__ = [
    "__version__",
    "version",
    "decode",
    "extract_abi",
    "read_identity",
    "sort_bundle",
    "parse_text",
    "to_text",
    "to_binary",
    "from_binary",
]
