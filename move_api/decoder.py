"""
move_api.decoder — bytecode blobs → compiled units.

Thin adapter over `move_api.binary` that owns two policies:

* version selection: the profile decides which binary-format versions are
  accepted; one shared `DEFAULT_PROFILE` is used when the caller passes none.
* error classification: parser statuses are folded into the public taxonomy

    UNEXPECTED_EOF   → TruncatedInput
    UNKNOWN_VERSION  → UnsupportedVersion
    anything else    → StructuralViolation (status name kept in `data`)

A decode either returns a complete, bounds-checked unit or raises; nothing is
ever partially constructed.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Union

from .binary import (
    BinaryError,
    CompiledModule,
    CompiledScript,
    StatusCode,
    deserialize_module,
    deserialize_script,
)
from .config import DEFAULT_PROFILE, DeserializationProfile
from .errors import BytecodeDecodeError, StructuralViolation, TruncatedInput, UnsupportedVersion

log = logging.getLogger(__name__)

CompiledUnit = Union[CompiledModule, CompiledScript]


class UnitKind(str, Enum):
    MODULE = "module"
    SCRIPT = "script"


def classify(err: BinaryError, *, kind: str) -> BytecodeDecodeError:
    """Map a parser failure onto the public error taxonomy."""
    data = {"status": err.status.value, "kind": kind}
    if err.status is StatusCode.UNEXPECTED_EOF:
        return TruncatedInput(f"{kind} blob is truncated", **data)
    if err.status is StatusCode.UNKNOWN_VERSION:
        return UnsupportedVersion(f"{kind} uses an unsupported binary format version", **data)
    return StructuralViolation(f"{kind} blob is malformed: {err.message}", **data)


def decode(
    blob: bytes,
    profile: Optional[DeserializationProfile] = None,
    kind: Union[UnitKind, str] = UnitKind.MODULE,
) -> CompiledUnit:
    kind = UnitKind(kind)
    profile = profile or DEFAULT_PROFILE
    if not isinstance(blob, (bytes, bytearray, memoryview)):
        raise TypeError(f"blob must be bytes-like, got {type(blob).__name__}")
    try:
        if kind is UnitKind.MODULE:
            unit: CompiledUnit = deserialize_module(bytes(blob), profile)
        else:
            unit = deserialize_script(bytes(blob), profile)
    except BinaryError as e:
        err = classify(e, kind=kind.value)
        log.debug(
            "decode failed",
            extra={"kind": kind.value, "size": len(blob), "status": e.status.value, "profile": profile.name},
        )
        raise err from None
    log.debug(
        "decoded %s",
        kind.value,
        extra={"kind": kind.value, "size": len(blob), "version": unit.version, "profile": profile.name},
    )
    return unit


def decode_module(blob: bytes, profile: Optional[DeserializationProfile] = None) -> CompiledModule:
    unit = decode(blob, profile, UnitKind.MODULE)
    assert isinstance(unit, CompiledModule)
    return unit


def decode_script(blob: bytes, profile: Optional[DeserializationProfile] = None) -> CompiledScript:
    unit = decode(blob, profile, UnitKind.SCRIPT)
    assert isinstance(unit, CompiledScript)
    return unit


__all__ = ["CompiledUnit", "UnitKind", "classify", "decode", "decode_module", "decode_script"]
