"""
move_api.errors
---------------

Error taxonomy for the decode / ABI / bundle / type-tag pipeline.

Design goals
------------
- One root `MoveApiError` with a machine-friendly `code` and optional `data`.
- Concrete subclasses per failure class (text/encoding input, bytecode decode,
  bundle ordering, ABI projection, configuration).
- Safe JSON representation (`to_dict`) suitable for logs and API responses.
- Every error is terminal for the request that produced it: inputs are
  deterministic byte sequences, so nothing here is ever retryable.

Hierarchy
---------
MoveApiError
 ├─ MalformedInput
 │   ├─ MalformedTypeTag          : text grammar violations
 │   └─ CorruptEncoding           : canonical binary (BCS) schema violations
 ├─ BytecodeDecodeError
 │   ├─ TruncatedInput            : blob ends before a declared section ends
 │   ├─ UnsupportedVersion        : format version outside the profile range
 │   └─ StructuralViolation       : inconsistent tables / indices / limits
 ├─ CyclicModuleDependency
 ├─ DuplicateModuleInBundle
 ├─ UnsupportedConstruct
 └─ ConfigError

This module uses only the stdlib so it can be imported from every layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence


class ErrorCode(str, Enum):
    MALFORMED_INPUT = "MOVE/MALFORMED_INPUT"
    MALFORMED_TYPE_TAG = "MOVE/MALFORMED_TYPE_TAG"
    CORRUPT_ENCODING = "MOVE/CORRUPT_ENCODING"

    TRUNCATED_INPUT = "MOVE/TRUNCATED_INPUT"
    UNSUPPORTED_VERSION = "MOVE/UNSUPPORTED_VERSION"
    STRUCTURAL_VIOLATION = "MOVE/STRUCTURAL_VIOLATION"

    CYCLIC_MODULE_DEPENDENCY = "MOVE/CYCLIC_MODULE_DEPENDENCY"
    DUPLICATE_MODULE_IN_BUNDLE = "MOVE/DUPLICATE_MODULE_IN_BUNDLE"

    UNSUPPORTED_CONSTRUCT = "MOVE/UNSUPPORTED_CONSTRUCT"
    CONFIG = "MOVE/CONFIG"


@dataclass(eq=False)
class MoveApiError(Exception):
    """
    Root error for move_api components.

    Attributes
    ----------
    code: str
        Machine-stable error code (see ErrorCode).
    message: str
        Human hint suitable for logs and API responses.
    data: dict
        Optional machine data (module ids, blob indices, parser status).
        Always JSON-serializable.
    """

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(f"{_code_str(self.code)}: {self.message}")

    def with_context(self, **ctx: Any) -> "MoveApiError":
        """Return a *new* error of the same type with extra context merged."""
        # Subclasses take domain-specific __init__ args; bypass them.
        clone = type(self).__new__(type(self))
        clone.__dict__.update(self.__dict__)
        clone.args = self.args
        merged = dict(self.data)
        for k, v in ctx.items():
            merged[k] = _coerce_json(v)
        clone.data = merged
        return clone

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe tagged error value."""
        return {
            "code": _code_str(self.code),
            "message": self.message,
            "data": _coerce_json(self.data),
        }

    def __str__(self) -> str:
        parts = [f"{_code_str(self.code)}: {self.message}"]
        if self.data:
            preview = ", ".join(f"{k}={_preview(v)}" for k, v in self.data.items())
            parts.append(f"[{preview}]")
        return " ".join(parts)


# ---------------------------------------------------------------------------
# Text / canonical-encoding input
# ---------------------------------------------------------------------------


class MalformedInput(MoveApiError):
    def __init__(
        self,
        message: str = "malformed input",
        *,
        code: str = ErrorCode.MALFORMED_INPUT,
        **data: Any,
    ) -> None:
        super().__init__(code=code, message=message, data=_jsonmap(data))


class MalformedTypeTag(MalformedInput):
    """Type-tag text does not match the `address::module::name<...>` grammar."""

    def __init__(self, message: str = "malformed type tag", **data: Any) -> None:
        super().__init__(message, code=ErrorCode.MALFORMED_TYPE_TAG, **data)


class CorruptEncoding(MalformedInput):
    """Canonical binary bytes do not match the expected schema."""

    def __init__(self, message: str = "corrupt encoding", **data: Any) -> None:
        super().__init__(message, code=ErrorCode.CORRUPT_ENCODING, **data)


# ---------------------------------------------------------------------------
# Bytecode decode
# ---------------------------------------------------------------------------


class BytecodeDecodeError(MoveApiError):
    default_code: str = ErrorCode.STRUCTURAL_VIOLATION
    default_message: str = "bytecode decode failed"

    def __init__(self, message: Optional[str] = None, **data: Any) -> None:
        super().__init__(
            code=self.default_code,
            message=message or self.default_message,
            data=_jsonmap(data),
        )


class TruncatedInput(BytecodeDecodeError):
    default_code = ErrorCode.TRUNCATED_INPUT
    default_message = "blob is shorter than its declared layout"


class UnsupportedVersion(BytecodeDecodeError):
    default_code = ErrorCode.UNSUPPORTED_VERSION
    default_message = "binary format version not accepted by profile"


class StructuralViolation(BytecodeDecodeError):
    default_code = ErrorCode.STRUCTURAL_VIOLATION
    default_message = "blob is structurally inconsistent"


# ---------------------------------------------------------------------------
# Bundle ordering
# ---------------------------------------------------------------------------


class CyclicModuleDependency(MoveApiError):
    def __init__(self, cycle: Sequence[str]) -> None:
        members = list(cycle)
        super().__init__(
            code=ErrorCode.CYCLIC_MODULE_DEPENDENCY,
            message="cyclic module dependency: " + " -> ".join(members + members[:1]),
            data={"cycle": members},
        )

    @property
    def cycle(self) -> list:
        return list(self.data.get("cycle", []))


class DuplicateModuleInBundle(MoveApiError):
    def __init__(self, module: str, indices: Iterable[int]) -> None:
        idx = sorted(int(i) for i in indices)
        super().__init__(
            code=ErrorCode.DUPLICATE_MODULE_IN_BUNDLE,
            message=f"module {module} appears more than once in bundle",
            data={"module": module, "indices": idx},
        )


# ---------------------------------------------------------------------------
# ABI projection / config
# ---------------------------------------------------------------------------


class UnsupportedConstruct(MoveApiError):
    def __init__(self, message: str = "construct not representable in ABI", **data: Any) -> None:
        super().__init__(
            code=ErrorCode.UNSUPPORTED_CONSTRUCT, message=message, data=_jsonmap(data)
        )


class ConfigError(MoveApiError):
    def __init__(self, message: str = "invalid configuration", **data: Any) -> None:
        super().__init__(code=ErrorCode.CONFIG, message=message, data=_jsonmap(data))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _code_str(code: Any) -> str:
    return code.value if isinstance(code, Enum) else str(code)


def _coerce_json(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, Enum):
        return v.value
    if isinstance(v, (bytes, bytearray, memoryview)):
        return "0x" + bytes(v).hex()
    if isinstance(v, Mapping):
        return {str(k): _coerce_json(x) for k, x in v.items()}
    if isinstance(v, (list, tuple, set, frozenset)):
        return [_coerce_json(x) for x in v]
    return str(v)


def _jsonmap(d: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _coerce_json(v) for k, v in d.items()}


def _preview(v: Any, limit: int = 64) -> str:
    s = str(_coerce_json(v))
    return s if len(s) <= limit else s[: limit - 1] + "…"


__all__ = [
    "ErrorCode",
    "MoveApiError",
    "MalformedInput",
    "MalformedTypeTag",
    "CorruptEncoding",
    "BytecodeDecodeError",
    "TruncatedInput",
    "UnsupportedVersion",
    "StructuralViolation",
    "CyclicModuleDependency",
    "DuplicateModuleInBundle",
    "UnsupportedConstruct",
    "ConfigError",
]
