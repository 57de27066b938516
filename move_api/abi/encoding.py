"""
ABI summary serialization.

  json : msgspec JSON, keys in declaration order, compact separators
  cbor : canonical CBOR via cbor2 (sorted map keys, shortest-form integers)

Both are byte-for-byte deterministic for equal summaries.
"""

from __future__ import annotations

from typing import Any, Dict

import cbor2
import msgspec

from .types import AbiSummary

_JSON_ENCODER = msgspec.json.Encoder()
_JSON_DECODER = msgspec.json.Decoder()

FORMATS = ("json", "cbor")


def encode_abi(summary: AbiSummary, fmt: str = "json") -> bytes:
    obj = summary.to_dict()
    if fmt == "json":
        return _JSON_ENCODER.encode(obj)
    if fmt == "cbor":
        return cbor2.dumps(obj, canonical=True)
    raise ValueError(f"unknown ABI encoding {fmt!r} (expected one of {FORMATS})")


def decode_abi_dict(data: bytes, fmt: str = "json") -> Dict[str, Any]:
    """Parse an encoded summary back into its dict form."""
    if fmt == "json":
        return _JSON_DECODER.decode(data)
    if fmt == "cbor":
        return cbor2.loads(data)
    raise ValueError(f"unknown ABI encoding {fmt!r} (expected one of {FORMATS})")


__all__ = ["FORMATS", "encode_abi", "decode_abi_dict"]
