"""
move_api.handler — bytes-in / bytes-out request handlers.

These are the operations a node's API layer exposes:

    decode_script_bytes(script)        -> JSON ABI of the script's `main`
    decode_module_bytes(module)        -> JSON ABI of the module
    read_module_info(module)           -> JSON {"address": [32 byte ints], "name"}
    sort_module_bundle(codes)          -> the same blobs, dependency ordered
    struct_tag_to_string(bcs_bytes)    -> canonical struct tag text (UTF-8)
    struct_tag_from_string(text_bytes) -> canonical BCS bytes

Every failure raises a `MoveApiError`; `err.to_dict()` is the tagged error
value to return to the caller. Nothing partial is ever returned.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import msgspec

from .abi import encode_abi, extract_abi
from .bundle import sort_bundle
from .config import DeserializationProfile
from .decoder import decode_module, decode_script
from .errors import MalformedInput
from .identity import read_identity
from .type_tag import from_binary, parse_text, to_binary, to_text


def decode_script_bytes(script: bytes, *, profile: Optional[DeserializationProfile] = None) -> bytes:
    return encode_abi(extract_abi(decode_script(script, profile)), "json")


def decode_module_bytes(module: bytes, *, profile: Optional[DeserializationProfile] = None) -> bytes:
    return encode_abi(extract_abi(decode_module(module, profile)), "json")


def read_module_info(module: bytes, *, profile: Optional[DeserializationProfile] = None) -> bytes:
    mid = read_identity(module, profile)
    # Raw address bytes as a JSON number array, not hex.
    return msgspec.json.encode({"address": list(mid.address), "name": mid.name})


def sort_module_bundle(
    codes: Sequence[bytes], *, profile: Optional[DeserializationProfile] = None
) -> List[bytes]:
    return sort_bundle(codes, profile).codes


def struct_tag_to_string(data: bytes) -> bytes:
    return to_text(from_binary(data)).encode("utf-8")


def struct_tag_from_string(text: bytes) -> bytes:
    try:
        decoded = bytes(text).decode("utf-8")
    except UnicodeDecodeError:
        raise MalformedInput("struct tag text is not valid UTF-8") from None
    return to_binary(parse_text(decoded))


__all__ = [
    "decode_script_bytes",
    "decode_module_bytes",
    "read_module_info",
    "sort_module_bundle",
    "struct_tag_to_string",
    "struct_tag_from_string",
]
