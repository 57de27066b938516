"""
move_api.identity — (address, name) of a module without a full decode.

Only the header, the table directory, the module handle / identifier /
address tables and the v5+ trailing self index are read. Errors are
classified exactly like `move_api.decoder.decode`.
"""

from __future__ import annotations

import logging
from typing import Optional

from .binary import BinaryError, read_module_self_id
from .config import DEFAULT_PROFILE, DeserializationProfile
from .decoder import classify
from .identifiers import ModuleId

log = logging.getLogger(__name__)


def read_identity(blob: bytes, profile: Optional[DeserializationProfile] = None) -> ModuleId:
    profile = profile or DEFAULT_PROFILE
    try:
        address, name = read_module_self_id(bytes(blob), profile)
    except BinaryError as e:
        raise classify(e, kind="module") from None
    mid = ModuleId(address, name)
    log.debug("module identity %s", mid, extra={"size": len(blob)})
    return mid


__all__ = ["read_identity"]
