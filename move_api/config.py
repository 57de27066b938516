"""
move_api.config — deserialization profiles.

A profile selects which binary-format versions the decoder accepts and the
structural limits it enforces before allocating anything proportional to
attacker-chosen sizes. Profiles are config-by-value: frozen, validated at
construction and shared read-only by every decode call in the process.

Configuration precedence:
  1) Environment variables (MOVE_API_*) layered over the selected preset
  2) The named preset (MOVE_API_PROFILE, default: "default")

Env vars:
  - MOVE_API_PROFILE               (str)  default | legacy | strict
  - MOVE_API_MIN_BINARY_VERSION    (int)
  - MOVE_API_MAX_BINARY_VERSION    (int)
  - MOVE_API_MAX_IDENTIFIER_SIZE   (int)
  - MOVE_API_MAX_BINARY_SIZE       (int)
  - MOVE_API_MAX_SIGNATURE_DEPTH   (int)

Usage:
    from move_api.config import load_profile
    PROFILE = load_profile()
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Any, Dict, Optional

from .binary.file_format import (
    IDENTIFIER_SIZE_MAX,
    SIGNATURE_TOKEN_DEPTH_MAX,
    VERSION_MAX,
    VERSION_MIN,
)
from .errors import ConfigError

ENV_PREFIX = "MOVE_API_"


@dataclass(frozen=True)
class DeserializationProfile:
    name: str = "default"
    min_binary_format_version: int = VERSION_MIN
    max_binary_format_version: int = VERSION_MAX
    max_identifier_size: int = 255
    max_binary_size: int = 1024 * 1024
    max_table_content_size: int = 1024 * 1024
    max_signature_depth: int = SIGNATURE_TOKEN_DEPTH_MAX

    def __post_init__(self) -> None:
        lo, hi = self.min_binary_format_version, self.max_binary_format_version
        if not (VERSION_MIN <= lo <= VERSION_MAX) or not (VERSION_MIN <= hi <= VERSION_MAX):
            raise ConfigError(
                f"binary format versions must lie in [{VERSION_MIN}, {VERSION_MAX}]",
                min=lo,
                max=hi,
            )
        if lo > hi:
            raise ConfigError("min_binary_format_version exceeds max_binary_format_version", min=lo, max=hi)
        if not (1 <= self.max_identifier_size <= IDENTIFIER_SIZE_MAX):
            raise ConfigError("max_identifier_size out of range", value=self.max_identifier_size)
        if self.max_binary_size <= 0:
            raise ConfigError("max_binary_size must be positive", value=self.max_binary_size)
        if self.max_table_content_size <= 0:
            raise ConfigError("max_table_content_size must be positive", value=self.max_table_content_size)
        if not (1 <= self.max_signature_depth <= SIGNATURE_TOKEN_DEPTH_MAX):
            raise ConfigError("max_signature_depth out of range", value=self.max_signature_depth)

    def accepts_version(self, version: int) -> bool:
        return self.min_binary_format_version <= version <= self.max_binary_format_version

    def with_overrides(self, **changes: Any) -> "DeserializationProfile":
        """New profile with the given fields replaced (validated again)."""
        return replace(self, **changes)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "min_binary_format_version": self.min_binary_format_version,
            "max_binary_format_version": self.max_binary_format_version,
            "max_identifier_size": self.max_identifier_size,
            "max_binary_size": self.max_binary_size,
            "max_table_content_size": self.max_table_content_size,
            "max_signature_depth": self.max_signature_depth,
        }


DEFAULT_PROFILE = DeserializationProfile()

PRESETS: Dict[str, DeserializationProfile] = {
    "default": DEFAULT_PROFILE,
    # Pre-v6 chains: no u16/u32/u256, long identifiers tolerated.
    "legacy": DeserializationProfile(
        name="legacy",
        max_binary_format_version=5,
        max_identifier_size=IDENTIFIER_SIZE_MAX,
    ),
    "strict": DeserializationProfile(
        name="strict",
        min_binary_format_version=6,
        max_binary_size=64 * 1024,
        max_table_content_size=64 * 1024,
        max_signature_depth=64,
    ),
}


def get_preset(name: str) -> DeserializationProfile:
    try:
        return PRESETS[name.strip().lower()]
    except KeyError:
        raise ConfigError(f"unknown profile {name!r}", known=sorted(PRESETS)) from None


# ----------------------------- env helpers -----------------------------------


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw, 0)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name} must be an integer", value=raw) from None


def profile_from_env(env_profile: Optional[str] = None) -> DeserializationProfile:
    """Build a profile from a preset plus MOVE_API_* overrides (uncached)."""
    base = get_preset(env_profile or os.getenv(ENV_PREFIX + "PROFILE") or "default")
    return base.with_overrides(
        min_binary_format_version=_env_int("MIN_BINARY_VERSION", base.min_binary_format_version),
        max_binary_format_version=_env_int("MAX_BINARY_VERSION", base.max_binary_format_version),
        max_identifier_size=_env_int("MAX_IDENTIFIER_SIZE", base.max_identifier_size),
        max_binary_size=_env_int("MAX_BINARY_SIZE", base.max_binary_size),
        max_signature_depth=_env_int("MAX_SIGNATURE_DEPTH", base.max_signature_depth),
    )


@lru_cache(maxsize=1)
def load_profile() -> DeserializationProfile:
    """Process-wide profile from the environment. Cached; call cache_clear() in tests."""
    return profile_from_env()


__all__ = [
    "DeserializationProfile",
    "DEFAULT_PROFILE",
    "PRESETS",
    "get_preset",
    "profile_from_env",
    "load_profile",
]
