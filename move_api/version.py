"""move_api.version — package version with an optional git-describe suffix.

Resolution order (first match wins):
- MOVE_API_VERSION env var (exact value)
- installed distribution metadata for 'move-api'
- BASE_VERSION + PEP 440 local part of `git describe` (or GIT_DESCRIBE)
- BASE_VERSION + '+dev'
"""

from __future__ import annotations

import os
import re
import subprocess
from functools import lru_cache
from importlib import metadata
from pathlib import Path
from typing import Optional

BASE_VERSION = "0.1.0"
DIST_NAME = "move-api"

_GIT_DESCRIBE = ("git", "describe", "--tags", "--dirty", "--always")


def _pep440_local(describe: str) -> str:
    """'v0.1.0-3-gabc1234-dirty' -> '0.1.0.3.gabc1234.dirty'"""
    text = describe.strip().removeprefix("v")
    segments = re.split(r"[^A-Za-z0-9_]+", text)
    return ".".join(s for s in segments if s)


def _from_git() -> Optional[str]:
    described = os.getenv("GIT_DESCRIBE")
    if described:
        return described
    try:
        proc = subprocess.run(
            _GIT_DESCRIBE,
            cwd=Path(__file__).resolve().parent,
            capture_output=True,
            text=True,
            timeout=1.5,
            env=dict(os.environ, LC_ALL="C"),
        )
    except (OSError, subprocess.SubprocessError):
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout.strip() or None


def _from_metadata() -> Optional[str]:
    try:
        found = metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        return None
    return None if found in ("", "0.0.0") else found


@lru_cache(maxsize=1)
def compute_version() -> str:
    pinned = os.getenv("MOVE_API_VERSION")
    if pinned:
        return pinned
    installed = _from_metadata()
    if installed:
        return installed
    described = _from_git()
    return f"{BASE_VERSION}+{_pep440_local(described) if described else 'dev'}"


__version__ = compute_version()

__all__ = ["__version__", "BASE_VERSION", "compute_version"]
