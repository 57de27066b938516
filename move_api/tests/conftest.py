from __future__ import annotations

import logging

import pytest

from move_api import logging as mlog
from move_api.config import load_profile

from .builders import ADDR_CAFE, coin_module, module_blob


@pytest.fixture(autouse=True)
def _isolate_logging_and_config():
    """The CLI installs handlers and load_profile() caches env; undo both per test."""
    load_profile.cache_clear()
    yield
    logger = logging.getLogger("move_api")
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)
    mlog.clear_context()
    load_profile.cache_clear()


@pytest.fixture
def coin_blob() -> bytes:
    return coin_module().to_bytes()


@pytest.fixture
def chain_bundle():
    """0xcafe::A <- B <- C (C depends on B, B on A), as blobs keyed by name."""
    return {
        "A": module_blob(ADDR_CAFE, "A"),
        "B": module_blob(ADDR_CAFE, "B", deps=[(ADDR_CAFE, "A")]),
        "C": module_blob(ADDR_CAFE, "C", deps=[(ADDR_CAFE, "B")]),
    }
