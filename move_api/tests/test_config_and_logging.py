from __future__ import annotations

import io
import json
import logging

import pytest

from move_api import logging as mlog
from move_api.config import (
    DEFAULT_PROFILE,
    PRESETS,
    DeserializationProfile,
    get_preset,
    load_profile,
    profile_from_env,
)
from move_api.errors import ConfigError
from move_api.version import _pep440_local, compute_version


# -- profiles -----------------------------------------------------------------


def test_default_profile_accepts_every_version():
    assert [v for v in range(0, 9) if DEFAULT_PROFILE.accepts_version(v)] == [4, 5, 6]


def test_presets():
    assert set(PRESETS) == {"default", "legacy", "strict"}
    assert get_preset(" Legacy ").max_binary_format_version == 5
    assert get_preset("strict").min_binary_format_version == 6
    with pytest.raises(ConfigError) as ei:
        get_preset("bleeding-edge")
    assert ei.value.data["known"] == ["default", "legacy", "strict"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_binary_format_version": 3},
        {"max_binary_format_version": 7},
        {"min_binary_format_version": 6, "max_binary_format_version": 5},
        {"max_identifier_size": 0},
        {"max_identifier_size": 70000},
        {"max_binary_size": 0},
        {"max_table_content_size": -1},
        {"max_signature_depth": 0},
        {"max_signature_depth": 1000},
    ],
)
def test_invalid_profiles(kwargs):
    with pytest.raises(ConfigError):
        DeserializationProfile(**kwargs)


def test_with_overrides_revalidates():
    p = DEFAULT_PROFILE.with_overrides(name="narrow", max_binary_format_version=5)
    assert p.as_dict()["max_binary_format_version"] == 5
    assert DEFAULT_PROFILE.max_binary_format_version == 6
    with pytest.raises(ConfigError):
        p.with_overrides(min_binary_format_version=6)


def test_profile_from_env(monkeypatch):
    monkeypatch.setenv("MOVE_API_PROFILE", "legacy")
    monkeypatch.setenv("MOVE_API_MAX_BINARY_SIZE", "0x10000")
    monkeypatch.setenv("MOVE_API_MAX_SIGNATURE_DEPTH", "")
    p = profile_from_env()
    assert p.name == "legacy"
    assert p.max_binary_size == 0x10000
    assert p.max_signature_depth == get_preset("legacy").max_signature_depth


def test_profile_from_env_rejects_garbage(monkeypatch):
    monkeypatch.setenv("MOVE_API_MIN_BINARY_VERSION", "four")
    with pytest.raises(ConfigError):
        profile_from_env()


def test_load_profile_is_cached(monkeypatch):
    monkeypatch.setenv("MOVE_API_PROFILE", "strict")
    assert load_profile() is load_profile()
    assert load_profile().name == "strict"
    monkeypatch.setenv("MOVE_API_PROFILE", "default")
    assert load_profile().name == "strict"
    load_profile.cache_clear()
    assert load_profile().name == "default"


# -- version ------------------------------------------------------------------


def test_version_env_override(monkeypatch):
    monkeypatch.setenv("MOVE_API_VERSION", "9.9.9")
    compute_version.cache_clear()
    try:
        assert compute_version() == "9.9.9"
    finally:
        compute_version.cache_clear()


def test_pep440_local():
    assert _pep440_local("v0.1.0-3-gabc1234-dirty") == "0.1.0.3.gabc1234.dirty"


# -- logging ------------------------------------------------------------------


def test_json_logging_includes_context_and_extras():
    buf = io.StringIO()
    log = mlog.configure(json=True, level="DEBUG", stream=buf)
    with mlog.trace_scope("abc123"):
        mlog.bind(component="publish", blob_index=2)
        logging.getLogger("move_api.bundle").info("bundle rejected", extra={"code": b"\xa1\x1c"})
    assert log.name == "move_api"
    record = json.loads(buf.getvalue().strip())
    assert record["msg"] == "bundle rejected"
    assert record["logger"] == "move_api.bundle"
    assert record["trace_id"] == "abc123"
    assert record["component"] == "publish"
    assert record["blob_index"] == 2
    assert record["code"] == "0xa11c"
    assert mlog.context() == {}


def test_text_logging_is_one_line():
    buf = io.StringIO()
    mlog.configure(json=False, level="INFO", stream=buf)
    mlog.bind(module_id="0x1::coin")
    logging.getLogger("move_api.decoder").debug("hidden")
    logging.getLogger("move_api.decoder").warning("decode failed", extra={"status": "BAD_MAGIC"})
    out = buf.getvalue().strip().splitlines()
    assert len(out) == 1
    assert "| WARNING | move_api.decoder | module_id=0x1::coin status=BAD_MAGIC | decode failed" in out[0]


def test_configure_replaces_handlers():
    mlog.configure(stream=io.StringIO())
    mlog.configure(stream=io.StringIO())
    assert len(logging.getLogger("move_api").handlers) == 1


def test_log_format_from_env(monkeypatch):
    monkeypatch.setenv("MOVE_API_LOG_FORMAT", "json")
    buf = io.StringIO()
    mlog.configure(stream=buf)
    logging.getLogger("move_api").error("boom")
    assert json.loads(buf.getvalue())["level"] == "ERROR"


def test_unknown_level_falls_back_to_info():
    assert mlog.configure(level="chatty", stream=io.StringIO()).level == logging.INFO
