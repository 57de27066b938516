"""
move_api.logging
----------------

Log setup for the decode / bundle / codec paths.

Library modules only ever do `log = logging.getLogger(__name__)` and pass
structured fields through `extra=`. Whoever owns the process (the `move-api`
CLI, a node's API layer) calls `configure()` once to pick JSON lines or a
one-line text format.

Request-scoped fields (trace_id, component, profile, blob_index, module_id)
live in a `ContextVar`, so concurrent requests on one event loop or thread
pool do not see each other's fields.

    from move_api import logging as mlog

    mlog.configure(json=False, level="DEBUG")
    with mlog.trace_scope():
        mlog.bind(component="publish")
        sort_bundle(blobs)
"""

from __future__ import annotations

import datetime as _dt
import io
import logging
import os
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Iterator, Optional, Union

import msgspec

ENV_FORMAT = "MOVE_API_LOG_FORMAT"
ROOT_LOGGER = "move_api"

# Context keys shown first (in this order) by the text formatter.
CONTEXT_KEYS = ("trace_id", "component", "profile", "blob_index", "module_id")

_fields: ContextVar[Dict[str, Any]] = ContextVar("move_api_log_fields", default={})

# Everything a bare LogRecord carries; the rest of record.__dict__ came from extra=.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_JSON = msgspec.json.Encoder(enc_hook=str)


def _jsonable(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return "0x" + bytes(v).hex()
    if isinstance(v, dict):
        return {str(k): _jsonable(x) for k, x in v.items()}
    if isinstance(v, (list, tuple, set, frozenset)):
        return [_jsonable(x) for x in v]
    if is_dataclass(v) and not isinstance(v, type):
        return _jsonable(asdict(v))
    return str(v)


def context() -> Dict[str, Any]:
    """Snapshot of the fields bound in the current context."""
    return dict(_fields.get())


def bind(**fields: Any) -> None:
    _fields.set({**_fields.get(), **{k: _jsonable(v) for k, v in fields.items()}})


def clear_context() -> None:
    _fields.set({})


@contextmanager
def trace_scope(trace_id: Optional[str] = None) -> Iterator[str]:
    """Bind a trace_id for the duration of the block; anything bound inside is dropped on exit."""
    tid = trace_id or uuid.uuid4().hex[:12]
    token = _fields.set({**_fields.get(), "trace_id": tid})
    try:
        yield tid
    finally:
        _fields.reset(token)


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        k: _jsonable(v)
        for k, v in vars(record).items()
        if k not in _STANDARD_ATTRS and not k.startswith("_")
    }


def _timestamp() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds")


def _exc_text(record: logging.LogRecord) -> str:
    return "".join(traceback.format_exception(*record.exc_info)).rstrip() if record.exc_info else ""


class JSONFormatter(logging.Formatter):
    """One compact JSON object per record; bound context wins over extras."""

    def format(self, record: logging.LogRecord) -> str:
        doc: Dict[str, Any] = {
            "ts": _timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **context(),
        }
        for k, v in _record_extras(record).items():
            doc.setdefault(k, v)
        err = _exc_text(record)
        if err:
            doc["err"] = err
        return _JSON.encode(doc).decode("utf-8")


_COLORS = {
    logging.DEBUG: "\x1b[90m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[35m",
}


class TextFormatter(logging.Formatter):
    """
    `<ts> | <LEVEL> | <logger> | k=v ... | <message>`, context keys first,
    then record extras. The level is colored only when writing to a TTY.
    """

    def __init__(self, color: bool = False) -> None:
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        ctx = context()
        pairs = [f"{k}={ctx[k]}" for k in CONTEXT_KEYS if ctx.get(k) is not None]
        pairs += [f"{k}={v}" for k, v in _record_extras(record).items() if k not in ctx]
        level = f"{record.levelname:<5}"
        if self.color:
            level = f"{_COLORS.get(record.levelno, '')}{level}\x1b[0m"
        parts = [_timestamp(), level, record.name]
        if pairs:
            parts.append(" ".join(pairs))
        parts.append(record.getMessage())
        out = " | ".join(parts)
        err = _exc_text(record)
        return f"{out}\n{err}" if err else out


def _is_tty(stream: Any) -> bool:
    isatty = getattr(stream, "isatty", None)
    try:
        return bool(isatty and isatty()) and "NO_COLOR" not in os.environ
    except ValueError:
        return False


def _level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    found = logging.getLevelName(level.strip().upper())
    return found if isinstance(found, int) else logging.INFO


def configure(
    *,
    json: Optional[bool] = None,
    level: Union[str, int] = "INFO",
    stream: Optional[io.TextIOBase] = None,
    logger_name: str = ROOT_LOGGER,
) -> logging.Logger:
    """
    Replace the handlers of `logger_name` with one stream handler.

    With `json=None` the format comes from MOVE_API_LOG_FORMAT (`json` or
    `text`); unset, a TTY gets text and anything else gets JSON lines.
    """
    out = stream if stream is not None else sys.stderr
    if json is None:
        choice = os.environ.get(ENV_FORMAT, "").strip().lower()
        json = choice == "json" if choice in ("json", "text") else not _is_tty(out)
    lvl = _level(level)

    handler = logging.StreamHandler(out)
    handler.setLevel(lvl)
    handler.setFormatter(JSONFormatter() if json else TextFormatter(color=_is_tty(out)))

    logger = logging.getLogger(logger_name)
    for old in list(logger.handlers):
        logger.removeHandler(old)
    logger.addHandler(handler)
    logger.setLevel(lvl)
    return logger


__all__ = [
    "context",
    "bind",
    "clear_context",
    "trace_scope",
    "JSONFormatter",
    "TextFormatter",
    "configure",
]
