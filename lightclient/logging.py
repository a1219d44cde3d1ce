"""
Logging for the light client.

Records go through the stdlib `logging` tree under "lightclient". Fields
bound with `bind()` or `trace_scope()` live in a ContextVar, so concurrent
updates on different threads or tasks each log their own client id and
trace id. Two renderings are available:

    json   {"ts":..., "level":"INFO", "logger":..., "msg":..., "client_id":...}
    text   <ts> | INFO  | lightclient.client | client_id=near-0 height=0-12 | header accepted

Bytes in bound fields or `extra=` are rendered as bare hex.

    configure(json=False, level="DEBUG")
    with trace_scope(client_id="near-0"):
        get_logger("lightclient.host").info("relayed", extra={"height": "0-12"})
"""

from __future__ import annotations

import json as _json
import logging
import os
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import IO, Any, Dict, Iterator, Mapping, Optional, Union

ROOT_LOGGER = "lightclient"

_fields: ContextVar[Mapping[str, Any]] = ContextVar("lightclient_log_fields", default={})

# shown first, in this order, by the text rendering
_LEADING = ("trace_id", "client_id", "height", "epoch")

_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}


def _plain(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


# ---- context ----


def context() -> Dict[str, Any]:
    return dict(_fields.get())


def bind(**fields: Any) -> None:
    _fields.set({**_fields.get(), **{k: _plain(v) for k, v in fields.items()}})


def unbind(*keys: str) -> None:
    _fields.set({k: v for k, v in _fields.get().items() if k not in keys})


@contextmanager
def trace_scope(trace_id: Optional[str] = None, **fields: Any) -> Iterator[str]:
    """
    Bind a trace id (a fresh one unless given) and `fields` for the body of
    the block; whatever was bound before is restored afterwards.
    """
    tid = trace_id or uuid.uuid4().hex[:12]
    token = _fields.set({**_fields.get(), "trace_id": tid, **{k: _plain(v) for k, v in fields.items()}})
    try:
        yield tid
    finally:
        _fields.reset(token)


# ---- rendering ----


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Bound context first, then `extra=` values that do not shadow it."""
    out = context()
    for k, v in record.__dict__.items():
        if k not in _STANDARD_ATTRS and not k.startswith("_") and k not in out:
            out[k] = _plain(v)
    return out


class _UTCFormatter(logging.Formatter):
    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        stamp = time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
        return f"{stamp}.{int(record.msecs):03d}Z"

    def _trace(self, record: logging.LogRecord) -> Optional[str]:
        if record.exc_info:
            return self.formatException(record.exc_info)
        return None


class JSONFormatter(_UTCFormatter):
    def format(self, record: logging.LogRecord) -> str:
        doc: Dict[str, Any] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        doc.update(_record_fields(record))
        trace = self._trace(record)
        if trace:
            doc["err"] = trace
        return _json.dumps(doc, default=str, separators=(",", ":"))


class TextFormatter(_UTCFormatter):
    def format(self, record: logging.LogRecord) -> str:
        fields = _record_fields(record)
        ordered = [k for k in _LEADING if fields.get(k) is not None]
        ordered += [k for k in fields if k not in _LEADING]
        cols = [self.formatTime(record), f"{record.levelname:<5}", record.name]
        if ordered:
            cols.append(" ".join(f"{k}={fields[k]}" for k in ordered))
        cols.append(record.getMessage())
        line = " | ".join(cols)
        trace = self._trace(record)
        return f"{line}\n{trace}" if trace else line


# ---- setup ----


def _wants_json(choice: Optional[bool], stream: IO[str]) -> bool:
    if choice is not None:
        return choice
    env = os.environ.get("LIGHTCLIENT_LOG_FORMAT", "").strip().lower()
    if env in ("json", "text"):
        return env == "json"
    isatty = getattr(stream, "isatty", None)
    return not (isatty is not None and isatty())


def configure(
    *,
    json: Optional[bool] = None,
    level: Union[str, int] = "INFO",
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """
    Replace the handlers of the "lightclient" logger with one stream handler.

    With `json=None` the format comes from LIGHTCLIENT_LOG_FORMAT, else text
    when the stream is a terminal and JSON otherwise.
    """
    out = stream if stream is not None else sys.stderr
    numeric = level if isinstance(level, int) else logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    handler = logging.StreamHandler(out)
    handler.setFormatter(JSONFormatter() if _wants_json(json, out) else TextFormatter())

    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers[:] = [handler]
    logger.setLevel(numeric)
    return logger


def configure_from_config(cfg: Any, **kwargs: Any) -> logging.Logger:
    fmt = cfg.logging.format
    return configure(json=None if fmt == "auto" else fmt == "json", level=cfg.logging.level, **kwargs)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or ROOT_LOGGER)


__all__ = [
    "context",
    "bind",
    "unbind",
    "trace_scope",
    "JSONFormatter",
    "TextFormatter",
    "configure",
    "configure_from_config",
    "get_logger",
]
