"""
Structured logging for partners_gateway.

Every log call takes keyword fields, and the request middleware binds the
request ID and path for the duration of a request, so a single JSON line is
enough to trace one call through cache, upstream and link resolution.

Usage:
    from partners_gateway.logging_config import configure_logging, get_logger

    configure_logging(level="INFO", json_output=True)

    logger = get_logger(__name__)
    logger.info("Upstream search complete", count=2)

    with LogContext(request_id="req_000123", path="/api/search"):
        logger.info("Cache miss")  # carries request_id and path

Environment:
    PARTNERS_GATEWAY_LOG_LEVEL   default level (INFO)
    PARTNERS_GATEWAY_LOG_FORMAT  "json" (default) or "text"
    PARTNERS_GATEWAY_LOG_FILE    optional rotating log file
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Optional

_request_fields: ContextVar[dict[str, Any]] = ContextVar("partners_gateway_log_fields", default={})

# Pulled out of the bound fields and rendered in fixed positions.
REQUEST_KEYS = ("request_id", "path")

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    """Mask a credential for logging, keeping only a short prefix.

    >>> mask_secret("73920ae9-75b9-4136")
    '7392***'
    """
    if not value:
        return ""
    if len(value) <= visible:
        return "***"
    return value[:visible] + "***"


class LogContext:
    """Bind fields to every log line emitted inside the ``with`` block.

    Nested contexts layer on top of each other; leaving one restores the
    fields that were bound before it.
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._token = None

    def __enter__(self) -> LogContext:
        self._token = _request_fields.set({**_request_fields.get(), **self.fields})
        return self

    def __exit__(self, *exc: Any) -> None:
        _request_fields.reset(self._token)


def _collect(record: logging.LogRecord) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split bound and per-call fields into (request fields, other fields).

    Per-call fields win over bound ones with the same name.
    """
    merged = {**_request_fields.get(), **getattr(record, "fields", {})}
    request = {k: merged.pop(k) for k in REQUEST_KEYS if merged.get(k)}
    return request, merged


class JSONFormatter(logging.Formatter):
    """One JSON object per line; non-serializable values fall back to str()."""

    def format(self, record: logging.LogRecord) -> str:
        request, fields = _collect(record)
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **request,
            **fields,
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """``time [LEVEL] [module] [request_id] message key=value ...`` for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        request, fields = _collect(record)
        line = " ".join(
            part
            for part in (
                self.formatTime(record, "%H:%M:%S"),
                f"[{record.levelname}]",
                f"[{record.name.rsplit('.', 1)[-1]}]",
                f"[{request['request_id']}]" if "request_id" in request else "",
                record.getMessage(),
                " ".join(f"{k}={v}" for k, v in fields.items()),
            )
            if part
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger:
    """Thin wrapper over a stdlib logger that accepts keyword fields."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _emit(self, level: int, message: str, exc_info: bool, fields: dict[str, Any]) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, message, exc_info=exc_info, extra={"fields": fields})

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, False, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, False, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(logging.WARNING, message, False, fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._emit(logging.ERROR, message, exc_info, fields)


@lru_cache(maxsize=None)
def get_logger(name: str) -> StructuredLogger:
    """Shared StructuredLogger for ``name`` (typically ``__name__``)."""
    return StructuredLogger(name)


def configure_logging(
    level: str | None = None,
    json_output: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Install the gateway's formatter on the root logger.

    Arguments left as None are read from the environment. Call once at
    process start; calling again replaces the previous handlers.
    """
    level_name = (level or os.environ.get("PARTNERS_GATEWAY_LOG_LEVEL") or "INFO").upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    if json_output is None:
        json_output = os.environ.get("PARTNERS_GATEWAY_LOG_FORMAT", "json").lower() != "text"
    log_file = log_file or os.environ.get("PARTNERS_GATEWAY_LOG_FILE") or None

    formatter: logging.Formatter = JSONFormatter() if json_output else TextFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(log_level)
    logging.getLogger("partners_gateway").setLevel(log_level)

    # The request middleware already logs every request.
    logging.getLogger("aiohttp.access").setLevel(max(log_level, logging.WARNING))


__all__ = [
    "mask_secret",
    "LogContext",
    "JSONFormatter",
    "TextFormatter",
    "StructuredLogger",
    "get_logger",
    "configure_logging",
]
