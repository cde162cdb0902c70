"""Structured JSON logging correlated with traces and document types."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
import sys
from typing import Any

import orjson

from search_backend.observability.context import get_trace_context


# Attributes every LogRecord carries; anything else was passed through ``extra=``.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}
_SECRET_KEYS = frozenset({"password", "token", "api_key", "secret", "authorization", "backend_token"})
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class JsonFormatter(logging.Formatter):
    """One JSON object per line with trace ids and the active document type."""

    max_message_chars = 2000
    max_extra_chars = 500

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_trace_context()
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": record.name.rpartition(".")[2],
            "message": _clip(record.getMessage(), self.max_message_chars),
            "trace_id": ctx["trace_id"],
            "span_id": ctx.get("span_id", ""),
        }
        if "document_type" in ctx:
            entry["document_type"] = ctx["document_type"]
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(self._extras(record))
        return orjson.dumps(entry, default=_fallback).decode("utf-8")

    def _extras(self, record: logging.LogRecord) -> dict[str, Any]:
        extras: dict[str, Any] = {}
        for key, value in vars(record).items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            if key.lower() in _SECRET_KEYS:
                value = "[REDACTED]"
            elif isinstance(value, str):
                value = _clip(value, self.max_extra_chars)
            extras[key] = value
        return extras


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _fallback(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, (Path, Exception)):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    return repr(value)


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    *,
    logger_levels: dict[str, str] | None = None,
    access_log: bool = False,
) -> None:
    """Route all logging to stdout.

    Args:
        level: root level name; unknown names fall back to INFO
        json_output: use ``JsonFormatter`` instead of plain text lines
        logger_levels: per-logger overrides, applied last
        access_log: keep uvicorn access lines at the root level
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter() if json_output else logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(_level(level))

    for name in _QUIET_LOGGERS:
        if name == "uvicorn.access" and access_log:
            continue
        logging.getLogger(name).setLevel(logging.WARNING)

    for name, logger_level in (logger_levels or {}).items():
        logging.getLogger(name).setLevel(_level(logger_level))


def _level(name: str) -> int:
    return logging.getLevelNamesMapping().get(name.upper(), logging.INFO)
