"""Log formatters: JSON lines for the log file, bracketed text for the console.

Call sites attach structured data with ``extra={"meta": {...}}`` and may
override the scope (defaults to the logger name) with ``extra={"scope": ...}``.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

CONSOLE_FORMAT = "[%(asctime)s] [%(levelname)s] [%(scope)s] %(message)s%(meta_suffix)s"


def _safe_json(value) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return "{}"


def _scope(record: logging.LogRecord) -> str:
    scope = getattr(record, "scope", None)
    return str(scope) if scope else record.name


class ConsoleFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(CONSOLE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        record.scope = _scope(record)
        meta = getattr(record, "meta", None)
        record.meta_suffix = f" {_safe_json(meta)}" if isinstance(meta, dict) and meta else ""
        return super().format(record)


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record: ts, level, scope, msg, optional meta/exc."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname.lower(),
            "scope": _scope(record),
            "msg": record.getMessage(),
        }
        meta = getattr(record, "meta", None)
        if isinstance(meta, dict) and meta:
            payload["meta"] = meta
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return _safe_json(payload)
