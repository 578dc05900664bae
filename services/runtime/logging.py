"""Structured logging helpers for runtime services."""

from __future__ import annotations

import json
import logging
import os
import sys
import time
import uuid
from typing import Any, Dict, Optional

_TRACE_KEY = "trace_id"

# Attributes present on every LogRecord; anything else arrived through ``extra=``.
_RESERVED = set(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render log records as JSON with optional trace metadata."""

    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "ts": time.time(),
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith("_"):
                continue
            base[key] = value
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False, default=str)


def setup_logging(level: Optional[str] = None) -> None:
    """Install a JSON formatter on the root logger using LOG_LEVEL."""

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = getattr(logging, level_name, logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(resolved)
    root.addHandler(handler)


def with_trace(extra: Optional[Dict[str, Any]] = None, *, trace_id: Optional[str] = None) -> Dict[str, Any]:
    """Attach a trace identifier (fresh unless given) to structured log metadata."""

    payload: Dict[str, Any] = {_TRACE_KEY: trace_id or str(uuid.uuid4())}
    if extra:
        payload.update(extra)
    return payload
