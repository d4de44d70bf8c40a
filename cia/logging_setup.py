"""JSON log lines for the CIA service, one object per record."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict

# Passed through ``extra=`` by the request middleware and the error handler.
REQUEST_ATTRIBUTES = ("request_path", "method", "status_code", "latency_ms", "client", "tenant")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (name, getattr(record, name))
            for name in REQUEST_ATTRIBUTES
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def setup_logging(default_level: str | int = logging.INFO) -> None:
    """
    Route the root logger through ``JsonFormatter``.

    ``LOG_LEVEL`` in the environment takes precedence over ``log.level``
    (passed in as ``default_level``). Stream handlers installed earlier, by a
    previous app or by the server, are switched to JSON instead of duplicated.
    """
    level = os.environ.get("LOG_LEVEL") or default_level
    if isinstance(level, str):
        level = level.upper()
    root = logging.getLogger()
    root.setLevel(level)

    streams = [h for h in root.handlers if isinstance(h, logging.StreamHandler)]
    if not streams:
        streams = [logging.StreamHandler()]
        root.addHandler(streams[0])
    for handler in streams:
        handler.setFormatter(JsonFormatter())
