"""realsync — Structured JSON Logging.

Every module logs through a child of the `realsync` logger. The single
stdout JSON handler lives on that parent, so child loggers only carry a
name and records reach the root logger as well.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from realsync.config import settings

ROOT_LOGGER = "realsync"

# Sync context passed via `extra=` and promoted to top-level JSON keys
EXTRA_FIELDS = (
    "orchestrator",
    "mode",
    "event_type",
    "collection",
    "duration_ms",
    "status_code",
)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with sync context fields when present."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(
            {key: getattr(record, key) for key in EXTRA_FIELDS if hasattr(record, key)}
        )
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str, ensure_ascii=False)


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not any(isinstance(h.formatter, JSONFormatter) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return root


def get_logger(name: str) -> logging.Logger:
    """Return the `realsync.<name>` logger."""
    _configure_root()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
