"""
Logging Configuration — One stderr handler for the whole controller.

``LOG_FORMAT=json`` emits one object per line for log shippers, with the
reconcile context (``tick_id``, ``domain``, ``namespace``) lifted out of
``extra=``. Anything else gives the colored console format. ``LOG_LEVEL``
picks the level; ``DEBUG=true`` overrides it.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

RECONCILE_FIELDS = ("tick_id", "domain", "namespace")
QUIET_LOGGERS = ("urllib3", "kubernetes", "werkzeug")


class JSONFormatter(logging.Formatter):
    """{"ts", "level", "logger", "message", [tick_id, domain, namespace], [exception]}"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            {name: getattr(record, name) for name in RECONCILE_FIELDS if hasattr(record, name)}
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class HumanFormatter(logging.Formatter):
    """``12:34:56 INFO    [syncer         ] Syncing example.com``"""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:7}"
        if sys.stderr.isatty():
            level = f"{self.LEVEL_COLORS.get(record.levelname, '')}{level}{self.RESET}"

        source = record.name.rsplit(".", 1)[-1][:15]
        text = record.getMessage()
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"

        return f"{datetime.now():%H:%M:%S} {level} [{source:15}] {text}"


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
    debug: bool = False,
) -> None:
    """Replace root handlers with a single stderr handler. Call once from the CLI."""
    level_name = "DEBUG" if debug else (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    fmt = (format_type or os.environ.get("LOG_FORMAT", "text")).lower()
    numeric_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else HumanFormatter())
    handler.setLevel(numeric_level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(f"Logging configured: level={level_name}, format={fmt}")
