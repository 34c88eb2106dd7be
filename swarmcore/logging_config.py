"""Logging for SwarmCore: JSON lines to a rotating file, JSON or plain text to stdout.

Modules log with ``extra={"context": {...}}`` to attach event, task or
agent ids; the JSON renderer lifts that mapping into the record.

Environment:
    LOG_LEVEL: root level, INFO if unset.
    LOG_FORMAT: console rendering, ``json`` (default) or ``plain``.
"""

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import DEFAULT_LOG_PATH

ROTATE_BYTES = 10 * 1024 * 1024
ROTATE_KEEP = 5
PLAIN_LINE = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
CONSOLE_FORMATS = ("json", "plain")

# Libraries that are chatty below WARNING
QUIET_LOGGERS = ("aiosqlite", "httpx", "httpcore")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, stamped with the record's own creation time."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def build_logging_config(level: str, log_file: str, console_format: str) -> dict[str, Any]:
    """dictConfig schema for the given settings. Unknown console formats fall back to json."""
    if console_format not in CONSOLE_FORMATS:
        console_format = "json"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JSONFormatter},
            "plain": {"format": PLAIN_LINE},
        },
        "handlers": {
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": log_file,
                "maxBytes": ROTATE_BYTES,
                "backupCount": ROTATE_KEEP,
                "encoding": "utf-8",
                "formatter": "json",
            },
            "console": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": console_format,
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        "root": {"level": level.upper(), "handlers": ["file", "console"]},
    }


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    console_format: str | None = None,
) -> None:
    """Install the handlers. Arguments left as None come from the environment."""
    log_file = log_file or str(DEFAULT_LOG_PATH)
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(
        build_logging_config(
            log_level or os.getenv("LOG_LEVEL", "INFO"),
            log_file,
            (console_format or os.getenv("LOG_FORMAT", "json")).lower(),
        )
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
