"""
Structured JSON logging for the search pipeline.

Every record is written as one JSON object. Per-call context goes in
``extra={"extra_fields": {...}}``; ``bind`` returns a logger that stamps a
fixed set of fields (a run's fingerprint, a provider name) on every record.

Environment:
    LOG_DIR         directory for the rotating log files (default: logs)
    LOG_LEVEL       root level (default: INFO)
    LOG_TO_FILES    write app/error/debug files (default: true)
    LOG_TO_CONSOLE  also echo ERROR records to stderr (default: false)
"""

import json
import logging
import logging.handlers
import os
import sys
from collections.abc import MutableMapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

MAX_BYTES = 10 * 1024 * 1024  # 10MB per file
BACKUP_COUNT = 5


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with ``extra_fields`` merged at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            log_data.update(extra_fields)

        # Values such as exceptions or paths are logged by their str()
        return json.dumps(log_data, default=str)


class ContextAdapter(logging.LoggerAdapter):
    """Adds bound fields to ``extra_fields``; fields passed per call win."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["extra_fields"] = {**self.extra, **extra.get("extra_fields", {})}
        kwargs["extra"] = extra
        return msg, kwargs


class LoggerConfig:
    """Process-wide logging setup, applied once on first use."""

    LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_TO_FILES = os.getenv("LOG_TO_FILES", "true").lower() == "true"
    LOG_TO_CONSOLE = os.getenv("LOG_TO_CONSOLE", "false").lower() == "true"

    _initialized = False

    @classmethod
    def _file_handler(cls, filename: str, level: int, formatter: logging.Formatter) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            cls.LOG_DIR / filename,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.setFormatter(formatter)
        return handler

    @classmethod
    def setup_logging(cls) -> None:
        if cls._initialized:
            return

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, cls.LOG_LEVEL, logging.INFO))
        root_logger.handlers.clear()

        json_formatter = JsonFormatter()
        if cls.LOG_TO_FILES:
            cls.LOG_DIR.mkdir(parents=True, exist_ok=True)
            root_logger.addHandler(cls._file_handler("app.log", logging.INFO, json_formatter))
            root_logger.addHandler(cls._file_handler("error.log", logging.ERROR, json_formatter))
            if cls.LOG_LEVEL == "DEBUG":
                root_logger.addHandler(cls._file_handler("debug.log", logging.DEBUG, json_formatter))

        if cls.LOG_TO_CONSOLE:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(logging.ERROR)
            console_handler.setFormatter(
                logging.Formatter(
                    fmt="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            root_logger.addHandler(console_handler)

        cls._initialized = True

        logging.getLogger(__name__).info(
            "Logging system initialized",
            extra={
                "extra_fields": {
                    "log_level": cls.LOG_LEVEL,
                    "log_dir": str(cls.LOG_DIR) if cls.LOG_TO_FILES else None,
                    "console_logging": cls.LOG_TO_CONSOLE,
                }
            },
        )


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Example:
        >>> from utils.logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.warning("Fetch failed", extra={"extra_fields": {"url": url}})
    """
    LoggerConfig.setup_logging()
    return logging.getLogger(name)


def bind(logger: logging.Logger, **fields: Any) -> ContextAdapter:
    """Return ``logger`` with ``fields`` added to every record's extra_fields."""
    return ContextAdapter(logger, fields)
