"""Logging for tmspack runs: plain or JSON records that coexist with tqdm bars."""

from __future__ import annotations

import json
import logging
import sys
from logging import Logger
from logging.config import dictConfig
from typing import Any, Dict, Optional

from tqdm import tqdm

_RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}
_DATEFMT = "%Y-%m-%dT%H:%M:%SZ"


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra=`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and key not in payload:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


class TqdmStreamHandler(logging.StreamHandler):
    """Write records above any active progress bar instead of through it."""

    def __init__(self, stream: Any = None) -> None:
        super().__init__(stream or sys.stderr)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
        except RecursionError:  # pragma: no cover
            raise
        except Exception:
            self.handleError(record)


def configure_logging(
    *,
    level: str = "INFO",
    json_logs: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Install the console handler (and optionally a file handler) on the root logger."""

    formatter = "json" if json_logs else "standard"
    formatters: Dict[str, Dict[str, Any]] = {
        "standard": {
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            "datefmt": _DATEFMT,
        },
        "json": {"()": JSONFormatter, "datefmt": _DATEFMT},
    }
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {"()": TqdmStreamHandler, "formatter": formatter},
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "filename": log_file,
            "encoding": "utf-8",
            "formatter": formatter,
        }

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": formatters,
            "handlers": handlers,
            "root": {"handlers": list(handlers), "level": level.upper()},
        }
    )


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)
