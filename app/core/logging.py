"""
Logging setup for the Server Time Probe service.

- Plain text output by default, JSON lines when LOG_FORMAT=json
- A single stream handler on the root logger (uvicorn reloads and repeated
  lifespan runs in tests must not stack handlers)
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from app.core.config import settings

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JSONFormatter()
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(level: str = None, log_format: str = None) -> None:
    """
    Configure the root logger with exactly one stream handler.

    Args:
        level: Log level name, defaults to settings.LOG_LEVEL
        log_format: "text" or "json", defaults to settings.LOG_FORMAT
    """
    level = (level or settings.LOG_LEVEL).upper()
    log_format = (log_format or settings.LOG_FORMAT).lower()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Replace only the handler installed by a previous call
    for handler in list(root_logger.handlers):
        if getattr(handler, "_server_time_probe", False):
            root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_build_formatter(log_format))
    handler._server_time_probe = True
    root_logger.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
