"""Centralized logging configuration for the NIM proxy.

Usage:
    from nim_proxy.logging_config import configure_logging

    # Configure once at application startup
    configure_logging(level="DEBUG", format="json")

Modules obtain loggers with ``logging.getLogger(__name__)``.

Environment Variables:
    NIM_PROXY_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    NIM_PROXY_LOG_FORMAT: Output format ("text" or "json")
    NIM_PROXY_LOG_FILE: Optional log file path
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Literal

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
TEXT_FORMAT_WITH_MS = "%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy at DEBUG
QUIET_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio")

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime", "taskName"}

# Track if logging has been configured
_configured = False


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging.

    Outputs one JSON object per record:
    {
        "timestamp": "2026-01-05T14:30:00.123000",
        "level": "INFO",
        "logger": "nim_proxy.gateway.nim_proxy",
        "message": "[00001_143000_deepseek-v3.1] Request: ...",
        "extra": {...}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str | None = None,
    format: Literal["text", "json"] | None = None,
    file_path: str | None = None,
    include_ms: bool = True,
    force: bool = False,
) -> None:
    """Configure logging for the application.

    Subsequent calls are ignored unless force=True. Explicit arguments win
    over the NIM_PROXY_LOG_* environment variables.

    Args:
        level: Log level. Defaults to NIM_PROXY_LOG_LEVEL or "INFO".
        format: Output format. Defaults to NIM_PROXY_LOG_FORMAT or "text".
        file_path: Optional file path. Defaults to NIM_PROXY_LOG_FILE.
        include_ms: Include milliseconds in timestamp.
        force: Force reconfiguration even if already configured.

    Raises:
        ValueError: If the level name is unknown.
    """
    global _configured
    if _configured and not force:
        return

    level = level or os.environ.get("NIM_PROXY_LOG_LEVEL", "INFO")
    format = format or os.environ.get("NIM_PROXY_LOG_FORMAT", "text")  # type: ignore
    file_path = file_path or os.environ.get("NIM_PROXY_LOG_FILE")

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    if format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        fmt = TEXT_FORMAT_WITH_MS if include_ms else TEXT_FORMAT
        formatter = logging.Formatter(fmt, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if file_path:
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if numeric_level <= logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
