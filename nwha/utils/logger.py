"""
Structured logging for NWHA.

Provides a consistent logging interface with support for:
- Multiple log levels
- Structured JSON logging
- Console and file output
- Rich formatting for console
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler


class LogLevel(str, Enum):
    """Log levels for NWHA."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def numeric(self) -> int:
        """Get numeric log level."""
        levels = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
            "critical": logging.CRITICAL,
        }
        return levels.get(self.value, logging.INFO)


def setup_logging(
    level: LogLevel | str = LogLevel.INFO,
    log_file: str | Path | None = None,
    json_format: bool = False,
    console: bool = True,
) -> logging.Logger:
    """
    Set up logging configuration for NWHA.

    Args:
        level: Minimum log level
        log_file: Optional file path for log output
        json_format: Use JSON format for file logs
        console: Enable console output

    Returns:
        The configured ``nwha`` root logger
    """
    if isinstance(level, str):
        level = LogLevel(level.lower())

    root = logging.getLogger("nwha")
    root.setLevel(level.numeric)
    root.handlers.clear()

    if console:
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            markup=True,
            rich_tracebacks=True,
        )
        console_handler.setLevel(level.numeric)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        if json_format:
            file_handler.setFormatter(JsonFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(
                "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
            ))

        file_handler.setLevel(level.numeric)
        root.addHandler(file_handler)

    if not root.handlers:
        root.addHandler(logging.NullHandler())

    return root


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in ("session_id", "engine", "cause"):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def log_invocation(
    logger: logging.Logger,
    engine: str,
    success: bool,
    duration: float,
    error: str | None = None,
) -> None:
    """
    Log an engine call with structured data.

    Args:
        logger: Logger to use
        engine: Engine name
        success: Whether the call succeeded
        duration: Duration in seconds
        error: Error message if failed
    """
    extra = {"engine": engine}
    if success:
        logger.info(f"[magenta]{engine}[/] responded in {duration:.1f}s", extra=extra)
    else:
        logger.error(
            f"[magenta]{engine}[/] failed after {duration:.1f}s: {error or 'Unknown error'}",
            extra=extra,
        )


def log_transition(
    logger: logging.Logger,
    session_id: int,
    previous: str,
    current: str,
    cause: str = "",
) -> None:
    """
    Log a session status change.

    Args:
        logger: Logger to use
        session_id: Session whose status changed
        previous: Status before the change
        current: Status after the change
        cause: What triggered the change
    """
    colors = {
        "running": "green",
        "paused": "yellow",
        "stopped": "red",
    }
    color = colors.get(current, "white")
    suffix = f" ({cause})" if cause else ""

    logger.info(
        f"Session [cyan]{session_id}[/] {previous} -> [{color}]{current}[/{color}]{suffix}",
        extra={"session_id": session_id, "cause": cause},
    )
