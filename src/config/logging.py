"""Centralized logging configuration for SwingTrainer.

Log records go to stderr so that command output on stdout (tables, JSON
listings) stays clean. Files always receive JSON lines. Playback ticks run on
timer threads, so the thread name is part of every record.
"""

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("yfinance", "urllib3", "peewee", "duckdb")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured log files."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as a JSON line.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Session context passed via extra={"session_id": ...}
        session_id = getattr(record, "session_id", None)
        if session_id is not None:
            log_data["session_id"] = session_id

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored formatter for interactive terminals."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True, **kwargs) -> None:
        super().__init__(**kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        """Format log record, coloring the level name on a TTY."""
        levelname = record.levelname
        if self.use_color and levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def resolve_level(level: Optional[str]) -> int:
    """Turn a level name into its numeric value.

    Falls back to SWING_LOG_LEVEL, then LOG_LEVEL, then INFO.

    Raises:
        ValueError: If the name is not a logging level
    """
    name = (level or os.getenv("SWING_LOG_LEVEL") or os.getenv("LOG_LEVEL") or "INFO")
    numeric_level = getattr(logging, name.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {name}")
    return numeric_level


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    use_json: bool = False,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> None:
    """Configure the root logger for the application.

    Args:
        level: Log level name. Defaults to SWING_LOG_LEVEL or INFO.
        log_file: Optional path to a rotating JSON log file
        use_json: Emit JSON on stderr instead of colored text. Overridden by
            SWING_LOG_FORMAT ("json" or "console").
        max_bytes: Maximum size of the log file before rotation
        backup_count: Number of rotated files to keep

    Example:
        >>> from src.config.logging import setup_logging
        >>> setup_logging(level="DEBUG", log_file=Path("logs/trainer.log"))
    """
    numeric_level = resolve_level(level)

    log_format = os.getenv("SWING_LOG_FORMAT", "").lower()
    if log_format == "json":
        use_json = True
    elif log_format == "console":
        use_json = False

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(numeric_level)
    if use_json:
        stream_handler.setFormatter(JSONFormatter())
    else:
        stream_handler.setFormatter(
            ConsoleFormatter(
                use_color=sys.stderr.isatty(),
                fmt="%(asctime)s [%(threadName)s] %(name)s - %(levelname)s - "
                "%(message)s",
                datefmt="%H:%M:%S",
            )
        )
    root_logger.addHandler(stream_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    # Library chatter only shows up when debugging
    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logging.getLogger(__name__).debug(
        f"Logging initialized: level={logging.getLevelName(numeric_level)}, "
        f"format={'JSON' if use_json else 'console'}, "
        f"file={log_file or 'disabled'}"
    )
