"""
Logging utilities for the detection engine.

Provides a colored console formatter that tags records emitted from the
monitor worker thread, and a timer context manager that reports cycle
duration and record counts and warns about cycles that overrun.
"""

import logging
import sys
import threading
import time
from datetime import datetime
from typing import Any, Dict, Optional

# Extra record attributes rendered after the message, in this order
_EXTRA_FIELDS = (
    ("duration_ms", "duration={:.1f}ms"),
    ("record_count", "records={}"),
    ("anomaly_count", "anomalies={}"),
)


class ColoredFormatter(logging.Formatter):
    """Console formatter with per-level colors and compact extras."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record):
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
        if self.use_color:
            level = f"{self.COLORS.get(record.levelname, '')}{record.levelname:8}{self.RESET}"
        else:
            level = f"{record.levelname:8}"

        location = record.module if record.funcName == '<module>' else f"{record.module}.{record.funcName}"
        if record.threadName != threading.main_thread().name:
            location = f"{location}@{record.threadName}"

        extras = [
            template.format(getattr(record, key))
            for key, template in _EXTRA_FIELDS
            if hasattr(record, key)
        ]
        extra_str = f" [{', '.join(extras)}]" if extras else ""

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return f"{timestamp} | {level} | {location:34} | {message}{extra_str}"


def setup_logging(level: str = "INFO") -> None:
    """
    Set up console logging on the root logger.

    Args:
        level: Log level name; unknown names fall back to INFO
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter(use_color=sys.stdout.isatty()))
    handler.setLevel(numeric_level)

    root.setLevel(numeric_level)
    root.addHandler(handler)

    logging.getLogger('uvicorn').setLevel(logging.INFO)
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger by name (typically __name__)."""
    return logging.getLogger(name)


class LogTimer:
    """
    Context manager for timing operations with automatic logging.

    Completion is logged at `level`, or at WARNING when the operation took
    longer than `warn_after_ms`.

    Usage:
        with LogTimer(logger, "ARP table check", warn_after_ms=3000) as timer:
            rows = source.query()
            timer.set_record_count(len(rows))
    """

    def __init__(
        self,
        logger: logging.Logger,
        operation: str,
        level: int = logging.DEBUG,
        warn_after_ms: Optional[float] = None,
    ):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.warn_after_ms = warn_after_ms
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None
        self.record_count: Optional[int] = None
        self.extra_info: Dict[str, Any] = {}

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.log(self.level, f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000

        extra = {'duration_ms': self.duration_ms}
        if self.record_count is not None:
            extra['record_count'] = self.record_count
        extra.update(self.extra_info)

        if exc_type is not None:
            self.logger.error(f"Failed: {self.operation} - {exc_val}", extra=extra)
        elif self.warn_after_ms is not None and self.duration_ms > self.warn_after_ms:
            self.logger.warning(
                f"Slow: {self.operation} exceeded {self.warn_after_ms:.0f}ms", extra=extra
            )
        else:
            self.logger.log(self.level, f"Completed: {self.operation}", extra=extra)

        return False

    def set_record_count(self, count: int) -> None:
        """Set the number of records processed."""
        self.record_count = count

    def add_info(self, key: str, value: Any) -> None:
        """Add extra info to the completion log."""
        self.extra_info[key] = value
