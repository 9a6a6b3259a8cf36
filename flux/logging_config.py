"""
Structured logging configuration.

Provides JSON-formatted logs with a trace_id field (the Signal id or
checkpoint name being processed).

Environment Variables:
    FLUX_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR) - default: INFO
    FLUX_LOG_FORMAT: Log format (json, text) - default: text

Usage:
    from flux.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__, trace_id=signal.id)
    logger.info("Recorded signal")
"""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class TraceIDFilter(logging.Filter):
    """Ensures every record carries a trace_id, even outside a LoggerAdapter."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "trace_id"):
            record.trace_id = "N/A"  # type: ignore
        return True


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Overrides FLUX_LOG_LEVEL
        log_format: Overrides FLUX_LOG_FORMAT ("json" or "text")

    Logs go to stderr so they never mix with command output.
    """
    level_name = (level or os.getenv("FLUX_LOG_LEVEL", "INFO")).upper()
    fmt = (log_format or os.getenv("FLUX_LOG_FORMAT", "text")).lower()
    resolved = _LEVELS.get(level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved)
    handler.addFilter(TraceIDFilter())

    if fmt == "json":
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s %(trace_id)s",
            rename_fields={
                "asctime": "timestamp",
                "name": "logger",
                "levelname": "level",
            },
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s [trace_id=%(trace_id)s]",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def get_logger(name: str, trace_id: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Get a logger that stamps trace_id on every record.

    Args:
        name: Logger name (typically __name__)
        trace_id: Signal id or checkpoint name to correlate by
    """
    return logging.LoggerAdapter(logging.getLogger(name), {"trace_id": trace_id or "N/A"})
