"""Observability module for outreachflow.

Provides structured logging and per-operation log context.
"""

from outreachflow.observability.logging import (
    LOG_FILE_NAME,
    bind_operation,
    close_file_logging,
    configure_logging,
    console_level,
    get_logger,
    get_logs_dir,
)

__all__ = [
    "LOG_FILE_NAME",
    "bind_operation",
    "close_file_logging",
    "configure_logging",
    "console_level",
    "get_logger",
    "get_logs_dir",
]
