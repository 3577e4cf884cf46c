"""Structured logging for the sequence editor.

Events are structlog key/value pairs named in snake_case
(``child_created``, ``delay_configured``). They go to two sinks:

- the console, through rich, filtered by the CLI's ``-v`` count
- optionally ``<log_dir>/debug.jsonl``, one JSON object per event at DEBUG

Events logged inside :func:`bind_operation` carry the bound keys. Every
draft transaction opens one with the operation and sequence name, so a JSONL
log can be grouped by the edit that produced it.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003 - Used at runtime for path operations
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from collections.abc import Iterator

    from structlog.typing import Processor

LOG_FILE_NAME = "debug.jsonl"

# structlog adds these itself; the JSONL entry carries its own copies.
_RESERVED_KEYS = ("level", "timestamp")

_configured = False
_file_handler: logging.FileHandler | None = None
_logs_dir: Path | None = None


def console_level(verbosity: int) -> int:
    """Console threshold for a ``-v`` count: WARNING, INFO, then DEBUG."""
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def record_to_entry(record: logging.LogRecord) -> dict[str, Any]:
    """Flatten a log record into one JSONL entry.

    Records coming from structlog hold the event dict in ``record.msg``; its
    ``event`` becomes ``message`` and the remaining keys are kept as-is.
    Plain stdlib records contribute only their formatted message.
    """
    entry: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "level": record.levelname,
        "logger": record.name,
    }
    if not isinstance(record.msg, dict):
        entry["message"] = record.getMessage()
        return entry

    fields = {k: v for k, v in record.msg.items() if k not in _RESERVED_KEYS}
    entry["message"] = fields.pop("event", "")
    entry.update(fields)
    return entry


class JSONLFileHandler(logging.FileHandler):
    """Appends each record to the log file as a single JSON line."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = json.dumps(record_to_entry(record), default=str)
            if self.stream:
                self.stream.write(line + "\n")
                self.stream.flush()
        except Exception:
            self.handleError(record)


def _console_handler(verbosity: int) -> RichHandler:
    return RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
        markup=False,
        level=console_level(verbosity),
    )


def _jsonl_handler(log_dir: Path) -> JSONLFileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = JSONLFileHandler(str(log_dir / LOG_FILE_NAME), mode="a")
    handler.setLevel(logging.DEBUG)
    return handler


def configure_logging(
    verbosity: int = 0,
    log_to_file: bool = False,
    log_dir: Path | None = None,
) -> None:
    """Route editor events to the console and, optionally, a JSONL file.

    Safe to call repeatedly; a previous file handler is closed first.

    Args:
        verbosity: ``-v`` count. 0 shows warnings, 1 info, 2 or more debug.
        log_to_file: Also write every event to ``<log_dir>/debug.jsonl``.
        log_dir: Where the JSONL file goes. Required with *log_to_file*.

    Raises:
        ValueError: If log_to_file=True but log_dir is not provided.
    """
    global _configured, _file_handler, _logs_dir

    if log_to_file and log_dir is None:
        raise ValueError("log_dir is required when log_to_file=True")

    close_file_logging()

    # handlers[0] is always the console handler.
    handlers: list[logging.Handler] = [_console_handler(verbosity)]
    if log_to_file and log_dir is not None:
        _logs_dir = log_dir
        _file_handler = _jsonl_handler(log_dir)
        handlers.append(_file_handler)

    root_level = logging.DEBUG if (verbosity > 0 or log_to_file) else logging.WARNING
    logging.basicConfig(level=root_level, format="%(message)s", handlers=handlers, force=True)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Module logger; configures console-only logging on first use."""
    if not _configured:
        configure_logging()

    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


@contextmanager
def bind_operation(operation: str, **context: Any) -> Iterator[None]:
    """Tag every event logged inside the block with *operation* and *context*.

    Bindings live in structlog's context variables and are restored on exit,
    so nested blocks only add keys for their own duration.
    """
    with structlog.contextvars.bound_contextvars(operation=operation, **context):
        yield


def get_logs_dir() -> Path | None:
    """Directory holding ``debug.jsonl``, or None while file logging is off."""
    return _logs_dir


def close_file_logging() -> None:
    global _file_handler, _logs_dir
    _logs_dir = None
    if _file_handler is not None:
        _file_handler.close()
        _file_handler = None
