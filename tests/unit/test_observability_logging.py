"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest

from outreachflow.observability import (
    LOG_FILE_NAME,
    bind_operation,
    close_file_logging,
    configure_logging,
    console_level,
    get_logger,
    get_logs_dir,
)
from outreachflow.observability.logging import record_to_entry

if TYPE_CHECKING:
    from pathlib import Path


def test_configure_logging_sets_level_warning() -> None:
    """Default verbosity (0) sets WARNING level."""
    configure_logging(verbosity=0)

    root_logger = logging.getLogger()
    assert root_logger.level == logging.WARNING


def test_configure_logging_verbose_sets_debug_root() -> None:
    """verbosity=1 opens the root logger; the console handler filters."""
    configure_logging(verbosity=1)

    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG
    assert root_logger.handlers[0].level == logging.INFO


def test_configure_logging_very_verbose_sets_debug() -> None:
    """verbosity=2 sets DEBUG level."""
    configure_logging(verbosity=2)

    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG
    assert root_logger.handlers[0].level == logging.DEBUG


def test_get_logger_returns_bound_logger() -> None:
    """get_logger returns a structlog logger with expected methods."""
    logger = get_logger(__name__)

    assert hasattr(logger, "info")
    assert hasattr(logger, "debug")
    assert hasattr(logger, "error")
    assert hasattr(logger, "warning")


def test_get_logger_auto_configures() -> None:
    """get_logger configures logging if not already done."""
    import outreachflow.observability.logging as log_module

    log_module._configured = False

    logger = get_logger("test")

    assert log_module._configured is True
    assert logger is not None


def test_configure_logging_with_file_logging(tmp_path: Path) -> None:
    """File logging creates the log directory."""
    log_dir = tmp_path / "logs"
    configure_logging(verbosity=0, log_to_file=True, log_dir=log_dir)

    assert log_dir.exists()
    assert get_logs_dir() == log_dir
    close_file_logging()


def test_configure_logging_without_file_logging(tmp_path: Path) -> None:
    """Without file logging flag, the log directory is not created."""
    log_dir = tmp_path / "logs"
    configure_logging(verbosity=0, log_to_file=False, log_dir=log_dir)

    assert not log_dir.exists()


def test_configure_logging_requires_log_dir_for_file_logging() -> None:
    """log_to_file=True without log_dir raises ValueError."""
    with pytest.raises(ValueError, match="log_dir is required"):
        configure_logging(verbosity=0, log_to_file=True, log_dir=None)


def test_configure_logging_reconfiguration_closes_handler(tmp_path: Path) -> None:
    """Reconfiguring logging closes previous file handler."""
    import outreachflow.observability.logging as log_module

    configure_logging(verbosity=0, log_to_file=True, log_dir=tmp_path)
    first_handler = log_module._file_handler
    assert first_handler is not None

    configure_logging(verbosity=0, log_to_file=True, log_dir=tmp_path)
    second_handler = log_module._file_handler

    # First handler should have been closed (stream is None after close)
    assert first_handler.stream is None or first_handler.stream.closed
    assert second_handler is not None
    close_file_logging()


def test_close_file_logging_clears_handler(tmp_path: Path) -> None:
    """close_file_logging closes handler and clears reference."""
    import outreachflow.observability.logging as log_module

    configure_logging(verbosity=0, log_to_file=True, log_dir=tmp_path)
    assert log_module._file_handler is not None

    close_file_logging()

    assert log_module._file_handler is None


def test_jsonl_file_handler_writes_structlog_context(tmp_path: Path) -> None:
    """JSONLFileHandler correctly extracts structlog context to JSONL."""
    configure_logging(verbosity=2, log_to_file=True, log_dir=tmp_path)

    logger = get_logger("test.context")
    logger.info("delay_configured", node="node-3", count=2)

    close_file_logging()

    log_file = tmp_path / "debug.jsonl"
    assert log_file.exists()

    found = False
    with log_file.open() as f:
        for line in f:
            entry = json.loads(line)
            if entry.get("message") == "delay_configured":
                found = True
                assert entry["node"] == "node-3"
                assert entry["count"] == 2
                assert entry["level"] == "INFO"
                break

    assert found, "Log entry with structlog context not found in JSONL"


def _entries(log_dir: Path) -> list[dict]:
    with (log_dir / LOG_FILE_NAME).open() as f:
        return [json.loads(line) for line in f]


@pytest.mark.parametrize(
    ("verbosity", "expected"),
    [(0, logging.WARNING), (1, logging.INFO), (2, logging.DEBUG), (5, logging.DEBUG)],
)
def test_console_level(verbosity: int, expected: int) -> None:
    assert console_level(verbosity) == expected


def test_bind_operation_tags_events_inside_block(tmp_path: Path) -> None:
    """Events inside the block carry the operation; events after it don't."""
    configure_logging(verbosity=0, log_to_file=True, log_dir=tmp_path)
    logger = get_logger("test.bind_operation")

    with bind_operation("create_child", sequence="Welcome flow"):
        logger.info("slot_added", node="node-2")
    logger.info("editor_idle")
    close_file_logging()

    by_message = {e["message"]: e for e in _entries(tmp_path)}
    assert by_message["slot_added"]["operation"] == "create_child"
    assert by_message["slot_added"]["sequence"] == "Welcome flow"
    assert by_message["slot_added"]["node"] == "node-2"
    assert "operation" not in by_message["editor_idle"]


def test_plain_stdlib_record_becomes_message() -> None:
    record = logging.LogRecord("outreachflow.cli", logging.WARNING, __file__, 1, "%s!", ("hi",), None)
    entry = record_to_entry(record)
    assert entry["message"] == "hi!"
    assert entry["level"] == "WARNING"
    assert entry["logger"] == "outreachflow.cli"


def test_close_file_logging_forgets_logs_dir(tmp_path: Path) -> None:
    configure_logging(verbosity=0, log_to_file=True, log_dir=tmp_path)
    close_file_logging()
    assert get_logs_dir() is None
