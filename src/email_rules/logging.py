"""Logging infrastructure for email-rules with per-user logs.

Log files are written to the configured log directory with automatic rotation:
- email-rules-error.log: Errors from all users (ERROR+ level only)
- email-rules-{user}.log: Per-user rule activity

Usage:
    from email_rules.logging import setup_logging, get_user_logger, get_error_logger

    # Initialize once at startup
    setup_logging(log_dir=settings.log_dir)

    logger = get_user_logger(user_id)
    logger.info("Rule matched")

    # Errors also go to error log automatically
    logger.error("Action failed")
"""

from __future__ import annotations

import logging
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_DIR = Path.home() / ".local" / "state" / "email-rules"

# Default rotation settings
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5MB
DEFAULT_BACKUP_COUNT = 3

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

ERROR_LOGGER_NAME = "email_rules.errors"
USER_LOGGER_PREFIX = "email_rules.user"

# Module-level state
_loggers: dict[str, logging.Logger] = {}
_error_logger: logging.Logger | None = None
_log_dir: Path = DEFAULT_LOG_DIR
_max_bytes: int = DEFAULT_MAX_BYTES
_backup_count: int = DEFAULT_BACKUP_COUNT
_initialized: bool = False
# Guards logger creation; dispatcher workers log from threads
_lock = threading.RLock()


class ErrorPropagatingHandler(logging.Handler):
    """Handler that propagates ERROR+ messages to the error logger."""

    def __init__(self, user_id: str) -> None:
        super().__init__(level=logging.ERROR)
        self.user_id = user_id

    def emit(self, record: logging.LogRecord) -> None:
        """Forward error records to the error logger with user context."""
        error_logger = get_error_logger()
        prefixed_record = logging.LogRecord(
            name=record.name,
            level=record.levelno,
            pathname=record.pathname,
            lineno=record.lineno,
            msg=f"[{self.user_id}] {record.getMessage()}",
            args=(),  # Already formatted via getMessage()
            exc_info=record.exc_info,
        )
        error_logger.handle(prefixed_record)


def _safe_name(value: str) -> str:
    """Replace anything that isn't alphanumeric with a hyphen."""
    return "".join(c if c.isalnum() else "-" for c in value)


def setup_logging(
    log_dir: Path | None = None,
    log_level: str = "INFO",
    max_bytes: int | None = None,
    backup_count: int | None = None,
) -> None:
    """Initialize the logging system.

    Args:
        log_dir: Directory for log files (default: ~/.local/state/email-rules)
        log_level: Minimum log level (default: INFO)
        max_bytes: Max size per log file before rotation (default: 5MB)
        backup_count: Number of backup files to keep (default: 3)
    """
    global _log_dir, _max_bytes, _backup_count, _initialized

    _log_dir = log_dir or DEFAULT_LOG_DIR
    _max_bytes = max_bytes or DEFAULT_MAX_BYTES
    _backup_count = backup_count if backup_count is not None else DEFAULT_BACKUP_COUNT

    _log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger("email_rules")
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    _initialized = True


def _has_file_handler(logger: logging.Logger) -> bool:
    return any(isinstance(h, RotatingFileHandler) for h in logger.handlers)


def _file_handler(filename: str) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        _log_dir / filename,
        maxBytes=_max_bytes,
        backupCount=_backup_count,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def get_error_logger() -> logging.Logger:
    """Get the shared error logger (ERROR+ level, all users).

    Returns:
        Logger that writes to email-rules-error.log
    """
    global _error_logger

    if _error_logger is not None:
        return _error_logger

    with _lock:
        if _error_logger is not None:
            return _error_logger

        if not _initialized:
            setup_logging()

        logger = logging.getLogger(ERROR_LOGGER_NAME)
        logger.setLevel(logging.ERROR)
        # Don't propagate to root to avoid duplicate messages
        logger.propagate = False

        # Other handlers (capture fixtures, NullHandler) don't count
        if not _has_file_handler(logger):
            handler = _file_handler("email-rules-error.log")
            handler.setLevel(logging.ERROR)
            logger.addHandler(handler)

        _error_logger = logger
        return logger


def get_user_logger(user_id: str) -> logging.Logger:
    """Get or create a logger for a specific user's rule activity.

    Safe to call from dispatcher worker threads; each user gets exactly one
    file handler and one error-propagating handler.

    Args:
        user_id: Owner of the rules being processed.

    Returns:
        Logger that writes to email-rules-{user}.log
    """
    logger = _loggers.get(user_id)
    if logger is not None:
        return logger

    with _lock:
        if user_id in _loggers:
            return _loggers[user_id]

        if not _initialized:
            setup_logging()

        safe_name = _safe_name(user_id)

        logger = logging.getLogger(f"{USER_LOGGER_PREFIX}.{safe_name}")
        logger.setLevel(logging.INFO)
        logger.propagate = False

        if not _has_file_handler(logger):
            logger.addHandler(_file_handler(f"email-rules-{safe_name}.log"))
        if not any(isinstance(h, ErrorPropagatingHandler) for h in logger.handlers):
            logger.addHandler(ErrorPropagatingHandler(user_id))

        _loggers[user_id] = logger
        return logger


def _drop_own_handlers(logger: logging.Logger) -> None:
    for handler in logger.handlers[:]:
        if isinstance(handler, (RotatingFileHandler, ErrorPropagatingHandler)):
            handler.close()
            logger.removeHandler(handler)


def reset_logging() -> None:
    """Reset logging state (primarily for testing)."""
    global _loggers, _error_logger, _initialized

    with _lock:
        for logger in _loggers.values():
            _drop_own_handlers(logger)

        # By name, so a handler survives even if the cache was never filled
        _drop_own_handlers(logging.getLogger(ERROR_LOGGER_NAME))

        _loggers = {}
        _error_logger = None
        _initialized = False
