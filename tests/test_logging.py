"""Tests for per-user and error logging."""

import logging
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path

from email_rules.logging import (
    ERROR_LOGGER_NAME,
    ErrorPropagatingHandler,
    get_error_logger,
    get_user_logger,
    reset_logging,
    setup_logging,
)


class TestLogging:
    """Tests for the logging helpers."""

    def test_user_errors_reach_error_log(self, tmp_path: Path) -> None:
        """Test user log files and error propagation."""
        reset_logging()
        setup_logging(log_dir=tmp_path)

        logger = get_user_logger("alice@example.com")
        assert get_user_logger("alice@example.com") is logger

        logger.info("Rule matched")
        logger.error("Action failed")
        for handler in logger.handlers + get_error_logger().handlers:
            handler.flush()

        user_log = (tmp_path / "email-rules-alice-example-com.log").read_text()
        error_log = (tmp_path / "email-rules-error.log").read_text()

        assert "Rule matched" in user_log
        assert "Action failed" in user_log
        assert "[alice@example.com] Action failed" in error_log
        assert "Rule matched" not in error_log

    def test_error_log_created_despite_foreign_handler(self, tmp_path: Path) -> None:
        """Test a handler attached by someone else doesn't suppress the error log file."""
        reset_logging()
        setup_logging(log_dir=tmp_path)
        foreign = logging.NullHandler()
        logging.getLogger(ERROR_LOGGER_NAME).addHandler(foreign)

        try:
            error_logger = get_error_logger()
            error_logger.error("Store unreachable")
            for handler in error_logger.handlers:
                handler.flush()

            assert "Store unreachable" in (tmp_path / "email-rules-error.log").read_text()
        finally:
            logging.getLogger(ERROR_LOGGER_NAME).removeHandler(foreign)

    def test_reset_clears_error_logger_by_name(self, tmp_path: Path) -> None:
        """Test reset removes the error file handler even after the cache is gone."""
        reset_logging()
        setup_logging(log_dir=tmp_path)
        get_error_logger()

        reset_logging()

        handlers = logging.getLogger(ERROR_LOGGER_NAME).handlers
        assert not any(isinstance(h, RotatingFileHandler) for h in handlers)

    def test_concurrent_first_use_adds_handlers_once(self, tmp_path: Path) -> None:
        """Test threads racing on a new user end up sharing one set of handlers."""
        reset_logging()
        setup_logging(log_dir=tmp_path)
        barrier = threading.Barrier(8)
        loggers: list[logging.Logger] = []

        def first_use() -> None:
            barrier.wait()
            loggers.append(get_user_logger("race@example.com"))

        threads = [threading.Thread(target=first_use) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        logger = loggers[0]
        assert all(other is logger for other in loggers)
        assert len(logger.handlers) == 2
        assert sum(isinstance(h, RotatingFileHandler) for h in logger.handlers) == 1
        assert sum(isinstance(h, ErrorPropagatingHandler) for h in logger.handlers) == 1
