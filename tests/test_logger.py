"""
Tests for logging infrastructure.

Verifies logger configuration, file creation, and rotation.
"""

import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest

import voxscribe.utils.logger as logger_module
from voxscribe.utils.logger import ROOT_LOGGER_NAME, get_logger, shutdown_logging


@pytest.fixture
def fresh_logging(tmp_path):
    shutdown_logging()
    with patch("voxscribe.utils.logger.get_log_dir", return_value=tmp_path):
        yield tmp_path
    shutdown_logging()


def rotating_handlers():
    return [
        h
        for h in logging.getLogger(ROOT_LOGGER_NAME).handlers
        if isinstance(h, RotatingFileHandler)
    ]


class TestLoggerConfiguration:
    """Tests for logger setup."""

    def test_get_logger_returns_logger(self):
        """get_logger returns a standard Logger."""
        logger = get_logger("voxscribe.test")
        assert isinstance(logger, logging.Logger)

    def test_root_logger_singleton(self):
        """The package logger is configured once and reused."""
        assert get_logger() is get_logger(ROOT_LOGGER_NAME)

    def test_child_logger_name(self):
        """Module loggers keep their dotted name."""
        assert get_logger("voxscribe.core.session").name == "voxscribe.core.session"

    def test_logger_writes_to_file(self, fresh_logging):
        """Messages from child loggers land in app.log."""
        logger = get_logger("voxscribe.test")
        logger.info("Test message")
        for handler in rotating_handlers():
            handler.flush()

        content = (fresh_logging / "app.log").read_text()
        assert "Test message" in content
        assert "INFO" in content

    def test_rotating_handler_configured(self, fresh_logging):
        """The file handler rotates at 10MB and keeps five backups."""
        get_logger()
        rotating = rotating_handlers()

        assert len(rotating) == 1
        assert rotating[0].maxBytes == 10 * 1024 * 1024
        assert rotating[0].backupCount == 5

    def test_foreign_handler_does_not_skip_setup(self, fresh_logging):
        """A handler attached by the host still gets the file handler added."""
        root = logging.getLogger(ROOT_LOGGER_NAME)
        foreign = logging.NullHandler()
        root.addHandler(foreign)
        try:
            get_logger()
            assert len(rotating_handlers()) == 1
            assert foreign in root.handlers
        finally:
            root.removeHandler(foreign)

    def test_shutdown_removes_own_handlers(self, fresh_logging):
        """Shutdown closes the package handlers and leaves others in place."""
        root = logging.getLogger(ROOT_LOGGER_NAME)
        foreign = logging.NullHandler()
        root.addHandler(foreign)
        try:
            get_logger()
            shutdown_logging()

            assert rotating_handlers() == []
            assert foreign in root.handlers
            assert logger_module._logger_instance is None
        finally:
            root.removeHandler(foreign)
