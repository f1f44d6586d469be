"""
Logging configuration tests.
"""
import logging

import pytest

from handsfree.logging_setup import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestSetupLogging:
    def test_console_only(self, restore_root_logger):
        setup_logging(level="WARNING", log_file="")

        root = restore_root_logger
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.StreamHandler)

    def test_file_handler_creates_directory(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "logs" / "handsfree.log"

        setup_logging(level="DEBUG", log_file=str(log_file))
        logging.getLogger("handsfree.test").debug("hello %s", "file")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 2
        content = log_file.read_text(encoding="utf-8")
        assert "DEBUG [handsfree.test] hello file" in content

    def test_unknown_level_defaults_to_info(self, restore_root_logger):
        setup_logging(level="chatty", log_file="")

        assert restore_root_logger.level == logging.INFO

    def test_repeated_setup_does_not_duplicate_handlers(self, restore_root_logger):
        setup_logging(level="INFO", log_file="")
        setup_logging(level="INFO", log_file="")

        assert len(restore_root_logger.handlers) == 1
