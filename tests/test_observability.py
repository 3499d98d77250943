"""
Tests for logging setup.
"""

import logging
from pathlib import Path

import pytest

from hostprep.core.observability.logging_config import (
    level_from_flags,
    setup_from_env,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestLevelFromFlags:
    def test_default_is_info(self):
        assert level_from_flags(environ={}) == "INFO"

    def test_env_var(self):
        assert level_from_flags(environ={"HOSTPREP_LOG_LEVEL": "WARNING"}) == "WARNING"

    def test_flags_beat_env(self):
        env = {"HOSTPREP_LOG_LEVEL": "WARNING"}
        assert level_from_flags(debug=True, environ=env) == "DEBUG"
        assert level_from_flags(verbose=True, environ=env) == "INFO"
        assert level_from_flags(quiet=True, environ=env) == "ERROR"

    def test_debug_beats_quiet(self):
        assert level_from_flags(debug=True, quiet=True, environ={}) == "DEBUG"


class TestSetupLogging:
    def test_console_only(self):
        setup_logging("WARNING")
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_plain_format_by_default(self):
        setup_logging("INFO")
        assert logging.getLogger().handlers[0].formatter._fmt == "%(message)s"

    def test_verbose_format(self):
        setup_logging("INFO", verbose=True)
        assert "%(name)s" in logging.getLogger().handlers[0].formatter._fmt

    def test_unknown_level_falls_back_to_info(self):
        setup_logging("LOUD")
        assert logging.getLogger().level == logging.INFO

    def test_file_handler_captures_debug(self, tmp_path: Path):
        log_file = tmp_path / "hostprep.log"
        setup_logging("ERROR", log_file=str(log_file))
        root = logging.getLogger()
        assert root.level == logging.DEBUG

        logging.getLogger("hostprep.test").debug("Executing: apt-get update")
        for handler in root.handlers:
            handler.flush()
        assert "Executing: apt-get update" in log_file.read_text()

    def test_setup_from_env(self, tmp_path: Path):
        log_file = tmp_path / "run.log"
        setup_from_env(
            "INFO",
            environ={"HOSTPREP_LOG_FILE": str(log_file), "HOSTPREP_LOG_FILE_LEVEL": "WARNING"},
        )
        handlers = logging.getLogger().handlers
        assert len(handlers) == 2
        assert handlers[1].level == logging.WARNING

    def test_repeated_setup_does_not_stack_handlers(self):
        setup_logging("INFO")
        setup_logging("INFO")
        assert len(logging.getLogger().handlers) == 1
