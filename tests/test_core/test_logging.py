"""Tests for logging setup."""

import json
import logging
from collections.abc import Generator
from pathlib import Path

import pytest

from kioskcache.config import LoggingConfig
from kioskcache.core.logging import setup_logging, setup_logging_from_config


@pytest.fixture(autouse=True)
def restore_root_logger() -> Generator[None, None, None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Test console and file handler setup."""

    def test_console_only(self):
        setup_logging(log_level_name="INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_file_handler_writes_json(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "kioskcache.log"
        setup_logging(log_level_name="DEBUG", log_file=str(log_file))

        logging.getLogger("kioskcache.test").info("cached %s", "menu")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = log_file.read_text().splitlines()
        record = json.loads(lines[-1])
        assert record["event"] == "cached menu"
        assert record["level"] == "info"

    def test_from_config(self, tmp_path: Path):
        config = LoggingConfig(level="error", file_path=tmp_path / "x.log")
        setup_logging_from_config(config)

        root = logging.getLogger()
        assert root.level == logging.ERROR
        assert len(root.handlers) == 2
        assert logging.getLogger("urllib3").level == logging.ERROR
