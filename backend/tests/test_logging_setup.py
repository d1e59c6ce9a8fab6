"""Tests for backend logging setup."""

import logging

import pytest

from app.logging_config import ROOT_LOGGER, get_logger, setup_logging


@pytest.fixture(autouse=True)
def clean_logger():
    logger = logging.getLogger(ROOT_LOGGER)
    saved = list(logger.handlers), logger.level
    logger.handlers.clear()
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])


class TestSetupLogging:
    def test_console_handler_added_once(self, clean_logger):
        setup_logging("DEBUG")
        setup_logging("WARNING")

        consoles = [h for h in clean_logger.handlers if not isinstance(h, logging.FileHandler)]
        assert len(consoles) == 1
        assert clean_logger.level == logging.WARNING

    def test_file_handler(self, clean_logger, tmp_path):
        log_file = tmp_path / "logs" / "nimmit.log"

        setup_logging("INFO", log_file=log_file)
        setup_logging("INFO", log_file=log_file)
        get_logger("jobs").info("job created")
        for handler in clean_logger.handlers:
            handler.flush()

        files = [h for h in clean_logger.handlers if isinstance(h, logging.FileHandler)]
        assert len(files) == 1
        content = log_file.read_text()
        assert "INFO | nimmit.jobs | job created" in content

    def test_unknown_level_falls_back_to_info(self, clean_logger):
        setup_logging("CHATTY")
        assert clean_logger.level == logging.INFO


class TestGetLogger:
    def test_prefixes_namespace(self):
        assert get_logger("api.jobs").name == "nimmit.api.jobs"

    def test_keeps_existing_namespace(self):
        assert get_logger("nimmit.ledger.service").name == "nimmit.ledger.service"
        assert get_logger("nimmit").name == "nimmit"
