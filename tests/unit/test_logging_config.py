"""Tests for logging configuration."""

import logging

import pytest

from hubproxy import logging_config

pytestmark = pytest.mark.unit


@pytest.fixture
def log_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(logging_config, "HUBPROXY_LOG_DIR", tmp_path)
    yield tmp_path
    logger = logging.getLogger("hubproxy")
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()


def test_module_loggers_are_children():
    logger = logging_config.configure_module_logging("cache")
    assert logger.name == "hubproxy.cache"


def test_file_and_console_handlers(log_dir):
    logger = logging_config.configure_hubproxy_logging(log_level="WARNING")

    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 2
    assert (log_dir / "hubproxy.log").exists()


def test_reconfiguring_does_not_duplicate_handlers(log_dir):
    logging_config.configure_hubproxy_logging()
    logger = logging_config.configure_hubproxy_logging(include_console=False)

    assert len(logger.handlers) == 1


def test_child_records_reach_log_file(log_dir):
    logging_config.configure_hubproxy_logging(log_level="INFO", include_console=False)

    logging_config.configure_module_logging("auth").info("Obtained hub session token")
    for handler in logging.getLogger("hubproxy").handlers:
        handler.flush()

    assert "Obtained hub session token" in (log_dir / "hubproxy.log").read_text()
