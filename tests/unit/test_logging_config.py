import json
import logging

import pytest
from pythonjsonlogger import jsonlogger

from optimeal.logging_config import configure_logging

pytestmark = pytest.mark.unit


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)


def test_level_comes_from_argument_not_environment(root_logger, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "ERROR")

    configure_logging("debug")

    assert root_logger.level == logging.DEBUG


def test_unknown_level_falls_back_to_info(root_logger):
    configure_logging("chatty")

    assert root_logger.level == logging.INFO


def test_single_json_handler(root_logger):
    root_logger.addHandler(logging.NullHandler())

    configure_logging("INFO")

    assert len(root_logger.handlers) == 1
    handler = root_logger.handlers[0]
    assert isinstance(handler.formatter, jsonlogger.JsonFormatter)

    record = logging.LogRecord("optimeal.test", logging.WARNING, __file__, 1, "stock is low", None, None)
    line = json.loads(handler.format(record))
    assert line["level"] == "WARNING"
    assert line["name"] == "optimeal.test"
    assert line["message"] == "stock is low"
    assert "timestamp" in line


def test_http_client_loggers_are_quiet(root_logger):
    configure_logging("DEBUG")

    assert logging.getLogger("httpx").level == logging.WARNING
