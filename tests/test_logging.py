"""Logging configuration tests."""

import logging
from unittest.mock import patch

from praisebot.core import logging as praise_logging
from praisebot.core.logging import ServiceContextFilter, get_logging_config


def test_console_formatter_outside_production():
    config = get_logging_config("api")

    handler = config["handlers"]["console"]
    assert handler["formatter"] == "console"
    assert handler["filters"] == ["service_context"]
    assert config["filters"]["service_context"]["service"] == "api"
    assert config["loggers"]["praisebot"]["propagate"] is False
    assert config["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"


def test_json_formatter_in_production():
    with patch.object(praise_logging.settings, "environment", "production"):
        config = get_logging_config("api")

    assert config["handlers"]["console"]["formatter"] == "json"
    assert config["formatters"]["json"]["()"] == "pythonjsonlogger.jsonlogger.JsonFormatter"
    assert config["filters"]["service_context"]["environment"] == "production"


def test_service_context_filter_keeps_explicit_values():
    record = logging.LogRecord("praisebot.test", logging.INFO, __file__, 1, "hello", None, None)
    record.service = "seed"

    assert ServiceContextFilter(service="api", environment="test").filter(record) is True
    assert record.service == "seed"
    assert record.environment == "test"
