"""
Tests for structured JSON logging
"""

import json
import logging

from securebank.logging_config import JSONFormatter, setup_logging, log_action


class _Capture(logging.Handler):

    def __init__(self):
        super().__init__()
        self.lines = []
        self.setFormatter(JSONFormatter())

    def emit(self, record):
        self.lines.append(self.format(record))


class TestStructuredLogging:

    def setup_method(self):
        self.logger = setup_logging("INFO", logger_name="securebank.test_logging")
        self.capture = _Capture()
        self.logger.addHandler(self.capture)

    def teardown_method(self):
        self.logger.removeHandler(self.capture)

    def test_log_action_fields(self):
        log_action(self.logger, "warning", "transfer rejected", user_id="3001",
                   action="transfer", resource="account:7", extra={"error": "insufficient_funds"})

        entry = json.loads(self.capture.lines[0])
        assert entry["level"] == "WARNING"
        assert entry["message"] == "transfer rejected"
        assert entry["user_id"] == "3001"
        assert entry["resource"] == "account:7"
        assert entry["extra"] == {"error": "insufficient_funds"}
        assert "correlation_id" not in entry

    def test_level_filtering(self):
        log_action(self.logger, "debug", "hidden")
        assert self.capture.lines == []

    def test_setup_is_idempotent(self):
        logger = setup_logging("DEBUG", logger_name="securebank.test_logging_twice")
        setup_logging("DEBUG", logger_name="securebank.test_logging_twice")
        assert len(logger.handlers) == 1
        assert logger.propagate is False
