"""Tests for structured logging and settings validation."""
import json
import logging

import pytest
from pydantic import ValidationError as SchemaError

from circulation.core.config import Settings
from circulation.core.logging import ContextLogger, JSONFormatter, get_logger


def make_record(**extra):
    record = logging.LogRecord(
        name="circulation.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="Loan %s created",
        args=("L001",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_basic_fields(self):
        payload = json.loads(JSONFormatter().format(make_record()))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "circulation.test"
        assert payload["message"] == "Loan L001 created"

    def test_context_fields_promoted(self):
        payload = json.loads(JSONFormatter().format(make_record(loan_id="L001", isbn="X1", channel="email")))

        assert payload["loan_id"] == "L001"
        assert payload["isbn"] == "X1"
        assert payload["channel"] == "email"

    def test_exception_block(self):
        try:
            raise RuntimeError("channel down")
        except RuntimeError:
            import sys
            record = make_record()
            record.exc_info = sys.exc_info()

        payload = json.loads(JSONFormatter().format(record))
        assert payload["exception"]["type"] == "RuntimeError"
        assert payload["exception"]["message"] == "channel down"


class TestContextLogger:

    def test_get_logger_with_context(self):
        logger = get_logger("circulation.test", {"channel": "console"})
        assert isinstance(logger, ContextLogger)

    def test_context_merged_with_call_extra(self):
        logger = ContextLogger(logging.getLogger("circulation.test"), {"channel": "console"})

        _, kwargs = logger.process("msg", {"extra": {"loan_id": "L001"}})

        assert kwargs["extra"] == {"channel": "console", "loan_id": "L001"}


class TestSettings:

    def test_defaults(self):
        config = Settings(_env_file=None)

        assert config.loan_period_days == 14
        assert config.default_notification_channel == "console"

    def test_channel_name_normalized(self):
        assert Settings(DEFAULT_NOTIFICATION_CHANNEL=" Email ").default_notification_channel == "email"

    def test_unknown_default_channel_rejected(self):
        with pytest.raises(SchemaError):
            Settings(DEFAULT_NOTIFICATION_CHANNEL="sms")

    def test_loan_period_must_be_positive(self):
        with pytest.raises(SchemaError):
            Settings(LOAN_PERIOD_DAYS=0)

    def test_json_logs_follow_environment(self):
        assert Settings(ENVIRONMENT="production").use_json_logs is True
        assert Settings(ENVIRONMENT="development").use_json_logs is False
        assert Settings(ENVIRONMENT="development", LOG_JSON=True).use_json_logs is True
