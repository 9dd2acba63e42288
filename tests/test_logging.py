"""Tests for structlog configuration."""

from __future__ import annotations

import io
import json
import logging

import pytest
import structlog

from adsbook.context import AccountContext
from adsbook.logging import bind_account, configure_logging


@pytest.fixture()
def stream():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    out = io.StringIO()
    yield out
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestConfigureLogging:
    def test_json_records_carry_account(self, stream):
        configure_logging(log_level="INFO", log_format="json", stream=stream)
        bind_account(AccountContext(account_id="acct-1", marketplace="US"))

        structlog.get_logger("adsbook.test").info("Pack built", actions=3)

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert record["event"] == "Pack built"
        assert record["account_id"] == "acct-1"
        assert record["marketplace"] == "US"
        assert record["actions"] == 3
        assert record["level"] == "info"

    def test_level_filters_and_quiets_sql(self, stream):
        configure_logging(log_level="DEBUG", log_format="json", stream=stream)
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

        configure_logging(log_level="WARNING", log_format="json", stream=stream)
        structlog.get_logger("adsbook.test").info("hidden")
        logging.getLogger("uvicorn.error").warning("Port in use")

        lines = [json.loads(line) for line in stream.getvalue().strip().splitlines()]
        assert [line["event"] for line in lines] == ["Port in use"]
