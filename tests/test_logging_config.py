import json
import logging

from relay.logging_config import JSONFormatter, UserContextFilter, get_logger, log_user_context


def _record(message="hello", **extra):
    record = logging.LogRecord("relay.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "relay.test"
        assert data["message"] == "hello"
        assert data["user_id"] == "-"

    def test_context_included(self):
        data = json.loads(JSONFormatter().format(_record(context={"backend": "gpt"})))
        assert data["context"] == {"backend": "gpt"}


class TestUserContext:
    def test_filter_stamps_current_user(self):
        record = _record()
        with log_user_context("u42"):
            UserContextFilter().filter(record)
        assert record.user_id == "u42"

    def test_context_resets_after_block(self):
        with log_user_context("u42"):
            pass
        record = _record()
        UserContextFilter().filter(record)
        assert record.user_id == "-"

    def test_blank_user_becomes_dash(self):
        record = _record()
        with log_user_context("  "):
            UserContextFilter().filter(record)
        assert record.user_id == "-"


def test_get_logger_namespaced():
    assert get_logger("webhook").name == "relay.webhook"
