"""
Unit tests for structured logging configuration and redaction.
"""

import json
import logging

import pytest

from core.config.settings import LoggingSettings, Settings
from core.logging import _redact_sensitive, bind_session_context, configure_logging, get_logger


def _json_lines(text):
    return [json.loads(line) for line in text.splitlines() if line.startswith("{")]


class TestRedaction:
    """Test the redaction processor on its own"""

    def test_redacts_nested_keys_case_insensitively(self):
        redact = _redact_sensitive(["access_token", "password"])

        event = redact(None, "info", {
            "event": "login",
            "Access_Token": "abc",
            "request": {"password": "pw", "user": "ann"},
            "items": [{"access_token": "x"}, "plain"],
        })

        assert event["Access_Token"] == "[REDACTED]"
        assert event["request"] == {"password": "[REDACTED]", "user": "ann"}
        assert event["items"] == [{"access_token": "[REDACTED]"}, "plain"]
        assert event["event"] == "login"


class TestConfigureLogging:
    """Test end-to-end rendering through the shared handler"""

    def test_json_output_is_redacted_and_carries_context(self, reset_logging, capsys):
        configure_logging(Settings(logging=LoggingSettings(json_format=True)))

        get_logger("session_auth.test", component="tests").info(
            "token issued", access_token="super-secret", state="csrf-value"
        )

        out = capsys.readouterr().out
        assert "super-secret" not in out
        assert "csrf-value" not in out
        record = _json_lines(out)[-1]
        assert record["event"] == "token issued"
        assert record["access_token"] == "[REDACTED]"
        assert record["component"] == "tests"
        assert record["service"] == "Session Auth"
        assert record["level"] == "info"

    def test_stdlib_records_use_the_same_pipeline(self, reset_logging, capsys):
        configure_logging(Settings(logging=LoggingSettings(json_format=True)))

        logging.getLogger("services.session_auth.test").warning("plain stdlib message")

        record = _json_lines(capsys.readouterr().out)[-1]
        assert record["event"] == "plain stdlib message"
        assert record["level"] == "warning"
        assert record["logger"] == "services.session_auth.test"

    def test_session_context_binding(self, reset_logging, capsys):
        configure_logging(Settings(logging=LoggingSettings(json_format=True)))

        logger = bind_session_context(get_logger("session_auth.test"), "a@x.com", {"files", "chat"})
        logger.info("session created")

        record = _json_lines(capsys.readouterr().out)[-1]
        assert record["session_id"] == "a@x.com"
        assert record["scopes"] == ["chat", "files"]

    def test_console_output_and_level(self, reset_logging, capsys):
        configure_logging(Settings(logging=LoggingSettings(level="WARNING")))

        logger = get_logger("session_auth.test")
        logger.info("quiet message")
        logger.warning("loud message", password="pw123")

        out = capsys.readouterr().out
        assert "quiet message" not in out
        assert "loud message" in out
        assert "pw123" not in out

    def test_configuration_is_applied_once(self, reset_logging):
        configure_logging(Settings())
        configure_logging(Settings())

        tagged = [h for h in logging.getLogger().handlers if getattr(h, "_session_auth_handler", False)]
        assert len(tagged) == 1

    @pytest.mark.parametrize("level", ["debug", "INFO"])
    def test_level_names_are_case_insensitive(self, reset_logging, level):
        configure_logging(Settings(logging=LoggingSettings(level=level)))

        assert logging.getLogger().level == getattr(logging, level.upper())
