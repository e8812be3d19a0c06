"""
Tests for the console log format and turn event helpers.
"""

import logging

from logging_config import ColorFormatter, log_message_in, log_search


def record(level=logging.INFO, msg="hello", name="parley.test"):
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


class TestColorFormatter:
    def test_plain_format(self):
        line = ColorFormatter(use_color=False).format(record())
        assert line.endswith("[INFO] hello")
        assert "\033[" not in line

    def test_warnings_include_logger_name(self):
        line = ColorFormatter(use_color=False).format(record(logging.WARNING, "careful"))
        assert line.endswith("[WARN] parley.test: careful")

    def test_color_codes_when_enabled(self):
        assert "\033[" in ColorFormatter(use_color=True).format(record())


class TestEventHelpers:
    def test_message_preview_and_context(self, caplog, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        logger = logging.getLogger("parley.test")
        with caplog.at_level(logging.INFO, logger="parley.test"):
            log_message_in(logger, "x" * 100, model="gpt-4o", search=True, session=None)
        assert caplog.messages[-1] == f">>> MESSAGE {'x' * 80}... [model=gpt-4o search=True]"

    def test_search_end(self, caplog, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        logger = logging.getLogger("parley.test")
        with caplog.at_level(logging.INFO, logger="parley.test"):
            log_search(logger, "end", provider="tavily", results=0, degraded=True)
        assert caplog.messages[-1] == "<<< SEARCH provider=tavily results=0 degraded=True"
