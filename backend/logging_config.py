"""
Parley Logging - Colored, single-line turn logs

Every module logs through `logging.getLogger(__name__)`; this module only
decides how records look and adds a few helpers for the events of a chat
turn, so a turn reads top to bottom in the console:

    12:01:07 [INFO] >>> MESSAGE What's the weather in Paris? [model=gpt-4o search=True]
    12:01:07 [INFO] >>> SEARCH provider=tavily
    12:01:08 [INFO] <<< SEARCH provider=tavily results=5
    12:01:08 [INFO] >>> LLM gpt-4o
    12:01:10 [INFO] <<< LLM gpt-4o in 2.1s
    12:01:10 [INFO] <<< RESPONSE model=gpt-4o chars=812 citations=3 first_chunk=640ms

Set NO_COLOR=1 to drop the ANSI codes (e.g. when logs go to a file).
"""

import logging
import os
import sys
from typing import Any, Dict, Optional

RESET = "\033[0m"
DIM = "\033[2m"
BOLD = "\033[1m"

LEVEL_COLORS = {
    logging.DEBUG: "\033[90m",  # gray
    logging.INFO: RESET,
    logging.WARNING: "\033[33m",  # orange
    logging.ERROR: "\033[91m",  # red
    logging.CRITICAL: "\033[91m" + BOLD,
}

# Turn event tags and their colors
EVENT_COLORS = {
    "MESSAGE": "\033[96m",  # cyan
    "RESPONSE": "\033[92m",  # green
    "THINKING": "\033[95m",  # magenta
    "SEARCH": "\033[93m",  # yellow
    "LLM": "\033[94m",  # blue
}

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "asyncpg", "uvicorn.access")


def _color_enabled() -> bool:
    return not os.environ.get("NO_COLOR")


class ColorFormatter(logging.Formatter):
    """`HH:MM:SS [LEVL] message`, level colored; logger name shown on warnings and above."""

    def __init__(self, use_color: Optional[bool] = None):
        super().__init__()
        self.use_color = _color_enabled() if use_color is None else use_color

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{RESET}" if self.use_color else text

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self._paint(self.formatTime(record, "%H:%M:%S"), DIM)
        level = self._paint(record.levelname[:4], LEVEL_COLORS.get(record.levelno, RESET))
        message = record.getMessage()
        if record.levelno >= logging.WARNING:
            message = f"{record.name}: {message}"

        line = f"{timestamp} [{level}] {message}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: Optional[int] = None) -> None:
    """Route the root logger to stdout through ColorFormatter.

    Args:
        level: Root level; defaults to LOG_LEVEL from the environment (INFO)
    """
    if level is None:
        level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# =============================================================================
# TURN EVENT HELPERS
# =============================================================================


def _tag(event: str, direction: str) -> str:
    label = f"{direction} {event}"
    if not _color_enabled():
        return label
    return f"{EVENT_COLORS.get(event, RESET)}{label}{RESET}"


def _pairs(context: Dict[str, Any]) -> str:
    return " ".join(f"{k}={v}" for k, v in context.items() if v is not None)


def log_message_in(logger: logging.Logger, message: str, **context) -> None:
    """Incoming user message, previewed to 80 chars, with turn options."""
    preview = message if len(message) <= 80 else message[:80] + "..."
    logger.info(f"{_tag('MESSAGE', '>>>')} {preview} [{_pairs(context)}]")


def log_message_out(
    logger: logging.Logger,
    model: str = "",
    chars: int = 0,
    citations: int = 0,
    waiting_ms: int = 0,
) -> None:
    """Completed assistant response with its citation count and time to first chunk."""
    logger.info(
        f"{_tag('RESPONSE', '<<<')} model={model} chars={chars} "
        f"citations={citations} first_chunk={waiting_ms}ms"
    )


def log_thinking(logger: logging.Logger, state: str, chars: int = 0) -> None:
    if state == "start":
        logger.info(f"{_tag('THINKING', '...')} started")
    else:
        logger.info(f"{_tag('THINKING', '...')} done ({chars} chars)")


def log_search(logger: logging.Logger, state: str, **context) -> None:
    """Web search start ('start') or result ('end'), e.g. provider, results, degraded."""
    direction = ">>>" if state == "start" else "<<<"
    logger.info(f"{_tag('SEARCH', direction)} {_pairs(context)}".rstrip())


def log_llm(logger: logging.Logger, state: str, model: str = "", duration: float = 0) -> None:
    if state == "start":
        logger.info(f"{_tag('LLM', '>>>')} {model}")
    else:
        logger.info(f"{_tag('LLM', '<<<')} {model} in {duration:.1f}s")
