from __future__ import annotations

import logging

from rich.console import Console
from rich.text import Text

from quickenv.config import DEFAULT_LOG_LEVEL, QUICKENV_NAME

LOG_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": logging.CRITICAL + 10,
}

# INFO is printed bare so that regular progress messages read like plain output.
_LEVEL_TAGS = {
    logging.DEBUG: ("DEBUG", "blue"),
    logging.WARNING: ("WARN", "yellow"),
    logging.ERROR: ("ERROR", "red"),
    logging.CRITICAL: ("ERROR", "red"),
}


class QuickenvLogHandler(logging.Handler):
    """Render log records on stderr, tagged with the level and program name.

    Every line carries "quickenv" because shim output is interleaved with the
    output of whatever program the shim launched.
    """

    def __init__(self, console: Console | None = None):
        super().__init__()
        self.console = console or Console(stderr=True, highlight=False, soft_wrap=True)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            if getattr(record, "markup", False):
                body = Text.from_markup(message)
            else:
                body = Text(message)

            tag = _LEVEL_TAGS.get(record.levelno)
            if tag is None:
                line = body
            else:
                name, colour = tag
                line = Text.assemble("[", (name, colour), f" {QUICKENV_NAME}] ", body)
            self.console.print(line)
        except Exception:
            self.handleError(record)


def parse_log_level(value: str | None) -> int:
    if not value:
        return LOG_LEVELS[DEFAULT_LOG_LEVEL]
    return LOG_LEVELS.get(value.strip().lower(), LOG_LEVELS[DEFAULT_LOG_LEVEL])


def configure_logging(level: str | None = None, console: Console | None = None) -> logging.Logger:
    """Install the quickenv handler on the package logger (idempotent)."""
    logger = logging.getLogger(QUICKENV_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, QuickenvLogHandler):
            logger.removeHandler(handler)
    logger.addHandler(QuickenvLogHandler(console))
    logger.setLevel(parse_log_level(level))
    return logger
