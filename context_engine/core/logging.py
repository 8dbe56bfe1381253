"""Structured key=value logging for the context engine.

Context such as event_id, cycle_id or agent_id is passed through
``extra={...}`` and appended to the record after the fixed fields.
"""

import logging
import sys
from typing import Any

# Attributes every LogRecord carries; anything else came in through extra=
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {
    "message",
    "asctime",
}


def _render(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() for ch in text) or "=" in text:
        return repr(text)
    return text


class StructuredFormatter(logging.Formatter):
    """One line per record: fixed fields first, then context fields."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
        }
        context = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}

        line = " ".join(f"{k}={v}" for k, v in fields.items())
        line += f" message={record.getMessage()}"
        if context:
            line += " " + " ".join(f"{k}={_render(v)}" for k, v in sorted(context.items()))
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _default_level() -> int:
    try:
        from context_engine.core.config import get_settings

        return logging.DEBUG if get_settings().CONTEXT_ENGINE_ENV == "dev" else logging.INFO
    except Exception:
        # Settings need the Supabase/OpenAI env vars; logging must not
        return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger writing structured lines to stdout.

    The level is DEBUG when CONTEXT_ENGINE_ENV is "dev", INFO otherwise.

    Args:
        name: Logger name (typically __name__)
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_default_level())
        logger.propagate = False
    return logger
