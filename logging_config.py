from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Iterable, Sequence

from settings import get_settings

CONTEXT_KEYS = (
    "session_id",
    "connection_id",
    "message_type",
    "client_count",
    "measurement_count",
    "model_type",
    "port",
    "url",
    "attempt",
    "reason",
)

# Third-party loggers that are chatty at INFO during every connect/request.
_QUIET_LOGGERS = ("websockets", "uvicorn.access")

_LINE_FORMAT = "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_configured = False


class ContextualFormatter(logging.Formatter):
    """Appends ``key=value`` pairs for known ``extra=`` fields to each line."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        context_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._context_keys: Sequence[str] = tuple(context_keys or CONTEXT_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context: list[str] = []
        for key in self._context_keys:
            value = getattr(record, key, None)
            if value is not None:
                context.append(f"{key}={_render(value)}")
        if not context:
            return message
        return f"{message} | {' '.join(context)}"


def _render(value: Any) -> str:
    text = getattr(value, "value", value)
    text = str(text)
    return repr(text) if " " in text else text


def build_logging_config(level: str | int) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "contextual": {
                "()": "logging_config.ContextualFormatter",
                "fmt": _LINE_FORMAT,
                "datefmt": _DATE_FORMAT,
                "style": "%",
                "context_keys": list(CONTEXT_KEYS),
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "contextual",
            }
        },
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        "root": {"handlers": ["default"], "level": level},
    }


def configure_logging(level: str | int | None = None) -> None:
    """Install the contextual formatter on the root logger once per process.

    Relay, session and runner code attach identifiers through ``extra=``;
    the formatter appends whichever of :data:`CONTEXT_KEYS` a record carries.
    """
    global _configured
    if _configured:
        return

    dictConfig(build_logging_config(level if level is not None else get_settings().log_level))
    _configured = True
