"""Logging setup: context variables for request, task, run and school."""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

_CONTEXT_VARS: dict[str, ContextVar] = {
    "request_id": ContextVar("request_id", default=None),
    "task_id": ContextVar("task_id", default=None),
    "run_id": ContextVar("run_id", default=None),
    "school_code": ContextVar("school_code", default=None),
}

# Short labels for the text format; ids are truncated to 8 characters
_TEXT_LABELS = {"request_id": "req", "task_id": "task", "run_id": "run", "school_code": "school"}


def current_context() -> dict[str, Any]:
    """Context values set in the current task or thread."""
    return {name: var.get() for name, var in _CONTEXT_VARS.items() if var.get() is not None}


class StructuredJsonFormatter(logging.Formatter):
    """One JSON object per line, for log shipping outside development."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **current_context(),
            "location": f"{record.filename}:{record.lineno}",
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class ContextualFormatter(logging.Formatter):
    """Readable single-line format for a terminal."""

    def format(self, record: logging.LogRecord) -> str:
        tags = ", ".join(
            f"{_TEXT_LABELS[name]}={str(value)[:8]}" for name, value in current_context().items()
        )
        line = (
            f"{datetime.now(timezone.utc):%Y-%m-%d %H:%M:%S} | {record.levelname:<8} | "
            f"{record.name}{f' [{tags}]' if tags else ''} | {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """Attaches the current context to each record's ``extra``."""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**current_context(), **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger for the given module name."""
    return ContextLogger(logging.getLogger(name), {})


def configure_logging(log_level: str | None = None, json_format: bool | None = None) -> None:
    """
    Install one stdout handler on the root logger.

    Args:
        log_level: Minimum level. Defaults to the ``log_level`` setting.
        json_format: Force JSON on or off. By default JSON is used when
                     LOG_FORMAT=json, or outside development without a TTY.
    """
    from schoolmeal.config import get_settings

    settings = get_settings()
    if json_format is None:
        json_format = os.getenv("LOG_FORMAT", "").lower() == "json" or (
            not settings.is_development and not sys.stdout.isatty()
        )

    level_name = (log_level or settings.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter() if json_format else ContextualFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Library chatter stays quiet unless something goes wrong
    for name in ("celery", "httpx", "httpcore", "sqlalchemy.engine", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("celery.task").setLevel(logging.INFO)

    get_logger(__name__).info(
        f"Logging configured: level={level_name}, format={'json' if json_format else 'text'}"
    )


class LoggingContext:
    """Set context variables for the duration of a ``with`` block."""

    def __init__(
        self,
        request_id: str | None = None,
        task_id: str | None = None,
        run_id: int | None = None,
        school_code: str | None = None,
    ):
        self.values = {
            "request_id": request_id,
            "task_id": task_id,
            "run_id": run_id,
            "school_code": school_code,
        }
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "LoggingContext":
        for name, value in self.values.items():
            if value is not None:
                self._tokens[name] = _CONTEXT_VARS[name].set(value)
        return self

    def __exit__(self, *args: Any) -> None:
        for name, token in self._tokens.items():
            _CONTEXT_VARS[name].reset(token)
        self._tokens.clear()
