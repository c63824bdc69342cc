from __future__ import annotations

import json
import logging
import sys
from logging import LogRecord
from typing import Any, Dict, TextIO

from loguru import logger
from opentelemetry import trace


_STDLIB_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    }
)

_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine.Engine", "aiosqlite")


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records (uvicorn, sqlalchemy, alembic) into Loguru."""

    def emit(self, record: LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            message = record.getMessage()
        except Exception:  # pragma: no cover - malformed format strings from third parties
            message = str(record.msg)

        extra = {key: value for key, value in record.__dict__.items() if key not in _STDLIB_RECORD_ATTRS}
        escaped = message.replace("{", "{{").replace("}", "}}")

        bound = logger.bind(**extra) if extra else logger
        bound.opt(depth=6, exception=record.exc_info).log(level, escaped)


class JsonLogSink:
    """Loguru sink rendering each record as one JSON line."""

    def __init__(self, *, service_name: str, environment: str, version: str, stream: TextIO | None = None) -> None:
        self._metadata = {"service": service_name, "environment": environment, "version": version}
        self._stream = stream or sys.stdout

    def __call__(self, message: "logger.Message") -> None:
        record = message.record
        payload: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": record["name"],
            **self._metadata,
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            payload["trace_id"] = f"{span_context.trace_id:032x}"
            payload["span_id"] = f"{span_context.span_id:016x}"

        if record["exception"] is not None:
            payload["exception"] = repr(record["exception"].value)

        if record["extra"]:
            payload.update(record["extra"])

        self._stream.write(json.dumps(payload, default=str) + "\n")
        self._stream.flush()


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Install the JSON sink and route stdlib logging through Loguru."""

    logger.remove()
    sink = JsonLogSink(service_name=service_name, environment=environment, version=version)
    logger.add(sink, level="DEBUG" if environment == "development" else level, backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
