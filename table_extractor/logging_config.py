"""Logging setup shared by the HTTP service and the CLI.

Every record carries a ``request_id`` attribute: inside an HTTP request it is
the id bound by the request-id middleware, elsewhere it is ``-``. Text output
is meant for terminals; ``json_logs=True`` emits one JSON object per line via
python-json-logger, with the level reported as ``severity``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import IO

from pythonjsonlogger.json import JsonFormatter

NO_REQUEST = "-"

TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s  %(message)s"
JSON_FORMAT = "%(message)s %(name)s %(request_id)s"

# chatty at INFO: one line per upstream call or multipart part
_QUIET_LOGGERS = ("httpx", "httpcore", "multipart")

_request_id: ContextVar[str] = ContextVar("request_id", default=NO_REQUEST)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:16]


def current_request_id() -> str:
    return _request_id.get()


@contextmanager
def bind_request_id(request_id: str) -> Iterator[str]:
    """Tag every record logged inside the block, including from child tasks."""
    token = _request_id.set(request_id)
    try:
        yield request_id
    finally:
        _request_id.reset(token)


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = _request_id.get()
        return True


class SeverityJsonFormatter(JsonFormatter):
    """Reports the level as ``severity`` and drops ``request_id`` outside requests."""

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["severity"] = record.levelname
        if log_record.get("request_id") == NO_REQUEST:
            del log_record["request_id"]


def build_handler(*, json_logs: bool = False, stream: IO[str] | None = None) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    if json_logs:
        handler.setFormatter(SeverityJsonFormatter(JSON_FORMAT, rename_fields={"name": "logger"}))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%H:%M:%S"))
    return handler


def setup_logging(*, level: str = "INFO", json_logs: bool = False) -> None:
    """Send all records through a single stderr handler; safe to call twice."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for h in root.handlers[:]:
        root.removeHandler(h)
    root.addHandler(build_handler(json_logs=json_logs))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
