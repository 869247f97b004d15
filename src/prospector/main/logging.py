"""Logging shared by the API, the pub/sub consumer and the arq worker.

Lines are JSON objects by default. Set ``JSON_LOGS=false`` for rich console
output while developing.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from rich.logging import RichHandler

from prospector.main.config import get_loglevel
from prospector.main.job_context import get_job_context


JSON_LOGS_ENABLED = os.getenv("JSON_LOGS", "true").lower() in {"1", "true", "yes", "on"}

# Attributes every record carries; anything else was passed with extra=
RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
}

JOB_KEYS = ("job_id", "job_name", "workflow_id", "organisation_id")


class ContextJSONFormatter(logging.Formatter):
    """One JSON object per record: level, logger, message, job context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        log: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        # The running job wins over ids passed explicitly with the record
        context = get_job_context()
        for key in JOB_KEYS:
            value = context.get(key, getattr(record, key, None))
            if value is not None:
                log[key] = value

        for key, value in context.items():
            if value is not None:
                log.setdefault(key, value)

        for key, value in record.__dict__.items():
            if key in RECORD_ATTRS or key.startswith("_") or value is None:
                continue
            log.setdefault(key, value)

        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log["stack"] = self.formatStack(record.stack_info)

        return json.dumps(log, default=str)


def _quiet_sqlalchemy() -> None:
    for name in ("sqlalchemy.engine", "sqlalchemy.pool", "sqlalchemy.orm", "sqlalchemy.dialects"):
        sa_logger = logging.getLogger(name)
        sa_logger.setLevel(logging.WARNING)
        sa_logger.propagate = False


_quiet_sqlalchemy()


def _console_handler(level: int) -> logging.Handler:
    handler: logging.Handler
    if JSON_LOGS_ENABLED:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(ContextJSONFormatter())
    else:
        # RichHandler renders on its own, no formatter needed
        handler = RichHandler(rich_tracebacks=True, markup=True, show_path=True)
    handler.setLevel(level)
    return handler


def get_logger(module_name: str) -> logging.Logger:
    logger = logging.getLogger(module_name)
    if logger.handlers:
        return logger

    level = get_loglevel()
    logger.setLevel(level)
    logger.addHandler(_console_handler(level))
    # Handlers live on each module logger, root would print the line twice
    logger.propagate = False
    return logger
