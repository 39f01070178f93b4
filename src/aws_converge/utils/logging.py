"""Logging setup: rich console output plus optional JSON-lines files."""

import contextvars
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler


# Record attributes copied into JSON output when present
STRUCTURED_FIELDS = ('resource_id', 'resource_type', 'operation', 'status', 'attempt', 'duration')

_log_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar('aws_converge_log_context', default={})


class ContextFilter(logging.Filter):
    """Copies the active LogContext fields onto each record.

    Fields passed explicitly through ``extra`` win over the context.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec='milliseconds'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        for field in STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ResourceFormatter(logging.Formatter):
    """Prefixes the message with the resource it concerns."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        resource_id = getattr(record, 'resource_id', None)
        if resource_id:
            return f"[{resource_id}] {message}"
        return message


def setup_logging(
    log_level: str = 'info',
    log_dir: Optional[str] = None,
    console: Optional[Console] = None,
) -> None:
    """Configure the root logger.

    Args:
        log_level: Console level (debug, info, warning, error)
        log_dir: Directory for daily ``aws-converge-YYYYMMDD.jsonl`` files.
            File output always includes debug records; it is off when not given.
        console: Rich console to write to (defaults to stdout)
    """
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG if log_dir else level)

    console_handler = RichHandler(
        console=console,
        level=level,
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    console_handler.setFormatter(ResourceFormatter('%(message)s'))
    console_handler.addFilter(ContextFilter())
    root_logger.addHandler(console_handler)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)

        log_file = path / f"aws-converge-{datetime.now(timezone.utc):%Y%m%d}.jsonl"
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(ContextFilter())
        root_logger.addHandler(file_handler)

    for noisy in ('boto3', 'botocore', 'urllib3'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """Adds structured fields to every record logged inside the block.

    Contexts nest; inner fields override outer ones. The fields are
    per-thread, so concurrent work on different resources stays separate.

    Example:
        with LogContext(resource_id='my-cache', operation='create'):
            logger.info("Creating")
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> 'LogContext':
        self._token = _log_context.set({**_log_context.get(), **self.fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None
