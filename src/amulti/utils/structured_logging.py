r"""Structured logging utilities for machine-readable log output.

Every amulti module logs through a standard ``logging`` logger named
after the module. This module adds an opt-in JSON formatter and a batch
id: ``Dispatcher.start()`` sets a fresh batch id for the duration of a
run, so all records emitted while a batch is processed can be grouped.

Example:
    Enable structured logging for amulti:

    ```python
    import logging
    from amulti.utils.structured_logging import StructuredFormatter

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())

    logger = logging.getLogger("amulti")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    ```
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "clear_batch_id",
    "get_batch_id",
    "log_transfer",
    "new_batch_id",
    "set_batch_id",
]

import contextvars
import itertools
import json
import logging
import os
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from amulti.handle import TransferHandle

_batch_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("batch_id", default=None)
_batch_counter = itertools.count(1)

# LogRecord attributes that are not user supplied ``extra`` fields
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "msecs",
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
        "sinfo",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "taskName",
    }
)


def get_batch_id() -> str | None:
    """Return the batch id of the current context, if any.

    Example:
        ```pycon
        >>> from amulti.utils.structured_logging import get_batch_id, set_batch_id
        >>> set_batch_id("batch-7")
        >>> get_batch_id()
        'batch-7'

        ```
    """
    return _batch_id.get()


def set_batch_id(batch_id: str | None) -> None:
    """Set the batch id of the current context.

    Args:
        batch_id: The batch id, or ``None`` to clear it.
    """
    _batch_id.set(batch_id)


def clear_batch_id() -> None:
    """Clear the batch id of the current context."""
    _batch_id.set(None)


def new_batch_id() -> str:
    """Return a new batch id unique within the process.

    Example:
        ```pycon
        >>> from amulti.utils.structured_logging import new_batch_id
        >>> new_batch_id().startswith("batch-")
        True

        ```
    """
    return f"batch-{os.getpid()}-{next(_batch_counter)}"


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Each record becomes one JSON object with the fields ``timestamp``,
    ``level``, ``logger``, ``message``, ``module``, ``function``,
    ``line``, ``thread`` and ``process``, plus ``batch_id`` when a batch
    is running and every field passed through ``extra``.

    Example:
        ```pycon
        >>> import json
        >>> import logging
        >>> from io import StringIO
        >>> from amulti.utils.structured_logging import StructuredFormatter
        >>> stream = StringIO()
        >>> handler = logging.StreamHandler(stream)
        >>> handler.setFormatter(StructuredFormatter())
        >>> logger = logging.getLogger("amulti.doctest")
        >>> logger.addHandler(handler)
        >>> logger.setLevel(logging.INFO)
        >>> logger.info("hello", extra={"handle_id": 3})
        >>> json.loads(stream.getvalue())["handle_id"]
        3

        ```
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
            "process": record.process,
        }

        batch_id = get_batch_id()
        if batch_id is not None:
            log_data["batch_id"] = batch_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: ARG002
        """Format the record time as ISO 8601 in UTC with milliseconds."""
        return (
            time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
            + f".{int(record.msecs):03d}Z"
        )


def log_transfer(
    logger: logging.Logger,
    level: int,
    message: str,
    handle: TransferHandle,
    **extra: Any,
) -> None:
    """Log ``message`` with the identifying fields of a transfer handle.

    The fields ``handle_id``, ``method``, ``url`` and ``attempt`` are
    attached to the record, together with ``extra``.

    Args:
        logger: Logger to use.
        level: Log level, e.g. ``logging.DEBUG``.
        message: Log message.
        handle: The handle the message is about.
        **extra: Additional structured fields.
    """
    if not logger.isEnabledFor(level):
        return
    fields = {
        "handle_id": handle.id,
        "method": handle.method,
        "url": handle.url_string,
        "attempt": handle.attempts,
    }
    fields.update(extra)
    logger.log(level, message, extra=fields)
