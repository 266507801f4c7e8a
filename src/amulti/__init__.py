r"""amulti - Concurrent execution of many HTTP requests.

This package queues HTTP transfers and runs them concurrently with a
bounded number of simultaneous connections. Built on top of the httpx
library, it drives all transfers from a single synchronous call and
reports each result exactly once through callbacks.

Key Features:
    - FIFO queue with a configurable concurrency ceiling
    - Exactly-once success, error and complete callbacks per transfer
    - Retry policies: a fixed retry count or a custom predicate
    - Optional backoff strategies, jitter and Retry-After support
    - Resumable downloads streamed to ``.partial`` files
    - A promise wrapper for deferred execution
    - Structured logging with a per-batch id

Example:
    ```pycon
    >>> from amulti import MultiClient
    >>> with MultiClient(concurrency=10) as client:  # doctest: +SKIP
    ...     for page in range(1, 4):
    ...         client.add_get("https://api.example.com/items", params={"page": page})
    ...     client.dispatcher.on_complete(lambda handle: print(handle.id, handle.http_status_code))
    ...     client.start()
    ...

    ```
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_CONCURRENCY",
    "DEFAULT_TIMEOUT",
    "ConfigurationError",
    "Dispatcher",
    "DispatcherDefaults",
    "DownloadIOError",
    "EngineRegistrationError",
    "ErrorKind",
    "HttpStatusError",
    "HttpTransferError",
    "HttpxMultiEngine",
    "MultiClient",
    "MultiPromise",
    "PromiseState",
    "TransferHandle",
    "TransferOptions",
    "TransportError",
    "__version__",
]

from importlib.metadata import PackageNotFoundError, version

from amulti.client import MultiClient
from amulti.core.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_TIMEOUT,
    DispatcherDefaults,
    TransferOptions,
)
from amulti.dispatcher import Dispatcher
from amulti.engine import HttpxMultiEngine
from amulti.exceptions import (
    ConfigurationError,
    DownloadIOError,
    EngineRegistrationError,
    HttpStatusError,
    HttpTransferError,
    TransportError,
)
from amulti.handle import ErrorKind, TransferHandle
from amulti.promise import MultiPromise, PromiseState

try:
    __version__ = version(__name__)
except PackageNotFoundError:  # pragma: no cover
    # Package is not installed, fallback if needed
    __version__ = "0.0.0"
