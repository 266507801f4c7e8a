r"""Configuration values and validation shared by handles and
dispatchers."""

from __future__ import annotations

__all__ = [
    "DEFAULT_CONCURRENCY",
    "DEFAULT_SELECT_TIMEOUT",
    "DEFAULT_TIMEOUT",
    "DOWNLOAD_CHUNK_SIZE",
    "DOWNLOAD_SUFFIX",
    "SELECT_FALLBACK_SLEEP",
    "DispatcherDefaults",
    "TransferOptions",
    "validate_backoff_params",
    "validate_concurrency",
    "validate_max_filesize",
    "validate_retry_count",
    "validate_timeout",
]

from amulti.core.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_SELECT_TIMEOUT,
    DEFAULT_TIMEOUT,
    DOWNLOAD_CHUNK_SIZE,
    DOWNLOAD_SUFFIX,
    SELECT_FALLBACK_SLEEP,
    DispatcherDefaults,
    TransferOptions,
)
from amulti.core.validation import (
    validate_backoff_params,
    validate_concurrency,
    validate_max_filesize,
    validate_retry_count,
    validate_timeout,
)
