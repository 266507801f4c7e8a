r"""Helpers shared by the transfer and dispatcher modules."""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "clear_batch_id",
    "get_batch_id",
    "log_transfer",
    "new_batch_id",
    "parse_retry_after",
    "set_batch_id",
]

from amulti.utils.retry_after import parse_retry_after
from amulti.utils.structured_logging import (
    StructuredFormatter,
    clear_batch_id,
    get_batch_id,
    log_transfer,
    new_batch_id,
    set_batch_id,
)
