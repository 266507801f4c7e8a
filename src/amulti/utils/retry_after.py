r"""Retry-After header parsing.

The header carries either a number of seconds or an HTTP-date
(RFC 7231, section 7.1.3).
"""

from __future__ import annotations

__all__ = ["parse_retry_after"]

import logging
from contextlib import suppress
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

logger: logging.Logger = logging.getLogger(__name__)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header value into seconds.

    Args:
        value: The header value, or ``None`` if the header is absent.

    Returns:
        The number of seconds to wait, or ``None`` if the header is
        absent or cannot be parsed. Dates in the past give ``0.0``.

    Example:
        ```pycon
        >>> from amulti.utils.retry_after import parse_retry_after
        >>> parse_retry_after("120")
        120.0
        >>> parse_retry_after(None) is None
        True
        >>> parse_retry_after("soon") is None
        True

        ```
    """
    if value is None:
        return None

    with suppress(ValueError):
        return max(0.0, float(value))

    try:
        retry_date = parsedate_to_datetime(value)
    except (ValueError, TypeError, OverflowError):
        logger.debug(f"Failed to parse Retry-After header: {value!r}")
        return None
    if retry_date.tzinfo is None:
        retry_date = retry_date.replace(tzinfo=timezone.utc)
    return max(0.0, (retry_date - datetime.now(timezone.utc)).total_seconds())
