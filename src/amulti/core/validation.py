r"""Parameter validation utilities for transfers and dispatchers.

This module provides validation functions that check configuration
values before they are used by a transfer handle or a dispatcher.
"""

from __future__ import annotations

__all__ = [
    "validate_backoff_params",
    "validate_concurrency",
    "validate_max_filesize",
    "validate_retry_count",
    "validate_timeout",
]


def validate_timeout(timeout: float | None, name: str = "timeout") -> None:
    """Validate a timeout value.

    Args:
        timeout: Number of seconds, or ``None`` to disable the timeout.
        name: Parameter name used in the error message.

    Raises:
        ValueError: If ``timeout`` is a number <= 0.

    Example:
        ```pycon
        >>> from amulti.core.validation import validate_timeout
        >>> validate_timeout(10.0)
        >>> validate_timeout(None)
        >>> validate_timeout(0)  # doctest: +SKIP
        Traceback (most recent call last):
        ...
        ValueError: timeout must be > 0, got 0

        ```
    """
    if timeout is not None and timeout <= 0:
        msg = f"{name} must be > 0, got {timeout}"
        raise ValueError(msg)


def validate_concurrency(concurrency: int) -> None:
    """Validate a concurrency ceiling.

    Args:
        concurrency: Maximum number of simultaneously active handles.

    Raises:
        ValueError: If ``concurrency`` is not an integer >= 1.

    Example:
        ```pycon
        >>> from amulti.core.validation import validate_concurrency
        >>> validate_concurrency(25)

        ```
    """
    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        msg = f"concurrency must be an integer >= 1, got {concurrency!r}"
        raise ValueError(msg)


def validate_retry_count(max_retries: int) -> None:
    """Validate a fixed retry count.

    Args:
        max_retries: Maximum number of retries. ``0`` means one attempt.

    Raises:
        ValueError: If ``max_retries`` is negative.
    """
    if max_retries < 0:
        msg = f"max_retries must be >= 0, got {max_retries}"
        raise ValueError(msg)


def validate_backoff_params(jitter_factor: float, max_wait_time: float | None = None) -> None:
    """Validate retry delay parameters.

    Args:
        jitter_factor: Factor for random jitter added to retry delays.
            Must be >= 0.
        max_wait_time: Optional cap for a single retry delay.
            Must be > 0 if provided.

    Raises:
        ValueError: If a parameter is out of range.
    """
    if jitter_factor < 0:
        msg = f"jitter_factor must be >= 0, got {jitter_factor}"
        raise ValueError(msg)
    if max_wait_time is not None and max_wait_time <= 0:
        msg = f"max_wait_time must be > 0, got {max_wait_time}"
        raise ValueError(msg)


def validate_max_filesize(max_filesize: int | None) -> None:
    """Validate a maximum download size.

    Args:
        max_filesize: Maximum number of bytes, or ``None`` for no limit.

    Raises:
        ValueError: If ``max_filesize`` is not an integer >= 0.

    Example:
        ```pycon
        >>> from amulti.core.validation import validate_max_filesize
        >>> validate_max_filesize(1024)
        >>> validate_max_filesize(None)

        ```
    """
    if max_filesize is None:
        return
    if isinstance(max_filesize, bool) or not isinstance(max_filesize, int) or max_filesize < 0:
        msg = f"max_filesize must be an integer >= 0, got {max_filesize!r}"
        raise ValueError(msg)
