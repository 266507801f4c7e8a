r"""Retry policies deciding whether a failed transfer is attempted
again.

A policy only answers the question. The bookkeeping (attempt count,
remaining retries, accumulated retries) lives on the ``TransferHandle``
which calls its decider from ``attempt_retry()`` after a failed attempt.
"""

from __future__ import annotations

__all__ = ["FixedRetryDecider", "PredicateRetryDecider", "RetryDecider", "build_retry_decider"]

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from amulti.core.validation import validate_retry_count

if TYPE_CHECKING:
    from collections.abc import Callable

    from amulti.handle import TransferHandle

logger: logging.Logger = logging.getLogger(__name__)


class RetryDecider(ABC):
    """Base class of the retry policies."""

    #: Number of retries a handle starts with when this policy is assigned.
    initial_retries: int = 0

    @abstractmethod
    def should_retry(self, handle: TransferHandle) -> bool:
        """Return whether ``handle`` should be attempted again.

        Only called after an attempt that ended in a retryable error.

        Args:
            handle: The handle whose last attempt failed.
        """


class FixedRetryDecider(RetryDecider):
    """Retry while the handle has retries left.

    A handle assigned this policy starts with ``max_retries`` remaining
    retries, so it is executed at most ``max_retries + 1`` times.

    Args:
        max_retries: Maximum number of retries. Must be >= 0.

    Example:
        ```pycon
        >>> from amulti import TransferHandle
        >>> from amulti.retry import FixedRetryDecider
        >>> handle = TransferHandle("https://example.com").set_retry(FixedRetryDecider(2))
        >>> handle.remaining_retries
        2

        ```
    """

    def __init__(self, max_retries: int) -> None:
        validate_retry_count(max_retries)
        self.max_retries = max_retries
        self.initial_retries = max_retries

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}(max_retries={self.max_retries})"

    def should_retry(self, handle: TransferHandle) -> bool:
        return handle.remaining_retries >= 1


class PredicateRetryDecider(RetryDecider):
    """Retry while a caller-supplied predicate returns true.

    There is no implicit upper bound; the predicate has to stop the
    retries itself, typically by looking at ``handle.attempts``.

    Args:
        predicate: Function receiving the handle and returning whether to
            retry.

    Example:
        ```pycon
        >>> from amulti.retry import PredicateRetryDecider
        >>> decider = PredicateRetryDecider(lambda handle: handle.attempts < 3)

        ```
    """

    def __init__(self, predicate: Callable[[TransferHandle], bool]) -> None:
        self.predicate = predicate

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}(predicate={self.predicate!r})"

    def should_retry(self, handle: TransferHandle) -> bool:
        should_retry = bool(self.predicate(handle))
        logger.debug(f"Retry predicate returned {should_retry} for handle {handle.id}")
        return should_retry


def build_retry_decider(
    policy: int | Callable[[TransferHandle], bool] | RetryDecider | None,
) -> RetryDecider | None:
    """Turn a retry policy value into a ``RetryDecider``.

    Args:
        policy: A retry count, a predicate, a ``RetryDecider`` or ``None``.

    Returns:
        The matching decider, or ``None`` when ``policy`` is ``None``.

    Raises:
        TypeError: If ``policy`` has an unsupported type.
        ValueError: If ``policy`` is a negative count.

    Example:
        ```pycon
        >>> from amulti.retry import build_retry_decider
        >>> build_retry_decider(3)
        FixedRetryDecider(max_retries=3)
        >>> build_retry_decider(None) is None
        True

        ```
    """
    if policy is None or isinstance(policy, RetryDecider):
        return policy
    if isinstance(policy, bool):
        msg = f"retry policy must be an int, a callable or a RetryDecider, got {policy!r}"
        raise TypeError(msg)
    if isinstance(policy, int):
        return FixedRetryDecider(policy)
    if callable(policy):
        return PredicateRetryDecider(policy)
    msg = f"retry policy must be an int, a callable or a RetryDecider, got {policy!r}"
    raise TypeError(msg)
