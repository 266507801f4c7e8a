r"""Delay calculation for retried transfers.

This module provides the RetryStrategy class that a dispatcher asks for
the delay before a failed handle is registered with the engine again.
"""

from __future__ import annotations

__all__ = ["RetryStrategy"]

import logging
import random
from typing import TYPE_CHECKING

from amulti.core.validation import validate_backoff_params
from amulti.utils.retry_after import parse_retry_after

if TYPE_CHECKING:
    from amulti.backoff import BaseBackoffStrategy
    from amulti.handle import TransferHandle

logger: logging.Logger = logging.getLogger(__name__)


class RetryStrategy:
    """Strategy for calculating retry delays with backoff and jitter.

    Without a backoff strategy every delay is ``0.0`` and a retry is
    re-submitted at once. With one, the delay is computed as follows:

    1. a ``Retry-After`` header on the failed response wins, otherwise
       ``backoff_strategy.calculate(retry_index)`` is used;
    2. the delay is capped at ``max_wait_time`` if set;
    3. ``random.uniform(0, jitter_factor) * delay`` is added.

    Args:
        backoff_strategy: Optional backoff strategy.
        jitter_factor: Factor for adding random jitter to delays.
        max_wait_time: Optional maximum delay in seconds.

    Example:
        ```pycon
        >>> from unittest.mock import Mock
        >>> from amulti.backoff import ExponentialBackoff
        >>> from amulti.retry import RetryStrategy
        >>> strategy = RetryStrategy(backoff_strategy=ExponentialBackoff(base_delay=1.0))
        >>> strategy.calculate_delay(Mock(retries=3, response=None))
        4.0
        >>> RetryStrategy().calculate_delay(Mock(retries=3, response=None))
        0.0

        ```
    """

    def __init__(
        self,
        backoff_strategy: BaseBackoffStrategy | None = None,
        jitter_factor: float = 0.0,
        max_wait_time: float | None = None,
    ) -> None:
        validate_backoff_params(jitter_factor=jitter_factor, max_wait_time=max_wait_time)
        self.backoff_strategy = backoff_strategy
        self.jitter_factor = jitter_factor
        self.max_wait_time = max_wait_time

    def calculate_delay(self, handle: TransferHandle) -> float:
        """Return the delay in seconds before ``handle`` is retried.

        Args:
            handle: A handle whose ``attempt_retry()`` just returned true,
                so ``handle.retries`` already counts the upcoming retry.

        Returns:
            The delay in seconds.
        """
        if self.backoff_strategy is None:
            return 0.0

        delay: float | None = None
        if handle.response is not None:
            delay = parse_retry_after(handle.response.headers.get("Retry-After"))
            if delay is not None:
                logger.debug(f"Using Retry-After header value: {delay:.2f}s")
        if delay is None:
            delay = self.backoff_strategy.calculate(max(handle.retries - 1, 0))

        if self.max_wait_time is not None and delay > self.max_wait_time:
            logger.debug(f"Capping retry delay from {delay:.2f}s to {self.max_wait_time:.2f}s")
            delay = self.max_wait_time

        if self.jitter_factor > 0:
            delay += random.uniform(0, self.jitter_factor) * delay  # noqa: S311
        logger.debug(f"Retrying handle {handle.id} in {delay:.2f}s")
        return delay
