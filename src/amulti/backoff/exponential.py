r"""Exponential backoff strategy."""

from __future__ import annotations

__all__ = ["ExponentialBackoff"]

from amulti.backoff.base import BaseBackoffStrategy, check_delays


class ExponentialBackoff(BaseBackoffStrategy):
    """Wait ``base_delay * 2 ** retry_index``, capped at ``max_delay``.

    Args:
        base_delay: Delay before the first retry in seconds.
        max_delay: Optional cap in seconds.

    Example:
        ```pycon
        >>> from amulti.backoff import ExponentialBackoff
        >>> backoff = ExponentialBackoff(base_delay=0.25)
        >>> [backoff.calculate(i) for i in range(3)]
        [0.25, 0.5, 1.0]

        ```
    """

    def __init__(self, base_delay: float = 0.3, max_delay: float | None = None) -> None:
        check_delays(base_delay, max_delay)
        self.base_delay = base_delay
        self.max_delay = max_delay

    def calculate(self, retry_index: int) -> float:
        delay = self.base_delay * (2**retry_index)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay
