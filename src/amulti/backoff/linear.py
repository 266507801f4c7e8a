r"""Linear backoff strategy."""

from __future__ import annotations

__all__ = ["LinearBackoff"]

from amulti.backoff.base import BaseBackoffStrategy, check_delays


class LinearBackoff(BaseBackoffStrategy):
    """Wait ``base_delay * (retry_index + 1)``, capped at ``max_delay``.

    Example:
        ```pycon
        >>> from amulti.backoff import LinearBackoff
        >>> backoff = LinearBackoff(base_delay=1.0, max_delay=2.5)
        >>> [backoff.calculate(i) for i in range(4)]
        [1.0, 2.0, 2.5, 2.5]

        ```
    """

    def __init__(self, base_delay: float = 1.0, max_delay: float | None = None) -> None:
        check_delays(base_delay, max_delay)
        self.base_delay = base_delay
        self.max_delay = max_delay

    def calculate(self, retry_index: int) -> float:
        delay = self.base_delay * (retry_index + 1)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay
