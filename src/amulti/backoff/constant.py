r"""Constant backoff strategy."""

from __future__ import annotations

__all__ = ["ConstantBackoff"]

from amulti.backoff.base import BaseBackoffStrategy, check_delays


class ConstantBackoff(BaseBackoffStrategy):
    """Wait the same ``delay`` before every retry.

    Example:
        ```pycon
        >>> from amulti.backoff import ConstantBackoff
        >>> ConstantBackoff(delay=0.5).calculate(7)
        0.5

        ```
    """

    def __init__(self, delay: float = 1.0) -> None:
        check_delays(delay, None)
        self.delay = delay

    def calculate(self, retry_index: int) -> float:  # noqa: ARG002
        return self.delay
