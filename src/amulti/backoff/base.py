r"""Base class of the backoff strategies."""

from __future__ import annotations

__all__ = ["BaseBackoffStrategy", "check_delays"]

from abc import ABC, abstractmethod


def check_delays(base_delay: float, max_delay: float | None) -> None:
    """Validate the delays of a backoff strategy.

    Raises:
        ValueError: If ``base_delay`` is negative or ``max_delay`` is
            not positive.
    """
    if base_delay < 0:
        msg = f"base_delay must be non-negative, got {base_delay}"
        raise ValueError(msg)
    if max_delay is not None and max_delay <= 0:
        msg = f"max_delay must be positive if specified, got {max_delay}"
        raise ValueError(msg)


class BaseBackoffStrategy(ABC):
    """Base class of the delay formulas."""

    @abstractmethod
    def calculate(self, retry_index: int) -> float:
        """Return the delay in seconds before a retry.

        Args:
            retry_index: Zero-based index of the upcoming retry.
        """
