r"""Unit tests for BaseBackoffStrategy and the shared delay checks."""

from __future__ import annotations

import pytest

from amulti.backoff.base import BaseBackoffStrategy, check_delays


def test_base_backoff_strategy_is_abstract() -> None:
    with pytest.raises(TypeError):
        BaseBackoffStrategy()


def test_custom_backoff_strategy() -> None:
    """Test that custom strategies only need calculate()."""

    class SquareBackoff(BaseBackoffStrategy):
        def calculate(self, retry_index: int) -> float:
            return float(retry_index**2)

    assert SquareBackoff().calculate(3) == 9.0


@pytest.mark.parametrize(("base_delay", "max_delay"), [(0.0, None), (1.0, 0.5), (2.0, 10.0)])
def test_check_delays_valid(base_delay: float, max_delay: float | None) -> None:
    check_delays(base_delay, max_delay)


def test_check_delays_negative_base_delay() -> None:
    with pytest.raises(ValueError, match=r"base_delay must be non-negative, got -1.0"):
        check_delays(-1.0, None)


def test_check_delays_zero_max_delay() -> None:
    with pytest.raises(ValueError, match=r"max_delay must be positive if specified, got 0"):
        check_delays(1.0, 0)
