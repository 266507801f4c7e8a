r"""Unit tests for LinearBackoff."""

from __future__ import annotations

import pytest

from amulti.backoff import LinearBackoff


def test_linear_backoff_default() -> None:
    backoff = LinearBackoff()
    assert [backoff.calculate(i) for i in range(3)] == [1.0, 2.0, 3.0]


def test_linear_backoff() -> None:
    backoff = LinearBackoff(base_delay=2.0)
    assert [backoff.calculate(i) for i in range(4)] == [2.0, 4.0, 6.0, 8.0]


def test_linear_backoff_max_delay() -> None:
    backoff = LinearBackoff(base_delay=1.0, max_delay=2.5)
    assert [backoff.calculate(i) for i in range(4)] == [1.0, 2.0, 2.5, 2.5]


@pytest.mark.parametrize("max_delay", [0, -1.0])
def test_linear_backoff_rejects_invalid_max_delay(max_delay: float) -> None:
    with pytest.raises(ValueError, match=r"max_delay must be positive"):
        LinearBackoff(max_delay=max_delay)
