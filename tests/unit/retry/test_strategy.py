r"""Unit tests for retry strategy."""

from __future__ import annotations

from unittest.mock import Mock, patch

import httpx
import pytest

from amulti.backoff import ConstantBackoff, ExponentialBackoff, LinearBackoff
from amulti.retry import RetryStrategy


def make_handle(retries: int, headers: dict[str, str] | None = None) -> Mock:
    response = None if headers is None else httpx.Response(503, headers=headers)
    return Mock(id=1, retries=retries, response=response)


def test_retry_strategy_creation() -> None:
    strategy = RetryStrategy()
    assert strategy.backoff_strategy is None
    assert strategy.jitter_factor == 0.0
    assert strategy.max_wait_time is None


def test_retry_strategy_invalid_params() -> None:
    with pytest.raises(ValueError, match=r"jitter_factor must be >= 0"):
        RetryStrategy(jitter_factor=-1.0)
    with pytest.raises(ValueError, match=r"max_wait_time must be > 0"):
        RetryStrategy(max_wait_time=0)


def test_calculate_delay_without_backoff_is_zero() -> None:
    """Test that a retry is immediate without a backoff strategy."""
    strategy = RetryStrategy(jitter_factor=1.0)
    assert strategy.calculate_delay(make_handle(retries=3, headers={"Retry-After": "60"})) == 0.0


def test_calculate_delay_exponential() -> None:
    strategy = RetryStrategy(backoff_strategy=ExponentialBackoff(base_delay=0.3))
    assert [strategy.calculate_delay(make_handle(retries)) for retries in (1, 2, 3)] == [
        0.3,
        0.6,
        1.2,
    ]


def test_calculate_delay_linear() -> None:
    strategy = RetryStrategy(backoff_strategy=LinearBackoff(base_delay=1.0))
    assert [strategy.calculate_delay(make_handle(retries)) for retries in (1, 2, 3)] == [
        1.0,
        2.0,
        3.0,
    ]


def test_calculate_delay_retry_after_wins() -> None:
    """Test that the Retry-After header overrides the backoff delay."""
    strategy = RetryStrategy(backoff_strategy=ConstantBackoff(1.0))
    assert strategy.calculate_delay(make_handle(1, headers={"Retry-After": "5"})) == 5.0


def test_calculate_delay_invalid_retry_after_falls_back() -> None:
    strategy = RetryStrategy(backoff_strategy=ConstantBackoff(1.0))
    assert strategy.calculate_delay(make_handle(1, headers={"Retry-After": "soon"})) == 1.0


def test_calculate_delay_capped_by_max_wait_time() -> None:
    strategy = RetryStrategy(backoff_strategy=ConstantBackoff(1.0), max_wait_time=2.0)
    assert strategy.calculate_delay(make_handle(1, headers={"Retry-After": "120"})) == 2.0


def test_calculate_delay_with_jitter() -> None:
    strategy = RetryStrategy(backoff_strategy=ConstantBackoff(2.0), jitter_factor=0.5)
    with patch("amulti.retry.strategy.random.uniform", return_value=0.25) as mock_uniform:
        assert strategy.calculate_delay(make_handle(1)) == 2.5
    mock_uniform.assert_called_once_with(0, 0.5)
