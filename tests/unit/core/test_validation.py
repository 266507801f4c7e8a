from __future__ import annotations

import pytest

from amulti.core import (
    validate_backoff_params,
    validate_concurrency,
    validate_max_filesize,
    validate_retry_count,
    validate_timeout,
)

#######################################
#     Tests for validate_timeout     #
#######################################


@pytest.mark.parametrize("timeout", [None, 0.1, 1.0, 30.0, 100])
def test_validate_timeout_accepts_valid_values(timeout: float | None) -> None:
    """Test that validate_timeout accepts positive values and None."""
    validate_timeout(timeout)


def test_validate_timeout_rejects_zero() -> None:
    with pytest.raises(ValueError, match=r"timeout must be > 0, got 0"):
        validate_timeout(0)


def test_validate_timeout_rejects_negative() -> None:
    with pytest.raises(ValueError, match=r"timeout must be > 0, got -1.0"):
        validate_timeout(-1.0)


def test_validate_timeout_uses_name() -> None:
    """Test that the parameter name appears in the error message."""
    with pytest.raises(ValueError, match=r"connect_timeout must be > 0, got -2"):
        validate_timeout(-2, name="connect_timeout")


##########################################
#     Tests for validate_concurrency     #
##########################################


@pytest.mark.parametrize("concurrency", [1, 25, 1000])
def test_validate_concurrency_accepts_valid_values(concurrency: int) -> None:
    validate_concurrency(concurrency)


@pytest.mark.parametrize("concurrency", [0, -5, 1.5, "2", None, True])
def test_validate_concurrency_rejects_invalid_values(concurrency: object) -> None:
    """Test that non-integers, booleans and values < 1 are rejected."""
    with pytest.raises(ValueError, match=r"concurrency must be an integer >= 1"):
        validate_concurrency(concurrency)


##########################################
#     Tests for validate_retry_count     #
##########################################


@pytest.mark.parametrize("max_retries", [0, 1, 10])
def test_validate_retry_count_accepts_valid_values(max_retries: int) -> None:
    validate_retry_count(max_retries)


def test_validate_retry_count_rejects_negative() -> None:
    with pytest.raises(ValueError, match=r"max_retries must be >= 0, got -1"):
        validate_retry_count(-1)


#############################################
#     Tests for validate_backoff_params     #
#############################################


@pytest.mark.parametrize(
    ("jitter_factor", "max_wait_time"), [(0.0, None), (0.5, 10.0), (1.0, 0.1)]
)
def test_validate_backoff_params_accepts_valid_values(
    jitter_factor: float, max_wait_time: float | None
) -> None:
    validate_backoff_params(jitter_factor=jitter_factor, max_wait_time=max_wait_time)


def test_validate_backoff_params_rejects_negative_jitter() -> None:
    with pytest.raises(ValueError, match=r"jitter_factor must be >= 0, got -0.1"):
        validate_backoff_params(jitter_factor=-0.1)


@pytest.mark.parametrize("max_wait_time", [0, -1.0])
def test_validate_backoff_params_rejects_invalid_max_wait_time(max_wait_time: float) -> None:
    with pytest.raises(ValueError, match=r"max_wait_time must be > 0"):
        validate_backoff_params(jitter_factor=0.0, max_wait_time=max_wait_time)


###########################################
#     Tests for validate_max_filesize     #
###########################################


@pytest.mark.parametrize("max_filesize", [None, 0, 1024])
def test_validate_max_filesize_accepts_valid_values(max_filesize: int | None) -> None:
    validate_max_filesize(max_filesize)


@pytest.mark.parametrize("max_filesize", [-1, True, 2.5, "10"])
def test_validate_max_filesize_rejects_invalid_values(max_filesize: object) -> None:
    with pytest.raises(ValueError, match=r"max_filesize must be an integer >= 0"):
        validate_max_filesize(max_filesize)
