r"""Unit tests for retry deciders."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from amulti.retry import (
    FixedRetryDecider,
    PredicateRetryDecider,
    RetryDecider,
    build_retry_decider,
)

#######################################
#     Tests for FixedRetryDecider     #
#######################################


def test_fixed_retry_decider_initial_retries() -> None:
    decider = FixedRetryDecider(4)
    assert decider.max_retries == 4
    assert decider.initial_retries == 4


@pytest.mark.parametrize(("remaining", "expected"), [(0, False), (1, True), (5, True)])
def test_fixed_retry_decider_should_retry(remaining: int, expected: bool) -> None:
    """Test that a retry is allowed while retries remain."""
    assert FixedRetryDecider(5).should_retry(Mock(remaining_retries=remaining)) is expected


def test_fixed_retry_decider_rejects_negative() -> None:
    with pytest.raises(ValueError, match=r"max_retries must be >= 0, got -2"):
        FixedRetryDecider(-2)


def test_fixed_retry_decider_repr() -> None:
    assert repr(FixedRetryDecider(2)) == "FixedRetryDecider(max_retries=2)"


###########################################
#     Tests for PredicateRetryDecider     #
###########################################


def test_predicate_retry_decider_calls_predicate() -> None:
    predicate = Mock(return_value=True)
    handle = Mock(id=1)
    decider = PredicateRetryDecider(predicate)
    assert decider.should_retry(handle) is True
    predicate.assert_called_once_with(handle)
    assert decider.initial_retries == 0


@pytest.mark.parametrize(("value", "expected"), [(0, False), (None, False), ("yes", True)])
def test_predicate_retry_decider_coerces_to_bool(value: object, expected: bool) -> None:
    decider = PredicateRetryDecider(Mock(return_value=value))
    assert decider.should_retry(Mock(id=1)) is expected


#########################################
#     Tests for build_retry_decider     #
#########################################


def test_build_retry_decider_none() -> None:
    assert build_retry_decider(None) is None


def test_build_retry_decider_int() -> None:
    decider = build_retry_decider(3)
    assert isinstance(decider, FixedRetryDecider)
    assert decider.max_retries == 3


def test_build_retry_decider_callable() -> None:
    predicate = Mock()
    decider = build_retry_decider(predicate)
    assert isinstance(decider, PredicateRetryDecider)
    assert decider.predicate is predicate


def test_build_retry_decider_passes_decider_through() -> None:
    decider = FixedRetryDecider(1)
    assert build_retry_decider(decider) is decider


def test_build_retry_decider_custom_subclass() -> None:
    """Test that user-defined deciders are accepted."""

    class StatusRetryDecider(RetryDecider):
        initial_retries = 1

        def should_retry(self, handle) -> bool:
            return handle.http_status_code == 503

    decider = build_retry_decider(StatusRetryDecider())
    assert decider.should_retry(Mock(http_status_code=503))
    assert not decider.should_retry(Mock(http_status_code=500))


@pytest.mark.parametrize("policy", [True, False, "3", 1.5, [1]])
def test_build_retry_decider_invalid(policy: object) -> None:
    with pytest.raises(TypeError, match=r"retry policy must be"):
        build_retry_decider(policy)


def test_build_retry_decider_negative() -> None:
    with pytest.raises(ValueError, match=r"max_retries must be >= 0"):
        build_retry_decider(-1)
