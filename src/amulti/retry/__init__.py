r"""Retry policies and retry delays.

Public API:
    - RetryDecider: Base class of the retry policies
    - FixedRetryDecider: Retry up to a fixed number of times
    - PredicateRetryDecider: Retry while a predicate returns true
    - build_retry_decider: Turn an int, a callable or a decider into a decider
    - RetryStrategy: Delay before a retry is re-submitted
"""

from __future__ import annotations

__all__ = [
    "FixedRetryDecider",
    "PredicateRetryDecider",
    "RetryDecider",
    "RetryStrategy",
    "build_retry_decider",
]

from amulti.retry.decider import (
    FixedRetryDecider,
    PredicateRetryDecider,
    RetryDecider,
    build_retry_decider,
)
from amulti.retry.strategy import RetryStrategy
