r"""Delay formulas for retried transfers.

A dispatcher re-submits a failed handle immediately unless its defaults
carry a backoff strategy. The strategy is asked for a delay with the
zero-based retry index of the handle: ``0`` before the first retry,
``1`` before the second one, and so on.
"""

from __future__ import annotations

__all__ = ["BaseBackoffStrategy", "ConstantBackoff", "ExponentialBackoff", "LinearBackoff"]

from amulti.backoff.base import BaseBackoffStrategy
from amulti.backoff.constant import ConstantBackoff
from amulti.backoff.exponential import ExponentialBackoff
from amulti.backoff.linear import LinearBackoff
