r"""Unit tests for TransferOptions and DispatcherDefaults."""

from __future__ import annotations

from unittest.mock import Mock

import httpx
import pytest

from amulti.backoff import LinearBackoff
from amulti.callbacks import CallbackConfig
from amulti.core import DEFAULT_TIMEOUT, DispatcherDefaults, TransferOptions

######################################
#     Tests for TransferOptions      #
######################################


def test_transfer_options_defaults() -> None:
    options = TransferOptions()
    assert options.headers == {}
    assert options.cookies == {}
    assert options.timeout == DEFAULT_TIMEOUT
    assert options.connect_timeout is None
    assert options.auth is None
    assert options.proxy is None
    assert options.verify is True
    assert not options.follow_redirects
    assert options.user_agent is None
    assert options.referer is None
    assert options.range is None


def test_transfer_options_do_not_share_mappings() -> None:
    first, second = TransferOptions(), TransferOptions()
    first.headers["X-A"] = "1"
    assert second.headers == {}


@pytest.mark.parametrize("field", ["timeout", "connect_timeout"])
def test_transfer_options_rejects_invalid_timeout(field: str) -> None:
    with pytest.raises(ValueError, match=rf"{field} must be > 0"):
        TransferOptions(**{field: 0})


def test_transfer_options_merge_overrides_fields() -> None:
    options = TransferOptions(timeout=5.0)
    merged = options.merge(timeout=10.0, proxy="http://proxy.local:3128")
    assert merged.timeout == 10.0
    assert merged.proxy == "http://proxy.local:3128"
    assert options.timeout == 5.0
    assert options.proxy is None


def test_transfer_options_merge_combines_headers_and_cookies() -> None:
    """Test that header and cookie overrides are merged, not replaced."""
    options = TransferOptions(headers={"X-A": "1"}, cookies={"a": "1"})
    merged = options.merge(headers={"X-B": "2"}, cookies={"a": "2"})
    assert merged.headers == {"X-A": "1", "X-B": "2"}
    assert merged.cookies == {"a": "2"}
    assert options.headers == {"X-A": "1"}
    assert options.cookies == {"a": "1"}


def test_transfer_options_merge_unknown_field() -> None:
    with pytest.raises(TypeError):
        TransferOptions().merge(colour="blue")


def test_transfer_options_merge_validates() -> None:
    with pytest.raises(ValueError, match=r"timeout must be > 0"):
        TransferOptions().merge(timeout=-1)


def test_transfer_options_timeout_config() -> None:
    assert TransferOptions(timeout=10.0).timeout_config() == httpx.Timeout(10.0)
    assert TransferOptions(timeout=10.0, connect_timeout=2.0).timeout_config() == httpx.Timeout(
        10.0, connect=2.0
    )
    assert TransferOptions(timeout=None).timeout_config() == httpx.Timeout(None)


########################################
#     Tests for DispatcherDefaults     #
########################################


def test_dispatcher_defaults_defaults() -> None:
    defaults = DispatcherDefaults()
    assert defaults.callbacks == CallbackConfig()
    assert defaults.retry is None
    assert defaults.cookies == {}
    assert defaults.backoff_strategy is None
    assert defaults.jitter_factor == 0.0
    assert defaults.max_wait_time is None


def test_dispatcher_defaults_rejects_negative_jitter() -> None:
    with pytest.raises(ValueError, match=r"jitter_factor must be >= 0"):
        DispatcherDefaults(jitter_factor=-1.0)


def test_dispatcher_defaults_rejects_invalid_max_wait_time() -> None:
    with pytest.raises(ValueError, match=r"max_wait_time must be > 0"):
        DispatcherDefaults(max_wait_time=0)


def test_dispatcher_defaults_copy() -> None:
    """Test that a copy does not share callbacks or cookies."""
    callback = Mock()
    backoff = LinearBackoff()
    defaults = DispatcherDefaults(
        callbacks=CallbackConfig(on_success=callback),
        retry=3,
        cookies={"a": "1"},
        backoff_strategy=backoff,
    )
    copied = defaults.copy()
    copied.callbacks.on_error = Mock()
    copied.cookies["b"] = "2"

    assert copied.callbacks.on_success is callback
    assert copied.retry == 3
    assert copied.backoff_strategy is backoff
    assert defaults.callbacks.on_error is None
    assert defaults.cookies == {"a": "1"}
