r"""Unit tests for MultiPromise."""

from __future__ import annotations

import logging
from unittest.mock import Mock

import pytest

from amulti import Dispatcher, EngineRegistrationError, MultiPromise, PromiseState, TransferHandle
from tests.unit.helpers import FakeEngine, status_outcome

TEST_URL = "https://api.example.com/items"


def test_promise_initial_state() -> None:
    promise = MultiPromise(Dispatcher(engine=FakeEngine()))
    assert promise.state is PromiseState.PENDING
    assert promise.get_state() == "pending"


def test_promise_wait_unwrap_returns_dispatcher() -> None:
    dispatcher = Dispatcher(engine=FakeEngine())
    handle = dispatcher.enqueue(TransferHandle(TEST_URL))
    promise = dispatcher.promise()

    assert promise.wait() is dispatcher
    assert promise.get_state() == "fulfilled"
    assert handle.finalized


def test_promise_wait_without_unwrap_returns_none() -> None:
    dispatcher = Dispatcher(engine=FakeEngine())
    promise = dispatcher.promise()
    assert promise.wait(unwrap=False) is None
    assert promise.state is PromiseState.FULFILLED


def test_promise_then_adapts_callbacks() -> None:
    """Test that then() callbacks receive response, request and
    handle."""
    on_fulfilled, on_rejected = Mock(), Mock()
    dispatcher = Dispatcher(engine=FakeEngine(status_outcome(500)))
    handle = dispatcher.enqueue(TransferHandle(TEST_URL))

    promise = dispatcher.promise().then(on_fulfilled, on_rejected)
    promise.wait()

    on_fulfilled.assert_called_once_with(handle.response, handle.request, handle)
    on_rejected.assert_called_once_with(handle.response, handle.request, handle)


def test_promise_then_returns_new_promise() -> None:
    dispatcher = Dispatcher(engine=FakeEngine())
    promise = dispatcher.promise()
    chained = promise.then(Mock())
    assert chained is not promise
    assert chained.dispatcher is dispatcher
    assert dispatcher.defaults.callbacks.on_complete is not None
    assert dispatcher.defaults.callbacks.on_error is None


def test_promise_wait_unwrap_propagates_errors() -> None:
    dispatcher = Dispatcher(engine=FakeEngine(max_handles=0))
    dispatcher.enqueue(TransferHandle(TEST_URL))
    promise = dispatcher.promise()

    with pytest.raises(EngineRegistrationError):
        promise.wait()
    assert promise.state is PromiseState.REJECTED


def test_promise_wait_rejected_calls_callable_handler() -> None:
    error_handler = Mock()
    dispatcher = Dispatcher(engine=FakeEngine(max_handles=0))
    dispatcher.enqueue(TransferHandle(TEST_URL))
    promise = dispatcher.promise(error_handler=error_handler)

    assert promise.wait(unwrap=False) is None
    assert promise.get_state() == "rejected"
    error_handler.assert_called_once_with("EngineRegistrationError: too many handles")


def test_promise_wait_rejected_logs_to_logger_handler() -> None:
    error_handler = Mock(spec=logging.Logger)
    dispatcher = Dispatcher(engine=FakeEngine(max_handles=0))
    dispatcher.enqueue(TransferHandle(TEST_URL))

    dispatcher.promise(error_handler=error_handler).wait(unwrap=False)

    error_handler.error.assert_called_once_with("EngineRegistrationError: too many handles")


def test_promise_wait_rejected_logs_error(caplog: pytest.LogCaptureFixture) -> None:
    dispatcher = Dispatcher(engine=FakeEngine(max_handles=0))
    dispatcher.enqueue(TransferHandle(TEST_URL))

    with caplog.at_level(logging.ERROR, logger="amulti.promise"):
        dispatcher.promise().wait(unwrap=False)

    assert "Dispatcher run failed: EngineRegistrationError: too many handles" in caplog.text


def test_promise_wait_does_not_swallow_other_errors() -> None:
    """Test that errors raised by user callbacks always propagate."""
    dispatcher = Dispatcher(engine=FakeEngine())
    dispatcher.on_complete(Mock(side_effect=KeyError("missing")))
    dispatcher.enqueue(TransferHandle(TEST_URL))

    with pytest.raises(KeyError, match=r"missing"):
        dispatcher.promise().wait(unwrap=False)
