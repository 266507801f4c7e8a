from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import Mock, patch

import httpx
import pytest

from amulti import Dispatcher, HttpxMultiEngine

if TYPE_CHECKING:
    from collections.abc import Callable, Generator


@pytest.fixture
def mock_sleep() -> Generator[Mock, None, None]:
    """Patch time.sleep to make tests run faster."""
    with patch("time.sleep", return_value=None) as mock:
        yield mock


@pytest.fixture
def mock_callback() -> Mock:
    """Create a mock callback function for testing callbacks.

    Returns:
        A Mock object that can be used as a handle callback.

    Example:
        >>> def test_callback(mock_callback):
        ...     handle.on_complete(mock_callback)
        ...     mock_callback.assert_called_once_with(handle)
    """
    return Mock()


@pytest.fixture
def ok_transport() -> httpx.MockTransport:
    """Create a transport answering every request with 200 and the
    request path as body."""
    return httpx.MockTransport(lambda request: httpx.Response(200, text=request.url.path))


@pytest.fixture
def make_dispatcher() -> Generator[Callable[..., Dispatcher], None, None]:
    """Create dispatchers backed by an ``httpx.MockTransport``.

    The returned factory takes the transport handler and any
    ``Dispatcher`` keyword argument. Every dispatcher is closed at
    teardown, together with the clients its engine created.
    """
    dispatchers: list[Dispatcher] = []

    def factory(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> Dispatcher:
        engine = HttpxMultiEngine(transport=httpx.MockTransport(handler))
        dispatcher = Dispatcher(engine=engine, **kwargs)
        dispatchers.append(dispatcher)
        return dispatcher

    yield factory
    for dispatcher in dispatchers:
        dispatcher.close()
