r"""A thin promise over a dispatcher run.

``MultiPromise`` does not run anything in the background. It registers
adapted callbacks with ``then()`` and runs the dispatcher synchronously
in ``wait()``.
"""

from __future__ import annotations

__all__ = ["ErrorHandler", "MultiPromise", "PromiseState"]

import functools
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Union

from amulti.exceptions import EngineRegistrationError, HttpTransferError

if TYPE_CHECKING:
    import httpx

    from amulti.dispatcher import Dispatcher
    from amulti.handle import TransferHandle

    PromiseCallback = Callable[[Union[httpx.Response, None], Union[httpx.Request, None], TransferHandle], Any]

logger: logging.Logger = logging.getLogger(__name__)

ErrorHandler = Union[logging.Logger, Callable[[str], Any]]


class PromiseState(Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


def _adapt(callback: PromiseCallback) -> Callable[[TransferHandle], None]:
    """Adapt a ``(response, request, handle)`` callback to a handle
    callback."""

    @functools.wraps(callback)
    def wrapper(handle: TransferHandle) -> None:
        callback(handle.response, handle.request, handle)

    return wrapper


class MultiPromise:
    """Promise wrapping a ``Dispatcher``.

    Args:
        dispatcher: The dispatcher run by ``wait()``.
        error_handler: Optional logger or callable notified with the
            error message when ``wait(unwrap=False)`` swallows an error.

    Example:
        ```pycon
        >>> from amulti import Dispatcher
        >>> from amulti.promise import MultiPromise
        >>> with Dispatcher() as dispatcher:
        ...     promise = MultiPromise(dispatcher).then(lambda response, request, handle: None)
        ...     promise.wait() is dispatcher, promise.state.value
        ...
        (True, 'fulfilled')

        ```
    """

    def __init__(self, dispatcher: Dispatcher, *, error_handler: ErrorHandler | None = None) -> None:
        self._dispatcher = dispatcher
        self._error_handler = error_handler
        self._state = PromiseState.PENDING

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}(state={self._state.value})"

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def state(self) -> PromiseState:
        return self._state

    def get_state(self) -> str:
        """Return the state as one of ``"pending"``, ``"fulfilled"`` or
        ``"rejected"``."""
        return self._state.value

    def then(
        self,
        on_fulfilled: PromiseCallback | None = None,
        on_rejected: PromiseCallback | None = None,
    ) -> MultiPromise:
        """Register callbacks for every handle of the dispatcher.

        ``on_fulfilled`` becomes the dispatcher's default complete
        callback and ``on_rejected`` its default error callback. Both are
        called with ``(response, request, handle)``.

        Returns:
            A new promise over the same dispatcher.
        """
        if on_fulfilled is not None:
            self._dispatcher.on_complete(_adapt(on_fulfilled))
        if on_rejected is not None:
            self._dispatcher.on_error(_adapt(on_rejected))
        return MultiPromise(self._dispatcher, error_handler=self._error_handler)

    def wait(self, unwrap: bool = True) -> Dispatcher | None:
        """Run the dispatcher to completion.

        Args:
            unwrap: If true, errors propagate and the dispatcher is
                returned. If false, errors are logged and reported to the
                error handler and ``None`` is returned.

        Returns:
            The dispatcher when ``unwrap`` is true, ``None`` otherwise.
        """
        try:
            self._dispatcher.start()
        except (EngineRegistrationError, HttpTransferError) as exc:
            self._state = PromiseState.REJECTED
            if unwrap:
                raise
            self._report(exc)
            return None
        self._state = PromiseState.FULFILLED
        return self._dispatcher if unwrap else None

    def _report(self, exc: Exception) -> None:
        message = f"{type(exc).__name__}: {exc}"
        if isinstance(self._error_handler, logging.Logger):
            self._error_handler.error(message)
        elif self._error_handler is not None:
            self._error_handler(message)
        logger.error(f"Dispatcher run failed: {message}")
