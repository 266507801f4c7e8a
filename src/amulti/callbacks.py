r"""Lifecycle callbacks for transfer handles.

Five hooks are available on every handle and as dispatcher defaults:

- before_send: called before each attempt is handed to the engine
- on_success: called once when the final attempt succeeded
- on_error: called once when the final attempt failed
- on_complete: called once after on_success or on_error
- on_progress: called after each chunk written by a download

The first four receive the ``TransferHandle`` as their only argument.
``on_progress`` receives the handle, the number of bytes downloaded so
far and the expected total, or ``None`` if unknown. A truthy return
value aborts the transfer.

Example:
    ```pycon
    >>> from amulti import Dispatcher, TransferHandle
    >>> dispatcher = Dispatcher(concurrency=2)
    >>> dispatcher.on_complete(lambda handle: print(handle.id, handle.http_status_code))
    >>> dispatcher.enqueue(TransferHandle("https://api.example.com/data"))  # doctest: +SKIP
    >>> dispatcher.start()  # doctest: +SKIP

    ```
"""

from __future__ import annotations

__all__ = ["CallbackConfig", "ProgressCallback", "TransferCallback", "invoke_callback"]

import logging
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any, Callable, Union

if TYPE_CHECKING:
    from amulti.handle import TransferHandle

logger: logging.Logger = logging.getLogger(__name__)

TransferCallback = Callable[["TransferHandle"], Any]
ProgressCallback = Callable[["TransferHandle", int, Union[int, None]], Any]


@dataclass
class CallbackConfig:
    """Callbacks attached to a handle or used as dispatcher defaults.

    Attributes:
        before_send: Optional callback invoked before each attempt.
        on_success: Optional callback invoked when the transfer succeeds.
        on_error: Optional callback invoked when the transfer fails.
        on_complete: Optional callback invoked after success or error.
        on_progress: Optional callback invoked while a download is
            written.
    """

    before_send: TransferCallback | None = None
    on_success: TransferCallback | None = None
    on_error: TransferCallback | None = None
    on_complete: TransferCallback | None = None
    on_progress: ProgressCallback | None = None

    def fill_missing(self, defaults: CallbackConfig) -> None:
        """Copy every callback of ``defaults`` that is not set here.

        Args:
            defaults: The callbacks to fall back to.

        Example:
            ```pycon
            >>> from amulti.callbacks import CallbackConfig
            >>> own = CallbackConfig(on_success=print)
            >>> own.fill_missing(CallbackConfig(on_success=repr, on_error=repr))
            >>> own.on_success is print, own.on_error is repr
            (True, True)

            ```
        """
        for f in fields(self):
            if getattr(self, f.name) is None:
                setattr(self, f.name, getattr(defaults, f.name))


def invoke_callback(callback: TransferCallback | None, handle: TransferHandle, *args: Any) -> None:
    """Invoke ``callback`` with the handle, if a callback is set.

    Exceptions raised by the callback propagate to the caller.

    Args:
        callback: The callback to invoke, or ``None``.
        handle: The handle passed as first argument.
        *args: Extra positional arguments.
    """
    if callback is None:
        return
    logger.debug(f"Invoking {getattr(callback, '__name__', callback)!s} for handle {handle.id}")
    callback(handle, *args)
