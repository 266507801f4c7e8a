r"""Exception types raised or recorded by amulti.

Per-transfer failures (``ConfigurationError``, ``TransportError``,
``HttpStatusError`` and ``DownloadIOError``) are never raised out of
``Dispatcher.start()``. They are stored on the handle that failed and
surfaced through its error and complete callbacks. Only
``EngineRegistrationError`` aborts a whole run.
"""

from __future__ import annotations

__all__ = [
    "ABORTED_BY_CALLBACK_CODE",
    "FILESIZE_EXCEEDED_CODE",
    "ConfigurationError",
    "DownloadIOError",
    "EngineRegistrationError",
    "HttpStatusError",
    "HttpTransferError",
    "TransportError",
    "transport_error_code",
]

import httpx

# curl-compatible numbers, most specific httpx type first.
_TRANSPORT_ERROR_CODES: tuple[tuple[type[Exception], int], ...] = (
    (httpx.UnsupportedProtocol, 1),
    (httpx.ProxyError, 5),
    (httpx.ConnectTimeout, 28),
    (httpx.TimeoutException, 28),
    (httpx.ConnectError, 7),
    (httpx.RemoteProtocolError, 8),
    (httpx.LocalProtocolError, 3),
    (httpx.TooManyRedirects, 47),
    (httpx.DecodingError, 61),
    (httpx.WriteError, 55),
    (httpx.ReadError, 56),
)

# Used for transport failures with no more specific mapping.
DEFAULT_TRANSPORT_ERROR_CODE = 56

# A progress callback asked to stop the transfer
ABORTED_BY_CALLBACK_CODE = 42

# A download grew past its maximum file size
FILESIZE_EXCEEDED_CODE = 63


def transport_error_code(exc: Exception) -> int:
    """Return the native transfer code for an httpx exception.

    Args:
        exc: The exception raised by httpx during a transfer.

    Returns:
        A curl-compatible error number.

    Example:
        ```pycon
        >>> import httpx
        >>> from amulti.exceptions import transport_error_code
        >>> transport_error_code(httpx.ConnectError("refused"))
        7
        >>> transport_error_code(httpx.ReadTimeout("slow"))
        28

        ```
    """
    for exc_type, code in _TRANSPORT_ERROR_CODES:
        if isinstance(exc, exc_type):
            return code
    return DEFAULT_TRANSPORT_ERROR_CODE


class HttpTransferError(Exception):
    """Base class for errors attached to a single transfer.

    Args:
        method: The HTTP method of the transfer.
        url: The URL of the transfer, if known.
        message: A descriptive error message.
        status_code: The HTTP status code, if a response was received.
        response: The response object, if a response was received.
        cause: The underlying exception, if any.

    Example:
        ```pycon
        >>> from amulti.exceptions import HttpTransferError
        >>> err = HttpTransferError(method="GET", url="https://example.com", message="boom")
        >>> err.method, err.url
        ('GET', 'https://example.com')
        >>> str(err)
        'boom'

        ```
    """

    def __init__(
        self,
        method: str,
        url: str | None,
        message: str,
        status_code: int | None = None,
        response: httpx.Response | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.url = url
        self.message = message
        self.status_code = status_code
        self.response = response
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class ConfigurationError(HttpTransferError):
    """Raised when a transfer is missing its URL or has an invalid option.

    This error is never retried.
    """


class TransportError(HttpTransferError):
    """The transfer failed before a complete response was received.

    Covers DNS and connection failures, TLS failures and timeouts.

    Args:
        code: The native transfer code, see ``transport_error_code``.
        **kwargs: Forwarded to ``HttpTransferError``.
    """

    def __init__(self, *, code: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.code = code


class HttpStatusError(HttpTransferError):
    """A response was received with a 4xx or 5xx status code."""


class DownloadIOError(HttpTransferError):
    """The destination or temporary file of a download could not be opened
    or written.

    This error is never retried.
    """


class EngineRegistrationError(RuntimeError):
    """Raised when the multi engine refuses to register or deregister a
    handle.

    This error is fatal to ``Dispatcher.start()`` and propagates to the
    caller.

    Example:
        ```pycon
        >>> from amulti.exceptions import EngineRegistrationError
        >>> raise EngineRegistrationError("engine is closed")
        Traceback (most recent call last):
            ...
        amulti.exceptions.EngineRegistrationError: engine is closed

        ```
    """
