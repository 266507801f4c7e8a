r"""High-level client for queueing many requests and running them in
one batch.

``MultiClient`` builds ``TransferHandle`` objects from the familiar
``get``/``post`` style arguments, queues them on a ``Dispatcher`` and
runs them together.

Example:
    ```pycon
    >>> from amulti import MultiClient
    >>> with MultiClient(concurrency=5, base_url="https://api.example.com") as client:  # doctest: +SKIP
    ...     users = client.add_get("/users", params={"page": 1})
    ...     client.add_post("/events", json={"type": "ping"})
    ...     client.start()
    ...     print(users.http_status_code)
    ...

    ```
"""

from __future__ import annotations

__all__ = ["MultiClient"]

import logging
from typing import TYPE_CHECKING, Any

from amulti.core.config import DEFAULT_CONCURRENCY, TransferOptions
from amulti.dispatcher import Dispatcher
from amulti.handle import TransferHandle

if TYPE_CHECKING:
    import httpx

    from amulti.callbacks import TransferCallback
    from amulti.core.config import DispatcherDefaults
    from amulti.download import DownloadDestination
    from amulti.engine import BaseMultiEngine
    from amulti.promise import ErrorHandler, MultiPromise

logger: logging.Logger = logging.getLogger(__name__)

# Request body and query arguments passed to TransferHandle
_REQUEST_ARGS = frozenset({"params", "content", "data", "json", "files"})


class MultiClient:
    """Queue requests and run them concurrently.

    Args:
        concurrency: Maximum number of simultaneous transfers.
        defaults: Default callbacks, retry policy, cookies and retry
            delays of the underlying dispatcher.
        options: Base ``TransferOptions`` of every queued request.
        base_url: Optional base URL for relative request URLs.
        client: Optional ``httpx.AsyncClient`` used by the engine.
        engine: Optional multi engine. Cannot be combined with
            ``client``.
        on_success: Optional default success callback.
        on_error: Optional default error callback.
        on_complete: Optional default complete callback.
        error_handler: Optional logger or callable used by the promises
            returned from ``promise()`` and ``send_async()``.
    """

    def __init__(
        self,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        defaults: DispatcherDefaults | None = None,
        options: TransferOptions | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        engine: BaseMultiEngine | None = None,
        on_success: TransferCallback | None = None,
        on_error: TransferCallback | None = None,
        on_complete: TransferCallback | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self._dispatcher = Dispatcher(
            concurrency=concurrency, defaults=defaults, engine=engine, client=client
        )
        if on_success is not None:
            self._dispatcher.on_success(on_success)
        if on_error is not None:
            self._dispatcher.on_error(on_error)
        if on_complete is not None:
            self._dispatcher.on_complete(on_complete)
        self._options = options or TransferOptions()
        self._base_url = base_url
        self._error_handler = error_handler

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}(base_url={self._base_url!r}, dispatcher={self._dispatcher!r})"

    def __enter__(self) -> MultiClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def _new_handle(self, method: str, url: str | None, **kwargs: Any) -> TransferHandle:
        request_args = {key: kwargs.pop(key) for key in list(kwargs) if key in _REQUEST_ARGS}
        handle = TransferHandle(
            url, method=method, options=self._options, base_url=self._base_url, **request_args
        )
        if kwargs:
            handle.configure(**kwargs)
        return handle

    def add_request(self, method: str, url: str, **kwargs: Any) -> TransferHandle:
        """Queue a request.

        Args:
            method: The HTTP method.
            url: The URL, relative to ``base_url`` if one is set.
            **kwargs: ``params``, ``content``, ``data``, ``json`` and
                ``files`` describe the request; any other keyword
                overrides a ``TransferOptions`` field.

        Returns:
            The queued handle, with its id assigned.

        Raises:
            ConfigurationError: If the URL or an option is invalid.
        """
        return self._dispatcher.enqueue(self._new_handle(method, url, **kwargs))

    def add_get(self, url: str, **kwargs: Any) -> TransferHandle:
        kwargs.setdefault("follow_redirects", True)
        return self.add_request("GET", url, **kwargs)

    def add_head(self, url: str, **kwargs: Any) -> TransferHandle:
        kwargs.setdefault("follow_redirects", True)
        return self.add_request("HEAD", url, **kwargs)

    def add_options(self, url: str, **kwargs: Any) -> TransferHandle:
        kwargs.setdefault("follow_redirects", True)
        return self.add_request("OPTIONS", url, **kwargs)

    def add_post(self, url: str, **kwargs: Any) -> TransferHandle:
        return self.add_request("POST", url, **kwargs)

    def add_put(self, url: str, **kwargs: Any) -> TransferHandle:
        return self.add_request("PUT", url, **kwargs)

    def add_patch(self, url: str, **kwargs: Any) -> TransferHandle:
        return self.add_request("PATCH", url, **kwargs)

    def add_delete(self, url: str, **kwargs: Any) -> TransferHandle:
        return self.add_request("DELETE", url, **kwargs)

    def add_download(
        self, url: str, destination: DownloadDestination, **kwargs: Any
    ) -> TransferHandle:
        """Queue a GET request whose body is streamed to ``destination``.

        Raises:
            DownloadIOError: If the temporary file cannot be opened.
        """
        kwargs.setdefault("follow_redirects", True)
        return self._dispatcher.add_download(self._new_handle("GET", url, **kwargs), destination)

    def send_async(self, request: httpx.Request) -> MultiPromise:
        """Queue an ``httpx.Request`` and return a promise of the batch.

        Example:
            ```pycon
            >>> import httpx
            >>> from amulti import MultiClient
            >>> client = MultiClient()
            >>> promise = client.send_async(httpx.Request("GET", "https://example.com"))
            >>> promise.get_state(), client.dispatcher.pending_count
            ('pending', 1)
            >>> client.close()

            ```
        """
        self._dispatcher.enqueue(TransferHandle.from_request(request, options=self._options))
        return self.promise()

    def promise(self) -> MultiPromise:
        return self._dispatcher.promise(error_handler=self._error_handler)

    def start(self) -> None:
        """Run every queued request, see ``Dispatcher.start()``."""
        self._dispatcher.start()

    def close(self) -> None:
        self._dispatcher.close()
