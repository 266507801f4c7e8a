r"""A single HTTP transfer and its lifecycle.

A ``TransferHandle`` bundles a request (method, URL, body, options), the
lifecycle callbacks, a retry policy, an optional download target and
the result of the last attempt. It can be run on its own with
``perform()`` or handed to a ``Dispatcher`` which runs many handles
concurrently.

The lifecycle of one handle is:

1. ``begin_attempt()``: count the attempt and call ``before_send``;
2. ``transfer()`` / ``transfer_async()``: run the HTTP exchange and
   return a ``TransferOutcome`` without raising;
3. ``complete_attempt()``: classify the outcome;
4. ``attempt_retry()``: ask the retry policy, repeat from 1. if true;
5. ``finalize()``: fire the callbacks exactly once and release the
   resources.
"""

from __future__ import annotations

__all__ = ["ErrorKind", "TransferHandle", "TransferOutcome", "next_handle_id"]

import itertools
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from amulti.callbacks import CallbackConfig, invoke_callback
from amulti.core.config import TransferOptions
from amulti.download import DownloadTarget
from amulti.exceptions import (
    ABORTED_BY_CALLBACK_CODE,
    FILESIZE_EXCEEDED_CODE,
    ConfigurationError,
    DownloadIOError,
    HttpStatusError,
    HttpTransferError,
    TransportError,
    transport_error_code,
)
from amulti.retry.decider import build_retry_decider
from amulti.utils.structured_logging import log_transfer

if TYPE_CHECKING:
    from collections.abc import Mapping

    from amulti.callbacks import ProgressCallback, TransferCallback
    from amulti.core.config import RetryPolicy
    from amulti.download import DownloadDestination
    from amulti.retry.decider import RetryDecider

logger: logging.Logger = logging.getLogger(__name__)

_handle_ids = itertools.count(1)
_handle_ids_lock = threading.Lock()

# Headers recomputed by httpx when a request is rebuilt
_GENERATED_HEADERS = frozenset({"host", "content-length", "transfer-encoding"})


def next_handle_id() -> int:
    """Return the next process-wide handle id.

    Ids start at 1 and are strictly increasing in call order.

    Example:
        ```pycon
        >>> from amulti.handle import next_handle_id
        >>> first = next_handle_id()
        >>> next_handle_id() == first + 1
        True

        ```
    """
    with _handle_ids_lock:
        return next(_handle_ids)


class ErrorKind(Enum):
    """Classification of the last attempt of a handle."""

    NONE = "none"
    TRANSPORT = "transport"
    HTTP_STATUS = "http_status"
    CONFIGURATION = "configuration"
    DOWNLOAD_IO = "download_io"

    @property
    def retryable(self) -> bool:
        """Whether a retry policy is consulted for this kind of error."""
        return self in (ErrorKind.TRANSPORT, ErrorKind.HTTP_STATUS)


@dataclass
class TransferOutcome:
    """Raw result of one attempt, before classification.

    Attributes:
        response: The response, if one was received. Its body has been
            read or streamed to the download target.
        error: The exception that ended the attempt, if any.
        elapsed: Duration of the attempt in seconds.
    """

    response: httpx.Response | None = None
    error: Exception | None = None
    elapsed: float = 0.0


class TransferHandle:
    """One HTTP transfer with callbacks, retry state and result.

    Every setter returns the handle so calls can be chained.

    Args:
        url: The request URL. Relative URLs are resolved against
            ``base_url``.
        method: The HTTP method.
        options: Per-transfer options. The handle keeps its own copy.
        base_url: Optional base URL for relative URLs.
        params: Optional query parameters merged into the URL.
        content: Optional raw request body.
        data: Optional form data.
        json: Optional JSON body.
        files: Optional multipart files.

    Raises:
        ConfigurationError: If the URL cannot be parsed.

    Example:
        ```pycon
        >>> from amulti import TransferHandle
        >>> handle = (
        ...     TransferHandle("https://api.example.com/items", method="post")
        ...     .add_header("X-Token", "secret")
        ...     .set_timeout(5.0)
        ...     .set_retry(2)
        ... )
        >>> handle.method, handle.remaining_retries
        ('POST', 2)
        >>> handle.error
        False

        ```
    """

    def __init__(
        self,
        url: str | httpx.URL | None = None,
        *,
        method: str = "GET",
        options: TransferOptions | None = None,
        base_url: str | httpx.URL | None = None,
        params: Mapping[str, Any] | None = None,
        content: bytes | str | None = None,
        data: Mapping[str, Any] | None = None,
        json: Any = None,
        files: Any = None,
    ) -> None:
        self.id: int | None = None
        self.child_of_multi = False
        self.method = method.upper()
        self.options = (options or TransferOptions()).merge()
        self.content = content
        self.data = data
        self.json = json
        self.files = files
        self._base_url = self._parse_url(base_url) if base_url is not None else None
        self._url: httpx.URL | None = None
        if url is not None:
            self.set_url(url, params=params)

        self.callbacks = CallbackConfig()
        self.retry_decider: RetryDecider | None = None
        self.attempts = 0
        self.retries = 0
        self.remaining_retries = 0

        self.request: httpx.Request | None = None
        self.response: httpx.Response | None = None
        self._download: DownloadTarget | None = None
        self._range_override: str | None = None
        self.finalized = False
        self.closed = False
        self._reset_result()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__qualname__}(id={self.id}, method={self.method!r}, "
            f"url={self.url_string!r})"
        )

    def __enter__(self) -> TransferHandle:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @classmethod
    def from_request(
        cls, request: httpx.Request, *, options: TransferOptions | None = None
    ) -> TransferHandle:
        """Create a handle from an existing ``httpx.Request``.

        Args:
            request: The request to send. Its body must not be a stream.
            options: Optional base options. The request headers are added
                on top of them.

        Returns:
            A new handle.

        Example:
            ```pycon
            >>> import httpx
            >>> from amulti import TransferHandle
            >>> request = httpx.Request("PUT", "https://example.com/a", content=b"x")
            >>> TransferHandle.from_request(request).method
            'PUT'

            ```
        """
        handle = cls(
            str(request.url), method=request.method, options=options, content=request.read() or None
        )
        headers = {
            key: value
            for key, value in request.headers.items()
            if key.lower() not in _GENERATED_HEADERS
        }
        handle.options = handle.options.merge(headers=headers)
        return handle

    ##################
    #     Result     #
    ##################

    def _reset_result(self) -> None:
        self.error_kind = ErrorKind.NONE
        self.error_code = 0
        self.error_message = ""
        self.exception: HttpTransferError | None = None
        self.http_status_code = 0
        self.raw_response = b""
        self.response_headers = httpx.Headers()
        self.response_cookies: dict[str, str] = {}

    @property
    def error(self) -> bool:
        """Whether the last attempt failed."""
        return self.error_kind is not ErrorKind.NONE

    @property
    def transport_error(self) -> bool:
        return self.error_kind is ErrorKind.TRANSPORT

    @property
    def http_error(self) -> bool:
        return self.error_kind is ErrorKind.HTTP_STATUS

    @property
    def url(self) -> httpx.URL | None:
        return self._url

    @property
    def url_string(self) -> str | None:
        return str(self._url) if self._url is not None else None

    @property
    def download_target(self) -> DownloadTarget | None:
        return self._download

    ##########################
    #     Configuration      #
    ##########################

    def _parse_url(self, url: str | httpx.URL) -> httpx.URL:
        try:
            return httpx.URL(url)
        except (httpx.InvalidURL, TypeError) as exc:
            raise ConfigurationError(
                method=self.method, url=str(url), message=f"Invalid URL: {url!r}", cause=exc
            ) from exc

    def _update_options(self, **overrides: Any) -> TransferHandle:
        try:
            self.options = self.options.merge(**overrides)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                method=self.method, url=self.url_string, message=str(exc), cause=exc
            ) from exc
        return self

    def configure(self, url: str | httpx.URL | None = None, **overrides: Any) -> TransferHandle:
        """Set the URL and any number of ``TransferOptions`` fields.

        Args:
            url: Optional new URL.
            **overrides: ``TransferOptions`` fields to override.

        Raises:
            ConfigurationError: If the URL or an option is invalid.
        """
        if url is not None:
            self.set_url(url)
        return self._update_options(**overrides)

    def set_url(
        self, url: str | httpx.URL, params: Mapping[str, Any] | None = None
    ) -> TransferHandle:
        """Set the request URL.

        A relative URL is resolved against the current URL, or against
        the base URL when no URL is set yet.

        Args:
            url: The new URL.
            params: Optional query parameters merged into the URL.

        Raises:
            ConfigurationError: If the URL cannot be parsed.
        """
        target = self._parse_url(url)
        base = self._url if self._url is not None else self._base_url
        if base is not None and target.is_relative_url:
            target = base.join(target)
        if params:
            target = target.copy_merge_params(params)
        self._url = target
        return self

    def add_header(self, name: str, value: str) -> TransferHandle:
        return self._update_options(headers={name: value})

    def set_cookie(self, name: str, value: str) -> TransferHandle:
        return self._update_options(cookies={name: value})

    def set_cookies(self, cookies: Mapping[str, str]) -> TransferHandle:
        return self._update_options(cookies=dict(cookies))

    def set_range(self, byte_range: str | None) -> TransferHandle:
        """Request a byte range, e.g. ``"0-99"`` or ``"100-"``."""
        return self._update_options(range=byte_range)

    def set_timeout(self, seconds: float | None) -> TransferHandle:
        return self._update_options(timeout=seconds)

    def set_connect_timeout(self, seconds: float | None) -> TransferHandle:
        return self._update_options(connect_timeout=seconds)

    def set_basic_auth(self, username: str, password: str) -> TransferHandle:
        return self._update_options(auth=(username, password))

    def set_proxy(self, proxy: str | None) -> TransferHandle:
        return self._update_options(proxy=proxy)

    def set_user_agent(self, user_agent: str | None) -> TransferHandle:
        return self._update_options(user_agent=user_agent)

    def set_referer(self, referer: str | None) -> TransferHandle:
        return self._update_options(referer=referer)

    def follow_redirects(self, enabled: bool = True) -> TransferHandle:
        return self._update_options(follow_redirects=enabled)

    def before_send(self, callback: TransferCallback | None) -> TransferHandle:
        self.callbacks.before_send = callback
        return self

    def on_success(self, callback: TransferCallback | None) -> TransferHandle:
        self.callbacks.on_success = callback
        return self

    def on_error(self, callback: TransferCallback | None) -> TransferHandle:
        self.callbacks.on_error = callback
        return self

    def on_complete(self, callback: TransferCallback | None) -> TransferHandle:
        self.callbacks.on_complete = callback
        return self

    def on_progress(self, callback: ProgressCallback | None) -> TransferHandle:
        """Set the callback invoked after each chunk of a download.

        The callback receives the handle, the number of bytes in the file
        and the expected file size, or ``None`` if the server did not
        announce it. A truthy return value aborts the transfer with a
        ``TransportError``.
        """
        self.callbacks.on_progress = callback
        return self

    def set_max_filesize(self, max_bytes: int | None) -> TransferHandle:
        return self._update_options(max_filesize=max_bytes)

    def set_retry(self, policy: RetryPolicy) -> TransferHandle:
        """Replace the retry policy.

        Args:
            policy: A retry count, a predicate receiving the handle, a
                ``RetryDecider``, or ``None`` to disable retries. A count
                ``n`` allows at most ``n + 1`` executions.

        Raises:
            TypeError: If ``policy`` has an unsupported type.
            ValueError: If ``policy`` is a negative count.
        """
        self.retry_decider = build_retry_decider(policy)
        self.remaining_retries = (
            self.retry_decider.initial_retries if self.retry_decider is not None else 0
        )
        return self

    def download(self, destination: DownloadDestination) -> TransferHandle:
        """Stream the response body to a file instead of memory.

        Args:
            destination: A file path, or a callable receiving
                ``(handle, fileobj)`` once the download succeeded.

        Raises:
            DownloadIOError: If the temporary file cannot be opened.
        """
        target = DownloadTarget(destination)
        target.open()
        if self._download is not None:
            self._download.close()
        self._download = target
        return self

    ###################
    #     Request     #
    ###################

    def validate(self) -> None:
        """Check that the handle can be sent.

        Raises:
            ConfigurationError: If no URL is set.
        """
        if self._url is None:
            raise ConfigurationError(
                method=self.method, url=None, message="No URL set for the transfer"
            )

    def build_request(self, client: httpx.Client | httpx.AsyncClient) -> httpx.Request:
        """Build the ``httpx.Request`` of the next attempt.

        Args:
            client: The client whose defaults are merged into the request.

        Raises:
            ConfigurationError: If no URL is set or the URL is invalid.
        """
        self.validate()
        headers = dict(self.options.headers)
        if self.options.user_agent is not None:
            headers["User-Agent"] = self.options.user_agent
        if self.options.referer is not None:
            headers["Referer"] = self.options.referer
        if self.options.cookies:
            headers["Cookie"] = "; ".join(
                f"{quote(str(name), safe='')}={quote(str(value), safe='')}"
                for name, value in self.options.cookies.items()
            )
        byte_range = self._range_override or self.options.range
        if byte_range is not None:
            headers["Range"] = f"bytes={byte_range}"

        try:
            return client.build_request(
                self.method,
                self._url,
                content=self.content,
                data=self.data,
                json=self.json,
                files=self.files,
                headers=headers,
                timeout=self.options.timeout_config(),
            )
        except httpx.InvalidURL as exc:
            raise ConfigurationError(
                method=self.method, url=self.url_string, message=str(exc), cause=exc
            ) from exc

    def _auth(self) -> Any:
        return self.options.auth if self.options.auth is not None else httpx.USE_CLIENT_DEFAULT

    def _writes_to_file(self, response: httpx.Response) -> bool:
        return self._download is not None and response.status_code < 400

    def _download_failed(self, exc: OSError) -> DownloadIOError:
        return DownloadIOError(
            method=self.method,
            url=self.url_string,
            message=f"Unable to write to file: {self._download.temp_path or '<temporary file>'}",
            cause=exc,
        )

    def _aborted(self, code: int, message: str) -> TransportError:
        return TransportError(code=code, method=self.method, url=self.url_string, message=message)

    @staticmethod
    def _expected_size(response: httpx.Response, downloaded: int) -> int | None:
        content_length = response.headers.get("Content-Length", "")
        if not content_length.isdigit():
            return None
        return downloaded + int(content_length)

    def _write_chunk(self, chunk: bytes, downloaded: int, total: int | None) -> int:
        downloaded += len(chunk)
        max_filesize = self.options.max_filesize
        if max_filesize is not None and downloaded > max_filesize:
            raise self._aborted(
                FILESIZE_EXCEEDED_CODE, f"Maximum file size of {max_filesize} bytes exceeded"
            )
        self._download.write(chunk)
        progress = self.callbacks.on_progress
        if progress is not None and progress(self, downloaded, total):
            raise self._aborted(ABORTED_BY_CALLBACK_CODE, "Transfer aborted by progress callback")
        return downloaded

    def client_kwargs(self) -> dict[str, Any]:
        """Return the ``httpx`` client arguments these options require."""
        kwargs: dict[str, Any] = {"verify": self.options.verify}
        if self.options.proxy is not None:
            kwargs["proxy"] = self.options.proxy
        return kwargs

    ###################
    #     Attempt     #
    ###################

    def begin_attempt(self) -> None:
        """Start a new attempt.

        Clears the result of the previous attempt, counts the attempt,
        prepares the download file and calls the ``before_send`` callback.
        """
        self._reset_result()
        self.attempts += 1
        self._range_override = None
        if self._download is not None:
            offset = self._download.begin_attempt()
            if offset:
                self._range_override = f"{offset}-"
        invoke_callback(self.callbacks.before_send, self)

    def transfer(self, client: httpx.Client) -> TransferOutcome:
        """Run one synchronous HTTP exchange.

        Errors are returned in the outcome, never raised.

        Args:
            client: The client used to send the request.

        Returns:
            The outcome of the exchange.
        """
        start = time.monotonic()
        try:
            self.request = self.build_request(client)
        except ConfigurationError as exc:
            return TransferOutcome(error=exc)

        try:
            response = client.send(
                self.request,
                stream=True,
                auth=self._auth(),
                follow_redirects=self.options.follow_redirects,
            )
        except httpx.RequestError as exc:
            return TransferOutcome(error=exc, elapsed=time.monotonic() - start)

        try:
            if self._writes_to_file(response):
                downloaded = self._download.begin_response(response.status_code)
                total = self._expected_size(response, downloaded)
                for chunk in response.iter_bytes():
                    downloaded = self._write_chunk(chunk, downloaded, total)
            else:
                response.read()
        except httpx.RequestError as exc:
            return TransferOutcome(response=response, error=exc, elapsed=time.monotonic() - start)
        except TransportError as exc:
            return TransferOutcome(response=response, error=exc, elapsed=time.monotonic() - start)
        except OSError as exc:
            return TransferOutcome(
                response=response,
                error=self._download_failed(exc),
                elapsed=time.monotonic() - start,
            )
        finally:
            response.close()
        return TransferOutcome(response=response, elapsed=time.monotonic() - start)

    async def transfer_async(self, client: httpx.AsyncClient) -> TransferOutcome:
        """Run one HTTP exchange on an ``httpx.AsyncClient``.

        Same contract as ``transfer()``.
        """
        start = time.monotonic()
        try:
            self.request = self.build_request(client)
        except ConfigurationError as exc:
            return TransferOutcome(error=exc)

        try:
            response = await client.send(
                self.request,
                stream=True,
                auth=self._auth(),
                follow_redirects=self.options.follow_redirects,
            )
        except httpx.RequestError as exc:
            return TransferOutcome(error=exc, elapsed=time.monotonic() - start)

        try:
            if self._writes_to_file(response):
                downloaded = self._download.begin_response(response.status_code)
                total = self._expected_size(response, downloaded)
                async for chunk in response.aiter_bytes():
                    downloaded = self._write_chunk(chunk, downloaded, total)
            else:
                await response.aread()
        except httpx.RequestError as exc:
            return TransferOutcome(response=response, error=exc, elapsed=time.monotonic() - start)
        except TransportError as exc:
            return TransferOutcome(response=response, error=exc, elapsed=time.monotonic() - start)
        except OSError as exc:
            return TransferOutcome(
                response=response,
                error=self._download_failed(exc),
                elapsed=time.monotonic() - start,
            )
        finally:
            await response.aclose()
        return TransferOutcome(response=response, elapsed=time.monotonic() - start)

    def complete_attempt(self, outcome: TransferOutcome) -> None:
        """Record and classify the outcome of the current attempt.

        A transport error takes precedence over the status code. A
        received response whose status code starts with 4 or 5 is an
        HTTP error with ``error_code`` set to the status code. Anything
        else is a success with ``error_code`` 0.

        Args:
            outcome: The outcome returned by ``transfer()``.
        """
        response = outcome.response
        self.response = response
        if response is not None:
            self.http_status_code = response.status_code
            self.response_headers = response.headers
            self.response_cookies = {cookie.name: cookie.value for cookie in response.cookies.jar}
            if not self._writes_to_file(response):
                try:
                    self.raw_response = response.content
                except httpx.ResponseNotRead:
                    self.raw_response = b""

        error = outcome.error
        if isinstance(error, ConfigurationError):
            self._fail(ErrorKind.CONFIGURATION, 0, error)
        elif isinstance(error, DownloadIOError):
            self._fail(ErrorKind.DOWNLOAD_IO, 0, error)
        elif isinstance(error, TransportError):
            self._fail(ErrorKind.TRANSPORT, error.code, error)
        elif error is not None:
            code = transport_error_code(error)
            self._fail(
                ErrorKind.TRANSPORT,
                code,
                TransportError(
                    code=code,
                    method=self.method,
                    url=self.url_string,
                    message=f"{type(error).__name__}: {error}",
                    cause=error,
                ),
            )
        elif response is not None and response.status_code // 100 in (4, 5):
            self._fail(
                ErrorKind.HTTP_STATUS,
                response.status_code,
                HttpStatusError(
                    method=self.method,
                    url=self.url_string,
                    message=f"{self.method} request to {self.url_string} failed with status "
                    f"{response.status_code}",
                    status_code=response.status_code,
                    response=response,
                ),
            )

        log_transfer(
            logger,
            logging.DEBUG,
            f"Attempt {self.attempts} of handle {self.id} finished: "
            f"status={self.http_status_code} error_code={self.error_code}",
            self,
            elapsed=round(outcome.elapsed, 6),
        )

    def _fail(self, kind: ErrorKind, code: int, exc: HttpTransferError) -> None:
        self.error_kind = kind
        self.error_code = code
        self.error_message = exc.message
        self.exception = exc

    def attempt_retry(self) -> bool:
        """Decide whether the failed attempt is retried.

        Returns false without consulting the policy when the last attempt
        succeeded, when it failed with a non-retryable error or when no
        policy is set. On a retry, ``retries`` is incremented and
        ``remaining_retries`` is decremented unless it is already 0.

        Returns:
            Whether the handle should be executed again.
        """
        if not self.error_kind.retryable or self.retry_decider is None:
            return False
        should_retry = self.retry_decider.should_retry(self)
        if should_retry:
            self.retries += 1
            if self.remaining_retries:
                self.remaining_retries -= 1
            log_transfer(
                logger,
                logging.DEBUG,
                f"Retrying handle {self.id} ({self.retries} retries so far)",
                self,
                error_code=self.error_code,
            )
        return should_retry

    ####################
    #     Lifecycle    #
    ####################

    def execute(self, client: httpx.Client | None = None) -> bytes:
        """Run a single attempt synchronously.

        Args:
            client: Optional client. A temporary one is used otherwise.

        Returns:
            The raw response body, empty for downloads and failures.
        """
        self.begin_attempt()
        if client is None:
            with httpx.Client(**self.client_kwargs()) as own_client:
                outcome = self.transfer(own_client)
        else:
            outcome = self.transfer(client)
        self.complete_attempt(outcome)
        return self.raw_response

    def perform(self, client: httpx.Client | None = None) -> httpx.Response | None:
        """Run the handle on its own: attempts, retries, then finalize.

        Args:
            client: Optional client. A temporary one is used otherwise.

        Returns:
            The response of the last attempt, if any.

        Raises:
            RuntimeError: If the handle belongs to a dispatcher or is
                already finalized.
        """
        if self.child_of_multi:
            msg = f"{self!r} belongs to a dispatcher, run it with Dispatcher.start()"
            raise RuntimeError(msg)
        if self.finalized:
            msg = f"{self!r} is already finalized"
            raise RuntimeError(msg)

        own_client = client is None
        client = client if client is not None else httpx.Client(**self.client_kwargs())
        try:
            self.execute(client)
            while self.attempt_retry():
                self.execute(client)
        finally:
            if own_client:
                client.close()
        self.finalize()
        return self.response

    def finalize(self) -> None:
        """Fire the terminal callbacks and release resources.

        On success a download is committed first, then ``on_success`` is
        called; on failure ``on_error`` is called. ``on_complete`` is
        called in both cases. Afterwards an incomplete download is
        deleted and the handle is closed, also when a callback raises.

        Raises:
            RuntimeError: If the handle is already finalized.
        """
        if self.finalized:
            msg = f"{self!r} is already finalized"
            raise RuntimeError(msg)
        self.finalized = True
        try:
            if self._download is not None and not self.error:
                try:
                    self._download.commit(self)
                except DownloadIOError as exc:
                    self._fail(ErrorKind.DOWNLOAD_IO, 0, exc)

            if self.error:
                log_transfer(
                    logger,
                    logging.DEBUG,
                    f"Handle {self.id} failed: {self.error_message}",
                    self,
                    error_code=self.error_code,
                )
                invoke_callback(self.callbacks.on_error, self)
            else:
                invoke_callback(self.callbacks.on_success, self)
            invoke_callback(self.callbacks.on_complete, self)
        finally:
            if self._download is not None and self.error:
                self._download.discard()
            self.close()

    def close(self) -> None:
        """Release the open file of a download. Safe to call repeatedly.

        A download closed without ``finalize()`` keeps its ``.partial``
        file so a later transfer can resume it.
        """
        if self.closed:
            return
        self.closed = True
        if self._download is not None:
            self._download.close()
