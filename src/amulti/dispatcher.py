r"""Concurrent execution of many transfer handles.

A ``Dispatcher`` keeps a FIFO queue of pending handles and an active
set of at most ``concurrency`` handles registered with a multi engine.
``start()`` drives the engine until both are empty. Every handle is
finalized exactly once, whatever the outcome of its transfer.
"""

from __future__ import annotations

__all__ = ["Dispatcher"]

import logging
import time
from collections import deque
from typing import TYPE_CHECKING

from amulti.core.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_SELECT_TIMEOUT,
    SELECT_FALLBACK_SLEEP,
    DispatcherDefaults,
)
from amulti.core.validation import validate_concurrency, validate_timeout
from amulti.engine import HttpxMultiEngine
from amulti.exceptions import ConfigurationError, EngineRegistrationError
from amulti.handle import TransferOutcome, next_handle_id
from amulti.promise import MultiPromise
from amulti.retry.decider import build_retry_decider
from amulti.retry.strategy import RetryStrategy
from amulti.utils.structured_logging import get_batch_id, log_transfer, new_batch_id, set_batch_id

if TYPE_CHECKING:
    from collections.abc import Mapping

    import httpx

    from amulti.callbacks import ProgressCallback, TransferCallback
    from amulti.core.config import RetryPolicy
    from amulti.download import DownloadDestination
    from amulti.engine import BaseMultiEngine, CompletedTransfer
    from amulti.handle import TransferHandle
    from amulti.promise import ErrorHandler

logger: logging.Logger = logging.getLogger(__name__)


class Dispatcher:
    """Run queued transfer handles with bounded concurrency.

    Args:
        concurrency: Maximum number of simultaneously active handles.
        defaults: Default callbacks, retry policy, cookies and retry
            delays applied to handles at promotion time. The dispatcher
            keeps its own copy.
        engine: Optional multi engine. An ``HttpxMultiEngine`` is created
            when none is given.
        client: Optional ``httpx.AsyncClient`` for the default engine.
            Cannot be combined with ``engine``.
        select_timeout: Upper bound in seconds for one blocking wait on
            the engine.

    Raises:
        ValueError: If a parameter is invalid.

    Example:
        ```pycon
        >>> from amulti import Dispatcher, TransferHandle
        >>> dispatcher = Dispatcher(concurrency=10)
        >>> dispatcher.set_retry(2)
        >>> handle = dispatcher.enqueue(TransferHandle("https://example.com/a"))
        >>> handle.id > 0, dispatcher.pending_count
        (True, 1)
        >>> dispatcher.start()  # doctest: +SKIP
        >>> dispatcher.close()

        ```
    """

    def __init__(
        self,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        defaults: DispatcherDefaults | None = None,
        engine: BaseMultiEngine | None = None,
        client: httpx.AsyncClient | None = None,
        select_timeout: float = DEFAULT_SELECT_TIMEOUT,
    ) -> None:
        validate_concurrency(concurrency)
        validate_timeout(select_timeout, name="select_timeout")
        if select_timeout is None:
            msg = "select_timeout must not be None"
            raise ValueError(msg)
        if engine is not None and client is not None:
            msg = "Pass either engine or client, not both"
            raise ValueError(msg)

        self._concurrency = concurrency
        self._defaults = (defaults or DispatcherDefaults()).copy()
        self._engine = engine if engine is not None else HttpxMultiEngine(client=client)
        self._select_timeout = select_timeout
        self._queue: deque[TransferHandle] = deque()
        self._active: dict[int, TransferHandle] = {}
        self._running = False

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__qualname__}(concurrency={self._concurrency}, "
            f"pending={len(self._queue)}, active={len(self._active)})"
        )

    def __enter__(self) -> Dispatcher:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def defaults(self) -> DispatcherDefaults:
        return self._defaults

    @property
    def engine(self) -> BaseMultiEngine:
        return self._engine

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def pending_handles(self) -> tuple[TransferHandle, ...]:
        return tuple(self._queue)

    @property
    def active_handles(self) -> tuple[TransferHandle, ...]:
        return tuple(self._active.values())

    #####################
    #     Enqueuing     #
    #####################

    def enqueue(self, handle: TransferHandle) -> TransferHandle:
        """Append a handle to the queue and assign its id.

        Ids are strictly increasing in enqueue order. The handle is sent
        by the next ``start()``, or by the running one if called from a
        callback.

        Args:
            handle: The handle to queue.

        Returns:
            The same handle.

        Raises:
            RuntimeError: If the handle is closed or already finalized.
            ValueError: If the handle already belongs to a dispatcher.
        """
        if handle.finalized or handle.closed:
            msg = f"Cannot enqueue {handle!r}: it is already finalized or closed"
            raise RuntimeError(msg)
        if handle.child_of_multi:
            msg = f"Cannot enqueue {handle!r}: it already belongs to a dispatcher"
            raise ValueError(msg)
        handle.id = next_handle_id()
        handle.child_of_multi = True
        self._queue.append(handle)
        log_transfer(logger, logging.DEBUG, f"Queued handle {handle.id}", handle)
        return handle

    add_handle = enqueue

    def add_download(
        self, handle: TransferHandle, destination: DownloadDestination
    ) -> TransferHandle:
        """Queue ``handle`` as a GET download to ``destination``.

        Raises:
            DownloadIOError: If the temporary file cannot be opened.
        """
        handle.method = "GET"
        handle.download(destination)
        return self.enqueue(handle)

    def set_concurrency(self, concurrency: int) -> None:
        """Change the maximum number of active handles.

        A lower value takes effect as active handles finish.
        """
        validate_concurrency(concurrency)
        self._concurrency = concurrency

    ####################
    #     Defaults     #
    ####################

    def before_send(self, callback: TransferCallback | None) -> None:
        self._defaults.callbacks.before_send = callback

    def on_success(self, callback: TransferCallback | None) -> None:
        self._defaults.callbacks.on_success = callback

    def on_error(self, callback: TransferCallback | None) -> None:
        self._defaults.callbacks.on_error = callback

    def on_complete(self, callback: TransferCallback | None) -> None:
        self._defaults.callbacks.on_complete = callback

    def on_progress(self, callback: ProgressCallback | None) -> None:
        self._defaults.callbacks.on_progress = callback

    def set_retry(self, policy: RetryPolicy) -> None:
        """Set the retry policy of handles that have none of their own.

        Raises:
            TypeError: If ``policy`` has an unsupported type.
            ValueError: If ``policy`` is a negative count.
        """
        build_retry_decider(policy)
        self._defaults.retry = policy

    def set_cookie(self, name: str, value: str) -> None:
        self._defaults.cookies[name] = value

    def set_cookies(self, cookies: Mapping[str, str]) -> None:
        self._defaults.cookies.update(cookies)

    def promise(self, error_handler: ErrorHandler | None = None) -> MultiPromise:
        """Return a promise that runs this dispatcher when waited on."""
        return MultiPromise(self, error_handler=error_handler)

    #################
    #     Run       #
    #################

    def start(self) -> None:
        """Run all queued handles until queue and active set are empty.

        A call while a run is in progress, e.g. from a callback, returns
        immediately. Per-transfer failures are reported through the
        handle callbacks, never raised.

        Raises:
            EngineRegistrationError: If the engine refuses a handle.
        """
        if self._running:
            logger.debug("Dispatcher is already running, ignoring start()")
            return

        self._running = True
        previous_batch_id = get_batch_id()
        set_batch_id(new_batch_id())
        retry_strategy = RetryStrategy(
            backoff_strategy=self._defaults.backoff_strategy,
            jitter_factor=self._defaults.jitter_factor,
            max_wait_time=self._defaults.max_wait_time,
        )
        logger.debug(f"Starting dispatcher with {len(self._queue)} queued handles")
        try:
            self._fill()
            while self._active:
                if self._engine.select(self._select_timeout) == -1:
                    time.sleep(SELECT_FALLBACK_SLEEP)
                running = self._engine.perform()
                completed = self._engine.read_info()
                if completed is None and running == 0 and self._active:
                    msg = f"Engine has no transfer for {len(self._active)} active handles"
                    raise EngineRegistrationError(msg)
                while completed is not None:
                    self._process(completed, retry_strategy)
                    completed = self._engine.read_info()
            logger.debug("Dispatcher finished")
        finally:
            self._running = False
            set_batch_id(previous_batch_id)

    def close(self) -> None:
        """Close the engine and every handle that was not finalized.

        Downloads of closed handles keep their ``.partial`` file.
        """
        handles = list(self._queue) + list(self._active.values())
        self._queue.clear()
        self._active.clear()
        for handle in handles:
            handle.close()
        self._engine.close()

    def _fill(self) -> None:
        while self._queue and len(self._active) < self._concurrency:
            self._promote(self._queue.popleft())

    def _promote(self, handle: TransferHandle) -> None:
        handle.callbacks.fill_missing(self._defaults.callbacks)
        if handle.retry_decider is None and self._defaults.retry is not None:
            handle.set_retry(self._defaults.retry)
        if self._defaults.cookies:
            handle.options = handle.options.merge(
                cookies={**self._defaults.cookies, **handle.options.cookies}
            )

        try:
            handle.validate()
        except ConfigurationError as exc:
            handle.complete_attempt(TransferOutcome(error=exc))
            handle.finalize()
            return

        self._active[handle.id] = handle
        self._register(handle, delay=0.0)

    def _register(self, handle: TransferHandle, delay: float) -> None:
        """Start an attempt of an active handle on the engine.

        If the attempt cannot be started the handle leaves the active
        set. A handle refused by the engine is closed; a handle whose
        ``before_send`` callback raised goes back to the head of the
        queue and is attempted again by the next ``start()``.
        """
        try:
            handle.begin_attempt()
        except BaseException:
            del self._active[handle.id]
            self._queue.appendleft(handle)
            raise
        try:
            self._engine.add_handle(handle, delay=delay)
        except BaseException:
            del self._active[handle.id]
            handle.close()
            raise

    def _process(self, completed: CompletedTransfer, retry_strategy: RetryStrategy) -> None:
        handle = completed.handle
        if self._active.get(handle.id) is not handle:
            logger.warning(f"Ignoring a finished transfer of unknown handle {handle.id}")
            return

        handle.complete_attempt(completed.outcome)
        if handle.attempt_retry():
            delay = retry_strategy.calculate_delay(handle)
            self._engine.remove_handle(handle)
            self._register(handle, delay=delay)
            return

        try:
            handle.finalize()
        except BaseException:
            del self._active[handle.id]
            self._engine.remove_handle(handle)
            raise
        del self._active[handle.id]
        try:
            self._fill()
        finally:
            self._engine.remove_handle(handle)
