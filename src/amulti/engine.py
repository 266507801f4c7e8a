r"""Multi engines run many registered transfers concurrently.

The dispatcher drives an engine through a small non-blocking contract
modelled on a multi-handle event loop:

- ``add_handle`` / ``remove_handle`` register and deregister a handle;
- ``select(timeout)`` blocks until some transfer finished or the
  timeout elapsed and returns the number of ready transfers, or ``-1``
  on a spurious failure;
- ``perform()`` advances all transfers without blocking;
- ``read_info()`` pops one finished transfer, or returns ``None``.

``HttpxMultiEngine`` implements the contract on a private asyncio event
loop and an ``httpx.AsyncClient``, so callers stay fully synchronous.
"""

from __future__ import annotations

__all__ = ["BaseMultiEngine", "CompletedTransfer", "HttpxMultiEngine"]

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import TYPE_CHECKING, Any

import httpx

from amulti.core.config import DEFAULT_TIMEOUT
from amulti.exceptions import EngineRegistrationError

if TYPE_CHECKING:
    from amulti.core.config import TransferOptions
    from amulti.handle import TransferHandle, TransferOutcome

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class CompletedTransfer:
    """A finished attempt reported by an engine.

    Attributes:
        handle: The handle whose attempt finished.
        outcome: The raw outcome of the attempt.
    """

    handle: TransferHandle
    outcome: TransferOutcome


class BaseMultiEngine(ABC):
    """Base class of the engines a ``Dispatcher`` can drive."""

    def __enter__(self) -> BaseMultiEngine:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @abstractmethod
    def add_handle(self, handle: TransferHandle, delay: float = 0.0) -> None:
        """Register a handle and start its attempt.

        Args:
            handle: The handle to register. It must have an id.
            delay: Seconds to wait before the request is sent.

        Raises:
            EngineRegistrationError: If the engine refuses the handle.
        """

    @abstractmethod
    def remove_handle(self, handle: TransferHandle) -> None:
        """Deregister a handle, cancelling its attempt if still running.

        Raises:
            EngineRegistrationError: If the handle is not registered.
        """

    @abstractmethod
    def select(self, timeout: float) -> int:
        """Wait until a transfer finished or ``timeout`` seconds elapsed.

        Returns:
            The number of finished transfers, or ``-1`` if waiting
            failed and the caller should back off briefly.
        """

    @abstractmethod
    def perform(self) -> int:
        """Advance all transfers without blocking.

        Returns:
            The number of transfers still running.
        """

    @abstractmethod
    def read_info(self) -> CompletedTransfer | None:
        """Pop the next finished transfer, each one is reported once."""

    @abstractmethod
    def close(self) -> None:
        """Cancel all transfers and release the engine resources."""


class HttpxMultiEngine(BaseMultiEngine):
    """Engine running transfers as tasks on a private event loop.

    Each attempt is an ``asyncio`` task executing
    ``handle.transfer_async()``. The loop only runs inside ``select()``,
    ``perform()`` and ``remove_handle()``.

    Clients created by the engine never store cookies, so a
    ``Set-Cookie`` received by one transfer is not sent by another. A
    client passed in by the caller keeps its own cookie jar.

    Args:
        client: Optional ``httpx.AsyncClient`` used for handles without a
            proxy or custom TLS verification. It is not closed by the
            engine. A client is created when none is given.
        transport: Optional transport of the clients created by the
            engine. Cannot be combined with ``client``.
        max_handles: Optional maximum number of transfers in flight.
            Finished transfers waiting to be deregistered do not count.

    Raises:
        ValueError: If both ``client`` and ``transport`` are given.

    Example:
        ```pycon
        >>> from amulti.engine import HttpxMultiEngine
        >>> with HttpxMultiEngine() as engine:
        ...     engine.select(0.1), engine.perform(), engine.read_info()
        ...
        (0, 0, None)

        ```
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        max_handles: int | None = None,
    ) -> None:
        if client is not None and transport is not None:
            msg = "Pass either client or transport, not both"
            raise ValueError(msg)
        self._loop = asyncio.new_event_loop()
        self._client = client
        self._transport = transport
        self._owns_client = client is None
        self._extra_clients: dict[tuple[Any, ...], httpx.AsyncClient] = {}
        self._max_handles = max_handles
        self._handles: dict[int, TransferHandle] = {}
        self._tasks: dict[int, asyncio.Task] = {}
        self._finished: deque[CompletedTransfer] = deque()
        self._closed = False

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}(handles={len(self._handles)}, closed={self._closed})"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def handle_count(self) -> int:
        return len(self._handles)

    def add_handle(self, handle: TransferHandle, delay: float = 0.0) -> None:
        if self._closed:
            msg = "Cannot register a handle on a closed engine"
            raise EngineRegistrationError(msg)
        if handle.id is None:
            msg = f"{handle!r} has no id"
            raise EngineRegistrationError(msg)
        if handle.id in self._handles:
            msg = f"Handle {handle.id} is already registered"
            raise EngineRegistrationError(msg)
        if self._max_handles is not None and len(self._tasks) >= self._max_handles:
            msg = f"Cannot register more than {self._max_handles} handles"
            raise EngineRegistrationError(msg)

        client = self._client_for(handle.options)
        self._handles[handle.id] = handle
        self._tasks[handle.id] = self._loop.create_task(self._run(handle, client, delay))
        logger.debug(f"Registered handle {handle.id} (delay={delay:.2f}s)")

    def remove_handle(self, handle: TransferHandle) -> None:
        if handle.id not in self._handles:
            msg = f"Handle {handle.id} is not registered"
            raise EngineRegistrationError(msg)
        del self._handles[handle.id]
        self._finished = deque(item for item in self._finished if item.handle is not handle)
        task = self._tasks.pop(handle.id, None)
        if task is not None and not task.done():
            task.cancel()
            self._loop.run_until_complete(asyncio.gather(task, return_exceptions=True))
        logger.debug(f"Deregistered handle {handle.id}")

    def select(self, timeout: float) -> int:
        if self._finished:
            return len(self._finished)
        pending = [task for task in self._tasks.values() if not task.done()]
        ready = len(self._tasks) - len(pending)
        if ready or not pending:
            return ready
        try:
            done, _ = self._loop.run_until_complete(
                asyncio.wait(pending, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
            )
        except OSError as exc:
            logger.warning(f"Waiting for transfers failed: {exc}")
            return -1
        return len(done)

    def perform(self) -> int:
        if self._tasks:
            self._loop.run_until_complete(asyncio.sleep(0))
        for handle_id in [handle_id for handle_id, task in self._tasks.items() if task.done()]:
            task = self._tasks.pop(handle_id)
            self._finished.append(
                CompletedTransfer(handle=self._handles[handle_id], outcome=task.result())
            )
        return len(self._tasks)

    def read_info(self) -> CompletedTransfer | None:
        if not self._finished:
            return None
        return self._finished.popleft()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            self._loop.run_until_complete(asyncio.gather(*tasks, return_exceptions=True))
        self._tasks.clear()
        self._handles.clear()
        self._finished.clear()

        clients = list(self._extra_clients.values())
        if self._owns_client and self._client is not None:
            clients.append(self._client)
        for client in clients:
            self._loop.run_until_complete(client.aclose())
        self._extra_clients.clear()
        self._loop.run_until_complete(self._loop.shutdown_asyncgens())
        self._loop.close()
        logger.debug("Engine closed")

    def _client_for(self, options: TransferOptions) -> httpx.AsyncClient:
        if options.proxy is None and options.verify is True:
            if self._client is None:
                self._client = self._new_client()
            return self._client
        key = (options.proxy, options.verify)
        if key not in self._extra_clients:
            self._extra_clients[key] = self._new_client(proxy=options.proxy, verify=options.verify)
        return self._extra_clients[key]

    def _new_client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
            timeout=DEFAULT_TIMEOUT,
            transport=self._transport,
            **kwargs,
        )

    @staticmethod
    async def _run(
        handle: TransferHandle, client: httpx.AsyncClient, delay: float
    ) -> TransferOutcome:
        if delay > 0:
            await asyncio.sleep(delay)
        return await handle.transfer_async(client)
