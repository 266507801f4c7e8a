r"""Shared test helpers for dispatcher and engine tests.

``FakeEngine`` completes every registered handle on the next
``perform()`` with an outcome computed by a caller-supplied function,
so dispatcher logic can be tested without any network or event loop.
"""

from __future__ import annotations

__all__ = ["FakeEngine", "make_response", "ok_outcome", "status_outcome", "transport_outcome"]

from collections import deque
from typing import TYPE_CHECKING

import httpx

from amulti.engine import BaseMultiEngine, CompletedTransfer
from amulti.exceptions import EngineRegistrationError
from amulti.handle import TransferOutcome

if TYPE_CHECKING:
    from collections.abc import Callable

    from amulti.handle import TransferHandle


def make_response(status_code: int = 200, content: bytes = b"ok", **kwargs) -> httpx.Response:
    """Create a read ``httpx.Response`` bound to a dummy request."""
    return httpx.Response(
        status_code,
        content=content,
        request=httpx.Request("GET", "https://example.com"),
        **kwargs,
    )


def ok_outcome(handle: TransferHandle) -> TransferOutcome:  # noqa: ARG001
    return TransferOutcome(response=make_response(200))


def status_outcome(status_code: int) -> Callable[[TransferHandle], TransferOutcome]:
    def respond(handle: TransferHandle) -> TransferOutcome:  # noqa: ARG001
        return TransferOutcome(response=make_response(status_code, content=b"error"))

    return respond


def transport_outcome(handle: TransferHandle) -> TransferOutcome:  # noqa: ARG001
    return TransferOutcome(error=httpx.ConnectError("connection refused"))


class FakeEngine(BaseMultiEngine):
    """In-memory engine finishing every registered handle at once.

    Args:
        respond: Function returning the outcome of a handle attempt.
        select_failures: Number of initial ``select()`` calls returning
            ``-1``.
        max_handles: Optional limit on the number of transfers in
            flight.
    """

    def __init__(
        self,
        respond: Callable[[TransferHandle], TransferOutcome] = ok_outcome,
        *,
        select_failures: int = 0,
        max_handles: int | None = None,
    ) -> None:
        self.respond = respond
        self.select_failures = select_failures
        self.max_handles = max_handles
        self.registered: dict[int, TransferHandle] = {}
        self.added: list[tuple[int, float]] = []
        self.removed: list[int] = []
        self.max_registered = 0
        self.select_calls = 0
        self.closed = False
        self._running: list[TransferHandle] = []
        self._finished: deque[CompletedTransfer] = deque()

    def add_handle(self, handle: TransferHandle, delay: float = 0.0) -> None:
        if handle.id in self.registered:
            msg = f"Handle {handle.id} is already registered"
            raise EngineRegistrationError(msg)
        if self.max_handles is not None and len(self._running) >= self.max_handles:
            msg = "too many handles"
            raise EngineRegistrationError(msg)
        self.registered[handle.id] = handle
        self.added.append((handle.id, delay))
        self.max_registered = max(self.max_registered, len(self.registered))
        self._running.append(handle)

    def remove_handle(self, handle: TransferHandle) -> None:
        if handle.id not in self.registered:
            msg = f"Handle {handle.id} is not registered"
            raise EngineRegistrationError(msg)
        del self.registered[handle.id]
        self.removed.append(handle.id)

    def select(self, timeout: float) -> int:  # noqa: ARG002
        self.select_calls += 1
        if self.select_failures:
            self.select_failures -= 1
            return -1
        return len(self._running)

    def perform(self) -> int:
        running, self._running = self._running, []
        for handle in running:
            self._finished.append(CompletedTransfer(handle=handle, outcome=self.respond(handle)))
        return 0

    def read_info(self) -> CompletedTransfer | None:
        if not self._finished:
            return None
        return self._finished.popleft()

    def close(self) -> None:
        self.closed = True
