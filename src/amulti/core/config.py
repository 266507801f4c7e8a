r"""Configuration constants and dataclasses.

``TransferOptions`` holds the per-transfer settings of a handle and
``DispatcherDefaults`` holds the values a dispatcher applies to every
handle it promotes that has no value of its own. Both are plain values
passed explicitly to constructors; there is no process-wide registry.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_CONCURRENCY",
    "DEFAULT_SELECT_TIMEOUT",
    "DEFAULT_TIMEOUT",
    "DOWNLOAD_CHUNK_SIZE",
    "DOWNLOAD_SUFFIX",
    "SELECT_FALLBACK_SLEEP",
    "DispatcherDefaults",
    "TransferOptions",
]

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Union

import httpx

from amulti.callbacks import CallbackConfig
from amulti.core.validation import (
    validate_backoff_params,
    validate_max_filesize,
    validate_timeout,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from amulti.backoff import BaseBackoffStrategy
    from amulti.handle import TransferHandle
    from amulti.retry.decider import RetryDecider

    RetryPolicy = Union[int, Callable[[TransferHandle], bool], RetryDecider, None]


# Maximum number of simultaneously active handles per dispatcher
DEFAULT_CONCURRENCY = 25

# Total timeout in seconds for a single transfer attempt
DEFAULT_TIMEOUT = 30.0

# Upper bound in seconds for one blocking wait on the engine
DEFAULT_SELECT_TIMEOUT = 1.0

# Sleep in seconds when the engine reports a spurious select failure
SELECT_FALLBACK_SLEEP = 0.00025

# Suffix of the temporary file a download is written to
DOWNLOAD_SUFFIX = ".partial"

# Write buffer size in bytes of the file a download is streamed to
DOWNLOAD_CHUNK_SIZE = 65536


@dataclass
class TransferOptions:
    """Per-transfer options of a ``TransferHandle``.

    Args:
        headers: Extra request headers.
        cookies: Cookies sent with the request.
        timeout: Total timeout in seconds, or ``None`` for no timeout.
        connect_timeout: Optional connect timeout in seconds. Defaults to
            ``timeout``.
        auth: Optional ``(username, password)`` tuple or ``httpx.Auth``.
        proxy: Optional proxy URL.
        verify: TLS verification flag or CA bundle path.
        follow_redirects: Whether redirects are followed.
        user_agent: Optional ``User-Agent`` header value.
        referer: Optional ``Referer`` header value.
        range: Optional byte range, e.g. ``"0-99"`` or ``"100-"``.
        max_filesize: Optional maximum size in bytes of a downloaded
            file. A download growing past it is aborted.

    Raises:
        ValueError: If a timeout is not positive or ``max_filesize`` is
            negative.

    Example:
        ```pycon
        >>> from amulti.core.config import TransferOptions
        >>> options = TransferOptions(timeout=5.0)
        >>> options.merge(follow_redirects=True).follow_redirects
        True
        >>> options.follow_redirects
        False

        ```
    """

    headers: dict[str, str] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)
    timeout: float | None = DEFAULT_TIMEOUT
    connect_timeout: float | None = None
    auth: tuple[str, str] | httpx.Auth | None = None
    proxy: str | None = None
    verify: bool | str = True
    follow_redirects: bool = False
    user_agent: str | None = None
    referer: str | None = None
    range: str | None = None
    max_filesize: int | None = None

    def __post_init__(self) -> None:
        validate_timeout(self.timeout)
        validate_timeout(self.connect_timeout, name="connect_timeout")
        validate_max_filesize(self.max_filesize)

    def merge(self, **overrides: Any) -> TransferOptions:
        """Create new options with the given fields overridden.

        Header and cookie overrides are merged into copies of the current
        mappings instead of replacing them.

        Args:
            **overrides: Field values to override.

        Returns:
            A new ``TransferOptions`` instance.

        Raises:
            TypeError: If an override names an unknown field.
        """
        headers = {**self.headers, **overrides.pop("headers", {})}
        cookies = {**self.cookies, **overrides.pop("cookies", {})}
        return replace(self, headers=headers, cookies=cookies, **overrides)

    def timeout_config(self) -> httpx.Timeout:
        """Return the ``httpx.Timeout`` matching these options."""
        connect = self.connect_timeout if self.connect_timeout is not None else self.timeout
        return httpx.Timeout(self.timeout, connect=connect)


@dataclass
class DispatcherDefaults:
    """Values a dispatcher applies to handles at promotion time.

    A handle keeps every callback and its retry policy if it set them
    itself; only missing values are filled in. Cookies are merged with
    the handle's own cookies taking precedence.

    Args:
        callbacks: Default lifecycle callbacks.
        retry: Default retry policy: a retry count, a predicate, a
            ``RetryDecider`` or ``None`` for a single attempt.
        cookies: Cookies sent with every transfer.
        backoff_strategy: Optional strategy for delaying retries. Without
            one, a retry is re-submitted immediately.
        jitter_factor: Random jitter added to retry delays. Must be >= 0.
        max_wait_time: Optional cap in seconds for a single retry delay.

    Example:
        ```pycon
        >>> from amulti.core.config import DispatcherDefaults
        >>> defaults = DispatcherDefaults(retry=2)
        >>> defaults.retry
        2

        ```
    """

    callbacks: CallbackConfig = field(default_factory=CallbackConfig)
    retry: RetryPolicy = None
    cookies: dict[str, str] = field(default_factory=dict)
    backoff_strategy: BaseBackoffStrategy | None = None
    jitter_factor: float = 0.0
    max_wait_time: float | None = None

    def __post_init__(self) -> None:
        validate_backoff_params(jitter_factor=self.jitter_factor, max_wait_time=self.max_wait_time)

    def copy(self) -> DispatcherDefaults:
        """Return a copy whose mutable members are not shared."""
        return replace(self, callbacks=replace(self.callbacks), cookies=dict(self.cookies))
