r"""Streaming response bodies to a file.

A ``DownloadTarget`` is owned by exactly one ``TransferHandle``. It
writes into ``<destination>.partial`` while the transfer runs and only
renames that file to the destination once the transfer succeeded. A
non-empty ``.partial`` file left behind by an earlier run is resumed
with an HTTP range request instead of being downloaded again.

Instead of a path, a callable can be given. The body is then written to
an anonymous temporary file which is rewound and passed to the callable
on success.
"""

from __future__ import annotations

__all__ = ["DownloadTarget"]

import logging
import os
import tempfile
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any, Union

from amulti.core.config import DOWNLOAD_CHUNK_SIZE, DOWNLOAD_SUFFIX
from amulti.exceptions import DownloadIOError

if TYPE_CHECKING:
    from collections.abc import Callable

    from amulti.handle import TransferHandle

    DownloadDestination = Union[str, os.PathLike, Callable[[TransferHandle, IO[bytes]], Any]]

logger: logging.Logger = logging.getLogger(__name__)


class DownloadTarget:
    """Destination of a downloaded response body.

    Args:
        destination: A file path, or a callable receiving
            ``(handle, fileobj)`` once the download succeeded.

    Example:
        ```pycon
        >>> from amulti.download import DownloadTarget
        >>> target = DownloadTarget("/tmp/archive.zip")
        >>> str(target.temp_path)
        '/tmp/archive.zip.partial'

        ```
    """

    def __init__(self, destination: DownloadDestination) -> None:
        self.fileobj: IO[bytes] | None = None
        if callable(destination):
            self.callback = destination
            self.destination: Path | None = None
            self.temp_path: Path | None = None
        else:
            self.callback = None
            self.destination = Path(destination)
            self.temp_path = self.destination.with_name(self.destination.name + DOWNLOAD_SUFFIX)
        self._requested_offset = 0

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}(destination={self.destination or self.callback!r})"

    @property
    def closed(self) -> bool:
        return self.fileobj is None

    def open(self) -> None:
        """Open the file the body is written to.

        In path mode an existing non-empty ``.partial`` file is opened for
        appending so the transfer can resume; otherwise a new file is
        created.

        Raises:
            DownloadIOError: If the file cannot be opened.
        """
        try:
            if self.temp_path is None:
                self.fileobj = tempfile.TemporaryFile(buffering=DOWNLOAD_CHUNK_SIZE)  # noqa: SIM115
            elif self.temp_path.is_file() and self.temp_path.stat().st_size > 0:
                self.fileobj = self.temp_path.open("ab", buffering=DOWNLOAD_CHUNK_SIZE)
                logger.debug(f"Resuming download into {self.temp_path}")
            else:
                self.fileobj = self.temp_path.open("wb", buffering=DOWNLOAD_CHUNK_SIZE)
        except OSError as exc:
            raise DownloadIOError(
                method="GET",
                url=None,
                message=f"Unable to write to file: {self.temp_path or '<temporary file>'}",
                cause=exc,
            ) from exc

    def begin_attempt(self) -> int:
        """Prepare the file for a new attempt.

        Returns:
            The byte offset the attempt should start from. A value > 0
            means the request must ask for ``Range: bytes=<offset>-``.
        """
        fileobj = self._require_open()
        if self.temp_path is None:
            fileobj.seek(0)
            fileobj.truncate()
            self._requested_offset = 0
        else:
            fileobj.flush()
            self._requested_offset = fileobj.seek(0, os.SEEK_END)
        return self._requested_offset

    def begin_response(self, status_code: int) -> int:
        """Drop the resumed bytes if the server ignored the range request.

        Args:
            status_code: The status code of the response about to be
                written.

        Returns:
            The number of bytes already in the file.
        """
        if self._requested_offset and status_code != 206:
            logger.debug(
                f"Server answered {status_code} to a range request, restarting {self.temp_path}"
            )
            fileobj = self._require_open()
            fileobj.seek(0)
            fileobj.truncate()
            return 0
        return self._requested_offset

    def write(self, chunk: bytes) -> None:
        self._require_open().write(chunk)

    def commit(self, handle: TransferHandle) -> None:
        """Publish the downloaded body.

        In path mode the ``.partial`` file is closed and atomically
        renamed to the destination. In callable mode the temporary file is
        rewound and passed to the callable, then closed.

        Args:
            handle: The handle that owns this target.

        Raises:
            DownloadIOError: If the rename fails.
        """
        fileobj = self._require_open()
        if self.callback is not None:
            try:
                fileobj.flush()
                fileobj.seek(0)
                self.callback(handle, fileobj)
            finally:
                self.close()
            return

        self.close()
        try:
            os.replace(self.temp_path, self.destination)
        except OSError as exc:
            raise DownloadIOError(
                method=handle.method,
                url=handle.url_string,
                message=f"Unable to move {self.temp_path} to {self.destination}",
                cause=exc,
            ) from exc
        logger.debug(f"Download saved to {self.destination}")

    def discard(self) -> None:
        """Close the file and delete the ``.partial`` file, if any."""
        self.close()
        if self.temp_path is not None and self.temp_path.is_file():
            self.temp_path.unlink()
            logger.debug(f"Removed incomplete download {self.temp_path}")

    def close(self) -> None:
        if self.fileobj is not None:
            self.fileobj.close()
            self.fileobj = None

    def _require_open(self) -> IO[bytes]:
        if self.fileobj is None:
            msg = f"{self!r} is not open"
            raise ValueError(msg)
        return self.fileobj
